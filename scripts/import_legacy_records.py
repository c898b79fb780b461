"""
CLI helper to load a data.json export into the configured record store.

Accepts both the current record layout and the older one where each image
field holds a bare URL.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from idverify.dependencies import get_record_store
from idverify.records import RecordStore, StoreError, VerificationRecord

logger = logging.getLogger(__name__)


def import_records(store: RecordStore, items: list[dict], dry_run: bool = False) -> int:
    """Append records whose ids are not in the store yet; return how many."""
    existing = {record.id for record in store.read_all()}
    imported = 0
    for item in items:
        try:
            record = VerificationRecord.from_dict(item)
        except (ValueError, TypeError) as exc:
            label = item.get("id") if isinstance(item, dict) else item
            logger.warning("Skipping malformed record %s: %s", label, exc)
            continue
        if record.id in existing:
            continue
        if not dry_run:
            store.append(record)
        existing.add(record.id)
        imported += 1
    return imported


def main() -> int:
    parser = argparse.ArgumentParser(description="Import legacy verification records")
    parser.add_argument("path", type=Path, help="JSON file holding a list of records")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many records would be imported without writing",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    try:
        items = json.loads(args.path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Could not read %s: %s", args.path, exc)
        return 1
    if not isinstance(items, list):
        logger.error("%s does not contain a JSON array", args.path)
        return 1

    try:
        count = import_records(get_record_store(), items, dry_run=args.dry_run)
    except StoreError as exc:
        logger.error("Import failed: %s", exc)
        return 1
    verb = "Would import" if args.dry_run else "Imported"
    print(f"{verb} {count} record(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
