"""
Admin review helpers: key checks, record deletion and the HTML dashboard.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from html import escape
from typing import Iterable, Optional
from urllib.parse import quote

from idverify.images import ImageStore
from idverify.records import RecordStore, VerificationRecord

logger = logging.getLogger(__name__)


def is_admin_key(candidate: Optional[str], admin_key: Optional[str]) -> bool:
    if not admin_key or candidate is None:
        return False
    return secrets.compare_digest(candidate.encode("utf-8"), admin_key.encode("utf-8"))


def newest_first(records: Iterable[VerificationRecord]) -> list[VerificationRecord]:
    return sorted(records, key=lambda record: record.created_at, reverse=True)


def delete_verification(
    records: RecordStore, images: ImageStore, record_id: str
) -> Optional[VerificationRecord]:
    """
    Remove a record and then its remote images.

    Image deletion is best-effort: failures are logged and the record stays
    removed. Returns None when no record has the given id.
    """
    record = records.remove_by_id(record_id)
    if record is None:
        return None
    logger.info("Deleted verification %s", record.id)
    for label, ref in record.images.items():
        if not ref.image_id:
            continue
        try:
            images.delete(ref.image_id)
        except Exception:
            logger.warning(
                "Could not delete %s image %s of %s",
                label,
                ref.image_id,
                record.id,
                exc_info=True,
            )
    return record


def _format_timestamp(value: str) -> str:
    try:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    except ValueError:
        return value


LOGIN_PAGE = """<!doctype html>
<html>
<head><title>Admin Login</title></head>
<body>
  <h2>Admin Login</h2>
  <form action="{action}" method="get">
    <input type="password" name="key" placeholder="Enter Admin Password" required />
    <button type="submit">Login</button>
  </form>
</body>
</html>
"""

ACCESS_DENIED_PAGE = "<h3>Access Denied: wrong password</h3>"

DASHBOARD_STYLE = """
body{font-family:Arial,Helvetica,sans-serif;padding:20px;background:#f5f7fb}
.top{display:flex;gap:10px;align-items:center;margin-bottom:15px}
button{padding:8px 12px;border-radius:6px;border:1px solid #ccc;background:#fff;cursor:pointer}
table{width:100%;border-collapse:collapse;background:#fff}
th,td{padding:10px;border-bottom:1px solid #eee;text-align:left;vertical-align:middle}
th{background:#fafafa}
img{border-radius:6px;max-width:120px;height:auto;display:block}
.small{font-size:12px;color:#666}
"""


def render_login_page(prefix: str = "") -> str:
    return LOGIN_PAGE.format(action=escape(f"{prefix}/dashboard"))


def _image_cell(url: str, alt: str) -> str:
    href = escape(url)
    return (
        f'<td><a href="{href}" target="_blank" rel="noopener">'
        f'<img src="{href}" alt="{alt}"/></a></td>'
    )


def render_dashboard(
    records: Iterable[VerificationRecord], key: str, prefix: str = ""
) -> str:
    ordered = newest_first(records)
    dashboard_url = escape(f"{prefix}/dashboard?key={quote(key)}")
    rows = []
    for index, record in enumerate(ordered, start=1):
        delete_action = escape(f"{prefix}/dashboard/records/{quote(record.id)}/delete")
        rows.append(
            "<tr>"
            f"<td>{index}</td>"
            f"<td>{escape(record.name)}</td>"
            f"<td>{escape(record.id_number)}</td>"
            f"<td>{escape(record.phone)}</td>"
            + _image_cell(record.selfie.url, "selfie")
            + _image_cell(record.id_front.url, "frontID")
            + _image_cell(record.id_back.url, "backID")
            + f"<td>{escape(_format_timestamp(record.created_at))}</td>"
            f'<td><form method="post" action="{delete_action}">'
            f'<input type="hidden" name="key" value="{escape(key)}"/>'
            '<button type="submit">Delete</button></form></td>'
            "</tr>"
        )

    body = "".join(rows)
    return f"""<!doctype html>
<html>
<head>
  <title>Admin Dashboard - Verifications</title>
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <style>{DASHBOARD_STYLE}</style>
</head>
<body>
  <div class="top">
    <h1>Uploaded Verifications</h1>
    <div style="margin-left:auto">
      <a href="{dashboard_url}"><button type="button">Reload</button></a>
    </div>
  </div>
  <p class="small">Total records: {len(ordered)}</p>
  <table>
    <thead>
      <tr>
        <th>#</th><th>Name</th><th>ID Number</th><th>Phone</th>
        <th>Selfie</th><th>ID Front</th><th>ID Back</th><th>Uploaded At</th><th></th>
      </tr>
    </thead>
    <tbody>
      {body}
    </tbody>
  </table>
</body>
</html>
"""
