"""
Record store abstraction: JSON document, SQL database and in-memory variants.

Every store serialises its writes so that concurrent appends never lose a
record. The JSON store rewrites the whole document through a temp file under
a lock; the SQL store relies on one transaction per operation.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from sqlalchemy import Column, Integer, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class StoreError(Exception):
    """Raised when the record store cannot be read or written."""


def new_record_id() -> str:
    # Millisecond timestamp keeps ids roughly ordered; the suffix keeps
    # concurrent submissions in the same millisecond apart.
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ImageRef:
    url: str
    image_id: str = ""

    def as_dict(self) -> dict:
        return {"url": self.url, "publicId": self.image_id}

    @classmethod
    def from_value(cls, value) -> "ImageRef":
        # Older data.json files stored the bare URL.
        if isinstance(value, str):
            return cls(url=value)
        if isinstance(value, dict):
            return cls(url=value.get("url", ""), image_id=value.get("publicId") or "")
        raise ValueError(f"Unrecognised image reference: {value!r}")


@dataclass(frozen=True)
class VerificationRecord:
    name: str
    id_number: str
    phone: str
    selfie: ImageRef
    id_front: ImageRef
    id_back: ImageRef
    id: str = field(default_factory=new_record_id)
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def images(self) -> dict[str, ImageRef]:
        return {"selfie": self.selfie, "frontID": self.id_front, "backID": self.id_back}

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "idNumber": self.id_number,
            "phone": self.phone,
            "selfie": self.selfie.as_dict(),
            "frontID": self.id_front.as_dict(),
            "backID": self.id_back.as_dict(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationRecord":
        try:
            return cls(
                id=str(data["id"]),
                name=data["name"],
                id_number=str(data["idNumber"]),
                phone=str(data["phone"]),
                selfie=ImageRef.from_value(data["selfie"]),
                id_front=ImageRef.from_value(data["frontID"]),
                id_back=ImageRef.from_value(data["backID"]),
                created_at=data["createdAt"],
            )
        except KeyError as exc:
            raise ValueError(f"Record is missing field {exc.args[0]!r}") from exc


class RecordStore(Protocol):
    """Operations the service needs from durable record storage."""

    def read_all(self) -> list[VerificationRecord]:
        ...

    def append(self, record: VerificationRecord) -> None:
        ...

    def remove_by_id(self, record_id: str) -> Optional[VerificationRecord]:
        ...


class InMemoryRecordStore:
    """Process-local record list for development and tests."""

    def __init__(self):
        self.records: list[VerificationRecord] = []
        self._lock = threading.Lock()

    def read_all(self) -> list[VerificationRecord]:
        with self._lock:
            return list(self.records)

    def append(self, record: VerificationRecord) -> None:
        with self._lock:
            self.records.append(record)

    def remove_by_id(self, record_id: str) -> Optional[VerificationRecord]:
        with self._lock:
            for index, record in enumerate(self.records):
                if record.id == record_id:
                    return self.records.pop(index)
        return None

    def reset(self) -> None:
        """Clear all stored records (useful in tests)."""
        with self._lock:
            self.records.clear()


class JsonFileRecordStore:
    """
    Records kept as one JSON array on disk.

    The document is replaced atomically on every write, and all access goes
    through a single lock, so readers never see a half-written file and
    concurrent appends within the process are not lost.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> list[dict]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StoreError(f"Could not read {self.path}: {exc}") from exc
        try:
            data = json.loads(raw or "[]")
        except ValueError as exc:
            raise StoreError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise StoreError(f"{self.path} does not contain a JSON array")
        return data

    def _write(self, items: list[dict]) -> None:
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Could not write {self.path}: {exc}") from exc

    def _decode(self, items: list[dict]) -> list[VerificationRecord]:
        try:
            return [VerificationRecord.from_dict(item) for item in items]
        except (ValueError, TypeError) as exc:
            raise StoreError(f"{self.path} holds a malformed record: {exc}") from exc

    def read_all(self) -> list[VerificationRecord]:
        with self._lock:
            return self._decode(self._load())

    def append(self, record: VerificationRecord) -> None:
        with self._lock:
            items = self._load()
            items.append(record.as_dict())
            self._write(items)

    def remove_by_id(self, record_id: str) -> Optional[VerificationRecord]:
        with self._lock:
            items = self._load()
            # Decode everything first so a corrupt document is never rewritten.
            records = self._decode(items)
            for index, record in enumerate(records):
                if record.id == record_id:
                    del items[index]
                    self._write(items)
                    return record
        return None


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_record(self, row: "RecordRow") -> VerificationRecord:
        return VerificationRecord(
            id=row.id,
            name=row.name,
            id_number=row.id_number,
            phone=row.phone,
            selfie=ImageRef(url=row.selfie_url, image_id=row.selfie_id),
            id_front=ImageRef(url=row.id_front_url, image_id=row.id_front_id),
            id_back=ImageRef(url=row.id_back_url, image_id=row.id_back_id),
            created_at=row.created_at,
        )

    def read_all(self) -> list[VerificationRecord]:
        try:
            with self.Session() as session:
                stmt = select(RecordRow).order_by(RecordRow.seq.asc())
                return [self._to_record(row) for row in session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not read records: {exc}") from exc

    def append(self, record: VerificationRecord) -> None:
        try:
            with self.Session() as session:
                session.add(
                    RecordRow(
                        id=record.id,
                        name=record.name,
                        id_number=record.id_number,
                        phone=record.phone,
                        selfie_url=record.selfie.url,
                        selfie_id=record.selfie.image_id,
                        id_front_url=record.id_front.url,
                        id_front_id=record.id_front.image_id,
                        id_back_url=record.id_back.url,
                        id_back_id=record.id_back.image_id,
                        created_at=record.created_at,
                    )
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not append record {record.id}: {exc}") from exc

    def remove_by_id(self, record_id: str) -> Optional[VerificationRecord]:
        try:
            with self.Session() as session:
                row = session.execute(
                    select(RecordRow).where(RecordRow.id == record_id)
                ).scalar_one_or_none()
                if not row:
                    return None
                record = self._to_record(row)
                session.delete(row)
                session.commit()
                return record
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not remove record {record_id}: {exc}") from exc


Base = declarative_base()


class RecordRow(Base):
    __tablename__ = "verification_records"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    id_number = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    selfie_url = Column(String, nullable=False)
    selfie_id = Column(String, nullable=False, default="")
    id_front_url = Column(String, nullable=False)
    id_front_id = Column(String, nullable=False, default="")
    id_back_url = Column(String, nullable=False)
    id_back_id = Column(String, nullable=False, default="")
    created_at = Column(String, nullable=False)
