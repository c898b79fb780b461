"""
Remote image storage: S3-compatible buckets and an in-memory test double.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/heic": ".heic",
}


class ImageStoreError(Exception):
    """Raised when the remote image store rejects or fails a request."""


@dataclass(frozen=True)
class StoredImage:
    url: str
    image_id: str


class ImageStore(Protocol):
    """Defines the operations the service needs from remote image storage."""

    def store(
        self, data: bytes, label: str, content_type: Optional[str] = None
    ) -> StoredImage:
        ...

    def delete(self, image_id: str) -> None:
        ...


def _object_key(folder: str, label: str, content_type: Optional[str]) -> str:
    extension = _EXTENSIONS.get((content_type or "").lower(), "")
    name = f"{label}_{uuid.uuid4().hex}{extension}"
    return f"{folder.strip('/')}/{name}" if folder else name


@dataclass
class InMemoryImageStore:
    """Test double for remote image storage."""

    base_url: str = "https://example.test/images"
    folder: str = "swift_verifications"
    objects: dict = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def store(
        self, data: bytes, label: str, content_type: Optional[str] = None
    ) -> StoredImage:
        key = _object_key(self.folder, label, content_type)
        with self._lock:
            self.objects[key] = bytes(data)
        return StoredImage(url=f"{self.base_url}/{key}", image_id=key)

    def delete(self, image_id: str) -> None:
        with self._lock:
            if self.objects.pop(image_id, None) is None:
                raise ImageStoreError(f"Unknown image id {image_id}")


@dataclass
class S3ImageStore:
    """
    Image store backed by an S3-compatible bucket (AWS S3, Tencent COS, MinIO).

    The object key doubles as the remote identifier used for deletion.
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    folder: str = "swift_verifications"
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def object_url(self, key: str) -> str:
        quoted = quote(key)
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quoted}"
        if self.endpoint:
            parts = urlsplit(self.endpoint)
            return f"{parts.scheme or 'https'}://{self.bucket}.{parts.netloc}/{quoted}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{quoted}"

    def store(
        self, data: bytes, label: str, content_type: Optional[str] = None
    ) -> StoredImage:
        key = _object_key(self.folder, label, content_type)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as exc:
            raise ImageStoreError(f"Upload of {label} failed: {exc}") from exc
        return StoredImage(url=self.object_url(key), image_id=key)

    def delete(self, image_id: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=image_id)
        except (BotoCoreError, ClientError) as exc:
            raise ImageStoreError(f"Delete of {image_id} failed: {exc}") from exc
