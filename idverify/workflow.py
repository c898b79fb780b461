"""
Upload workflow: validate a submission, store its three images remotely and
commit one verification record.

A record is appended only after all three images are confirmed by the image
store. When one image fails, the images already stored for the same
submission are deleted on a best-effort basis before the error is returned.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from idverify.images import ImageStore, StoredImage
from idverify.records import ImageRef, RecordStore, StoreError, VerificationRecord

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "idNumber", "phone")
IMAGE_FIELDS = ("selfie", "frontID", "backID")

NAME_MIN_LENGTH = 2
ID_NUMBER_PATTERN = re.compile(r"\d{8,9}", re.ASCII)
PHONE_PATTERN = re.compile(r"2547\d{8}", re.ASCII)


class UploadError(Exception):
    """Base class for failures reported back to the submitting client."""

    kind = "upload_error"
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidFieldError(UploadError):
    kind = "invalid_field"
    status_code = 400

    def __init__(self, field: Optional[str], reason: str):
        super().__init__(reason, field=field)
        self.reason = reason


class MissingImageError(UploadError):
    kind = "missing_image"
    status_code = 400

    def __init__(self, name: str):
        super().__init__(f"Image '{name}' is required.", field=name)


class RemoteStoreFailure(UploadError):
    kind = "remote_store_failure"
    status_code = 502

    def __init__(self, which: str):
        super().__init__(
            f"Could not store image '{which}'. Please try again.", field=which
        )
        self.which = which


class PersistenceFailure(UploadError):
    kind = "persistence_failure"
    status_code = 500

    def __init__(self):
        super().__init__("Could not save the verification. Please try again.")


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


def validate_fields(fields: Mapping[str, Optional[str]]) -> tuple[str, str, str]:
    """Return the cleaned (name, idNumber, phone) or raise on the first bad field."""
    name = (fields.get("name") or "").strip()
    if not name:
        raise InvalidFieldError("name", "Name is required.")
    if len(name) < NAME_MIN_LENGTH:
        raise InvalidFieldError(
            "name", f"Name must be at least {NAME_MIN_LENGTH} characters."
        )

    id_number = fields.get("idNumber") or ""
    if not ID_NUMBER_PATTERN.fullmatch(id_number):
        raise InvalidFieldError("idNumber", "ID number must be 8 or 9 digits.")

    phone = fields.get("phone") or ""
    if not PHONE_PATTERN.fullmatch(phone):
        raise InvalidFieldError(
            "phone", "Phone must be in 2547XXXXXXXX format (e.g. 254712345678)."
        )
    return name, id_number, phone


def validate_images(
    images: Mapping[str, Optional[ImagePayload]], max_bytes: Optional[int] = None
) -> dict[str, ImagePayload]:
    checked: dict[str, ImagePayload] = {}
    for name in IMAGE_FIELDS:
        payload = images.get(name)
        if payload is None or not payload.data:
            raise MissingImageError(name)
        if max_bytes is not None and len(payload.data) > max_bytes:
            raise InvalidFieldError(
                name, f"Image '{name}' exceeds the {max_bytes} byte limit."
            )
        checked[name] = payload
    return checked


def upload_error_for(errors: Iterable[dict]) -> UploadError:
    """Map form parsing errors (e.g. text sent where a file belongs) to an UploadError."""
    names = {error["loc"][-1] for error in errors if error.get("loc")}
    for name in TEXT_FIELDS:
        if name in names:
            return InvalidFieldError(name, f"Field '{name}' must be plain text.")
    for name in IMAGE_FIELDS:
        if name in names:
            return MissingImageError(name)
    return InvalidFieldError(None, "Malformed upload form.")


class UploadWorkflow:
    def __init__(
        self,
        records: RecordStore,
        images: ImageStore,
        max_image_bytes: Optional[int] = None,
    ):
        self.records = records
        self.images = images
        self.max_image_bytes = max_image_bytes

    def submit(
        self,
        fields: Mapping[str, Optional[str]],
        images: Mapping[str, Optional[ImagePayload]],
    ) -> VerificationRecord:
        """
        Validate, upload and persist one verification.

        Raises a subclass of UploadError on failure; no other exception type
        escapes. Validation errors are raised before the image store is touched.
        """
        name, id_number, phone = validate_fields(fields)
        payloads = validate_images(images, self.max_image_bytes)

        stored: dict[str, StoredImage] = {}
        for label in IMAGE_FIELDS:
            payload = payloads[label]
            try:
                stored[label] = self.images.store(
                    payload.data, label, content_type=payload.content_type
                )
            except Exception:
                logger.warning("Storing image %s failed", label, exc_info=True)
                self.rollback(stored)
                raise RemoteStoreFailure(label)

        record = VerificationRecord(
            name=name,
            id_number=id_number,
            phone=phone,
            selfie=_ref(stored["selfie"]),
            id_front=_ref(stored["frontID"]),
            id_back=_ref(stored["backID"]),
        )
        try:
            self.records.append(record)
        except StoreError:
            # The uploaded images stay behind; log their ids for reconciliation.
            logger.exception(
                "Persisting record %s failed; orphaned images: %s",
                record.id,
                ", ".join(image.image_id for image in stored.values()),
            )
            raise PersistenceFailure()

        logger.info("Accepted verification %s", record.id)
        return record

    def rollback(self, stored: Mapping[str, StoredImage]) -> None:
        """Delete images stored earlier in a failed submission. Never raises."""
        for label, image in stored.items():
            try:
                self.images.delete(image.image_id)
            except Exception:
                logger.warning(
                    "Rollback of %s (%s) failed", label, image.image_id, exc_info=True
                )


def _ref(image: StoredImage) -> ImageRef:
    return ImageRef(url=image.url, image_id=image.image_id)
