"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends

from idverify.config import Settings, get_settings
from idverify.images import ImageStore, InMemoryImageStore, S3ImageStore
from idverify.records import (
    InMemoryRecordStore,
    JsonFileRecordStore,
    RecordStore,
    SqlRecordStore,
)
from idverify.workflow import UploadWorkflow

logger = logging.getLogger(__name__)

_record_store: RecordStore | None = None
_image_store: ImageStore | None = None


def get_record_store() -> RecordStore:
    """
    Return a singleton record store so every request shares one write lock.
    """
    global _record_store
    if _record_store:
        return _record_store

    settings = get_settings()
    if settings.use_in_memory_backends or settings.record_store == "memory":
        _record_store = InMemoryRecordStore()
    elif settings.record_store == "sql":
        if not settings.database_url:
            raise RuntimeError("RECORD_STORE=sql requires DATABASE_URL")
        _record_store = SqlRecordStore(settings.database_url)
    else:
        _record_store = JsonFileRecordStore(settings.data_file)
    return _record_store


def get_image_store() -> ImageStore:
    global _image_store
    if _image_store:
        return _image_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        if not settings.use_in_memory_backends:
            logger.warning("S3_BUCKET is not set; images are kept in memory only")
        _image_store = InMemoryImageStore(folder=settings.image_folder)
    else:
        _image_store = S3ImageStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            folder=settings.image_folder,
            public_base_url=settings.image_public_base_url or "",
        )
    return _image_store


def get_upload_workflow(
    records: RecordStore = Depends(get_record_store),
    images: ImageStore = Depends(get_image_store),
    settings: Settings = Depends(get_settings),
) -> UploadWorkflow:
    return UploadWorkflow(records, images, max_image_bytes=settings.max_image_bytes)
