"""
HTTP routes for the verification backend.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse

from idverify.config import Settings, get_settings
from idverify.dependencies import get_image_store, get_record_store, get_upload_workflow
from idverify.images import ImageStore
from idverify.records import RecordStore
from idverify.review import (
    ACCESS_DENIED_PAGE,
    delete_verification,
    is_admin_key,
    newest_first,
    render_dashboard,
    render_login_page,
)
from idverify.schemas import (
    DeleteRecordResponse,
    ErrorResponse,
    RecordListResponse,
    UploadResponse,
)
from idverify.workflow import ImagePayload, UploadError, UploadWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_upload(file: Optional[UploadFile]) -> Optional[ImagePayload]:
    if file is None:
        return None
    data = await file.read()
    return ImagePayload(data=data, filename=file.filename, content_type=file.content_type)


def upload_error_response(exc: UploadError) -> JSONResponse:
    body = ErrorResponse(kind=exc.kind, message=exc.message, field=exc.field)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def _require_admin(key: Optional[str], settings: Settings) -> None:
    if not settings.admin_key:
        raise HTTPException(status_code=503, detail="Admin access is not configured")
    if not is_admin_key(key, settings.admin_key):
        raise HTTPException(status_code=403, detail="Access denied")


@router.get("/", response_class=PlainTextResponse)
def root():
    return "Identity Verification Backend Running"


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def upload(
    name: Optional[str] = Form(None),
    id_number: Optional[str] = Form(None, alias="idNumber"),
    phone: Optional[str] = Form(None),
    selfie: Optional[UploadFile] = File(None),
    front_id: Optional[UploadFile] = File(None, alias="frontID"),
    back_id: Optional[UploadFile] = File(None, alias="backID"),
    workflow: UploadWorkflow = Depends(get_upload_workflow),
):
    """
    Accept one verification submission. The workflow runs in the threadpool and
    is not cancelled if the client goes away, so rollback always completes.
    """
    fields = {"name": name, "idNumber": id_number, "phone": phone}
    images = {
        "selfie": await _read_upload(selfie),
        "frontID": await _read_upload(front_id),
        "backID": await _read_upload(back_id),
    }
    try:
        record = await run_in_threadpool(workflow.submit, fields, images)
    except UploadError as exc:
        return upload_error_response(exc)
    return UploadResponse(message="Uploaded", record=record.as_dict())


@router.get("/admin", response_class=HTMLResponse)
def admin_login(settings: Settings = Depends(get_settings)):
    return render_login_page(settings.api_prefix)


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(
    key: str = Query(""),
    settings: Settings = Depends(get_settings),
    records: RecordStore = Depends(get_record_store),
):
    if not settings.admin_key:
        return HTMLResponse("<h3>Admin access is not configured</h3>", status_code=503)
    if not is_admin_key(key, settings.admin_key):
        return HTMLResponse(ACCESS_DENIED_PAGE, status_code=403)
    return render_dashboard(records.read_all(), key, settings.api_prefix)


@router.post("/dashboard/records/{record_id}/delete")
def dashboard_delete(
    record_id: str,
    key: str = Form(""),
    settings: Settings = Depends(get_settings),
    records: RecordStore = Depends(get_record_store),
    images: ImageStore = Depends(get_image_store),
):
    if not settings.admin_key:
        return HTMLResponse("<h3>Admin access is not configured</h3>", status_code=503)
    if not is_admin_key(key, settings.admin_key):
        return HTMLResponse(ACCESS_DENIED_PAGE, status_code=403)
    delete_verification(records, images, record_id)
    return RedirectResponse(
        f"{settings.api_prefix}/dashboard?key={quote(key)}", status_code=303
    )


@router.get("/records", response_model=RecordListResponse)
def list_records(
    x_admin_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    records: RecordStore = Depends(get_record_store),
):
    _require_admin(x_admin_key, settings)
    items = newest_first(records.read_all())
    return RecordListResponse(
        total=len(items), records=[record.as_dict() for record in items]
    )


@router.delete("/records/{record_id}", response_model=DeleteRecordResponse)
def delete_record(
    record_id: str,
    x_admin_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    records: RecordStore = Depends(get_record_store),
    images: ImageStore = Depends(get_image_store),
):
    _require_admin(x_admin_key, settings)
    record = delete_verification(records, images, record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")
    return DeleteRecordResponse(status="deleted", record=record.as_dict())
