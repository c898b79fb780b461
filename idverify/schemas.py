"""
Pydantic schemas for the verification API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class UploadResponse(BaseModel):
    success: Literal[True] = True
    message: str
    record: dict


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    kind: str
    message: str
    field: Optional[str] = None


class RecordListResponse(BaseModel):
    total: int
    records: list[dict]


class DeleteRecordResponse(BaseModel):
    status: Literal["deleted"]
    record: dict
