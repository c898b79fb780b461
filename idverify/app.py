"""
FastAPI application entry point for the verification backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from idverify.config import get_settings
from idverify.records import StoreError
from idverify.routes import router, upload_error_response
from idverify.workflow import upload_error_for

logger = logging.getLogger(__name__)


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Record store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Record store unavailable"})


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Uploads always answer with the structured error body.
    if request.method == "POST" and request.url.path.rstrip("/").endswith("/upload"):
        return upload_error_response(upload_error_for(exc.errors()))
    return await request_validation_exception_handler(request, exc)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Identity Verification Backend", version="0.1.0")
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["*"],
        )
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
