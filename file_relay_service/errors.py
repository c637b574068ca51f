from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import settings
from logging_config import get_logger

logger = get_logger(__name__)

class RelayError(Exception):
    """Base for every failure surfaced to HTTP callers as an error body."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

class InvalidRequest(RelayError):
    status_code = 400
    default_message = "No file uploaded"

class StorageWriteError(RelayError):
    default_message = "Could not store file"

class MetadataWriteError(RelayError):
    default_message = "Could not save file metadata"

class NotFound(RelayError):
    status_code = 404
    default_message = "File not found"

class SignedUrlError(RelayError):
    status_code = 404
    default_message = "Download failed"

class ListError(RelayError):
    default_message = "Could not load dashboard"

class BlobDeleteError(RelayError):
    default_message = "Could not delete file"

def site_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")

async def relay_error_handler(request: Request, exc: RelayError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed with {exc.__class__.__name__}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "owner": settings.OWNER, "site": site_url(request)},
    )

UPLOAD_PATH = "/upload"

def _is_bad_upload_field(exc: RequestValidationError) -> bool:
    return any(tuple(error.get("loc", ()))[:2] == ("body", "file") for error in exc.errors())

async def validation_error_handler(request: Request, exc: RequestValidationError):
    # A non-file value under `file` counts as no file at all.
    if request.url.path == UPLOAD_PATH and _is_bad_upload_field(exc):
        return await relay_error_handler(request, InvalidRequest())
    return await request_validation_exception_handler(request, exc)

def register_error_handlers(app: FastAPI):
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
