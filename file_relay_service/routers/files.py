import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import aiofiles
import aiofiles.os

import crud, schemas
from database import get_db
from config import Settings, get_settings
from errors import (
    BlobDeleteError, InvalidRequest, ListError, MetadataWriteError,
    NotFound, site_url,
)
from identifiers import generate_uid
from logging_config import get_logger
from storage import SupabaseBlobStore, get_blob_store, storage_path

logger = get_logger(__name__)

router = APIRouter(
    tags=["files"],
)

@asynccontextmanager
async def buffered_upload(file: UploadFile, tmp_dir: Path):
    """Spool the upload to a temp file that is removed on every exit path."""
    tmp_dir.mkdir(parents=True, exist_ok=True)
    local_file_path = tmp_dir / uuid.uuid4().hex
    try:
        async with aiofiles.open(local_file_path, 'wb') as out_file:
            while chunk := await file.read(1024*1024):
                await out_file.write(chunk)
        yield local_file_path
    finally:
        await file.close()
        if local_file_path.exists():
            await aiofiles.os.remove(local_file_path)
            logger.debug(f"Removed temporary upload buffer {local_file_path}")

async def reserve_uid(db: AsyncSession, max_attempts: int) -> str:
    for _ in range(max_attempts):
        uid = generate_uid()
        if not await crud.file_record_exists(db, uid):
            return uid
        logger.warning(f"Generated identifier {uid} is already taken, retrying")
    raise MetadataWriteError("Could not allocate a file identifier")

@router.post("/upload", response_model=schemas.UploadManifest)
async def upload_file(
    request: Request,
    files: Optional[List[UploadFile]] = File(None, alias="file"),
    db: AsyncSession = Depends(get_db),
    blob_store: SupabaseBlobStore = Depends(get_blob_store),
    current_settings: Settings = Depends(get_settings)
):
    if not files or len(files) != 1:
        logger.info(f"Rejected upload with {len(files) if files else 0} files")
        raise InvalidRequest()

    file = files[0]
    filename = file.filename
    mimetype = file.content_type
    logger.info(f"Upload request for filename: '{filename}', content_type: '{mimetype}'")

    async with buffered_upload(file, current_settings.UPLOAD_TMP_DIR) as local_file_path:
        try:
            uid = await reserve_uid(db, current_settings.MAX_UID_ATTEMPTS)
        except SQLAlchemyError as e:
            logger.exception(f"Could not check identifier availability for '{filename}'")
            raise MetadataWriteError(str(e))
        path = storage_path(uid, filename)

        async with aiofiles.open(local_file_path, 'rb') as in_file:
            content = await in_file.read()
        await blob_store.upload(path, content, mimetype)

    try:
        await crud.create_file_record(
            db, schemas.FileRecordCreate(id=uid, filename=filename, mimetype=mimetype)
        )
    except SQLAlchemyError as e:
        logger.exception(f"Saving metadata for {uid} failed, removing its blob at '{path}'")
        try:
            await blob_store.remove([path])
        except BlobDeleteError:
            logger.error(f"Blob '{path}' is orphaned: metadata insert and compensating delete both failed")
        raise MetadataWriteError(str(e))
    logger.info(f"Stored '{filename}' as {uid}")

    site = site_url(request)
    return schemas.UploadManifest(
        uid=uid,
        download_url=f"{site}/file/{uid}",
        api_url=f"{site}/api/{uid}",
        expires_in_days=current_settings.RETENTION_DAYS,
        owner=current_settings.OWNER,
        site=site,
    )

async def _lookup(db: AsyncSession, uid: str):
    file_record = await crud.get_file_record_by_id(db, uid=uid)
    if not file_record:
        logger.warning(f"File not found: ID {uid}")
        raise NotFound()
    return file_record

@router.get("/api/{uid}", response_model=schemas.FileMetadataResponse)
async def get_file_metadata(
    uid: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_settings: Settings = Depends(get_settings)
):
    file_record = await _lookup(db, uid)
    site = site_url(request)
    return schemas.FileMetadataResponse(
        **schemas.FileRecordInDB.model_validate(file_record).model_dump(),
        download_url=f"{site}/file/{uid}",
        owner=current_settings.OWNER,
        site=site,
    )

@router.get("/file/{uid}")
async def download_file(
    uid: str,
    db: AsyncSession = Depends(get_db),
    blob_store: SupabaseBlobStore = Depends(get_blob_store),
    current_settings: Settings = Depends(get_settings)
):
    logger.info(f"Download request for uid: {uid}")
    file_record = await _lookup(db, uid)
    signed_url = await blob_store.create_signed_url(
        storage_path(file_record.id, file_record.filename),
        expires_in=current_settings.SIGNED_URL_TTL_SECONDS,
    )
    return RedirectResponse(signed_url, status_code=302)

@router.get("/dashboard-data", response_model=schemas.DashboardResponse)
async def dashboard_data(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_settings: Settings = Depends(get_settings)
):
    try:
        records = await crud.list_file_records(db)
    except SQLAlchemyError:
        logger.exception("Could not list file records for the dashboard")
        raise ListError()
    return schemas.DashboardResponse(
        files=[schemas.FileRecordInDB.model_validate(r) for r in records],
        owner=current_settings.OWNER,
        site=site_url(request),
    )
