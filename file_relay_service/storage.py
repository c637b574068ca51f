"""
Blob storage on top of the Supabase Storage REST API.

Objects live in a single bucket under ``{uid}/{filename}``. Reads never go
through this service: downloads are handed a short-lived signed URL instead.
"""
from typing import Iterable
from urllib.parse import quote

import httpx
from fastapi import Depends

from config import Settings, get_settings
from errors import BlobDeleteError, SignedUrlError, StorageWriteError
from logging_config import get_logger

logger = get_logger(__name__)

client_store = {}

def storage_path(uid: str, filename: str) -> str:
    return f"{uid}/{filename}"

class SupabaseBlobStore:
    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: str, bucket: str):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    def _object_url(self, *parts: str) -> str:
        return "/".join([f"{self.base_url}/storage/v1/object", *parts])

    async def upload(self, path: str, content: bytes, content_type: str = None):
        url = self._object_url(self.bucket, quote(path, safe="/"))
        headers = {
            **self.headers,
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "false",
        }
        logger.info(f"Uploading {len(content)} bytes to bucket '{self.bucket}' at '{path}'")
        try:
            response = await self.client.post(url, content=content, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Storage rejected upload of '{path}'. Status: {e.response.status_code}, Response: {e.response.text}")
            raise StorageWriteError(_backend_message(e.response, "Could not store file"))
        except httpx.RequestError as e:
            logger.error(f"Upload of '{path}' failed: {str(e)}")
            raise StorageWriteError(f"Storage unavailable: {str(e)}")

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        url = self._object_url("sign", self.bucket, quote(path, safe="/"))
        try:
            response = await self.client.post(url, json={"expiresIn": expires_in}, headers=self.headers)
            response.raise_for_status()
            body = response.json()
            signed = body.get("signedURL") if isinstance(body, dict) else None
        except httpx.HTTPStatusError as e:
            logger.warning(f"Could not sign '{path}'. Status: {e.response.status_code}, Response: {e.response.text}")
            raise SignedUrlError()
        except (httpx.RequestError, ValueError) as e:
            logger.error(f"Signing '{path}' failed: {str(e)}")
            raise SignedUrlError()

        if not signed:
            logger.warning(f"Storage returned no signed URL for '{path}'")
            raise SignedUrlError()
        return f"{self.base_url}/storage/v1{signed}"

    async def remove(self, paths: Iterable[str]):
        paths = list(paths)
        url = self._object_url(self.bucket)
        try:
            response = await self.client.request("DELETE", url, json={"prefixes": paths}, headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Storage rejected delete of {paths}. Status: {e.response.status_code}, Response: {e.response.text}")
            raise BlobDeleteError(_backend_message(e.response, "Could not delete file"))
        except httpx.RequestError as e:
            logger.error(f"Delete of {paths} failed: {str(e)}")
            raise BlobDeleteError(f"Storage unavailable: {str(e)}")

def _backend_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or fallback
    return fallback

def create_http_client(current_settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=current_settings.STORAGE_TIMEOUT_SECONDS)

def build_blob_store(client: httpx.AsyncClient, current_settings: Settings) -> SupabaseBlobStore:
    return SupabaseBlobStore(
        client=client,
        base_url=current_settings.SUPABASE_URL,
        api_key=current_settings.SUPABASE_KEY,
        bucket=current_settings.STORAGE_BUCKET,
    )

async def get_blob_store(current_settings: Settings = Depends(get_settings)) -> SupabaseBlobStore:
    return build_blob_store(client_store["client"], current_settings)
