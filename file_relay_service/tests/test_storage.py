import json

import httpx
import pytest

from errors import BlobDeleteError, SignedUrlError, StorageWriteError
from storage import storage_path

MOCK_STORAGE_URL = "http://mockstorage"

def test_storage_path_is_uid_then_filename():
    assert storage_path("AbC123_-", "report.pdf") == "AbC123_-/report.pdf"

@pytest.mark.asyncio
async def test_upload_quotes_filename(blob_store, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{MOCK_STORAGE_URL}/storage/v1/object/files/abcd1234/my%20report.pdf",
        json={"Key": "files/abcd1234/my report.pdf"},
    )

    await blob_store.upload("abcd1234/my report.pdf", b"%PDF", "application/pdf")

    request = httpx_mock.get_requests()[0]
    assert request.headers["content-type"] == "application/pdf"
    assert request.headers["x-upsert"] == "false"

@pytest.mark.asyncio
async def test_upload_without_content_type_falls_back_to_octet_stream(blob_store, httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{MOCK_STORAGE_URL}/storage/v1/object/files/abcd1234/blob")

    await blob_store.upload("abcd1234/blob", b"\x00\x01", None)

    assert httpx_mock.get_requests()[0].headers["content-type"] == "application/octet-stream"

@pytest.mark.asyncio
async def test_upload_connection_error_is_storage_write_error(blob_store, httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    with pytest.raises(StorageWriteError) as exc_info:
        await blob_store.upload("abcd1234/a.txt", b"a", "text/plain")

    assert "connection refused" in exc_info.value.message

@pytest.mark.asyncio
async def test_signed_url_is_absolute(blob_store, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{MOCK_STORAGE_URL}/storage/v1/object/sign/files/abcd1234/a.txt",
        json={"signedURL": "/object/sign/files/abcd1234/a.txt?token=t0k"},
    )

    signed = await blob_store.create_signed_url("abcd1234/a.txt", expires_in=600)

    assert signed == f"{MOCK_STORAGE_URL}/storage/v1/object/sign/files/abcd1234/a.txt?token=t0k"

@pytest.mark.asyncio
async def test_signed_url_missing_from_response(blob_store, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{MOCK_STORAGE_URL}/storage/v1/object/sign/files/abcd1234/a.txt",
        json={"signedURL": None},
    )

    with pytest.raises(SignedUrlError):
        await blob_store.create_signed_url("abcd1234/a.txt", expires_in=600)

@pytest.mark.asyncio
async def test_remove_sends_prefixes(blob_store, httpx_mock):
    httpx_mock.add_response(method="DELETE", url=f"{MOCK_STORAGE_URL}/storage/v1/object/files", json=[])

    await blob_store.remove(["abcd1234/a.txt", "efgh5678/b.txt"])

    request = httpx_mock.get_requests()[0]
    assert json.loads(request.content) == {"prefixes": ["abcd1234/a.txt", "efgh5678/b.txt"]}
    assert request.headers["authorization"] == "Bearer test-service-key"

@pytest.mark.asyncio
async def test_remove_failure_raises_blob_delete_error(blob_store, httpx_mock):
    httpx_mock.add_response(
        method="DELETE",
        url=f"{MOCK_STORAGE_URL}/storage/v1/object/files",
        status_code=403,
        text="forbidden",
    )

    with pytest.raises(BlobDeleteError) as exc_info:
        await blob_store.remove(["abcd1234/a.txt"])

    assert exc_info.value.message == "Could not delete file"

@pytest.mark.asyncio
async def test_signed_url_response_that_is_not_an_object(blob_store, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=f"{MOCK_STORAGE_URL}/storage/v1/object/sign/files/abcd1234/a.txt",
        json=["/object/sign/files/abcd1234/a.txt?token=t0k"],
    )

    with pytest.raises(SignedUrlError):
        await blob_store.create_signed_url("abcd1234/a.txt", expires_in=600)
