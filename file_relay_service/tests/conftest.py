import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from typing import AsyncGenerator

import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from models import Base
from database import get_db
from config import settings
from storage import build_blob_store, get_blob_store

MOCK_STORAGE_URL = "http://mockstorage"

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )

@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()

@pytest.fixture(scope="function")
def mock_relay_settings(tmp_path, monkeypatch):
    upload_tmp_dir = tmp_path / "uploads_test"
    monkeypatch.setattr(settings, 'UPLOAD_TMP_DIR', upload_tmp_dir)
    monkeypatch.setattr(settings, 'SUPABASE_URL', MOCK_STORAGE_URL)
    monkeypatch.setattr(settings, 'SUPABASE_KEY', 'test-service-key')
    monkeypatch.setattr(settings, 'STORAGE_BUCKET', 'files')
    monkeypatch.setattr(settings, 'OWNER', 'Test Owner')
    return settings

@pytest_asyncio.fixture(scope="function")
async def blob_store(mock_relay_settings):
    async with httpx.AsyncClient() as client:
        yield build_blob_store(client, mock_relay_settings)

@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, blob_store) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testrelay") as client:
        yield client

    app.dependency_overrides.clear()
