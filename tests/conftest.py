import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REAPER_INTERVAL_SECONDS"] = "0"
os.environ["STREAM_TOKEN_MODE"] = "opaque"
os.environ["ADMIN_PASSWORD"] = "admin-secret"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clipvault.core.base import Base
from clipvault.core.db import get_session
from clipvault.core.security import create_admin_token
from clipvault.main import app
from clipvault.modules.admin.service import AdminClipService
from clipvault.platform.adapters.store_local import LocalContentStore

AUDIO = bytes(i % 251 for i in range(1000))


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clips.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(tmp_path):
    s = LocalContentStore(str(tmp_path / "blobs"), chunk_size=64)
    await s.startup()
    yield s
    await s.shutdown()


@pytest_asyncio.fixture
async def client(session_factory, store):
    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.state.content_store = store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.content_store = None


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_admin_token()}"}


@pytest.fixture
def make_clip(session_factory, store):
    async def _make(title="Test", password="hunter2", data=AUDIO, mime_type="audio/mpeg", filename="test.mp3"):
        async with session_factory() as session:
            return await AdminClipService(session, store).upload(
                title=title, filename=filename, mime_type=mime_type, data=data, password=password,
            )
    return _make
