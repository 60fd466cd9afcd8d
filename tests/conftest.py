import os

# settings and the module-level engine read the environment at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CHALLENGE_TIMEZONE", "UTC")

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from proven.db import Base, get_session
from proven.main import app
from proven.auth_deps import get_session_factory, get_image_store, get_account_reader, get_chain_backend
import proven.models.user  # noqa: F401  register tables
import proven.models.challenge  # noqa: F401
import proven.models.submission  # noqa: F401
import proven.models.ledger  # noqa: F401
import proven.models.settlement  # noqa: F401

from fakes import FakeAccountReader, MemoryImageStore


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'proven.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def image_store():
    return MemoryImageStore()


@pytest.fixture
def account_reader():
    return FakeAccountReader()


@pytest.fixture
def chain_backend():
    # replaced per test where payouts run
    return None


@pytest.fixture
async def client(session_factory, image_store, account_reader, chain_backend):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_account_reader] = lambda: account_reader
    app.dependency_overrides[get_chain_backend] = lambda: chain_backend
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
