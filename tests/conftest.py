import os
import asyncio

from cryptography.fernet import Fernet

# Settings are read at import time
os.environ.setdefault("CUSTOM_TOKEN_KEY", Fernet.generate_key().decode("utf-8"))
os.environ.setdefault("SESSION_TOKEN_PEPPER", "test-pepper")
os.environ.setdefault("APP_ID", "test-app")

import pytest
import pytest_asyncio
import httpx

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

# Import Base + all models so metadata is complete
from classifieds.models.base import Base
from classifieds.models.identity import Identity, SessionToken  # noqa: F401
from classifieds.models.listing import Listing  # noqa: F401
from classifieds.models.favorites import FavoritesRecord  # noqa: F401

from classifieds.main import app
from classifieds.core.db import get_db
from classifieds.schemas.listing import ListingCreate
from classifieds.services.listings import post_listing
from classifieds.store.base import Store, get_store
from classifieds.store.changes import InMemoryChangeBus


def _test_db_url(tmp_path) -> str:
    return os.getenv("DATABASE_URL_TEST") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


async def _eventually(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    engine = create_async_engine(_test_db_url(tmp_path), future=True)
    try:
        # Fresh schema per test
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def bus():
    return InMemoryChangeBus()


@pytest.fixture
def store(session_factory, bus):
    return Store(session_factory, bus, app_id="test-app", max_attempts=8)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def eventually():
    return _eventually


@pytest.fixture
def post(store):
    """Post a listing straight through the core and return its id."""
    async def _post(owner_id: str, **fields) -> str:
        data = {"title": "Item", "description": "", "price": 100, "category": "Electronics", **fields}
        result = await post_listing(store, owner_id, ListingCreate(**data))
        assert result.ok, result.message
        return result.data["listing_id"]

    return _post


@pytest_asyncio.fixture
async def client(session_factory, store):
    """
    HTTP client wired to the per-test database and store via dependency overrides.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_store] = lambda: store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def signed_in(client):
    """Two anonymous identities, as {name: (identity_id, headers)}."""
    out = {}
    for name in ("alice", "bob"):
        r = await client.post("/v1/auth/sign-in", json={})
        assert r.status_code == 200, r.text
        body = r.json()
        out[name] = (body["identity_id"], {"X-Session-Token": body["session_token"]})
    return out
