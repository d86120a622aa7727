"""Shared fixtures: a fresh in-memory SQLite store per test, fixed callers,
a controllable clock, and an HTTP client wired to the same store."""

import os

# Must be set before taskboard.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-for-signing-access-tokens-0123456789")
os.environ.setdefault("LOG_FORMAT", "text")

from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from taskboard import db
from taskboard.actions import ActionContext
from taskboard.auth import Identity, create_access_token
from taskboard.config import get_settings
from taskboard.db import DatabaseSessionManager
from taskboard.main import app
from taskboard.models import Base, Category
from taskboard.revalidation import PageRevalidator
from taskboard.store import TaskStore
from taskboard.utils import utcnow


class FrozenClock:
    """Callable clock that only moves when told to"""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def test_manager():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield manager
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await manager.dispose()


@pytest.fixture
async def test_db(test_manager):
    async with test_manager.session() as session:
        yield session


@pytest.fixture
def store(test_db):
    return TaskStore(test_db)


@pytest.fixture
def alice():
    return Identity(user_id=uuid4(), email="alice@example.com")


@pytest.fixture
def bob():
    return Identity(user_id=uuid4(), email="bob@example.com")


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def revalidator(clock):
    return PageRevalidator(clock=clock)


@pytest.fixture
def make_ctx(store, revalidator, clock):
    """Build an ActionContext for a caller (None means unauthenticated)"""
    def _make(identity=None, store_override=None):
        return ActionContext(
            store=store_override or store,
            identity=identity,
            revalidator=revalidator,
            clock=clock,
        )
    return _make


@pytest.fixture
async def seed_category(test_db):
    """Insert a category owned by the given user directly into the test DB"""
    async def _seed(owner, name="Errands", color="#22c55e"):
        category = Category(user_id=owner.user_id, name=name, color=color)
        test_db.add(category)
        await test_db.commit()
        await test_db.refresh(category)
        return category
    return _seed


@pytest.fixture
def auth_headers():
    settings = get_settings()

    def _headers(identity):
        token = create_access_token(identity.user_id, settings, email=identity.email)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
async def client(test_manager, monkeypatch):
    """FastAPI test client using the in-memory store"""
    monkeypatch.setattr(db, "db_manager", test_manager)
    monkeypatch.setattr(app.state, "revalidator", PageRevalidator())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
