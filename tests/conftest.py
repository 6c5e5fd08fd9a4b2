"""Shared pytest fixtures."""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from datetime import datetime, timedelta

import pytest

from vitalsync.config import get_settings
from vitalsync.ingestion.engine import CorrelationEngine
from vitalsync.models import PartialReading, UserRef
from vitalsync.storage.database import dispose_db, get_session_factory, init_db
from vitalsync.storage.repository import UserRepository
from vitalsync.streaming.hub import PublishHub

T0 = datetime(2025, 3, 1, 12, 0, 0)


def make_reading(seconds: float = 0, **fields) -> PartialReading:
    """A reading at ``T0 + seconds`` with the given fields."""
    return PartialReading(timestamp=T0 + timedelta(seconds=seconds), **fields)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def db():
    """Session factory bound to a fresh in-memory database."""
    await init_db()
    yield get_session_factory()
    await dispose_db()


@pytest.fixture
def hub() -> PublishHub:
    return PublishHub()


@pytest.fixture
def engine(db, hub) -> CorrelationEngine:
    return CorrelationEngine(hub, db)


@pytest.fixture
async def user(db) -> UserRef:
    async with db() as session:
        row = await UserRepository(session).upsert("user_alice")
        return UserRef(id=row.id, external_id=row.external_id)


@pytest.fixture
async def other_user(db) -> UserRef:
    async with db() as session:
        row = await UserRepository(session).upsert("user_bob")
        return UserRef(id=row.id, external_id=row.external_id)
