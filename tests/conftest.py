"""Pytest configuration and fixtures."""
import os

os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import AsyncClient, ASGITransport
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from timetrack.config import settings

T0 = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

ASYNC_COLLECTION_METHODS = (
    "find_one",
    "insert_one",
    "insert_many",
    "find_one_and_update",
    "update_one",
    "update_many",
    "delete_one",
    "count_documents",
    "create_indexes",
)


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock frozen at 2025-01-01 09:00 UTC."""
    return FixedClock(T0)


@pytest.fixture
def make_cursor():
    """Factory for Motor cursor mocks yielding the given documents."""

    def factory(docs=None):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=list(docs or []))
        return cursor

    return factory


@pytest.fixture
def make_collection(make_cursor):
    """Factory for Motor collection mocks (async methods are AsyncMocks)."""

    def factory():
        collection = MagicMock()
        for name in ASYNC_COLLECTION_METHODS:
            setattr(collection, name, AsyncMock())
        collection.find.return_value = make_cursor([])
        collection.aggregate.return_value = make_cursor([])
        return collection

    return factory


@pytest.fixture
def make_db(make_collection):
    """Factory for a database mock; unknown collections are created on access."""

    def factory(**collections):
        db = MagicMock()
        db.__getitem__.side_effect = lambda key: collections.setdefault(key, make_collection())
        return db

    return factory


@pytest.fixture
def make_entry_doc():
    """Factory for time_entries documents (open by default)."""

    def factory(**overrides):
        doc = {
            "_id": ObjectId(),
            "user_id": "user123",
            "task_id": "7",
            "project_id": "p1",
            "description": "Reading chapter 3",
            "start_time": T0,
            "end_time": None,
            "duration_minutes": None,
            "billable": True,
            "open": True,
            "session_id": "session1",
            "paused": False,
            "created_at": T0,
            "updated_at": T0,
        }
        doc.update(overrides)
        return doc

    return factory


@pytest_asyncio.fixture
async def app_client():
    """
    Create a test client with a clean test database.

    This fixture:
    - Skips the test when no MongoDB server is reachable
    - Points the app at a throwaway database with indexes in place
    - Yields an async HTTP client for testing
    - Drops the test database afterwards
    """
    from timetrack.database import database, ensure_indexes
    from timetrack.main import app

    test_client = AsyncIOMotorClient(
        settings.mongodb_url, tz_aware=True, serverSelectionTimeoutMS=1000
    )
    try:
        await test_client.admin.command("ping")
    except PyMongoError:
        test_client.close()
        pytest.skip("MongoDB is not available")

    test_db_name = f"{settings.mongodb_db_name}_test"
    test_db = test_client[test_db_name]
    await test_client.drop_database(test_db_name)
    await ensure_indexes(test_db)

    # Override the database dependency
    original_db = database.db
    database.db = test_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        client.db = test_db
        yield client

    # Cleanup: drop test database
    await test_client.drop_database(test_db_name)

    database.db = original_db
    test_client.close()


@pytest.fixture
def auth_headers():
    """Factory for bearer headers of a user."""
    from timetrack.utils.auth import create_access_token

    def factory(user_id: str = "user123"):
        return {"Authorization": f"Bearer {create_access_token(user_id=user_id)}"}

    return factory
