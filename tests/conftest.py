"""Shared fixtures for the X post publisher test suite."""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from xpublisher.config import Settings, reset_settings
from xpublisher.credentials import CredentialResolver
from xpublisher.logging import PublishEventLogger
from xpublisher.models import PublishedTweet
from xpublisher.scheduling.lifecycle import PostLifecycle
from xpublisher.utils import parse_timestamp, utc_now


# ---------------------------------------------------------------------------
# Ensure we don't hit real services during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear service keys and overrides so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "XPUB_API_BASE_URL",
        "XPUB_REQUEST_TIMEOUT_SECONDS",
        "XPUB_LEASE_SECONDS",
        "XPUB_MAX_POST_LENGTH",
        "XPUB_CHECK_INTERVAL_SECONDS",
        "XPUB_RECOVERY_INTERVAL_CYCLES",
        "XPUB_LOG_LEVEL",
        "XPUB_LOG_DIR",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase client whose query builder chains back to itself."""
    client = MagicMock()
    table_mock = MagicMock()
    for name in (
        "select",
        "insert",
        "update",
        "upsert",
        "delete",
        "eq",
        "in_",
        "is_",
        "or_",
        "lt",
        "lte",
        "gte",
        "order",
        "limit",
    ):
        getattr(table_mock, name).return_value = table_mock
    table_mock.not_ = table_mock
    table_mock.execute = AsyncMock(return_value=MagicMock(data=[], count=0))
    client.table.return_value = table_mock
    return client


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------
class InMemoryDB:
    """Implements the SupabaseDB contract over dicts.

    Each method runs without awaiting, so a conditional update is atomic
    with respect to other coroutines, like a single SQL UPDATE.
    """

    def __init__(self) -> None:
        self.posts: Dict[str, Dict[str, Any]] = {}
        self.settings: Dict[str, Dict[str, Any]] = {}
        self.claim_attempts = 0

    # posts ---------------------------------------------------------------

    async def insert_post(self, post: Dict[str, Any]) -> Dict[str, Any]:
        self.posts[post["id"]] = dict(post)
        return dict(post)

    async def get_post(
        self, post_id: str, user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        row = self.posts.get(post_id)
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return None
        return dict(row)

    async def update_post(
        self,
        post_id: str,
        user_id: str,
        fields: Dict[str, Any],
        statuses=None,
        unleased: bool = False,
    ) -> Optional[Dict[str, Any]]:
        row = self.posts.get(post_id)
        if row is None or row["user_id"] != user_id:
            return None
        if statuses is not None and row["status"] not in statuses:
            return None
        if unleased and row.get("lease_token") is not None:
            return None
        row.update(fields)
        row["updated_at"] = utc_now().isoformat()
        return dict(row)

    async def delete_post(self, post_id: str, user_id: str) -> bool:
        row = self.posts.get(post_id)
        if row is None or row["user_id"] != user_id:
            return False
        del self.posts[post_id]
        return True

    async def list_posts(
        self, user_id: str, status: Optional[str] = None, limit: int = 50
    ) -> List[Dict[str, Any]]:
        rows = [
            dict(r)
            for r in self.posts.values()
            if r["user_id"] == user_id and (status is None or r["status"] == status)
        ]
        rows.sort(key=lambda r: parse_timestamp(r["scheduled_for"]))
        return rows[:limit]

    async def count_posts_by_status(self, user_id: str) -> Dict[str, int]:
        return dict(
            Counter(r["status"] for r in self.posts.values() if r["user_id"] == user_id)
        )

    # leases --------------------------------------------------------------

    async def get_due_posts(
        self, now: Optional[datetime] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        now = now or utc_now()
        rows = [
            dict(r)
            for r in self.posts.values()
            if r["status"] == "scheduled"
            and r.get("remote_id") is None
            and parse_timestamp(r["scheduled_for"]) <= now
        ]
        rows.sort(key=lambda r: parse_timestamp(r["scheduled_for"]))
        return rows[:limit]

    async def claim_post(
        self,
        post_id: str,
        lease_token: str,
        expires_at: datetime,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        self.claim_attempts += 1
        now = now or utc_now()
        row = self.posts.get(post_id)
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return None
        if row["status"] not in ("scheduled", "failed") or row.get("remote_id"):
            return None
        expires = parse_timestamp(row.get("lease_expires_at"))
        if expires is not None and expires >= now:
            return None
        row["lease_token"] = lease_token
        row["lease_expires_at"] = expires_at.isoformat()
        return dict(row)

    async def finalize_post(
        self, post_id: str, lease_token: str, fields: Dict[str, Any]
    ) -> bool:
        row = self.posts.get(post_id)
        if row is None or row.get("lease_token") != lease_token:
            return False
        row.update(fields)
        row["lease_token"] = None
        row["lease_expires_at"] = None
        return True

    async def get_expired_leases(
        self, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        now = now or utc_now()
        return [
            dict(r)
            for r in self.posts.values()
            if r.get("lease_token") is not None
            and r.get("remote_id") is None
            and parse_timestamp(r["lease_expires_at"]) < now
        ]

    # credentials ---------------------------------------------------------

    async def get_credentials(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.settings.get(user_id)
        return dict(row) if row is not None else None

    async def upsert_credentials(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self.settings[row["user_id"]] = dict(row)
        return dict(row)

    async def set_connected(self, user_id: str, is_connected: bool) -> None:
        if user_id in self.settings:
            self.settings[user_id]["is_connected"] = is_connected


def make_credentials_row(user_id: str = "user-1", **overrides) -> Dict[str, Any]:
    row = {
        "user_id": user_id,
        "api_key": "consumer-key",
        "api_key_secret": "consumer-secret",
        "access_token": "access-token",
        "access_token_secret": "token-secret",
        "bearer_token": None,
        "is_connected": True,
    }
    row.update(overrides)
    return row


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def connected_user(db):
    """A user whose X API settings are complete and connected."""
    db.settings["user-1"] = make_credentials_row("user-1")
    return "user-1"


@pytest.fixture
def x_client():
    """A remote client double that accepts every post."""
    client = MagicMock()
    client.publish = AsyncMock(
        return_value=PublishedTweet(remote_id="1790000000000000001", data={"id": "1790000000000000001"})
    )
    client.verify = AsyncMock(return_value={"id": "42", "username": "someone"})
    return client


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def event_logger(tmp_path):
    return PublishEventLogger(log_dir=str(tmp_path / "logs"))


@pytest.fixture
def lifecycle(db, x_client, settings, event_logger):
    return PostLifecycle(
        db,
        x_client,
        CredentialResolver(db, x_client),
        settings=settings,
        event_logger=event_logger,
    )


@pytest.fixture
def future_time():
    return utc_now() + timedelta(hours=1)


@pytest.fixture
def credentials_row():
    """Factory for ``x_api_settings`` rows."""
    return make_credentials_row
