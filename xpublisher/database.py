"""
Unified async database client for posts and X API settings.

ALL database operations go through the SupabaseDB class defined here.
No direct Supabase calls should appear anywhere else in the codebase.

Every post query is scoped by ``user_id`` except the ones the background
trigger needs across users (due posts, lease claims, lease recovery).

Usage::

    from xpublisher.database import SupabaseDB, get_db

    db = await get_db()
    row = await db.get_post(post_id, user_id)
"""

import asyncio
import logging
import os
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx
from supabase import AsyncClient, create_async_client

from xpublisher.exceptions import DatabaseError, ValidationError
from xpublisher.utils import utc_now, with_retry

logger = logging.getLogger(__name__)

POSTS_TABLE = "posts"
SETTINGS_TABLE = "x_api_settings"

# Idempotent reads retry on dropped connections; writes never do.
_read_retry = with_retry(
    max_attempts=3,
    base_delay=1.0,
    retryable_exceptions=(httpx.TransportError,),
)


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or an empty string.

    Args:
        value: The value to check.
        name: Human-readable field name used in error messages.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


def _ts(dt: datetime) -> str:
    return dt.isoformat()


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL``).
        key: The service-role key for server-side access
            (``SUPABASE_SERVICE_KEY``).
    """

    url: str
    key: str  # service_role key; row scoping is enforced by user_id filters

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config instance from environment variables.

        Raises:
            ValueError: If either variable is missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Unified **async** database client.

    **Important:** Use the :meth:`create` factory method instead of
    ``__init__`` directly -- the underlying async client requires an
    ``await`` during initialisation.
    """

    def __init__(self, client: AsyncClient) -> None:
        """Private constructor.  Use :meth:`create` factory method."""
        self.client = client

    @classmethod
    async def create(
        cls, config: Optional[SupabaseConfig] = None
    ) -> "SupabaseDB":
        """Factory method to create an async :class:`SupabaseDB` instance.

        Args:
            config: Optional configuration.  When ``None``,
                :meth:`SupabaseConfig.from_env` is used.
        """
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        logger.info("[DB] Connected to Supabase at %s", config.url)
        return cls(client)

    # -----------------------------------------------------------------
    # POSTS
    # -----------------------------------------------------------------

    async def insert_post(self, post: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a post row.

        Args:
            post: Row dict.  Must contain ``user_id``, ``content``,
                ``scheduled_for`` and ``status``.

        Returns:
            The inserted row as stored.

        Raises:
            ValidationError: On missing fields.
            DatabaseError: When the insert returns no data.
        """
        if not post:
            raise ValidationError("post cannot be None or empty")
        missing = {"user_id", "content", "scheduled_for", "status"} - set(post)
        if missing:
            raise ValidationError(f"post missing required fields: {missing}")

        result = await self.client.table(POSTS_TABLE).insert(post).execute()
        if not result.data:
            raise DatabaseError("Insert succeeded but returned no data")
        return result.data[0]

    @_read_retry
    async def get_post(
        self, post_id: str, user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Get a post by ID, scoped to *user_id* when given.

        Returns:
            Post dict or ``None`` if not found.
        """
        validate_not_empty(post_id, "post_id")

        query = self.client.table(POSTS_TABLE).select("*").eq("id", post_id)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        result = await query.execute()
        return result.data[0] if result.data else None

    async def update_post(
        self,
        post_id: str,
        user_id: str,
        fields: Dict[str, Any],
        statuses: Optional[Sequence[str]] = None,
        unleased: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Conditionally update one of the user's posts.

        Args:
            post_id: UUID of the post.
            user_id: Owner; rows of other users never match.
            fields: Columns to set.  ``updated_at`` is added.
            statuses: When given, only rows currently in one of these
                statuses match.
            unleased: When ``True``, rows with a lease held do not match.

        Returns:
            The updated row, or ``None`` if nothing matched.
        """
        validate_not_empty(post_id, "post_id")
        validate_not_empty(user_id, "user_id")
        if not fields:
            raise ValidationError("fields cannot be empty")

        query = (
            self.client.table(POSTS_TABLE)
            .update({**fields, "updated_at": _ts(utc_now())})
            .eq("id", post_id)
            .eq("user_id", user_id)
        )
        if statuses is not None:
            query = query.in_("status", list(statuses))
        if unleased:
            query = query.is_("lease_token", "null")
        result = await query.execute()
        return result.data[0] if result.data else None

    async def delete_post(self, post_id: str, user_id: str) -> bool:
        """Delete one of the user's posts.

        Returns:
            ``True`` if a row was deleted.
        """
        validate_not_empty(post_id, "post_id")
        validate_not_empty(user_id, "user_id")

        result = await (
            self.client.table(POSTS_TABLE)
            .delete()
            .eq("id", post_id)
            .eq("user_id", user_id)
            .execute()
        )
        return bool(result.data)

    @_read_retry
    async def list_posts(
        self, user_id: str, status: Optional[str] = None, limit: int = 50
    ) -> List[Dict[str, Any]]:
        """List the user's posts, soonest ``scheduled_for`` first."""
        validate_not_empty(user_id, "user_id")
        if limit <= 0:
            raise ValidationError(f"limit must be positive, got {limit}")

        query = (
            self.client.table(POSTS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("scheduled_for", desc=False)
            .limit(limit)
        )
        if status is not None:
            query = query.eq("status", status)
        result = await query.execute()
        return result.data

    @_read_retry
    async def count_posts_by_status(self, user_id: str) -> Dict[str, int]:
        """Count the user's posts per status value."""
        validate_not_empty(user_id, "user_id")

        result = await (
            self.client.table(POSTS_TABLE)
            .select("status")
            .eq("user_id", user_id)
            .execute()
        )
        return dict(Counter(row["status"] for row in result.data))

    # -----------------------------------------------------------------
    # PUBLISH LEASES
    # -----------------------------------------------------------------

    @_read_retry
    async def get_due_posts(
        self, now: Optional[datetime] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Get posts that are due for publishing, across all users.

        Returns posts with status ``"scheduled"``, no ``remote_id``, and
        ``scheduled_for`` at or before *now*, oldest first.
        """
        now = now or utc_now()
        result = await (
            self.client.table(POSTS_TABLE)
            .select("*")
            .eq("status", "scheduled")
            .is_("remote_id", "null")
            .lte("scheduled_for", _ts(now))
            .order("scheduled_for", desc=False)
            .limit(limit)
            .execute()
        )
        return result.data

    async def claim_post(
        self,
        post_id: str,
        lease_token: str,
        expires_at: datetime,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Atomically take the publish lease on a post.

        A single conditional ``UPDATE`` succeeds only if the post is
        ``scheduled`` or ``failed``, has no ``remote_id``, and holds no
        unexpired lease.  Two concurrent claims can never both match.

        Returns:
            The claimed row, or ``None`` if the claim was lost.
        """
        validate_not_empty(post_id, "post_id")
        validate_not_empty(lease_token, "lease_token")
        now = now or utc_now()

        query = (
            self.client.table(POSTS_TABLE)
            .update({
                "lease_token": lease_token,
                "lease_expires_at": _ts(expires_at),
                "updated_at": _ts(now),
            })
            .eq("id", post_id)
            .in_("status", ["scheduled", "failed"])
            .is_("remote_id", "null")
            .or_(f'lease_expires_at.is.null,lease_expires_at.lt."{_ts(now)}"')
        )
        if user_id is not None:
            query = query.eq("user_id", user_id)
        result = await query.execute()
        if not result.data:
            logger.debug("[DB] Claim on post %s lost", post_id)
        return result.data[0] if result.data else None

    async def finalize_post(
        self, post_id: str, lease_token: str, fields: Dict[str, Any]
    ) -> bool:
        """Write the outcome of a publish and release the lease.

        Only matches while *lease_token* still owns the post.

        Returns:
            ``True`` if the lease was still ours and the row was updated.
        """
        validate_not_empty(post_id, "post_id")
        validate_not_empty(lease_token, "lease_token")

        result = await (
            self.client.table(POSTS_TABLE)
            .update({
                **fields,
                "lease_token": None,
                "lease_expires_at": None,
                "updated_at": _ts(utc_now()),
            })
            .eq("id", post_id)
            .eq("lease_token", lease_token)
            .execute()
        )
        if not result.data:
            logger.debug("[DB] Lease %s no longer owns post %s", lease_token, post_id)
        return bool(result.data)

    @_read_retry
    async def get_expired_leases(
        self, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Get unpublished posts whose lease expired without an outcome."""
        now = now or utc_now()
        result = await (
            self.client.table(POSTS_TABLE)
            .select("*")
            .not_.is_("lease_token", "null")
            .is_("remote_id", "null")
            .lt("lease_expires_at", _ts(now))
            .execute()
        )
        return result.data

    # -----------------------------------------------------------------
    # X API SETTINGS
    # -----------------------------------------------------------------

    @_read_retry
    async def get_credentials(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get the user's ``x_api_settings`` row, or ``None``."""
        validate_not_empty(user_id, "user_id")

        result = await (
            self.client.table(SETTINGS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def upsert_credentials(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace the user's ``x_api_settings`` row.

        Raises:
            ValidationError: If *row* lacks ``user_id``.
            DatabaseError: When the upsert returns no data.
        """
        if not row or not row.get("user_id"):
            raise ValidationError("credentials row must have 'user_id'")

        result = await (
            self.client.table(SETTINGS_TABLE)
            .upsert({**row, "updated_at": _ts(utc_now())}, on_conflict="user_id")
            .execute()
        )
        if not result.data:
            raise DatabaseError("Upsert succeeded but returned no data")
        return result.data[0]

    async def set_connected(self, user_id: str, is_connected: bool) -> None:
        """Persist the cached connection status for the user."""
        validate_not_empty(user_id, "user_id")

        await (
            self.client.table(SETTINGS_TABLE)
            .update({"is_connected": is_connected, "updated_at": _ts(utc_now())})
            .eq("user_id", user_id)
            .execute()
        )


# =============================================================================
# GLOBAL DATABASE INSTANCE (Singleton)
# =============================================================================

_db_instance: Optional[SupabaseDB] = None
_db_lock: Optional[asyncio.Lock] = None

# Thread lock for safe initialisation of the async lock itself.
_init_lock = threading.Lock()


async def get_db() -> SupabaseDB:
    """Get the global async database instance.

    The first call creates the :class:`SupabaseDB` singleton; subsequent
    calls return the same instance.
    """
    global _db_instance, _db_lock

    if _db_lock is None:
        with _init_lock:
            if _db_lock is None:
                _db_lock = asyncio.Lock()

    if _db_instance is None:
        async with _db_lock:
            if _db_instance is None:
                _db_instance = await SupabaseDB.create()

    return _db_instance


__all__ = [
    "SupabaseConfig",
    "SupabaseDB",
    "get_db",
    "validate_not_empty",
]
