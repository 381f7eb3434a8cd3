"""
Shared data models for credentials and publication results.

Defines:
- ``XCredentials``: A user's stored X API credential record.
- ``PublishedTweet``: What the remote client returns after a successful post.
- ``PublishOutcome``: Result of one publish attempt, rendered by entry points.
- ``DueRunSummary``: Counts produced by one due-post scan.

Post and status models live in :mod:`xpublisher.scheduling.models`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# =============================================================================
# CREDENTIALS
# =============================================================================


REQUIRED_CREDENTIAL_FIELDS: List[str] = [
    "api_key",
    "api_key_secret",
    "access_token",
    "access_token_secret",
]


@dataclass
class XCredentials:
    """X API credentials stored in the ``x_api_settings`` table.

    Secret fields are excluded from ``repr()`` so a logged record never
    leaks them.

    Attributes:
        user_id: Owner of the record.
        api_key: Consumer key (``oauth_consumer_key``).
        api_key_secret: Consumer secret.
        access_token: User access token (``oauth_token``).
        access_token_secret: User access token secret.
        bearer_token: Optional app-only bearer token (unused for signing).
        is_connected: Cached result of the last connection test.
    """

    user_id: str
    api_key: str = ""
    api_key_secret: str = field(default="", repr=False)
    access_token: str = ""
    access_token_secret: str = field(default="", repr=False)
    bearer_token: Optional[str] = field(default=None, repr=False)
    is_connected: bool = False

    def missing_fields(self) -> List[str]:
        """Names of required fields that are blank."""
        return [
            name
            for name in REQUIRED_CREDENTIAL_FIELDS
            if not (getattr(self, name) or "").strip()
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "XCredentials":
        """Build from an ``x_api_settings`` row (NULL columns become blanks)."""
        return cls(
            user_id=row["user_id"],
            api_key=row.get("api_key") or "",
            api_key_secret=row.get("api_key_secret") or "",
            access_token=row.get("access_token") or "",
            access_token_secret=row.get("access_token_secret") or "",
            bearer_token=row.get("bearer_token") or None,
            is_connected=bool(row.get("is_connected", False)),
        )

    def to_row(self) -> Dict[str, Any]:
        """Render as an ``x_api_settings`` row; blanks are stored as NULL."""
        return {
            "user_id": self.user_id,
            "api_key": self.api_key or None,
            "api_key_secret": self.api_key_secret or None,
            "access_token": self.access_token or None,
            "access_token_secret": self.access_token_secret or None,
            "bearer_token": self.bearer_token or None,
            "is_connected": self.is_connected,
        }


# =============================================================================
# REMOTE RESULTS
# =============================================================================


@dataclass
class PublishedTweet:
    """A tweet the platform accepted.

    Attributes:
        remote_id: The tweet id from ``data.id``.
        data: The full ``data`` object of the response.
    """

    remote_id: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PublishOutcome:
    """Result of one publish attempt on one post.

    Attributes:
        success: ``True`` once the post is durably ``published``.
        post_id: Local post id (``None`` if the row was never created).
        remote_id: Tweet id on success, or the already-recorded id for a
            no-op on a published post.
        error: Human-readable failure message.
        http_status: Platform HTTP status for rejections.
        details: Verbatim platform error payload.
        retriable: ``True`` for transport failures.
        skipped: ``True`` when another worker holds the post's lease.
    """

    success: bool
    post_id: Optional[str] = None
    remote_id: Optional[str] = None
    error: Optional[str] = None
    http_status: Optional[int] = None
    details: Any = None
    retriable: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Render the publish entry point response body."""
        if self.success:
            return {
                "success": True,
                "postId": self.post_id,
                "remote_id": self.remote_id,
            }
        payload: Dict[str, Any] = {
            "success": False,
            "postId": self.post_id,
            "error": self.error,
        }
        if self.http_status is not None:
            payload["httpStatus"] = self.http_status
        if self.details is not None:
            payload["details"] = self.details
        if self.retriable:
            payload["retriable"] = True
        if self.skipped:
            payload["skipped"] = True
        return payload


@dataclass
class DueRunSummary:
    """Counts produced by one scan of due scheduled posts."""

    due: int = 0
    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, outcome: PublishOutcome) -> None:
        """Count one publish outcome."""
        if outcome.skipped:
            self.skipped += 1
            return
        self.claimed += 1
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "due": self.due,
            "claimed": self.claimed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "REQUIRED_CREDENTIAL_FIELDS",
    "XCredentials",
    "PublishedTweet",
    "PublishOutcome",
    "DueRunSummary",
]
