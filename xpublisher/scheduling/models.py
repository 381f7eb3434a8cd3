"""
Post data models: PostStatus and Post.

Defines the core data structures used by the lifecycle controller:
- ``PostStatus``: Persisted lifecycle status of a post.
- ``Post``: A post row from the ``posts`` table.

A publish in flight is not a status. It is a lease (``lease_token`` plus
``lease_expires_at``) held on a ``scheduled`` or ``failed`` row.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from xpublisher.utils import parse_timestamp, utc_now


# =============================================================================
# POST STATUS ENUM
# =============================================================================


class PostStatus(Enum):
    """Lifecycle status of a post.

    Transitions:
        DRAFT <-> SCHEDULED -> PUBLISHED
                           -> FAILED -> PUBLISHED (retry)
        FAILED -> DRAFT / SCHEDULED (edit)
        any -> deleted
    """

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def is_editable(self) -> bool:
        """Content and schedule may still change."""
        return self is not PostStatus.PUBLISHED

    @property
    def is_publishable(self) -> bool:
        """A publish lease may be claimed on a post in this status."""
        return self in {PostStatus.SCHEDULED, PostStatus.FAILED}


# =============================================================================
# POST
# =============================================================================


@dataclass
class Post:
    """A post owned by one user.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Owner.
        content: Post text (at most 280 grapheme clusters).
        scheduled_for: Publish at or after this instant (aware UTC).
        status: Current lifecycle status.
        published: Mirror of ``status == PUBLISHED``.
        remote_id: Tweet id, set together with ``PUBLISHED``.
        error: Last publish error, shown for failed posts.
        lease_token: Token of the worker currently publishing this post.
        lease_expires_at: When an unfinished lease counts as abandoned.
        created_at: Row creation time.
        updated_at: Last modification time.
    """

    id: str
    user_id: str
    content: str
    scheduled_for: datetime

    status: PostStatus = PostStatus.DRAFT
    published: bool = False
    remote_id: Optional[str] = None
    error: Optional[str] = None

    # Publish lease
    lease_token: Optional[str] = None
    lease_expires_at: Optional[datetime] = None

    # Audit
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def lease_is_active(self, now: datetime) -> bool:
        """Whether some worker currently holds an unexpired lease."""
        return (
            self.lease_token is not None
            and self.lease_expires_at is not None
            and self.lease_expires_at > now
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Post":
        """Convert a ``posts`` row dict to a ``Post``."""
        now = utc_now()
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            content=row.get("content", ""),
            scheduled_for=parse_timestamp(row.get("scheduled_for")) or now,
            status=PostStatus(row.get("status", "draft")),
            published=bool(row.get("published", False)),
            remote_id=row.get("remote_id"),
            error=row.get("error"),
            lease_token=row.get("lease_token"),
            lease_expires_at=parse_timestamp(row.get("lease_expires_at")),
            created_at=parse_timestamp(row.get("created_at")) or now,
            updated_at=parse_timestamp(row.get("updated_at")) or now,
        )

    def to_row(self) -> Dict[str, Any]:
        """Render as a ``posts`` row dict for insertion."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content": self.content,
            "scheduled_for": self.scheduled_for.isoformat(),
            "status": self.status.value,
            "published": self.published,
            "remote_id": self.remote_id,
            "error": self.error,
            "lease_token": self.lease_token,
            "lease_expires_at": (
                self.lease_expires_at.isoformat() if self.lease_expires_at else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PostStatus",
    "Post",
]
