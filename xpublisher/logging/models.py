"""Publish audit data models: EventLevel, PublishEventKind, PublishEvent."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class EventLevel(Enum):
    """Severity with numeric values so comparison works."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    @property
    def name_str(self) -> str:
        """Get lowercase name for display/serialization."""
        return self.name.lower()


class PublishEventKind(Enum):
    """Everything that can happen to a post on the publish path."""

    PUBLISHED = "published"
    REJECTED = "rejected"
    TRANSPORT_ERROR = "transport_error"
    CREDENTIALS_ERROR = "credentials_error"
    SKIPPED = "skipped"
    ALREADY_PUBLISHED = "already_published"
    LEASE_EXPIRED = "lease_expired"
    LEASE_LOST = "lease_lost"

    @property
    def level(self) -> EventLevel:
        """Default severity for this kind of event."""
        return _KIND_LEVELS[self]


_KIND_LEVELS = {
    PublishEventKind.PUBLISHED: EventLevel.INFO,
    PublishEventKind.REJECTED: EventLevel.ERROR,
    PublishEventKind.TRANSPORT_ERROR: EventLevel.WARNING,
    PublishEventKind.CREDENTIALS_ERROR: EventLevel.ERROR,
    PublishEventKind.SKIPPED: EventLevel.DEBUG,
    PublishEventKind.ALREADY_PUBLISHED: EventLevel.DEBUG,
    PublishEventKind.LEASE_EXPIRED: EventLevel.WARNING,
    PublishEventKind.LEASE_LOST: EventLevel.ERROR,
}


@dataclass
class PublishEvent:
    """One entry of the publish audit trail.

    Never carries credentials or signatures; ``data`` holds only
    platform responses and identifiers.
    """

    # Required fields
    timestamp: datetime
    kind: PublishEventKind
    post_id: Optional[str]
    message: str

    # Context
    user_id: Optional[str] = None
    remote_id: Optional[str] = None
    http_status: Optional[int] = None
    retriable: bool = False

    # Additional data
    data: Dict[str, Any] = field(default_factory=dict)

    # Performance
    duration_ms: Optional[int] = None

    @property
    def level(self) -> EventLevel:
        return self.kind.level

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "kind": self.kind.value,
            "post_id": self.post_id,
            "user_id": self.user_id,
            "message": self.message,
            "remote_id": self.remote_id,
            "http_status": self.http_status,
            "retriable": self.retriable,
            "data": self.data,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        """Serialize to a JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """Human-readable format for console output."""
        time_str = self.timestamp.strftime("%H:%M:%S")
        msg = f"[{self.level.name}] [{time_str}] [{self.kind.value}] post={self.post_id} {self.message}"
        if self.http_status is not None:
            msg += f" (HTTP {self.http_status})"
        if self.duration_ms:
            msg += f" ({self.duration_ms}ms)"
        return msg
