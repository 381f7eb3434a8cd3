"""Publish audit logging for the X post publisher."""
from xpublisher.logging.models import EventLevel, PublishEventKind, PublishEvent
from xpublisher.logging.event_logger import (
    PublishEventLogger,
    init_event_logger,
    get_event_logger,
)

__all__ = [
    "EventLevel", "PublishEventKind", "PublishEvent",
    "PublishEventLogger", "init_event_logger", "get_event_logger",
]
