"""Scheduling subsystem: post lifecycle, validation, background publishing."""

from xpublisher.scheduling.lifecycle import PostLifecycle
from xpublisher.scheduling.models import Post, PostStatus
from xpublisher.scheduling.publishing_scheduler import PublishingScheduler
from xpublisher.scheduling.validation import (
    MAX_POST_LENGTH,
    count_units,
    validate_content,
    validate_schedule_time,
)

__all__ = [
    "Post",
    "PostStatus",
    "PostLifecycle",
    "PublishingScheduler",
    "MAX_POST_LENGTH",
    "count_units",
    "validate_content",
    "validate_schedule_time",
]
