"""
Input validation for post content and schedule times.

Content length is measured in extended grapheme clusters (``\\X`` in the
``regex`` module), so an emoji with modifiers or a letter with combining
marks counts as one unit, like the platform's composer.
"""

from datetime import datetime
from typing import Optional

import regex

from xpublisher.exceptions import ValidationError
from xpublisher.utils import ensure_utc, utc_now

MAX_POST_LENGTH: int = 280

_GRAPHEME = regex.compile(r"\X")


def count_units(text: str) -> int:
    """Count extended grapheme clusters in *text*."""
    return len(_GRAPHEME.findall(text))


def validate_content(content: Optional[str], max_length: int = MAX_POST_LENGTH) -> str:
    """Check post content and return it unchanged.

    Raises:
        ValidationError: If the content is missing, blank, or longer than
            *max_length* units.
    """
    if content is None or not content.strip():
        raise ValidationError("Post content cannot be empty")
    units = count_units(content)
    if units > max_length:
        raise ValidationError(
            f"Post content is {units} characters; the limit is {max_length}"
        )
    return content


def validate_schedule_time(
    scheduled_for: Optional[datetime], now: Optional[datetime] = None
) -> datetime:
    """Check that *scheduled_for* lies strictly in the future.

    Naive datetimes are taken as UTC.

    Returns:
        *scheduled_for* as an aware UTC datetime.

    Raises:
        ValidationError: If the time is missing or not after *now*.
    """
    if scheduled_for is None:
        raise ValidationError("A scheduled time is required")
    scheduled_for = ensure_utc(scheduled_for)
    now = ensure_utc(now) if now is not None else utc_now()
    if scheduled_for <= now:
        raise ValidationError(
            f"Scheduled time {scheduled_for.isoformat()} must be in the future"
        )
    return scheduled_for


__all__ = [
    "MAX_POST_LENGTH",
    "count_units",
    "validate_content",
    "validate_schedule_time",
]
