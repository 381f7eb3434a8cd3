"""Publish audit trail written as JSON lines.

``PublishEventLogger`` appends one JSON object per publish event to
``publish.log`` (and error events to ``errors.log``) via ``aiofiles``,
mirrors a readable line into the standard ``logging`` tree, and keeps an
in-memory ring buffer for fast ``get_recent()`` queries.

Global helpers:
    - ``init_event_logger()`` -- create and register the singleton
    - ``get_event_logger()``  -- retrieve the singleton, creating a default
      one on first use
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from xpublisher.logging.models import EventLevel, PublishEvent, PublishEventKind
from xpublisher.utils import utc_now

logger = logging.getLogger("xpublisher.audit")


class PublishEventLogger:
    """Records what happened on every publish attempt.

    Parameters:
        log_dir: Directory for log files (created if missing).
        max_recent: Size of the in-memory ring buffer.
    """

    def __init__(self, log_dir: str = "logs", max_recent: int = 1000) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._main_log = self.log_dir / "publish.log"
        self._error_log = self.log_dir / "errors.log"

        self._recent: List[PublishEvent] = []
        self._max_recent = max_recent

    async def record(
        self,
        kind: PublishEventKind,
        post_id: Optional[str],
        message: str,
        *,
        user_id: Optional[str] = None,
        remote_id: Optional[str] = None,
        http_status: Optional[int] = None,
        retriable: bool = False,
        data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> PublishEvent:
        """Record one event and return it."""
        entry = PublishEvent(
            timestamp=utc_now(),
            kind=kind,
            post_id=post_id,
            message=message,
            user_id=user_id,
            remote_id=remote_id,
            http_status=http_status,
            retriable=retriable,
            data=data or {},
            duration_ms=duration_ms,
        )

        self._recent.append(entry)
        if len(self._recent) > self._max_recent:
            self._recent.pop(0)

        logger.log(entry.level.value, entry.to_readable())
        await self._write_to_file(entry)
        return entry

    def get_recent(
        self,
        limit: int = 20,
        post_id: Optional[str] = None,
        kind: Optional[PublishEventKind] = None,
    ) -> List[PublishEvent]:
        """Return recent events from the ring buffer, oldest first."""
        events = self._recent.copy()
        if post_id is not None:
            events = [e for e in events if e.post_id == post_id]
        if kind is not None:
            events = [e for e in events if e.kind == kind]
        return events[-limit:]

    async def _write_to_file(self, entry: PublishEvent) -> None:
        """Append the event to ``publish.log`` and, for errors, ``errors.log``."""
        json_line = entry.to_json() + "\n"

        async with aiofiles.open(self._main_log, "a", encoding="utf-8") as f:
            await f.write(json_line)

        if entry.level.value >= EventLevel.ERROR.value:
            async with aiofiles.open(self._error_log, "a", encoding="utf-8") as f:
                await f.write(json_line)


# ======================================================================
# GLOBAL LOGGER SINGLETON
# ======================================================================

_event_logger: Optional[PublishEventLogger] = None


def init_event_logger(log_dir: str = "logs") -> PublishEventLogger:
    """Initialise and register the global ``PublishEventLogger``."""
    global _event_logger
    _event_logger = PublishEventLogger(log_dir=log_dir)
    return _event_logger


def get_event_logger() -> PublishEventLogger:
    """Retrieve the global ``PublishEventLogger``.

    Creates one from ``Settings.log_dir`` if ``init_event_logger()`` has
    not been called.
    """
    global _event_logger
    if _event_logger is None:
        from xpublisher.config import get_settings

        _event_logger = PublishEventLogger(log_dir=get_settings().log_dir)
    return _event_logger
