"""Tests for the publish audit log: EventLevel, PublishEventKind, PublishEvent, PublishEventLogger."""

import json
import logging
from datetime import datetime, timezone

import pytest

from xpublisher.logging import (
    EventLevel,
    PublishEvent,
    PublishEventKind,
    PublishEventLogger,
    get_event_logger,
    init_event_logger,
)
from xpublisher.logging import event_logger as event_logger_module


# ---------------------------------------------------------------------------
# Fixed timestamp used across all tests for determinism
# ---------------------------------------------------------------------------
FIXED_TS = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ===================================================================
# EventLevel / PublishEventKind tests
# ===================================================================


class TestEventLevel:
    """Verify EventLevel values and name_str."""

    def test_numeric_values_match_stdlib_logging(self) -> None:
        assert EventLevel.DEBUG.value == logging.DEBUG
        assert EventLevel.INFO.value == logging.INFO
        assert EventLevel.WARNING.value == logging.WARNING
        assert EventLevel.ERROR.value == logging.ERROR

    def test_name_str_returns_lowercase(self) -> None:
        assert EventLevel.WARNING.name_str == "warning"


class TestPublishEventKind:
    """Every kind maps to a severity."""

    def test_every_kind_has_a_level(self) -> None:
        for kind in PublishEventKind:
            assert isinstance(kind.level, EventLevel)

    def test_rejections_are_errors_and_transport_failures_warnings(self) -> None:
        assert PublishEventKind.REJECTED.level is EventLevel.ERROR
        assert PublishEventKind.TRANSPORT_ERROR.level is EventLevel.WARNING
        assert PublishEventKind.PUBLISHED.level is EventLevel.INFO


# ===================================================================
# PublishEvent tests
# ===================================================================


class TestPublishEvent:
    """Serialization of a single audit entry."""

    @pytest.fixture
    def event(self) -> PublishEvent:
        return PublishEvent(
            timestamp=FIXED_TS,
            kind=PublishEventKind.REJECTED,
            post_id="post-1",
            message="X API rejected the request (HTTP 403)",
            user_id="user-1",
            http_status=403,
            data={"details": "duplicate content"},
            duration_ms=120,
        )

    def test_to_dict(self, event: PublishEvent) -> None:
        data = event.to_dict()
        assert data["timestamp"] == "2025-01-01T12:00:00+00:00"
        assert data["kind"] == "rejected"
        assert data["level"] == 40
        assert data["level_name"] == "error"
        assert data["http_status"] == 403
        assert data["retriable"] is False

    def test_to_json_round_trips(self, event: PublishEvent) -> None:
        assert json.loads(event.to_json())["data"] == {"details": "duplicate content"}

    def test_to_readable(self, event: PublishEvent) -> None:
        text = event.to_readable()
        assert "[ERROR]" in text
        assert "[rejected]" in text
        assert "post=post-1" in text
        assert "(HTTP 403)" in text
        assert "(120ms)" in text


# ===================================================================
# PublishEventLogger tests
# ===================================================================


class TestPublishEventLogger:
    """File output, ring buffer and filtering."""

    @pytest.mark.asyncio
    async def test_record_writes_json_lines(self, tmp_path) -> None:
        audit = PublishEventLogger(log_dir=str(tmp_path))

        await audit.record(PublishEventKind.PUBLISHED, "p1", "ok", remote_id="123")
        await audit.record(PublishEventKind.REJECTED, "p2", "no", http_status=400)

        lines = (tmp_path / "publish.log").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["kind"] for line in lines] == ["published", "rejected"]

        errors = (tmp_path / "errors.log").read_text(encoding="utf-8").splitlines()
        assert len(errors) == 1
        assert json.loads(errors[0])["post_id"] == "p2"

    @pytest.mark.asyncio
    async def test_warnings_stay_out_of_error_log(self, tmp_path) -> None:
        audit = PublishEventLogger(log_dir=str(tmp_path))

        await audit.record(PublishEventKind.TRANSPORT_ERROR, "p1", "timeout", retriable=True)

        assert not (tmp_path / "errors.log").exists()

    @pytest.mark.asyncio
    async def test_get_recent_filters(self, tmp_path) -> None:
        audit = PublishEventLogger(log_dir=str(tmp_path))
        await audit.record(PublishEventKind.SKIPPED, "p1", "busy")
        await audit.record(PublishEventKind.PUBLISHED, "p1", "ok")
        await audit.record(PublishEventKind.PUBLISHED, "p2", "ok")

        assert len(audit.get_recent()) == 3
        assert len(audit.get_recent(post_id="p1")) == 2
        assert [e.post_id for e in audit.get_recent(kind=PublishEventKind.PUBLISHED)] == ["p1", "p2"]
        assert len(audit.get_recent(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_ring_buffer_is_bounded(self, tmp_path) -> None:
        audit = PublishEventLogger(log_dir=str(tmp_path), max_recent=2)
        for i in range(5):
            await audit.record(PublishEventKind.PUBLISHED, f"p{i}", "ok")

        assert [e.post_id for e in audit.get_recent()] == ["p3", "p4"]

    @pytest.mark.asyncio
    async def test_mirrors_to_stdlib_logging(self, tmp_path, caplog) -> None:
        audit = PublishEventLogger(log_dir=str(tmp_path))

        with caplog.at_level(logging.INFO, logger="xpublisher.audit"):
            await audit.record(PublishEventKind.PUBLISHED, "p1", "Published to X")

        assert "Published to X" in caplog.text


class TestGlobalLogger:
    """init_event_logger / get_event_logger."""

    def test_init_then_get(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(event_logger_module, "_event_logger", None)

        created = init_event_logger(str(tmp_path))

        assert get_event_logger() is created

    def test_get_creates_default_from_settings(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(event_logger_module, "_event_logger", None)
        monkeypatch.setenv("XPUB_LOG_DIR", str(tmp_path / "audit"))

        audit = get_event_logger()

        assert audit.log_dir == tmp_path / "audit"
        assert (tmp_path / "audit").is_dir()
