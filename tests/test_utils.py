"""Tests for xpublisher.utils."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from xpublisher.exceptions import RetryExhaustedError
from xpublisher.utils import ensure_utc, generate_id, parse_timestamp, utc_now, with_retry


class TestTimeHelpers:
    """Tests for utc_now, ensure_utc and parse_timestamp."""

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo == timezone.utc

    def test_ensure_utc_assumes_naive_is_utc(self):
        naive = datetime(2025, 1, 1, 9, 0)
        assert ensure_utc(naive) == datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_offsets(self):
        tokyo = datetime(2025, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=9)))
        assert ensure_utc(tokyo) == datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert ensure_utc(tokyo).tzinfo == timezone.utc

    @pytest.mark.parametrize(
        "value",
        ["2025-06-15T12:00:00Z", "2025-06-15T12:00:00+00:00", "2025-06-15T21:00:00+09:00"],
    )
    def test_parse_timestamp_forms(self, value, sample_utc_now):
        assert parse_timestamp(value) == sample_utc_now

    def test_parse_timestamp_empty(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_generate_id_is_unique(self):
        assert generate_id() != generate_id()


class TestWithRetry:
    """Tests for the with_retry decorator."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, retryable_exceptions=(ConnectionError,))
        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise ConnectionError("drop")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_exhaustion_keeps_last_error(self):
        @with_retry(max_attempts=2, base_delay=0, retryable_exceptions=(ConnectionError,))
        async def always_fails():
            raise ConnectionError("down")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await always_fails()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_error, ConnectionError)
        assert exc_info.value.operation == "always_fails"

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_immediately(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, retryable_exceptions=(ConnectionError,))
        async def broken():
            calls.append(1)
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await broken()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_backoff_doubles(self):
        @with_retry(max_attempts=3, base_delay=1.0, retryable_exceptions=(ConnectionError,))
        async def always_fails():
            raise ConnectionError("down")

        with patch("xpublisher.utils.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RetryExhaustedError):
                await always_fails()

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    def test_sync_functions_are_rejected(self):
        with pytest.raises(TypeError):

            @with_retry()
            def not_async():
                return 1
