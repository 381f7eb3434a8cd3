"""Tests for the background PublishingScheduler loop."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from xpublisher.models import DueRunSummary
from xpublisher.scheduling.models import Post, PostStatus
from xpublisher.scheduling.publishing_scheduler import PublishingScheduler
from xpublisher.utils import utc_now


@pytest.fixture
def fake_lifecycle():
    lifecycle = MagicMock()
    lifecycle.process_due_posts = AsyncMock(return_value=DueRunSummary(due=1, claimed=1, succeeded=1))
    lifecycle.recover_expired_leases = AsyncMock(return_value=0)
    return lifecycle


class TestRunCycle:
    """Tests for a single scheduler iteration."""

    @pytest.mark.asyncio
    async def test_cycle_publishes_due_posts(self, fake_lifecycle):
        scheduler = PublishingScheduler(fake_lifecycle, recovery_interval_cycles=3)

        summary = await scheduler.run_cycle()

        assert summary.succeeded == 1
        assert scheduler.last_summary is summary
        fake_lifecycle.process_due_posts.assert_awaited_once()
        fake_lifecycle.recover_expired_leases.assert_not_called()

    @pytest.mark.asyncio
    async def test_recovery_runs_every_n_cycles(self, fake_lifecycle):
        scheduler = PublishingScheduler(fake_lifecycle, recovery_interval_cycles=3)

        for _ in range(6):
            await scheduler.run_cycle()

        assert fake_lifecycle.recover_expired_leases.await_count == 2

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_lifecycle(self, db, lifecycle, connected_user):
        post = Post(
            id="p-1",
            user_id=connected_user,
            content="due",
            scheduled_for=utc_now() - timedelta(minutes=1),
            status=PostStatus.SCHEDULED,
        )
        db.posts[post.id] = post.to_row()

        await PublishingScheduler(lifecycle).run_cycle()

        assert db.posts["p-1"]["status"] == "published"


class TestLoop:
    """Tests for start/stop behaviour."""

    @pytest.mark.asyncio
    async def test_loop_survives_errors_and_stops(self, fake_lifecycle):
        fake_lifecycle.process_due_posts.side_effect = [
            RuntimeError("database down"),
            DueRunSummary(),
            DueRunSummary(),
        ]
        scheduler = PublishingScheduler(fake_lifecycle, check_interval_seconds=0)

        task = asyncio.create_task(scheduler.start())
        while fake_lifecycle.process_due_posts.await_count < 2:
            await asyncio.sleep(0)
        await scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert scheduler.is_running is False
        assert fake_lifecycle.process_due_posts.await_count >= 2

    @pytest.mark.asyncio
    async def test_cancel_exits_cleanly(self, fake_lifecycle):
        scheduler = PublishingScheduler(fake_lifecycle, check_interval_seconds=3600)

        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.wait_for(task, timeout=1)

        assert task.done()
        assert scheduler.is_running is False
