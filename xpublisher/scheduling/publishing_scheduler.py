"""
Background publishing scheduler that publishes posts at their scheduled times.

``PublishingScheduler`` runs as an asyncio background task, periodically
asking the :class:`~xpublisher.scheduling.lifecycle.PostLifecycle` to
publish due posts.  Every few cycles it also resolves abandoned publish
leases, so a crash mid-publish leaves a ``failed`` post instead of a
post stuck forever.

The HTTP trigger (``/api/trigger-scheduled-posts``) and this loop call the
same lifecycle operation and may run at the same time.
"""

import asyncio
import logging
from typing import Optional

from xpublisher.models import DueRunSummary
from xpublisher.scheduling.lifecycle import PostLifecycle

logger = logging.getLogger(__name__)


class PublishingScheduler:
    """Background task that publishes scheduled posts at their designated times.

    Args:
        lifecycle: The lifecycle controller that owns publishing.
        check_interval_seconds: How often to check for due posts.
        recovery_interval_cycles: Run lease recovery every N cycles.
    """

    def __init__(
        self,
        lifecycle: PostLifecycle,
        check_interval_seconds: int = 60,
        recovery_interval_cycles: int = 10,
    ) -> None:
        self.lifecycle = lifecycle
        self.check_interval_seconds = check_interval_seconds
        self.recovery_interval_cycles = max(1, recovery_interval_cycles)
        self._running: bool = False
        self._cycle_count: int = 0
        self.last_summary: Optional[DueRunSummary] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ================================================================
    # LIFECYCLE
    # ================================================================

    async def start(self) -> None:
        """Run the check loop until :meth:`stop` is called or cancelled."""
        self._running = True
        self._cycle_count = 0
        logger.info(
            "[SCHEDULER] Publishing scheduler started (interval=%ds)",
            self.check_interval_seconds,
        )

        while self._running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                logger.info("[SCHEDULER] Publishing scheduler cancelled")
                break
            except Exception:
                logger.exception(
                    "[SCHEDULER] Unexpected error in publishing scheduler loop"
                )

            try:
                await asyncio.sleep(self.check_interval_seconds)
            except asyncio.CancelledError:
                logger.info("[SCHEDULER] Publishing scheduler sleep cancelled")
                break

        self._running = False
        logger.info("[SCHEDULER] Publishing scheduler stopped")

    async def stop(self) -> None:
        """Ask the loop to exit after the current iteration."""
        self._running = False
        logger.info("[SCHEDULER] Publishing scheduler stop requested")

    # ================================================================
    # CORE CHECK LOOP
    # ================================================================

    async def run_cycle(self) -> DueRunSummary:
        """One iteration: publish due posts, then maybe recover leases."""
        summary = await self.lifecycle.process_due_posts()
        self.last_summary = summary
        self._cycle_count += 1

        if summary.due:
            logger.info("[SCHEDULER] Cycle %d: %s", self._cycle_count, summary.to_dict())

        if self._cycle_count % self.recovery_interval_cycles == 0:
            logger.debug("[SCHEDULER] Running expired-lease recovery check")
            await self.lifecycle.recover_expired_leases()

        return summary


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PublishingScheduler",
]
