"""
Entry point: run the background publisher, optionally with the HTTP API.

Usage::

    python run.py            # scheduler loop only
    python run.py --serve    # scheduler loop + FastAPI on :8000
"""

import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from xpublisher.config import get_settings, validate_env  # noqa: E402

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main(serve: bool = False) -> None:
    from xpublisher.api import app, get_lifecycle
    from xpublisher.logging import init_event_logger
    from xpublisher.scheduling import PublishingScheduler

    validate_env(strict=True)
    init_event_logger(settings.log_dir)

    lifecycle = await get_lifecycle()
    scheduler = PublishingScheduler(
        lifecycle,
        check_interval_seconds=settings.check_interval_seconds,
        recovery_interval_cycles=settings.recovery_interval_cycles,
    )

    # Leases abandoned by a previous process resolve before the first scan.
    recovered = await lifecycle.recover_expired_leases()
    if recovered:
        logger.warning("Recovered %d abandoned publishes on startup", recovered)

    if not serve:
        await scheduler.start()
        return

    import uvicorn

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=8000))
    scheduler_task = asyncio.create_task(scheduler.start())
    try:
        await server.serve()
    finally:
        await scheduler.stop()
        scheduler_task.cancel()


if __name__ == "__main__":
    try:
        asyncio.run(main(serve="--serve" in sys.argv[1:]))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
