"""Periodic merge scheduler.

Runs the merge job immediately, then every ``merge_interval_hours`` until
SIGINT/SIGTERM. Runs never overlap: the next wait only starts after the
current run has returned.

Usage::

    proctor-merge
    python scripts/schedule_merge.py
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from proctor.core.config import get_settings
from proctor.core.models import MergeRunSummary

logger = logging.getLogger(__name__)


class MergeScheduler:
    """Calls ``run`` now and then every ``interval`` seconds until stopped.

    Args:
        run: Coroutine function performing one merge run.
        interval: Seconds between the end of one run and the next.
    """

    def __init__(self, run: Callable[[], Awaitable[MergeRunSummary]], interval: float) -> None:
        self._run = run
        self._interval = interval
        self._stop_event = asyncio.Event()
        self.runs = 0

    def stop(self) -> None:
        """Request shutdown; the loop exits before the next run."""
        if not self._stop_event.is_set():
            logger.info("Scheduler stop requested")
        self._stop_event.set()

    async def _run_safely(self) -> None:
        started = datetime.now()
        logger.info("Running merge job (started %s)", started.isoformat(timespec="seconds"))
        try:
            await self._run()
        except Exception:
            logger.exception("Merge run failed")
        self.runs += 1

    async def run_forever(self) -> None:
        logger.info("Merge scheduler started; interval %.0fs", self._interval)
        while not self._stop_event.is_set():
            await self._run_safely()
            next_run = datetime.now() + timedelta(seconds=self._interval)
            logger.info("Next run scheduled at %s", next_run.isoformat(timespec="seconds"))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass  # Interval elapsed
        logger.info("Merge scheduler stopped")


async def _serve() -> None:
    from proctor.services.merge.job import MergeJob
    from proctor.services.storage import create_object_store

    settings = get_settings()
    job = MergeJob(create_object_store(settings=settings), settings=settings)
    scheduler = MergeScheduler(job.run_once, settings.merge_interval_hours * 3600)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt ends asyncio.run instead

    await scheduler.run_forever()


def main() -> int:
    """Console entry point for the merge scheduler (takes no flags)."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")
    return 0
