"""Single countdown shared by every question of a test."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CountdownTimer:
    """Counts down once for the whole test; starting it again continues it.

    Args:
        duration: Total time budget in seconds.
        on_expire: Coroutine function awaited when the budget runs out.
    """

    def __init__(self, duration: float, on_expire: Callable[[], Awaitable[None]]) -> None:
        self._duration = duration
        self._on_expire = on_expire
        self._deadline: float | None = None
        self._task: asyncio.Task | None = None
        self._expired = False

    @property
    def started(self) -> bool:
        return self._deadline is not None

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def remaining(self) -> float:
        """Seconds left; the full budget before the first start."""
        if self._deadline is None:
            return self._duration
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    def start(self) -> None:
        """Start the countdown. No-op if it is already running or has run out."""
        if self._deadline is not None:
            return
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self._duration
        self._task = asyncio.create_task(self._run())
        logger.info("Test countdown started (%.0fs)", self._duration)

    async def _run(self) -> None:
        await asyncio.sleep(self._duration)
        self._expired = True
        logger.info("Test countdown reached zero")
        try:
            await self._on_expire()
        except Exception:
            logger.exception("Countdown expiry handler failed")

    def cancel(self) -> None:
        """Stop the countdown without firing the expiry handler."""
        task = self._task
        if task is None or task.done():
            return
        # The expiry handler may finish the test and cancel its own timer
        if task is asyncio.current_task():
            return
        task.cancel()
