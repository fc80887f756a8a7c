"""
Timing Scheduler - turns slide timestamps into waits and key presses
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class SlideDriver(Protocol):
    async def advance_slide(self) -> None: ...


class TimingScheduler:
    """
    Advances slides at the given offsets from recording start.

    Timings are expected to be positive and strictly increasing (checked at
    admission). A negative gap is clamped to zero here.
    """

    def __init__(
        self,
        trailing_hold: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.trailing_hold = trailing_hold
        self._sleep = sleep

    async def run(
        self,
        timings: Sequence[float],
        driver: SlideDriver,
        on_advance: Optional[Callable[[int, float], None]] = None,
    ) -> None:
        """
        Args:
            timings: Seconds from recording start at which to advance
            driver: Anything with an async advance_slide()
            on_advance: Called with (slide number now shown, timestamp)
        """
        cursor = 0.0
        logger.info("Starting slide transitions...")

        for index, t in enumerate(timings):
            wait = max(0.0, t - cursor)
            if wait > 0:
                logger.info(f"Waiting {wait:g}s before advancing to slide {index + 2}...")
                await self._sleep(wait)

            await driver.advance_slide()
            logger.info(f"Advanced to slide {index + 2} at {t:g}s")
            if on_advance is not None:
                on_advance(index + 2, t)
            cursor = t

        # Keep the last slide on screen long enough to be captured
        logger.info("Recording final slide...")
        await self._sleep(self.trailing_hold)
