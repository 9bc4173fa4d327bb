import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchGate:
    """Runs async work in fixed-size concurrent batches with a pause between batches.

    Batch N settles completely before batch N+1 starts. Results keep input order.
    """

    def __init__(
        self,
        batch_size: int = 3,
        pause: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.pause = pause
        self._sleep = sleep

    async def map(
        self, func: Callable[[T], Awaitable[R]], items: Sequence[T]
    ) -> List[R]:
        results: List[R] = []
        total_batches = (len(items) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(items), self.batch_size):
            batch = items[i:i + self.batch_size]
            batch_num = i // self.batch_size + 1
            logger.info("Batch %d/%d (%d items)", batch_num, total_batches, len(batch))

            results.extend(await asyncio.gather(*(func(item) for item in batch)))

            if batch_num < total_batches and self.pause > 0:
                await self._sleep(self.pause)

        return results


class Pacer:
    """Enforces a minimum interval between successive blocking calls."""

    def __init__(
        self,
        interval: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self._last: Optional[float] = None

    def wait(self) -> None:
        now = self._clock()
        if self._last is not None:
            remaining = self.interval - (now - self._last)
            if remaining > 0:
                self._sleep(remaining)
                now = self._clock()
        self._last = now
