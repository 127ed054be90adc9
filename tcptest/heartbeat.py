import asyncio
from typing import Callable, Optional

from .utils import check_that, timestamp


class Heartbeat:
    """
    Fixed-interval timestamp generator.

    The first payload is meant to go out immediately; reset() then schedules
    ticks at start + k * interval. Ticks missed while the sender was busy are
    dropped instead of firing in a burst.
    """

    def __init__(self, interval: float = 5.0, clock: Callable[[], str] = timestamp):
        check_that(interval, 'is positive', f"Heartbeat interval must be positive, got {interval}")
        self.interval = interval
        self.clock = clock
        self._next_tick: Optional[float] = None

    def payload(self) -> str:
        return self.clock()

    def reset(self) -> None:
        self._next_tick = asyncio.get_running_loop().time() + self.interval

    def remaining(self) -> float:
        """Seconds until the next tick is due."""
        if self._next_tick is None:
            return 0.0
        now = asyncio.get_running_loop().time()
        if now >= self._next_tick + self.interval:
            missed = int((now - self._next_tick) // self.interval)
            self._next_tick += missed * self.interval
        return max(0.0, self._next_tick - now)

    def advance(self) -> None:
        if self._next_tick is None:
            self.reset()
        else:
            self._next_tick += self.interval
