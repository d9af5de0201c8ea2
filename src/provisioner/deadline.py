"""Deadlines for the discovery loops.

A Deadline is created once per operation and threaded through every
blocking discovery call, so the whole create path shares one time budget.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class Deadline:
    """A point in monotonic time after which discovery gives up."""

    timeout_seconds: float
    clock: Clock = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must not be negative")
        self.started_at = self.clock()

    @property
    def expires_at(self) -> float:
        return self.started_at + self.timeout_seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        return self.clock() >= self.expires_at

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    async def sleep(self, interval: float, sleeper: Sleeper = asyncio.sleep) -> bool:
        """Sleep for ``interval`` or until the deadline, whichever is first.

        Returns:
            False when the deadline has passed after waking.
        """
        delay = min(interval, self.remaining())
        if delay > 0:
            await sleeper(delay)
        return not self.expired()
