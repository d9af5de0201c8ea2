"""Fake clock for deadline and token expiry tests."""

from __future__ import annotations


class FakeClock:
    """Manually advanced clock.

    Callable like ``time.time`` / ``time.monotonic``; ``sleep`` is an async
    drop-in for ``asyncio.sleep`` that advances the clock instead of waiting.
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
