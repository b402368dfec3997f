"""Randomised delay between browser actions."""

import asyncio
import random


class RateLimiter:
    """
    Sleeps for a uniformly random duration in [min_delay_ms, max_delay_ms].

    Jitter rather than a fixed pause keeps the request cadence closer to a
    person clicking through the bulletin.
    """

    def __init__(self, min_delay_ms: int = 1000, max_delay_ms: int = 3000, rng: random.Random | None = None):
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ValueError(f"Invalid delay window [{min_delay_ms}, {max_delay_ms}] ms")
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        """Return the next delay in seconds."""
        return self._rng.uniform(self.min_delay_ms, self.max_delay_ms) / 1000

    async def delay(self) -> None:
        await asyncio.sleep(self.next_delay())
