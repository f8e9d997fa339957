"""
Randomness Service
==================
Single source of randomness for amounts, strategy choice, wallet order and
pacing. Seed it to make a run reproducible; inject a sleeper to make pauses
instant in tests.
"""

import asyncio
import random
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from .utils import logger

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


class RandomnessService:
    """Uniform draws, shuffles and randomized delays."""

    def __init__(self, seed: Optional[int] = None, sleeper: Optional[Sleeper] = None):
        self.seed = seed
        self._rng = random.Random(seed)
        self._sleep = sleeper or asyncio.sleep

    def uniform_int(self, lo: int, hi: int) -> int:
        """Random integer in [lo, hi], both inclusive."""
        if hi < lo:
            raise ValueError(f"Empty range [{lo}, {hi}]")
        return self._rng.randint(lo, hi)

    def uniform_float(self, lo: float, hi: float) -> float:
        return lo + self._rng.random() * (hi - lo)

    def chance(self, probability: float) -> bool:
        """True with the given probability."""
        return self.uniform_float(0.0, 1.0) < probability

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("Cannot choose from an empty sequence")
        return items[self.uniform_int(0, len(items) - 1)]

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """Fisher-Yates shuffle of a copy; the input is left untouched."""
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self.uniform_int(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    async def delay(self, min_ms: int, max_ms: int) -> float:
        """Sleep for a random duration between min_ms and max_ms."""
        seconds = self.uniform_int(min_ms, max_ms) / 1000
        logger.debug(f"Waiting {seconds:.1f} seconds before next action...")
        await self._sleep(seconds)
        return seconds

    async def pause(self, seconds: float):
        """Fixed pause through the same sleeper."""
        await self._sleep(seconds)
