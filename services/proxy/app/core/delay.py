from __future__ import annotations
import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .faults import RandomSource

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class AppliedDelay:
    constant_delay_ms: int
    random_delay_ms: int

    @property
    def total_ms(self) -> int:
        return self.constant_delay_ms + self.random_delay_ms


@dataclass
class DelayInjector:
    rng: RandomSource = field(default_factory=random.Random)
    sleep: Sleeper = asyncio.sleep

    def draw(self, constant_delay_ms: int, max_random_delay_ms: int) -> AppliedDelay:
        random_ms = 0
        if max_random_delay_ms > 0:
            # floor keeps the draw inside [0, max)
            random_ms = min(int(self.rng.random() * max_random_delay_ms), max_random_delay_ms - 1)
        return AppliedDelay(constant_delay_ms=constant_delay_ms, random_delay_ms=random_ms)

    async def apply(self, constant_delay_ms: int, max_random_delay_ms: int) -> AppliedDelay:
        applied = self.draw(constant_delay_ms, max_random_delay_ms)
        if applied.total_ms > 0:
            await self.sleep(applied.total_ms / 1000.0)
        return applied
