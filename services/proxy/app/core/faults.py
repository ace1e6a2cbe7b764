from __future__ import annotations
from dataclasses import dataclass, field
import random
from typing import Protocol


class RandomSource(Protocol):
    def random(self) -> float:
        """Uniform sample in [0.0, 1.0)."""
        ...


@dataclass
class FailureGate:
    rng: RandomSource = field(default_factory=random.Random)

    def should_fail(self, failure_rate: float) -> bool:
        # one draw per request, even when the outcome is already certain
        r = self.rng.random()
        return r < failure_rate
