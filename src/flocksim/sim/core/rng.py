from __future__ import annotations

import random


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_range(self, low: float, high: float) -> float:
        """Uniform sample in ``[low, high)``; a degenerate range returns ``low``."""
        if high <= low:
            return low
        return low + (high - low) * self._random.random()
