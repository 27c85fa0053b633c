from __future__ import annotations

from typing import Optional


class FixedRateClock:
    """Converts elapsed wall-clock time into a whole number of fixed ticks.

    Leftover time below one tick is carried to the next call. When the host
    falls behind, several ticks are reported at once; `max_catch_up` caps that
    burst and drops the rest of the backlog.
    """

    def __init__(self, tick_rate: float, max_catch_up: Optional[int] = None) -> None:
        assert tick_rate > 0, "tick rate must be positive"
        self._tick_length = 1.0 / tick_rate
        self._max_catch_up = max_catch_up
        self._accumulated = 0.0

    @property
    def tick_length(self) -> float:
        return self._tick_length

    @property
    def pending(self) -> float:
        return self._accumulated

    def reset(self) -> None:
        self._accumulated = 0.0

    def advance(self, elapsed: float) -> int:
        if elapsed > 0.0:
            self._accumulated += elapsed
        due = int(self._accumulated // self._tick_length)
        if due <= 0:
            return 0
        self._accumulated -= due * self._tick_length
        if self._max_catch_up is not None and due > self._max_catch_up:
            due = self._max_catch_up
            self._accumulated = 0.0
        return due
