from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    neighbor_checks: int
    reindexed: int
    average_speed: float
    max_axis_speed: float
    occupied_cells: int
    max_cell_occupancy: int
    target_active: bool
    leader: Optional[int]
    evade_walls: bool
    tick_duration_ms: float = 0.0
