from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

from ..core.agent import Agent
from ..types.metrics import TickMetrics


def speed_stats(agents: Sequence[Agent]) -> Tuple[float, float]:
    if not agents:
        return 0.0, 0.0
    speed_sum = 0.0
    max_axis = 0.0
    for agent in agents:
        velocity = agent.velocity
        speed_sum += math.hypot(velocity.x, velocity.y)
        axis = max(abs(velocity.x), abs(velocity.y))
        if axis > max_axis:
            max_axis = axis
    return speed_sum / len(agents), max_axis


def create_metrics(
    tick: int,
    agents: Sequence[Agent],
    neighbor_checks: int,
    reindexed: int,
    occupancy: Tuple[int, int],
    target_active: bool,
    leader: Optional[int],
    evade_walls: bool,
    duration_ms: float,
) -> TickMetrics:
    average_speed, max_axis_speed = speed_stats(agents)
    occupied_cells, max_cell_occupancy = occupancy
    return TickMetrics(
        tick=tick,
        population=len(agents),
        neighbor_checks=neighbor_checks,
        reindexed=reindexed,
        average_speed=average_speed,
        max_axis_speed=max_axis_speed,
        occupied_cells=occupied_cells,
        max_cell_occupancy=max_cell_occupancy,
        target_active=target_active,
        leader=leader,
        evade_walls=evade_walls,
        tick_duration_ms=duration_ms,
    )
