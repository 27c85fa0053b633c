from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from pygame.math import Vector2

from ..core.agent import ColorClass
from ..core.config import RuleConfig

if TYPE_CHECKING:
    from ..core.spatial_grid import SpatialGrid


@dataclass(frozen=True, slots=True)
class FlockView:
    """Read-only copy of the flock taken at the start of a tick.

    Every rule reads from the same view; nothing here is shared with the live
    agents, so rules may run concurrently while the world is untouched.
    """

    positions: Tuple[Tuple[float, float], ...]
    velocities: Tuple[Tuple[float, float], ...]
    colors: Tuple[ColorClass, ...]
    cells: Tuple[Tuple[int, int], ...]
    grid: "SpatialGrid"
    rules: RuleConfig
    width: float
    height: float
    margin: float
    evade_walls: bool
    target: Optional[Tuple[float, float]]
    leader: Optional[int]

    def __len__(self) -> int:
        return len(self.positions)


@dataclass(slots=True)
class RuleResult:
    directions: List[Vector2]
    neighbor_checks: int = 0


def _zeros(count: int) -> List[Vector2]:
    return [Vector2() for _ in range(count)]


def separation(view: FlockView, use_cache: bool = True) -> RuleResult:
    """Steer away from every other agent within the steering distance.

    The displacement between two agents is computed once per unordered pair
    when `use_cache` is set; the reverse pair reuses its negation. Negation is
    exact in floating point, so both paths produce identical results.
    """
    positions = view.positions
    cells = view.cells
    grid = view.grid
    threshold_sq = view.rules.steering_distance_sq
    factor = view.rules.separation_factor
    cache: Dict[Tuple[int, int], Tuple[float, float]] = {}
    directions: List[Vector2] = []
    checks = 0

    for i, (px, py) in enumerate(positions):
        row, col = cells[i]
        sum_x = 0.0
        sum_y = 0.0
        for j in grid.neighbor_indices(row, col):
            if j == i:
                continue
            checks += 1
            if use_cache:
                # Keyed by (low, high); stores position[high] - position[low].
                # The sum is kept as other - this and negated on return, so neighbors repel.
                if i < j:
                    offset = cache.get((i, j))
                    if offset is None:
                        ox, oy = positions[j]
                        offset = (ox - px, oy - py)
                        cache[(i, j)] = offset
                    dx, dy = offset
                else:
                    offset = cache.get((j, i))
                    if offset is None:
                        ox, oy = positions[j]
                        offset = (px - ox, py - oy)
                        cache[(j, i)] = offset
                    dx = -offset[0]
                    dy = -offset[1]
            else:
                ox, oy = positions[j]
                dx = ox - px
                dy = oy - py
            if dx * dx + dy * dy > threshold_sq:
                continue
            sum_x += dx
            sum_y += dy
        directions.append(Vector2(-factor * sum_x, -factor * sum_y))
    return RuleResult(directions, checks)


def _same_color_average(view: FlockView, values: Sequence[Tuple[float, float]], factor: float) -> RuleResult:
    positions = view.positions
    colors = view.colors
    cells = view.cells
    grid = view.grid
    threshold_sq = view.rules.influence_distance_sq
    directions: List[Vector2] = []
    checks = 0

    for i, (px, py) in enumerate(positions):
        color = colors[i]
        row, col = cells[i]
        sum_x = 0.0
        sum_y = 0.0
        count = 0
        # The agent itself is always counted.
        for j in grid.neighbor_indices(row, col):
            checks += 1
            if colors[j] is not color:
                continue
            ox, oy = positions[j]
            dx = ox - px
            dy = oy - py
            if dx * dx + dy * dy > threshold_sq:
                continue
            vx, vy = values[j]
            sum_x += vx
            sum_y += vy
            count += 1
        if count <= 1:
            directions.append(Vector2())
            continue
        own_x, own_y = values[i]
        directions.append(Vector2(factor * (sum_x / count - own_x), factor * (sum_y / count - own_y)))
    return RuleResult(directions, checks)


def alignment(view: FlockView) -> RuleResult:
    """Match the mean velocity of nearby agents of the same color."""
    return _same_color_average(view, view.velocities, view.rules.alignment_factor)


def cohesion(view: FlockView) -> RuleResult:
    """Move toward the mean position of nearby agents of the same color."""
    return _same_color_average(view, view.positions, view.rules.cohesion_factor)


def evasion(view: FlockView) -> RuleResult:
    count = len(view)
    if not view.evade_walls:
        return RuleResult(_zeros(count))
    factor = view.rules.evasion_factor
    margin = view.margin
    low_x, high_x = margin, view.width - margin
    low_y, high_y = margin, view.height - margin
    directions: List[Vector2] = []
    for px, py in view.positions:
        dx = 0.0
        dy = 0.0
        if py < low_y:
            dy = factor
        elif py > high_y:
            dy = -factor
        if px < low_x:
            dx = factor
        elif px > high_x:
            dx = -factor
        directions.append(Vector2(dx, dy))
    return RuleResult(directions)


def seek_target(view: FlockView) -> RuleResult:
    if view.target is None:
        return RuleResult(_zeros(len(view)))
    factor = view.rules.target_factor
    tx, ty = view.target
    return RuleResult([Vector2(factor * (tx - px), factor * (ty - py)) for px, py in view.positions])


def follow_leader(view: FlockView) -> RuleResult:
    """Pull every agent toward the leader; the leader's own term is zero."""
    if view.leader is None:
        return RuleResult(_zeros(len(view)))
    assert 0 <= view.leader < len(view), f"leader index {view.leader} out of range"
    factor = view.rules.leader_factor
    lx, ly = view.positions[view.leader]
    return RuleResult([Vector2(factor * (lx - px), factor * (ly - py)) for px, py in view.positions])


RULES: Tuple[Tuple[str, Callable[[FlockView], RuleResult]], ...] = (
    ("separation", separation),
    ("alignment", alignment),
    ("cohesion", cohesion),
    ("evasion", evasion),
    ("target", seek_target),
    ("leader", follow_leader),
)


def combine(contributions: Sequence[List[Vector2]], count: int) -> List[Vector2]:
    totals = _zeros(count)
    for directions in contributions:
        assert len(directions) == count, "every rule must yield one direction per agent"
        for index, direction in enumerate(directions):
            totals[index] += direction
    return totals
