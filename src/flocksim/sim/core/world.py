from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from time import perf_counter
from typing import Any, Dict, List, Optional

from pygame.math import Vector2

from .agent import Agent
from .clock import FixedRateClock
from .config import SimulationConfig
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid
from ..systems import metrics as metrics_system, steering
from ..systems.steering import FlockView, RuleResult
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotControls, SnapshotMetadata, SnapshotWorld


class World:
    """Mutable simulation state plus the per-tick update.

    Agents live in one dense list and are addressed by index; the grid only
    stores those indices. Hosts read `agents` and drive the simulation through
    `tick()` and the target/leader/wall setters.
    """

    def __init__(self, config: SimulationConfig):
        config.validate()
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._margin = config.resolved_margin()
        self._grid = SpatialGrid(config.width, config.height, config.rules.influence_distance)
        self._agents: List[Agent] = []
        self._target: Optional[Vector2] = None
        self._leader: Optional[int] = None
        self._evade_walls = config.evade_walls
        self._tick = 0
        self._metrics: TickMetrics | None = None
        self._executor: ThreadPoolExecutor | None = None
        if config.parallel_rules:
            self._executor = ThreadPoolExecutor(max_workers=len(steering.RULES), thread_name_prefix="flock-rule")
        self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def grid(self) -> SpatialGrid:
        return self._grid

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def margin(self) -> float:
        return self._margin

    @property
    def target(self) -> Optional[Vector2]:
        return None if self._target is None else Vector2(self._target)

    def set_target(self, x: float, y: float) -> None:
        self._target = Vector2(x, y)

    def clear_target(self) -> None:
        self._target = None

    @property
    def evade_walls(self) -> bool:
        return self._evade_walls

    @evade_walls.setter
    def evade_walls(self, enabled: bool) -> None:
        self._evade_walls = bool(enabled)

    def toggle_walls(self) -> bool:
        self._evade_walls = not self._evade_walls
        return self._evade_walls

    @property
    def leader(self) -> Optional[int]:
        return self._leader

    def set_leader(self, index: int) -> None:
        if not 0 <= index < len(self._agents):
            raise IndexError(f"leader index {index} out of range for {len(self._agents)} agents")
        self._leader = index

    def clear_leader(self) -> None:
        self._leader = None

    def toggle_leader(self) -> Optional[int]:
        if self._leader is None:
            self.set_leader(0)
        else:
            self._leader = None
        return self._leader

    def reset(self) -> None:
        self._rng.reset()
        self._target = None
        self._leader = None
        self._evade_walls = self._config.evade_walls
        self._tick = 0
        self._metrics = None
        self._bootstrap_population()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "World":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def reindex(self) -> int:
        return self._grid.reindex(self._agents)

    def view(self) -> FlockView:
        """Snapshot the flock for rule evaluation; the grid must be current."""
        agents = self._agents
        target = self._target
        return FlockView(
            positions=tuple((agent.position.x, agent.position.y) for agent in agents),
            velocities=tuple((agent.velocity.x, agent.velocity.y) for agent in agents),
            colors=tuple(agent.color for agent in agents),
            cells=tuple((agent.row, agent.col) for agent in agents),
            grid=self._grid,
            rules=self._config.rules,
            width=self._config.width,
            height=self._config.height,
            margin=self._margin,
            evade_walls=self._evade_walls,
            target=None if target is None else (target.x, target.y),
            leader=self._leader,
        )

    def tick(self) -> TickMetrics:
        start = perf_counter()
        config = self._config
        agents = self._agents

        reindexed = self._grid.reindex(agents)
        occupancy = self._grid.occupancy()
        results = self._evaluate_rules(self.view())
        directions = steering.combine([result.directions for result in results], len(agents))

        max_speed = config.boids.max_speed
        min_speed = config.boids.min_speed
        width = config.width
        height = config.height
        for agent, direction in zip(agents, directions):
            agent.apply_steering(direction, max_speed, min_speed)
            agent.advance(width, height)

        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            self._tick,
            agents,
            sum(result.neighbor_checks for result in results),
            reindexed,
            occupancy,
            self._target is not None,
            self._leader,
            self._evade_walls,
            duration_ms,
        )
        self._tick += 1
        return self._metrics

    def run_pending(self, clock: FixedRateClock, elapsed: float) -> List[TickMetrics]:
        return [self.tick() for _ in range(clock.advance(elapsed))]

    def snapshot(self) -> Snapshot:
        config = self._config
        agents_payload: List[Dict[str, Any]] = []
        for agent in self._agents:
            agents_payload.append(
                {
                    "id": agent.index,
                    "x": agent.position.x,
                    "y": agent.position.y,
                    "vx": agent.velocity.x,
                    "vy": agent.velocity.y,
                    "heading": agent.heading,
                    "color": agent.color.value,
                    "rgb": list(agent.color.rgb),
                }
            )
        target = self._target
        return Snapshot(
            tick=self._tick,
            metrics=self._metrics,
            agents=agents_payload,
            world=SnapshotWorld(width=config.width, height=config.height),
            controls=SnapshotControls(
                target=None if target is None else (target.x, target.y),
                leader=self._leader,
                evade_walls=self._evade_walls,
            ),
            metadata=SnapshotMetadata(
                tick_rate=float(config.tick_rate),
                sim_dt=config.time_step,
                seed=config.seed,
                config_version=config.config_version,
            ),
        )

    def _evaluate_rules(self, view: FlockView) -> List[RuleResult]:
        if self._executor is None:
            return [rule(view) for _, rule in steering.RULES]
        futures = [self._executor.submit(rule, view) for _, rule in steering.RULES]
        # Join every rule before anything mutates the agents.
        wait(futures)
        return [future.result() for future in futures]

    def _bootstrap_population(self) -> None:
        config = self._config
        margin = self._margin
        self._agents.clear()
        for index in range(config.boids.count):
            x = self._rng.next_range(margin, config.width - margin)
            y = self._rng.next_range(margin, config.height - margin)
            self._agents.append(Agent.spawn(index, x, y, config.boids.max_speed))
        self._grid.build(self._agents)
