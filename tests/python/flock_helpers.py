from __future__ import annotations

from flocksim.sim.core.config import BoidConfig, RuleConfig, SimulationConfig
from flocksim.sim.core.world import World


def small_config(count: int = 0, **overrides) -> SimulationConfig:
    """A 300x300 world with 100px cells (3x3 grid) and a 30px wall margin."""
    rules = overrides.pop("rules", RuleConfig(influence_distance=100.0, steering_distance=25.0, margin=30.0))
    boids = overrides.pop("boids", BoidConfig(count=count))
    values = {"width": 300.0, "height": 300.0, "seed": 3, "parallel_rules": False}
    values.update(overrides)
    return SimulationConfig(boids=boids, rules=rules, **values)


def place(world: World, *placements) -> None:
    """Set (x, y) or (x, y, vx, vy) on agents in order, then reindex the grid."""
    for agent, values in zip(world.agents, placements):
        agent.position.update(values[0], values[1])
        if len(values) == 4:
            agent.velocity.update(values[2], values[3])
    world.reindex()
