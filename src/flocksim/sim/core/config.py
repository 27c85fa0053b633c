from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class BoidConfig:
    count: int = 800
    # Per-axis velocity bound
    max_speed: float = 6.0
    # Velocity magnitude floor
    min_speed: float = 5.0


@dataclass
class RuleConfig:
    separation_factor: float = 0.1
    alignment_factor: float = 0.05
    cohesion_factor: float = 0.005
    evasion_factor: float = 1.3
    target_factor: float = 0.0005
    leader_factor: float = 0.0005
    steering_distance: float = 25.0
    influence_distance: float = 75.0
    # Distance from a wall at which evasion kicks in; None means a tenth of the width
    margin: Optional[float] = None

    @property
    def steering_distance_sq(self) -> float:
        return self.steering_distance * self.steering_distance

    @property
    def influence_distance_sq(self) -> float:
        return self.influence_distance * self.influence_distance


@dataclass
class SimulationConfig:
    width: float = 1400.0
    height: float = 1000.0
    tick_rate: int = 60
    seed: int = 42
    evade_walls: bool = True
    parallel_rules: bool = True
    config_version: str = "v1"
    boids: BoidConfig = field(default_factory=BoidConfig)
    rules: RuleConfig = field(default_factory=RuleConfig)

    @property
    def time_step(self) -> float:
        return 1.0 / self.tick_rate

    def resolved_margin(self) -> float:
        if self.rules.margin is None:
            return self.width / 10.0
        return self.rules.margin

    def validate(self) -> None:
        assert self.width > 0 and self.height > 0, "world dimensions must be positive"
        assert self.tick_rate > 0, "tick rate must be positive"
        assert self.boids.count >= 0, "boid count must not be negative"
        assert 0.0 <= self.boids.min_speed <= self.boids.max_speed, "min_speed must not exceed max_speed"
        assert self.rules.influence_distance > 0, "influence distance sizes the grid and must be positive"
        assert self.rules.steering_distance >= 0, "steering distance must not be negative"

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def load_config(raw: dict) -> SimulationConfig:
    boids = BoidConfig(**raw.get("boids", {}))
    rules = RuleConfig(**raw.get("rules", {}))
    sim_values = {k: v for k, v in raw.items() if k not in {"boids", "rules"}}
    return SimulationConfig(boids=boids, rules=rules, **sim_values)
