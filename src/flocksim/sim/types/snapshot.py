from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: Optional[TickMetrics]
    agents: List[Dict[str, Any]]
    world: "SnapshotWorld"
    controls: "SnapshotControls"
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotWorld:
    width: float
    height: float


@dataclass(slots=True)
class SnapshotControls:
    target: Optional[Tuple[float, float]]
    leader: Optional[int]
    evade_walls: bool


@dataclass(slots=True)
class SnapshotMetadata:
    tick_rate: float
    sim_dt: float
    seed: int
    config_version: str
