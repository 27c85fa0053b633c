from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

_BASIC_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "avg_speed",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "avg_speed",
    "tick_ms",
    "max_axis_speed",
    "reindexed",
    "reindexed_ratio",
    "neighbor_checks_per_agent",
    "tick_ms_per_agent",
    "occupied_cells",
    "avg_agents_per_cell",
    "max_cell_occupancy",
    "out_of_bounds",
    "target_active",
    "leader",
    "evade_walls",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.neighbor_checks,
        f"{metrics.average_speed:.4f}",
        f"{tick_ms:.3f}",
    ]


def _count_out_of_bounds(world: World) -> int:
    width = world.config.width
    height = world.config.height
    return sum(
        1
        for agent in world.agents
        if not (0.0 <= agent.position.x < width and 0.0 <= agent.position.y < height)
    )


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    if population <= 0:
        reindexed_ratio = 0.0
        neighbor_checks_per_agent = 0.0
        tick_ms_per_agent = 0.0
    else:
        reindexed_ratio = metrics.reindexed / population
        neighbor_checks_per_agent = metrics.neighbor_checks / population
        tick_ms_per_agent = tick_ms / population
    if metrics.occupied_cells > 0:
        avg_agents_per_cell = population / metrics.occupied_cells
    else:
        avg_agents_per_cell = 0.0

    return [
        metrics.tick,
        population,
        metrics.neighbor_checks,
        f"{metrics.average_speed:.4f}",
        f"{tick_ms:.3f}",
        f"{metrics.max_axis_speed:.4f}",
        metrics.reindexed,
        f"{reindexed_ratio:.4f}",
        f"{neighbor_checks_per_agent:.4f}",
        f"{tick_ms_per_agent:.4f}",
        metrics.occupied_cells,
        f"{avg_agents_per_cell:.4f}",
        metrics.max_cell_occupancy,
        _count_out_of_bounds(world),
        int(metrics.target_active),
        "" if metrics.leader is None else metrics.leader,
        int(metrics.evade_walls),
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
    boids: Optional[int] = None,
    target: Optional[tuple[float, float]] = None,
    leader: Optional[int] = None,
) -> list[TickMetrics]:
    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    if boids is not None:
        config.boids.count = boids

    writer = None
    csv_file = None
    history: list[TickMetrics] = []
    out_of_bounds_total = 0
    max_axis_speed = 0.0

    with World(config) as world:
        if target is not None:
            world.set_target(*target)
        if leader is not None:
            world.set_leader(leader)
        logger.info("Running %d ticks with %d boids (seed=%d)", steps, len(world.agents), config.seed)

        if log_path:
            csv_file = Path(log_path).open("w", newline="")
            writer = csv.writer(csv_file)
            writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)
        try:
            for _ in range(steps):
                metrics = world.tick()
                history.append(metrics)
                out_of_bounds_total += _count_out_of_bounds(world)
                max_axis_speed = max(max_axis_speed, metrics.max_axis_speed)
                if writer:
                    tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
                    if log_mode == "detailed":
                        writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                    else:
                        writer.writerow(_format_basic_row(metrics, tick_ms))
        finally:
            if csv_file:
                csv_file.close()

    if out_of_bounds_total:
        logger.warning("%d agent positions fell outside the world during the run", out_of_bounds_total)

    if summary_path:
        tick_ms_series = [0.0 if deterministic_log else m.tick_duration_ms for m in history]
        summary = {
            "steps": steps,
            "seed": config.seed,
            "boids": config.boids.count,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "neighbor_checks": _summary_stats([float(m.neighbor_checks) for m in history]),
            "average_speed": _summary_stats([m.average_speed for m in history]),
            "reindexed": _summary_stats([float(m.reindexed) for m in history]),
            "max_axis_speed": max_axis_speed,
            "out_of_bounds": out_of_bounds_total,
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
        logger.info("Wrote run summary to %s", summary_path)

    return history


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless boids simulation")
    parser.add_argument("--steps", type=int, default=600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--boids", type=int, default=None, help="Override the number of boids")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument("--summary", type=Path, default=None, help="Optional JSON file for run summary stats.")
    parser.add_argument("--target", type=float, nargs=2, metavar=("X", "Y"), default=None)
    parser.add_argument("--leader", type=int, default=None, help="Index of the boid every other boid follows")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        config_path=args.config,
        boids=args.boids,
        target=tuple(args.target) if args.target else None,
        leader=args.leader,
    )


if __name__ == "__main__":
    main()
