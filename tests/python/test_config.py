from __future__ import annotations

import pytest
from pytest import approx

from flocksim.sim.core.config import SimulationConfig, load_config


def test_defaults_match_reference_constants():
    config = SimulationConfig()
    assert config.width == 1400.0 and config.height == 1000.0
    assert config.tick_rate == 60
    assert config.boids.count == 800
    assert config.boids.max_speed == 6.0
    assert config.boids.min_speed == 5.0
    assert config.rules.steering_distance_sq == approx(625.0)
    assert config.rules.influence_distance_sq == approx(5625.0)
    assert config.resolved_margin() == approx(140.0)
    assert config.time_step == approx(1.0 / 60.0)


def test_load_config_merges_nested_sections():
    config = load_config(
        {
            "width": 800.0,
            "seed": 7,
            "boids": {"count": 12, "min_speed": 2.0},
            "rules": {"cohesion_factor": 0.01, "margin": 40.0},
        }
    )
    assert config.width == 800.0
    assert config.seed == 7
    assert config.boids.count == 12
    assert config.boids.min_speed == 2.0
    assert config.boids.max_speed == 6.0
    assert config.rules.cohesion_factor == 0.01
    assert config.resolved_margin() == 40.0


def test_from_yaml(tmp_path):
    path = tmp_path / "flock.yaml"
    path.write_text(
        "height: 600\n"
        "evade_walls: false\n"
        "boids:\n"
        "  count: 25\n"
        "rules:\n"
        "  influence_distance: 50\n"
    )
    config = SimulationConfig.from_yaml(path)
    assert config.height == 600
    assert config.evade_walls is False
    assert config.boids.count == 25
    assert config.rules.influence_distance == 50


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert SimulationConfig.from_yaml(path) == SimulationConfig()


def test_unknown_keys_fail_fast():
    with pytest.raises(TypeError):
        load_config({"boids": {"cuont": 3}})


def test_validate_rejects_inverted_speed_limits():
    config = load_config({"boids": {"min_speed": 7.0, "max_speed": 6.0}})
    with pytest.raises(AssertionError):
        config.validate()
