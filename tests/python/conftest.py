import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: long end-to-end runs over the full default population",
    )


@pytest.fixture
def make_world():
    from flock_helpers import small_config
    from flocksim.sim.core.world import World

    worlds = []

    def _make(count: int = 0, **overrides):
        world = World(small_config(count, **overrides))
        worlds.append(world)
        return world

    yield _make
    for world in worlds:
        world.close()
