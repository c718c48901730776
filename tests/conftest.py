import pytest

from market_sim.config import SimulationConfig


@pytest.fixture
def small_config():
    return SimulationConfig(iterations=60, weeks=12, seed=42)
