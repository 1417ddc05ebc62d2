"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from shaderpulse.config import EngineConfig
from shaderpulse.core.smoother import ParameterSmoother
from shaderpulse.core.types import FeatureHistory
from shaderpulse.engine import ReactiveEngine
from shaderpulse.session import AudioSession

# Analyzer frame rate used for synthetic histories
TEST_RATE = 86


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def uniform_history() -> FeatureHistory:
    """
    1000 frames with every band uniformly spread over [0, 1].

    Values are shuffled in time so the rolling windows see variation.
    """
    n = 1000
    rng = np.random.default_rng(7)
    times = np.arange(n) / TEST_RATE
    values = np.linspace(0.0, 1.0, n)
    return FeatureHistory(
        times,
        rng.permutation(values),
        rng.permutation(values),
        rng.permutation(values),
        rng.permutation(values),
    )


@pytest.fixture
def history_frames() -> list[dict]:
    """Frame-list layout, 2 seconds of a slow ramp."""
    n = 2 * TEST_RATE
    return [
        {
            "time": i / TEST_RATE,
            "energy": i / n,
            "lowEnergy": (i % 20) / 20,
            "midEnergy": 0.5,
            "highEnergy": 1.0 - i / n,
        }
        for i in range(n)
    ]


@pytest.fixture
def timeline() -> list[dict]:
    """A few transients and one dynamic change."""
    return [
        {"type": "transient", "time": 0.5, "intensity": 0.6, "dominantBand": "low"},
        {"type": "transient", "time": 1.0, "intensity": 0.8, "dominantBand": "low"},
        {"type": "dynamic_rise", "time": 1.0, "intensity": 0.4},
        {"type": "transient", "time": 1.5, "intensity": 0.3, "dominantBand": "high"},
    ]


@pytest.fixture
def smoother() -> ParameterSmoother:
    return ParameterSmoother()


@pytest.fixture
def sync_config() -> EngineConfig:
    """Engine config with synchronous table builds and a fixed seed."""
    config = EngineConfig(background_init=False)
    config.beats.seed = 1234
    return config


@pytest.fixture
def engine(sync_config, clock):
    """Engine with a synchronous session and a fake clock."""
    engine = ReactiveEngine(
        sync_config, session=AudioSession(background=False), clock=clock
    )
    yield engine
    engine.close()
