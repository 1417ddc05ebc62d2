"""Tests for the AdaptiveNormalizer module."""

import math

import numpy as np
import pytest

from shaderpulse.config import NormalizerConfig
from shaderpulse.core.errors import NormalizerNotReadyError
from shaderpulse.core.normalizer import AdaptiveNormalizer, RollingWindow, build_table
from shaderpulse.core.types import FeatureFrame, FeatureHistory


def _frame(low=0.5, energy=0.5, mid=0.5, high=0.5, time=0.0) -> FeatureFrame:
    return FeatureFrame(time, energy, low, mid, high)


class TestPercentileTable:
    """Per-track percentile tables."""

    def test_median_rank(self, uniform_history):
        """The median of a uniform distribution ranks at 0.5."""
        normalizer = AdaptiveNormalizer()
        assert normalizer.initialize(uniform_history)

        median = float(np.median(uniform_history.column("low")))

        assert normalizer.percentile_rank(median, "low") == pytest.approx(0.5, abs=0.001)

    def test_rank_monotonic(self, uniform_history):
        table = build_table(uniform_history)
        grid = np.linspace(-0.5, 1.5, 400)
        ranks = [table.rank(v, "mid") for v in grid]

        assert all(b >= a for a, b in zip(ranks, ranks[1:]))
        assert ranks[0] == 0.0
        assert ranks[-1] == 1.0

    def test_band_statistics(self, uniform_history):
        table = build_table(uniform_history)
        stats = table.stats["energy"]

        assert stats.count == 1000
        assert stats.minimum == 0.0
        assert stats.maximum == 1.0
        assert stats.mean == pytest.approx(0.5)

    def test_build_rejects_invalid(self):
        assert build_table(FeatureHistory.from_frames([])) is None
        assert build_table(None) is None

        bad = FeatureHistory.from_frames([{"time": 0.0, "energy": 0.1}])
        assert build_table(bad) is None


class TestInitialization:
    """initialize() and the not-ready state."""

    def test_empty_history_returns_false(self):
        """An empty history leaves the normalizer unusable."""
        normalizer = AdaptiveNormalizer()

        assert normalizer.initialize([]) is False
        assert not normalizer.is_initialized
        with pytest.raises(NormalizerNotReadyError):
            normalizer.get_shader_values(_frame())

    @pytest.mark.parametrize("history", [None, 42, [{"time": "x"}], [None, None]])
    def test_malformed_history_returns_false(self, history):
        assert AdaptiveNormalizer().initialize(history) is False

    def test_frame_dicts_accepted(self, history_frames):
        normalizer = AdaptiveNormalizer()

        assert normalizer.initialize(history_frames) is True
        assert normalizer.is_initialized

    def test_reset_forgets_track(self, uniform_history):
        normalizer = AdaptiveNormalizer()
        normalizer.initialize(uniform_history)
        normalizer.get_shader_values(_frame())
        normalizer.reset()

        assert not normalizer.is_initialized
        assert normalizer.stats()["rolling_window_sizes"]["low"] == 0

    def test_stats_snapshot(self, uniform_history):
        normalizer = AdaptiveNormalizer()
        assert normalizer.stats()["is_initialized"] is False

        normalizer.initialize(uniform_history)
        stats = normalizer.stats()

        assert stats["is_initialized"] is True
        assert set(stats["stats"]) == {"energy", "low", "mid", "high"}


class TestShaderValues:
    """Blended per-band outputs."""

    @pytest.fixture
    def normalizer(self, uniform_history):
        normalizer = AdaptiveNormalizer()
        normalizer.initialize(uniform_history)
        return normalizer

    def test_zero_sensitivity_is_pure_rank(self, normalizer):
        normalizer.set_sensitivity(0.0)
        values = normalizer.get_shader_values(_frame(low=0.8))

        assert values.low_energy == pytest.approx(0.8)

    def test_below_floor_is_silent(self, normalizer):
        """Values in the bottom 30% of the track output zero."""
        values = normalizer.get_shader_values(_frame(low=0.1, energy=0.2))

        assert values.low_energy == 0.0
        assert values.energy == 0.0
        assert values.mid_energy > 0.0

    def test_outputs_in_unit_range(self, normalizer):
        rng = np.random.default_rng(3)
        normalizer.set_sensitivity(1.0)
        for value in rng.uniform(-1.0, 2.0, size=200):
            out = normalizer.get_shader_values(_frame(low=value, energy=value))
            for v in out.as_dict().values():
                assert 0.0 <= v <= 1.0

    def test_local_spike_raises_output(self, normalizer):
        """A jump above the recent average adds to the global rank."""
        normalizer.set_sensitivity(1.0)
        for _ in range(20):
            normalizer.get_shader_values(_frame(low=0.5))
        values = normalizer.get_shader_values(_frame(low=0.9))

        assert values.low_energy > 0.9

    def test_z_score_needs_samples(self, normalizer):
        normalizer.get_shader_values(_frame(low=0.5))

        assert normalizer.rolling_z_score(0.9, "low") == 0.0

    def test_non_finite_input(self, normalizer):
        values = normalizer.get_shader_values(_frame(low=math.nan))

        assert values.low_energy == 0.5

    def test_transient_detection(self, normalizer):
        """A sudden rise in one band is reported as a transient."""
        for _ in range(20):
            values = normalizer.get_shader_values(_frame(low=0.2))
        assert values.transients == 0.0

        values = normalizer.get_shader_values(_frame(low=0.6))

        assert 0.0 < values.transients <= 1.0

    def test_sensitivity_clamped(self, normalizer):
        normalizer.set_sensitivity(5.0)
        assert normalizer.sensitivity == 1.0

        normalizer.set_sensitivity(-1.0)
        assert normalizer.sensitivity == 0.0

    def test_values_at_time(self, normalizer, uniform_history):
        values = normalizer.values_at_time(uniform_history.duration / 2)

        for v in values.as_dict().values():
            assert 0.0 <= v <= 1.0

    def test_config_sensitivity_clamped(self):
        normalizer = AdaptiveNormalizer(NormalizerConfig(sensitivity=3.0))

        assert normalizer.sensitivity == 1.0


class TestRollingWindow:
    """Ring buffer statistics."""

    def test_keeps_last_samples(self):
        window = RollingWindow(3)
        for value in [1.0, 2.0, 3.0, 4.0, 5.0]:
            window.push(value)

        assert len(window) == 3
        assert window.mean == pytest.approx(4.0)
        assert window.std == pytest.approx(math.sqrt(2.0 / 3.0))
        assert list(window.latest(2)) == [4.0, 5.0]

    def test_clear(self):
        window = RollingWindow(4)
        window.push(1.0)
        window.clear()

        assert len(window) == 0
        assert window.mean == 0.0
        assert len(window.latest(3)) == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            RollingWindow(0)

    def test_config_not_shared(self):
        config = NormalizerConfig(sensitivity=0.5)
        first = AdaptiveNormalizer(config)
        second = AdaptiveNormalizer(config)

        first.set_sensitivity(0.9)

        assert second.sensitivity == 0.5
        assert config.sensitivity == 0.5
