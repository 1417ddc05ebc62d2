"""
Adaptive percentile/rolling-window normalization.

Replaces fixed thresholds with statistics of the track itself so that
quiet and heavily compressed material both use the full 0-1 range:

* a global percentile rank (where does this value sit in the whole song?)
* a local z-score over the last few seconds (is this a standout moment?)

The percentile table is built once per track from the complete feature
history; the rolling windows are fed during playback.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
from scipy import stats

from shaderpulse.config import NormalizerConfig
from shaderpulse.core.errors import NormalizerNotReadyError
from shaderpulse.core.types import BANDS, BandIntensities, FeatureFrame, FeatureHistory

logger = logging.getLogger(__name__)

TRANSIENT_BANDS = ("low", "mid", "high")


@dataclass
class BandStats:
    """Descriptive statistics of one band over a whole track."""

    minimum: float = 0.0
    maximum: float = 0.0
    mean: float = 0.0
    std: float = 0.0
    count: int = 0


@dataclass
class PercentileTable:
    """Sorted per-band copies of a track's feature history."""

    sorted_values: dict[str, np.ndarray]
    stats: dict[str, BandStats] = field(default_factory=dict)

    def rank(self, value: float, band: str) -> float:
        """
        Fraction of the band's values that are <= ``value``.

        Binary search over the sorted column, so monotonic nondecreasing
        in ``value``.
        """
        values = self.sorted_values[band]
        if len(values) == 0:
            return 0.5
        count = np.searchsorted(values, value, side="right")
        return float(count) / len(values)


def build_table(history: FeatureHistory) -> PercentileTable | None:
    """
    Sort every band of a history and collect its statistics.

    Pure and O(n log n), so it can run off the render thread. Returns
    None for empty or malformed histories.
    """
    if history is None or not isinstance(history, FeatureHistory):
        return None
    if not history.is_valid():
        return None

    sorted_values = {}
    band_stats = {}
    for band in BANDS:
        column = history.column(band)
        sorted_values[band] = np.sort(column)

        if len(column) > 1:
            desc = stats.describe(column)
            band_stats[band] = BandStats(
                minimum=float(desc.minmax[0]),
                maximum=float(desc.minmax[1]),
                mean=float(desc.mean),
                std=float(math.sqrt(max(desc.variance, 0.0))),
                count=int(desc.nobs),
            )
        else:
            value = float(column[0])
            band_stats[band] = BandStats(value, value, value, 0.0, 1)

    return PercentileTable(sorted_values=sorted_values, stats=band_stats)


class RollingWindow:
    """
    Fixed-capacity ring buffer with running mean and variance.

    Running sums are kept so each push is O(1).
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("RollingWindow capacity must be at least 1")
        self.capacity = capacity
        self._buffer = np.zeros(capacity, dtype=np.float64)
        self._index = 0
        self._count = 0
        self._sum = 0.0
        self._sum_sq = 0.0

    def __len__(self) -> int:
        return self._count

    def clear(self):
        self._buffer[:] = 0.0
        self._index = 0
        self._count = 0
        self._sum = 0.0
        self._sum_sq = 0.0

    def push(self, value: float):
        if self._count == self.capacity:
            old = self._buffer[self._index]
            self._sum -= old
            self._sum_sq -= old * old
        else:
            self._count += 1

        self._buffer[self._index] = value
        self._sum += value
        self._sum_sq += value * value
        self._index = (self._index + 1) % self.capacity

    @property
    def mean(self) -> float:
        if self._count == 0:
            return 0.0
        return self._sum / self._count

    @property
    def std(self) -> float:
        if self._count == 0:
            return 0.0
        mean = self.mean
        variance = self._sum_sq / self._count - mean * mean
        return math.sqrt(max(variance, 0.0))

    def latest(self, n: int = 1) -> np.ndarray:
        """The most recent ``n`` samples, oldest first."""
        n = min(n, self._count)
        if n == 0:
            return np.empty(0, dtype=np.float64)
        idx = (self._index - n + np.arange(n)) % self.capacity
        return self._buffer[idx]


class AdaptiveNormalizer:
    """
    Blends global percentile rank with local deviation per band.

    Usage:
        1. ``initialize(history)`` once the analyzer has finished a track
        2. ``get_shader_values(frame)`` (or ``values_at_time(t)``) per tick
        3. ``reset()`` when the next track loads
    """

    def __init__(self, config: NormalizerConfig | None = None):
        self.cfg = replace(config) if config else NormalizerConfig()
        self.cfg.sensitivity = min(1.0, max(0.0, self.cfg.sensitivity))
        self._table: PercentileTable | None = None
        self._history: FeatureHistory | None = None
        self._windows = {
            band: RollingWindow(self.cfg.rolling_window_size) for band in BANDS
        }

    @property
    def is_initialized(self) -> bool:
        return self._table is not None

    @property
    def sensitivity(self) -> float:
        return self.cfg.sensitivity

    def set_sensitivity(self, sensitivity: float):
        """How much local deviation affects the output, clamped to [0, 1]."""
        self.cfg.sensitivity = min(1.0, max(0.0, float(sensitivity)))

    def initialize(self, history: Any) -> bool:
        """
        Build percentile tables synchronously.

        Returns False for empty or malformed input; the caller keeps
        using the legacy detector for this track.
        """
        if history is None:
            logger.warning("Adaptive normalizer: no feature history provided")
            return False
        if not isinstance(history, FeatureHistory):
            try:
                history = FeatureHistory.from_frames(history)
            except TypeError:
                logger.warning("Adaptive normalizer: unusable feature history")
                return False

        table = build_table(history)
        if table is None:
            logger.warning(
                "Adaptive normalizer: empty or malformed feature history (%d frames)",
                len(history),
            )
            return False

        self.install(table, history)
        return True

    def install(self, table: PercentileTable, history: FeatureHistory | None = None):
        """Adopt a table built elsewhere (e.g. on a worker thread)."""
        self._table = table
        self._history = history
        for window in self._windows.values():
            window.clear()

        for band, band_stats in table.stats.items():
            logger.info(
                "%s: min=%.4f max=%.4f mean=%.4f std=%.4f",
                band,
                band_stats.minimum,
                band_stats.maximum,
                band_stats.mean,
                band_stats.std,
            )

    def reset(self):
        """Forget the current track entirely."""
        self._table = None
        self._history = None
        for window in self._windows.values():
            window.clear()

    def _require_table(self) -> PercentileTable:
        if self._table is None:
            raise NormalizerNotReadyError("Adaptive normalizer has no percentile table")
        return self._table

    def percentile_rank(self, value: float, band: str) -> float:
        return self._require_table().rank(value, band)

    def rolling_z_score(self, value: float, band: str) -> float:
        """Deviation of ``value`` from the band's trailing window."""
        window = self._windows[band]
        if len(window) < self.cfg.min_window_samples:
            return 0.0
        return (value - window.mean) / (window.std + self.cfg.epsilon)

    def _transients(self) -> float:
        """Strongest jump of a band above its very recent average."""
        strength = 0.0
        for band in TRANSIENT_BANDS:
            window = self._windows[band]
            if len(window) < self.cfg.min_window_samples:
                continue

            recent = window.latest(self.cfg.transient_lookback)
            recent_avg = float(recent.mean())
            if recent_avg <= 1e-4:
                continue

            ratio = float(recent[-1]) / recent_avg
            threshold = self.cfg.transient_ratio
            if ratio > threshold:
                strength = max(strength, min(1.0, (ratio - threshold) / threshold))
        return strength

    def get_shader_values(self, frame: FeatureFrame) -> BandIntensities:
        """
        Normalized intensities for one frame of features.

        Each call also feeds the rolling windows, so call it once per tick.
        """
        table = self._require_table()
        sensitivity = self.cfg.sensitivity
        floor = self.cfg.active_floor

        out = {}
        for band in BANDS:
            value = frame.band(band)
            if not math.isfinite(value):
                out[band] = 0.5
                continue

            rank = table.rank(value, band)
            self._windows[band].push(value)
            z = self.rolling_z_score(value, band)

            if rank < floor:
                out[band] = 0.0
                continue

            delta = math.tanh(z * 0.5) * 0.5
            out[band] = min(1.0, max(0.0, rank + sensitivity * delta))

        return BandIntensities(
            energy=out["energy"],
            low_energy=out["low"],
            mid_energy=out["mid"],
            high_energy=out["high"],
            transients=self._transients(),
        )

    def values_at_time(self, time: float) -> BandIntensities:
        """Normalized intensities at a playback position."""
        self._require_table()
        if self._history is None:
            raise NormalizerNotReadyError("Adaptive normalizer has no feature history")
        return self.get_shader_values(self._history.at_time(time))

    def stats(self) -> dict[str, Any]:
        """Diagnostic snapshot for debugging or display."""
        table = self._table
        return {
            "is_initialized": self.is_initialized,
            "stats": {} if table is None else {
                band: vars(band_stats) for band, band_stats in table.stats.items()
            },
            "sensitivity": self.cfg.sensitivity,
            "active_floor": self.cfg.active_floor,
            "rolling_window_sizes": {band: len(w) for band, w in self._windows.items()},
        }
