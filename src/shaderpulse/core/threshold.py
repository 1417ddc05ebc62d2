"""
Legacy timeline-driven intensity detector.

Scans the analyzer's discrete events around the playback position and
derives instantaneous band energies and a decaying transient level from
fixed thresholds. Used whenever the adaptive normalizer has no table for
the current track.
"""

import logging
from typing import Any, Iterable

from shaderpulse.config import ThresholdConfig
from shaderpulse.core.types import BandIntensities, TimelineEvent, parse_event

logger = logging.getLogger(__name__)


class ThresholdDetector:
    """
    Threshold/decay detector over a sparse event timeline.

    Recomputation is rate limited: calls closer together than
    ``throttle_ms`` of wall-clock time return the cached result.
    """

    def __init__(self, config: ThresholdConfig | None = None):
        self.cfg = config or ThresholdConfig()
        self._last_result: BandIntensities | None = None
        self._last_compute_ms: float | None = None

    def reset(self):
        """Drop the cached result (track change)."""
        self._last_result = None
        self._last_compute_ms = None

    def neutral(self) -> BandIntensities:
        """The documented silent/neutral output."""
        level = self.cfg.neutral_level
        return BandIntensities(
            energy=level,
            low_energy=level,
            mid_energy=level,
            high_energy=level,
            transients=0.0,
        )

    def _recent(
        self,
        timeline: Iterable[Any],
        current_time: float,
        window_s: float,
        transient: bool,
    ) -> TimelineEvent | None:
        """Most intense event of one kind inside a trailing window."""
        best = None
        for raw in timeline:
            event = parse_event(raw)
            if event is None:
                continue
            if transient and not event.is_transient:
                continue
            if not transient and not event.is_dynamic:
                continue

            age = current_time - event.time
            if age < 0.0 or age >= window_s:
                continue
            if best is None or event.intensity > best.intensity:
                best = event
        return best

    def compute(
        self,
        timeline: Iterable[Any] | None,
        current_time: float,
    ) -> BandIntensities:
        """
        Derive intensities at ``current_time`` without throttling.

        Args:
            timeline: Analyzer events (TimelineEvent or raw dicts).
            current_time: Playback position in seconds.

        Returns:
            BandIntensities; neutral defaults when nothing matches.
        """
        result = self.neutral()
        if not timeline:
            return result

        timeline = list(timeline)
        level = self.cfg.neutral_level

        transient = self._recent(
            timeline, current_time, self.cfg.transient_window_s, transient=True
        )
        if transient is not None:
            band_level = level + transient.intensity * (1.0 - level)
            if transient.dominant_band == "low":
                result.low_energy = band_level
            elif transient.dominant_band == "high":
                result.high_energy = band_level
            else:
                result.mid_energy = band_level

            elapsed = current_time - transient.time
            decay = max(0.0, 1.0 - elapsed * self.cfg.decay_rate)
            result.transients = transient.intensity * decay

        dynamic = self._recent(
            timeline, current_time, self.cfg.dynamic_window_s, transient=False
        )
        if dynamic is not None:
            result.energy = level + dynamic.intensity * (1.0 - level)

        return result

    def detect(
        self,
        timeline: Iterable[Any] | None,
        current_time: float,
        now_ms: float,
    ) -> BandIntensities:
        """
        Throttled version of ``compute`` for per-frame use.

        Args:
            timeline: Analyzer events.
            current_time: Playback position in seconds.
            now_ms: Wall-clock time in milliseconds.
        """
        if (
            self._last_result is not None
            and self._last_compute_ms is not None
            and now_ms - self._last_compute_ms < self.cfg.throttle_ms
        ):
            return self._last_result

        result = self.compute(timeline, current_time)
        if result.transients > 0.5:
            logger.debug(
                "Strong transient at %.2fs: %.2f", current_time, result.transients
            )

        self._last_result = result
        self._last_compute_ms = now_ms
        return result
