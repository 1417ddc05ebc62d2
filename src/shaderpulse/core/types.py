"""
Feature data passed in from the external analyzer.

A track arrives as a dense ``FeatureHistory`` (per-frame band energies)
and a sparse timeline of ``TimelineEvent`` objects. Both are read-only
once built.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np

logger = logging.getLogger(__name__)

BANDS = ("energy", "low", "mid", "high")

# Frame dict keys accepted for each band
_FRAME_KEYS = {
    "energy": ("energy",),
    "low": ("lowEnergy", "low_energy"),
    "mid": ("midEnergy", "mid_energy"),
    "high": ("highEnergy", "high_energy"),
}


@dataclass(frozen=True)
class FeatureFrame:
    """Band energies for one analysis frame, all in [0, 1]."""

    time: float
    energy: float
    low_energy: float
    mid_energy: float
    high_energy: float

    def band(self, name: str) -> float:
        if name == "energy":
            return self.energy
        return getattr(self, f"{name}_energy")


@dataclass(frozen=True)
class TimelineEvent:
    """A discrete analyzer event (transient, dynamic change, ...)."""

    type: str
    time: float
    intensity: float
    dominant_band: str = "mid"

    @property
    def is_transient(self) -> bool:
        return self.type == "transient"

    @property
    def is_dynamic(self) -> bool:
        return self.type.startswith("dynamic_")


@dataclass
class BandIntensities:
    """Normalized per-band intensities produced by either strategy."""

    energy: float = 0.5
    low_energy: float = 0.5
    mid_energy: float = 0.5
    high_energy: float = 0.5
    transients: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "energy": self.energy,
            "low_energy": self.low_energy,
            "mid_energy": self.mid_energy,
            "high_energy": self.high_energy,
            "transients": self.transients,
        }


def _finite(value: Any) -> float | None:
    """Return value as a finite float, or None."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_event(raw: Any) -> TimelineEvent | None:
    """
    Build a TimelineEvent from a dict, or None if it is malformed.

    Events without a usable ``time`` or ``intensity`` are rejected so a
    single bad entry never aborts processing of the rest of a timeline.
    """
    if isinstance(raw, TimelineEvent):
        return raw
    if not isinstance(raw, Mapping):
        return None

    event_type = raw.get("type")
    time = _finite(raw.get("time"))
    intensity = _finite(raw.get("intensity"))
    if not isinstance(event_type, str) or time is None or intensity is None:
        return None

    band = raw.get("dominantBand", raw.get("dominant_band", "mid"))
    if band not in ("low", "mid", "high"):
        band = "mid"

    return TimelineEvent(
        type=event_type,
        time=time,
        intensity=min(1.0, max(0.0, intensity)),
        dominant_band=band,
    )


def parse_timeline(events: Iterable[Any] | None) -> list[TimelineEvent]:
    """Parse a raw timeline, skipping malformed entries."""
    if not events:
        return []

    parsed = []
    skipped = 0
    for raw in events:
        event = parse_event(raw)
        if event is None:
            skipped += 1
            continue
        parsed.append(event)

    if skipped:
        logger.debug("Skipped %d malformed timeline events", skipped)

    parsed.sort(key=lambda e: e.time)
    return parsed


class FeatureHistory:
    """
    Per-track column store of feature frames.

    Columns are numpy arrays sharing one ``times`` axis. Instances are
    treated as immutable; a new track gets a new history.
    """

    def __init__(
        self,
        times: np.ndarray,
        energy: np.ndarray,
        low: np.ndarray,
        mid: np.ndarray,
        high: np.ndarray,
    ):
        self.times = np.array(times, dtype=np.float64)
        self._columns = {
            "energy": np.array(energy, dtype=np.float64),
            "low": np.array(low, dtype=np.float64),
            "mid": np.array(mid, dtype=np.float64),
            "high": np.array(high, dtype=np.float64),
        }
        for column in self._columns.values():
            column.setflags(write=False)
        self.times.setflags(write=False)

    @classmethod
    def from_frames(cls, frames: Iterable[Any]) -> "FeatureHistory":
        """
        Build a history from FeatureFrame objects or frame dicts.

        Dict frames use the analyzer's camelCase keys (``lowEnergy`` ...)
        or their snake_case equivalents. Missing values become NaN and are
        caught by ``is_valid``.
        """
        times, columns = [], {band: [] for band in BANDS}
        for frame in frames:
            if isinstance(frame, FeatureFrame):
                times.append(frame.time)
                for band in BANDS:
                    columns[band].append(frame.band(band))
                continue

            if not isinstance(frame, Mapping):
                times.append(math.nan)
                for band in BANDS:
                    columns[band].append(math.nan)
                continue

            t = _finite(frame.get("time"))
            times.append(math.nan if t is None else t)
            for band in BANDS:
                value = None
                for key in _FRAME_KEYS[band]:
                    if key in frame:
                        value = _finite(frame[key])
                        break
                columns[band].append(math.nan if value is None else value)

        return cls(
            np.array(times, dtype=np.float64),
            np.array(columns["energy"], dtype=np.float64),
            np.array(columns["low"], dtype=np.float64),
            np.array(columns["mid"], dtype=np.float64),
            np.array(columns["high"], dtype=np.float64),
        )

    def __len__(self) -> int:
        return len(self.times)

    @property
    def duration(self) -> float:
        if len(self.times) == 0:
            return 0.0
        return float(self.times[-1])

    def column(self, band: str) -> np.ndarray:
        return self._columns[band]

    def is_valid(self) -> bool:
        """True when the history is non-empty, finite and time-ordered."""
        if len(self.times) == 0:
            return False
        if any(len(col) != len(self.times) for col in self._columns.values()):
            return False
        if not np.all(np.isfinite(self.times)):
            return False
        if not all(np.all(np.isfinite(col)) for col in self._columns.values()):
            return False
        return bool(np.all(np.diff(self.times) >= 0.0))

    def frame(self, index: int) -> FeatureFrame:
        return FeatureFrame(
            time=float(self.times[index]),
            energy=float(self._columns["energy"][index]),
            low_energy=float(self._columns["low"][index]),
            mid_energy=float(self._columns["mid"][index]),
            high_energy=float(self._columns["high"][index]),
        )

    def at_time(self, time: float) -> FeatureFrame:
        """
        Interpolated frame at a playback time.

        Linear interpolation between the two neighbouring frames, clamped
        to the first/last frame outside the analysed range.
        """
        if len(self.times) == 0:
            return FeatureFrame(time, 0.0, 0.0, 0.0, 0.0)

        values = {
            band: float(np.interp(time, self.times, self._columns[band]))
            for band in BANDS
        }
        return FeatureFrame(
            time=time,
            energy=values["energy"],
            low_energy=values["low"],
            mid_energy=values["mid"],
            high_energy=values["high"],
        )
