"""
Analysis file loading.

Reads the analyzer's JSON output (feature history plus event timeline)
into engine types. Two history layouts are accepted:

* a list of frame dicts: ``[{"time", "energy", "lowEnergy", ...}, ...]``
* keyed series: ``{"energy": [{"value", "time"}], "lowBandEnergy": [...],
  "midBandEnergy": [...], "highBandEnergy": [...]}``
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import numpy as np

from shaderpulse.core.errors import AnalysisFormatError
from shaderpulse.core.types import FeatureHistory, TimelineEvent, parse_timeline

logger = logging.getLogger(__name__)

SERIES_KEYS = {
    "energy": "energy",
    "low": "lowBandEnergy",
    "mid": "midBandEnergy",
    "high": "highBandEnergy",
}


@dataclass
class TrackAnalysis:
    """One track's worth of analyzer output."""

    history: FeatureHistory
    timeline: list[TimelineEvent] = field(default_factory=list)
    bpm: float | None = None
    source: Path | None = None

    @property
    def duration(self) -> float:
        return self.history.duration


def _series(points: Any, key: str) -> tuple[np.ndarray, np.ndarray]:
    """Split a ``[{"value", "time"}]`` series into (times, values)."""
    if not isinstance(points, list):
        raise AnalysisFormatError(f"Series '{key}' must be a list")

    times = np.full(len(points), np.nan)
    values = np.full(len(points), np.nan)
    for i, point in enumerate(points):
        if not isinstance(point, dict):
            continue
        try:
            times[i] = float(point.get("time"))
            values[i] = float(point.get("value"))
        except (TypeError, ValueError):
            continue
    return times, values


def history_from_series(data: dict[str, Any]) -> FeatureHistory:
    """
    Build a FeatureHistory from keyed series.

    The energy series defines the time axis; band series with a different
    length are linearly resampled onto it.
    """
    missing = [key for key in SERIES_KEYS.values() if key not in data]
    if missing:
        raise AnalysisFormatError(
            f"Feature history is missing series: {', '.join(missing)}"
        )

    times, energy = _series(data[SERIES_KEYS["energy"]], SERIES_KEYS["energy"])
    columns = {"energy": energy}

    for band in ("low", "mid", "high"):
        key = SERIES_KEYS[band]
        band_times, values = _series(data[key], key)
        if len(values) == len(times):
            columns[band] = values
            continue

        logger.debug("Resampling '%s' (%d points) onto %d frames", key, len(values), len(times))
        ok = np.isfinite(band_times) & np.isfinite(values)
        if not ok.any():
            columns[band] = np.full(len(times), np.nan)
            continue
        order = np.argsort(band_times[ok])
        columns[band] = np.interp(times, band_times[ok][order], values[ok][order])

    return FeatureHistory(times, columns["energy"], columns["low"], columns["mid"], columns["high"])


def parse_analysis(data: Any, source: Path | None = None) -> TrackAnalysis:
    """
    Interpret an already-decoded analysis document.

    Raises:
        AnalysisFormatError: the document has no usable feature history.
    """
    if not isinstance(data, dict):
        raise AnalysisFormatError("Analysis document must be a JSON object")

    raw_history = data.get("featureHistory", data.get("feature_history"))
    if raw_history is None:
        raise AnalysisFormatError("Analysis document has no featureHistory")

    if isinstance(raw_history, list):
        history = FeatureHistory.from_frames(raw_history)
    elif isinstance(raw_history, dict):
        history = history_from_series(raw_history)
    else:
        raise AnalysisFormatError(
            f"featureHistory must be a list or an object, got {type(raw_history).__name__}"
        )

    raw_timeline = data.get("timeline") or []
    if not isinstance(raw_timeline, list):
        raise AnalysisFormatError("timeline must be a list")
    timeline = parse_timeline(raw_timeline)
    if len(timeline) < len(raw_timeline):
        logger.warning(
            "Skipped %d malformed timeline events", len(raw_timeline) - len(timeline)
        )

    bpm = None
    tempo = data.get("tempo")
    if isinstance(tempo, dict):
        bpm = tempo.get("bpm")
    elif "bpm" in data:
        bpm = data["bpm"]
    try:
        bpm = None if bpm is None else float(bpm)
    except (TypeError, ValueError):
        bpm = None

    return TrackAnalysis(history=history, timeline=timeline, bpm=bpm, source=source)


def load_analysis(path: Union[str, Path]) -> TrackAnalysis:
    """
    Load an analyzer JSON file.

    Args:
        path: Path to the analysis file.

    Returns:
        TrackAnalysis with history, timeline and optional BPM.

    Raises:
        FileNotFoundError: the file does not exist.
        AnalysisFormatError: the file is not valid JSON or has no usable history.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise AnalysisFormatError(f"{path}: invalid JSON ({e})") from e

    analysis = parse_analysis(data, source=path)
    logger.info(
        "Loaded %s: %d frames, %d events", path.name, len(analysis.history), len(analysis.timeline)
    )
    return analysis
