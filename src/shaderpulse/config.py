"""
Engine configuration.

Every tunable of the parameter engine lives in one of the dataclasses
below. ``EngineConfig`` groups them and can be built from a plain dict
or a JSON file so the replay CLI and hosts share one format.
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Union


@dataclass
class SmoothingConfig:
    """Ease durations in milliseconds, per parameter group."""

    general_ms: float = 700.0
    camera_ms: float = 300.0
    color_ms: float = 1000.0
    # Progress at which the ease snaps to its target
    snap_threshold: float = 0.999


@dataclass
class ThresholdConfig:
    """Legacy timeline detector windows and scaling."""

    throttle_ms: float = 16.0
    transient_window_s: float = 0.1
    dynamic_window_s: float = 0.3
    # Linear decay rate, 2.5 -> ~0.4s to zero
    decay_rate: float = 2.5
    neutral_level: float = 0.5


@dataclass
class NormalizerConfig:
    """Adaptive percentile/rolling-window normalizer."""

    rolling_window_size: int = 430  # ~5s at ~86 samples/sec
    sensitivity: float = 0.5
    active_floor: float = 0.3
    epsilon: float = 1e-3
    min_window_samples: int = 10
    transient_lookback: int = 9
    transient_ratio: float = 1.5


@dataclass
class BeatConfig:
    """Beat dispatch thresholds and policy options."""

    policy: str = "strobe"  # "strobe" or "punch"
    transient_threshold: float = 0.05
    min_interval_ms: float = 100.0

    # Strobe
    fog_scale: float = 0.3
    glow_scale: float = 0.5
    debug_flash: bool = False
    flash_decay: float = 0.85

    # Punch
    punch_parameters: tuple = (
        "colorIntensity",
        "transientEffect",
        "transientColorEffect",
        "energyColorEffect",
    )
    punch_gain: float = 1.75
    punch_ceiling: float = 2.0
    punch_camera: bool = False
    camera_kick: float = 1.3

    seed: int | None = None


@dataclass
class CameraConfig:
    """Camera speed governor constants."""

    start_boost: float = 2.0
    strong_transient: float = 0.4
    strong_transient_boost: float = 1.2


@dataclass
class EngineConfig:
    """Top-level configuration for a ReactiveEngine."""

    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    threshold: ThresholdConfig = field(default_factory=ThresholdConfig)
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    beats: BeatConfig = field(default_factory=BeatConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    # "adaptive" or "legacy"
    mode: str = "adaptive"
    # Build percentile tables on a worker thread
    background_init: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """
        Build a config from a nested dict.

        Sections that are missing keep their defaults. Unknown keys raise
        ``ValueError`` so typos in config files don't pass silently.
        """
        sections = {
            "smoothing": SmoothingConfig,
            "threshold": ThresholdConfig,
            "normalizer": NormalizerConfig,
            "beats": BeatConfig,
            "camera": CameraConfig,
        }
        kwargs: dict[str, Any] = {}
        top_level = {f.name for f in fields(cls)}

        for key, value in data.items():
            if key not in top_level:
                raise ValueError(f"Unknown config key: {key}")
            section_cls = sections.get(key)
            if section_cls is None:
                kwargs[key] = value
                continue
            allowed = {f.name for f in fields(section_cls)}
            unknown = set(value) - allowed
            if unknown:
                raise ValueError(
                    f"Unknown keys in '{key}' section: {', '.join(sorted(unknown))}"
                )
            if key == "beats" and "punch_parameters" in value:
                value = dict(value, punch_parameters=tuple(value["punch_parameters"]))
            kwargs[key] = section_cls(**value)

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["beats"]["punch_parameters"] = list(self.beats.punch_parameters)
        return data


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load an EngineConfig from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    return EngineConfig.from_dict(data)
