"""
Per-parameter easing engine.

Every animated value is a ``SmoothedParameter`` that eases from wherever
it currently is toward its target over a fixed per-parameter duration.
A new target restarts the ease window from the current value. The only
discontinuities are explicit ``Transition.INSTANT`` writes.
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable

from shaderpulse.config import SmoothingConfig
from shaderpulse.core.errors import UnknownParameterError

logger = logging.getLogger(__name__)

RGB = tuple[float, float, float]


class Transition(Enum):
    """Kind of the last write applied to a parameter."""

    EASED = "eased"
    INSTANT = "instant"


# name -> (default, duration group)
SCALAR_DEFAULTS: dict[str, tuple[float, str]] = {
    # Audio-driven
    "energy": (0.5, "general"),
    "lowEnergy": (0.5, "general"),
    "midEnergy": (0.0, "general"),
    "highEnergy": (0.0, "general"),
    "transients": (0.0, "general"),
    # Camera
    "cameraSpeed": (1.2, "camera"),
    "baseCameraSpeed": (1.2, "camera"),
    "maxCameraSpeedBoostFactor": (2.5, "general"),
    "transientThresholdForSpeedBoost": (0.1, "general"),
    "energyBoostFactor": (0.05, "general"),
    # Tunnel breathing
    "breathingRate": (2.0, "general"),
    "breathingAmount": (6.0, "general"),
    # Effect strengths
    "transientEffect": (0.3, "general"),
    "colorIntensity": (0.5, "general"),
    "energyCameraEffect": (1.0, "general"),
    "energyColorEffect": (1.0, "general"),
    "transientCameraEffect": (1.0, "general"),
    "transientColorEffect": (1.0, "general"),
    "useColorControls": (1.0, "general"),
    # Band response multipliers
    "bassResponse": (1.2, "general"),
    "midResponse": (0.8, "general"),
    "trebleResponse": (0.5, "general"),
    # Beat debug flash
    "debugBeatFlash": (0.0, "general"),
}

COLOR_DEFAULTS: dict[str, RGB] = {
    "color1": (0.4, 1.0, 0.2),
    "color2": (0.2, 1.0, 0.8),
    "color3": (1.0, 0.2, 0.8),
    "fogColor": (0.1, 0.05, 0.15),
    "glowColor": (0.1, 0.05, 0.2),
}


def ease_in_out(progress: float) -> float:
    """Symmetric ease-in-out curve on [0, 1]."""
    if progress < 0.5:
        return 2.0 * progress * progress
    return 1.0 - (-2.0 * progress + 2.0) ** 2 / 2.0


@dataclass
class SmoothedParameter:
    """
    One eased scalar.

    ``origin`` is the value ``current`` had when the present ease window
    started; ``current`` is always a function of (origin, target,
    last_retarget_time, now), so repeated evaluation at the same ``now``
    is idempotent.
    """

    current: float
    target: float
    duration_ms: float
    default: float
    group: str = "general"
    last_retarget_time: float | None = 0.0
    origin: float | None = None
    transition: Transition = Transition.EASED
    instant_writes: int = 0

    def __post_init__(self):
        if self.origin is None:
            self.origin = self.current

    def _evaluate(self, now: float, duration_ms: float, snap_threshold: float) -> float:
        if self.last_retarget_time is None:
            # Target was set without a timestamp: the window starts now
            self.last_retarget_time = now
            self.origin = self.current

        if duration_ms <= 0:
            progress = 1.0
        else:
            elapsed = now - self.last_retarget_time
            progress = min(1.0, max(0.0, elapsed / duration_ms))

        if progress >= snap_threshold:
            self.current = self.target
            self.origin = self.target
        else:
            eased = ease_in_out(progress)
            self.current = self.origin + (self.target - self.origin) * eased
        return self.current

    def advance(
        self,
        target: float | None,
        now: float,
        duration_ms: float | None = None,
        snap_threshold: float = 0.999,
    ) -> float:
        """
        Move toward ``target`` and return the new current value.

        Passing a different target restarts the ease window from the
        value ``current`` has at ``now``. ``None`` keeps the present
        target.
        """
        duration = self.duration_ms if duration_ms is None else duration_ms

        if target is not None and math.isfinite(target) and target != self.target:
            self._evaluate(now, duration, snap_threshold)
            self.origin = self.current
            self.target = target
            self.last_retarget_time = now
            self.transition = Transition.EASED

        return self._evaluate(now, duration, snap_threshold)

    def set_duration(self, duration_ms: float):
        """
        Change the ease duration.

        A running ease restarts from the present value at the next
        ``advance`` so the new duration never jumps ``current``.
        """
        if duration_ms == self.duration_ms:
            return
        if self.current != self.target:
            self.origin = self.current
            self.last_retarget_time = None
        self.duration_ms = duration_ms

    def set_instant(self, value: float, now: float):
        """Jump to ``value`` with no ease (tagged INSTANT)."""
        self.current = value
        self.target = value
        self.origin = value
        self.last_retarget_time = now
        self.transition = Transition.INSTANT
        self.instant_writes += 1

    def punch(self, value: float, baseline: float, now: float):
        """Instant attack to ``value``, then ease back to ``baseline``."""
        self.current = value
        self.origin = value
        self.target = baseline
        self.last_retarget_time = now
        self.transition = Transition.INSTANT
        self.instant_writes += 1

    def reset(self):
        self.current = self.default
        self.target = self.default
        self.origin = self.default
        self.last_retarget_time = 0.0
        self.transition = Transition.EASED


@dataclass
class ColorParameter:
    """Three independently eased channels."""

    r: SmoothedParameter
    g: SmoothedParameter
    b: SmoothedParameter

    @property
    def channels(self) -> tuple[SmoothedParameter, SmoothedParameter, SmoothedParameter]:
        return (self.r, self.g, self.b)

    @property
    def current(self) -> RGB:
        return (self.r.current, self.g.current, self.b.current)

    @property
    def target(self) -> RGB:
        return (self.r.target, self.g.target, self.b.target)


def _as_rgb(value) -> RGB:
    """Accept (r, g, b) sequences or {"r", "g", "b"} mappings."""
    if isinstance(value, dict):
        try:
            value = (value["r"], value["g"], value["b"])
        except KeyError as e:
            raise ValueError(f"Color is missing channel {e}") from None
    if isinstance(value, str):
        raise ValueError(f"Expected an RGB triple, got {value!r}")
    try:
        rgb = tuple(float(c) for c in value)
    except (TypeError, ValueError):
        raise ValueError(f"Expected an RGB triple, got {value!r}") from None
    if len(rgb) != 3:
        raise ValueError(f"Expected an RGB triple, got {value!r}")
    if not all(math.isfinite(c) for c in rgb):
        raise ValueError(f"Color channels must be finite: {value!r}")
    return rgb


class ParameterSmoother:
    """
    Registry of independently configured eased parameters.

    One instance is owned by each engine and passed explicitly to every
    collaborator that needs to read or write parameters.
    """

    def __init__(self, config: SmoothingConfig | None = None):
        self.cfg = replace(config) if config else SmoothingConfig()
        self._scalars: dict[str, SmoothedParameter] = {}
        self._colors: dict[str, ColorParameter] = {}

        for name, (default, group) in SCALAR_DEFAULTS.items():
            self.register(name, default, group)
        for name, rgb in COLOR_DEFAULTS.items():
            self.register_color(name, rgb)

    def _group_duration(self, group: str) -> float:
        if group == "camera":
            return self.cfg.camera_ms
        if group == "color":
            return self.cfg.color_ms
        return self.cfg.general_ms

    def register(self, name: str, default: float, group: str = "general") -> SmoothedParameter:
        param = SmoothedParameter(
            current=default,
            target=default,
            duration_ms=self._group_duration(group),
            default=default,
            group=group,
        )
        self._scalars[name] = param
        return param

    def register_color(self, name: str, default: RGB) -> ColorParameter:
        channels = [
            SmoothedParameter(
                current=c,
                target=c,
                duration_ms=self.cfg.color_ms,
                default=c,
                group="color",
            )
            for c in default
        ]
        color = ColorParameter(*channels)
        self._colors[name] = color
        return color

    # -- lookup -------------------------------------------------------------

    @property
    def names(self) -> list[str]:
        return list(self._scalars)

    @property
    def color_names(self) -> list[str]:
        return list(self._colors)

    def __contains__(self, name: str) -> bool:
        return name in self._scalars or name in self._colors

    def get(self, name: str) -> SmoothedParameter:
        try:
            return self._scalars[name]
        except KeyError:
            raise UnknownParameterError(name) from None

    def get_color(self, name: str) -> ColorParameter:
        try:
            return self._colors[name]
        except KeyError:
            raise UnknownParameterError(name) from None

    def value(self, name: str) -> float:
        return self.get(name).current

    def color(self, name: str) -> RGB:
        return self.get_color(name).current

    def _all_parameters(self) -> Iterable[SmoothedParameter]:
        yield from self._scalars.values()
        for color in self._colors.values():
            yield from color.channels

    # -- eased writes -------------------------------------------------------

    def advance(
        self,
        name: str,
        target: float | None,
        now: float,
        duration_ms: float | None = None,
    ) -> float:
        """Ease one scalar toward ``target`` (None keeps its target)."""
        return self.get(name).advance(
            target, now, duration_ms, self.cfg.snap_threshold
        )

    def advance_color(self, name: str, target: RGB | None, now: float) -> RGB:
        color = self.get_color(name)
        targets = (None, None, None) if target is None else _as_rgb(target)
        return tuple(
            channel.advance(t, now, snap_threshold=self.cfg.snap_threshold)
            for channel, t in zip(color.channels, targets)
        )

    def advance_all(self, now: float, skip: Iterable[str] = ()):
        """Ease every parameter toward its present target."""
        skip = set(skip)
        for name, param in self._scalars.items():
            if name not in skip:
                param.advance(None, now, snap_threshold=self.cfg.snap_threshold)
        for name, color in self._colors.items():
            if name in skip:
                continue
            for channel in color.channels:
                channel.advance(None, now, snap_threshold=self.cfg.snap_threshold)

    def set_target(self, name: str, value: float, now: float | None = None):
        """
        Host write of a scalar target.

        With ``now`` the ease restarts immediately; without it the window
        starts at the next ``advance``.
        """
        param = self.get(name)
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Target for '{name}' must be finite, got {value}")
        if now is not None:
            param.advance(value, now, snap_threshold=self.cfg.snap_threshold)
            return
        if value != param.target:
            param.target = value
            param.last_retarget_time = None
            param.transition = Transition.EASED

    def set_color_target(self, name: str, value, now: float | None = None):
        color = self.get_color(name)
        for channel, c in zip(color.channels, _as_rgb(value)):
            if now is not None:
                channel.advance(c, now, snap_threshold=self.cfg.snap_threshold)
            elif c != channel.target:
                channel.target = c
                channel.last_retarget_time = None
                channel.transition = Transition.EASED

    # -- instant writes (beat dispatch only) ----------------------------------

    def set_instant(self, name: str, value: float, now: float):
        self.get(name).set_instant(float(value), now)

    def set_color_instant(self, name: str, value, now: float):
        color = self.get_color(name)
        for channel, c in zip(color.channels, _as_rgb(value)):
            channel.set_instant(c, now)

    def punch(self, name: str, value: float, baseline: float, now: float):
        self.get(name).punch(float(value), float(baseline), now)

    # -- durations ------------------------------------------------------------

    def set_duration(self, name: str, duration_ms: float):
        duration_ms = max(0.0, float(duration_ms))
        if name in self._colors:
            for channel in self._colors[name].channels:
                channel.set_duration(duration_ms)
            return
        self.get(name).set_duration(duration_ms)

    def set_group_duration(self, group: str, duration_ms: float):
        """Change the ease duration of every parameter in a group."""
        duration_ms = max(0.0, float(duration_ms))
        if group == "camera":
            self.cfg.camera_ms = duration_ms
        elif group == "color":
            self.cfg.color_ms = duration_ms
        elif group == "general":
            self.cfg.general_ms = duration_ms
        else:
            raise ValueError(f"Unknown duration group: {group}")

        for param in self._all_parameters():
            if param.group == group:
                param.set_duration(duration_ms)
        logger.debug("%s smoothing duration set to %.0fms", group, duration_ms)

    # -- reset ----------------------------------------------------------------

    def reset_parameter(self, name: str):
        if name in self._colors:
            for channel in self._colors[name].channels:
                channel.reset()
            return
        self.get(name).reset()

    def reset(self):
        """Restore every parameter to its default value."""
        for param in self._all_parameters():
            param.reset()

    def snapshot(self) -> dict[str, float | RGB]:
        """Current values of every parameter."""
        values: dict[str, float | RGB] = {
            name: param.current for name, param in self._scalars.items()
        }
        values.update({name: color.current for name, color in self._colors.items()})
        return values
