"""
Per-tick uniform composition.

Reads the smoother's current values, applies derived scaling and
clamping, and returns the flat record handed to the renderer. Never
emits a non-finite number.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any

from shaderpulse.core.smoother import COLOR_DEFAULTS, SCALAR_DEFAULTS, ParameterSmoother

logger = logging.getLogger(__name__)

RGB = tuple[float, float, float]

# Gain applied to base colors together with colorIntensity
COLOR_GAIN = 1.5

# record field -> smoother parameter
_SCALAR_FIELDS = {
    "energy": "energy",
    "low_energy": "lowEnergy",
    "mid_energy": "midEnergy",
    "high_energy": "highEnergy",
    "transients": "transients",
    "camera_speed": "cameraSpeed",
    "breathing_rate": "breathingRate",
    "breathing_amount": "breathingAmount",
    "transient_effect": "transientEffect",
    "color_intensity": "colorIntensity",
    "energy_camera_effect": "energyCameraEffect",
    "energy_color_effect": "energyColorEffect",
    "transient_camera_effect": "transientCameraEffect",
    "transient_color_effect": "transientColorEffect",
    "bass_response": "bassResponse",
    "mid_response": "midResponse",
    "treble_response": "trebleResponse",
    "debug_beat_flash": "debugBeatFlash",
}

_COLOR_FIELDS = {
    "color1": "color1",
    "color2": "color2",
    "color3": "color3",
    "fog_color": "fogColor",
    "glow_color": "glowColor",
}

# Fields clamped to [0, 1]; the rest are non-negative gains
_UNIT_FIELDS = {
    "energy",
    "low_energy",
    "mid_energy",
    "high_energy",
    "transients",
    "debug_beat_flash",
}

# Renderer uniform names
SHADER_UNIFORMS = {
    "time": "uAudioTime",
    "energy": "uEnergy",
    "low_energy": "uLowEnergy",
    "mid_energy": "uMidEnergy",
    "high_energy": "uHighEnergy",
    "transients": "uTransients",
    "camera_speed": "uCameraSpeed",
    "transient_effect": "uTransientIntensity",
    "energy_camera_effect": "uEnergyCameraEffect",
    "energy_color_effect": "uEnergyColorEffect",
    "transient_camera_effect": "uTransientCameraEffect",
    "transient_color_effect": "uTransientColorEffect",
    "breathing_rate": "uBreathingRate",
    "breathing_amount": "uBreathingAmount",
    "bass_response": "uBassResponse",
    "mid_response": "uMidResponse",
    "treble_response": "uTrebleResponse",
    "debug_beat_flash": "uDebugBeatFlash",
    "debug_beat_color": "uDebugBeatColor",
    "color1": "uColor1",
    "color2": "uColor2",
    "color3": "uColor3",
    "fog_color": "uFogColor",
    "glow_color": "uGlowColor",
}


@dataclass
class UniformRecord:
    """Everything the renderer reads for one frame."""

    time: float = 0.0
    energy: float = 0.5
    low_energy: float = 0.5
    mid_energy: float = 0.0
    high_energy: float = 0.0
    transients: float = 0.0
    camera_speed: float = 1.2
    breathing_rate: float = 2.0
    breathing_amount: float = 6.0
    transient_effect: float = 0.3
    color_intensity: float = 0.5
    energy_camera_effect: float = 1.0
    energy_color_effect: float = 1.0
    transient_camera_effect: float = 1.0
    transient_color_effect: float = 1.0
    bass_response: float = 1.2
    mid_response: float = 0.8
    treble_response: float = 0.5
    use_color_controls: bool = True
    debug_beat_flash: float = 0.0
    debug_beat_color: RGB = (1.0, 0.0, 0.0)
    color1: RGB = field(default=COLOR_DEFAULTS["color1"])
    color2: RGB = field(default=COLOR_DEFAULTS["color2"])
    color3: RGB = field(default=COLOR_DEFAULTS["color3"])
    fog_color: RGB = field(default=COLOR_DEFAULTS["fogColor"])
    glow_color: RGB = field(default=COLOR_DEFAULTS["glowColor"])

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_shader_uniforms(self) -> dict[str, Any]:
        """Values keyed by the renderer's uniform names."""
        values = self.as_dict()
        return {uniform: values[key] for key, uniform in SHADER_UNIFORMS.items()}


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


class UniformComposer:
    """
    Builds a UniformRecord from a smoother's current state.

    The only state kept here is the last-known-good value of every field,
    used to replace non-finite readings.
    """

    def __init__(self, color_gain: float = COLOR_GAIN):
        self.color_gain = color_gain
        self._last_good: dict[str, Any] = {
            key: SCALAR_DEFAULTS[name][0] for key, name in _SCALAR_FIELDS.items()
        }
        self._last_good.update(
            {key: COLOR_DEFAULTS[name] for key, name in _COLOR_FIELDS.items()}
        )
        self._last_good["time"] = 0.0
        self._last_good["use_color_controls"] = True
        self._last_good["debug_beat_color"] = (1.0, 0.0, 0.0)

    def _scalar(self, key: str, value: float) -> float:
        value = float(value)
        if not math.isfinite(value):
            logger.warning("Non-finite %s, holding last good value", key)
            return self._last_good[key]
        self._last_good[key] = value
        return value

    def _rgb(self, key: str, rgb, scale: float = 1.0) -> RGB:
        rgb = tuple(float(c) for c in rgb)
        if not all(math.isfinite(c) for c in rgb) or not math.isfinite(scale):
            logger.warning("Non-finite %s, holding last good value", key)
            return self._last_good[key]
        result = tuple(_clamp(c * scale, 0.0, 1.0) for c in rgb)
        self._last_good[key] = result
        return result

    def compose(
        self,
        smoother: ParameterSmoother,
        time: float = 0.0,
        camera_floor: float | None = None,
        flash_color: RGB = (1.0, 0.0, 0.0),
    ) -> UniformRecord:
        """
        Read the smoother and build this tick's record.

        Args:
            smoother: Parameter registry, already advanced for this tick.
            time: Playback position in seconds.
            camera_floor: Minimum camera speed (set while playing).
            flash_color: Current debug flash color.
        """
        values: dict[str, Any] = {"time": self._scalar("time", time)}

        for key, name in _SCALAR_FIELDS.items():
            value = self._scalar(key, smoother.value(name))
            if key in _UNIT_FIELDS:
                value = _clamp(value, 0.0, 1.0)
            else:
                value = max(0.0, value)
            values[key] = value

        if camera_floor is not None and math.isfinite(camera_floor):
            values["camera_speed"] = max(values["camera_speed"], camera_floor)

        use_controls = smoother.value("useColorControls")
        if math.isfinite(use_controls):
            self._last_good["use_color_controls"] = use_controls >= 0.5
        values["use_color_controls"] = self._last_good["use_color_controls"]

        intensity = values["color_intensity"] * self.color_gain
        for key, name in _COLOR_FIELDS.items():
            scale = 1.0 if key == "fog_color" else intensity
            values[key] = self._rgb(key, smoother.color(name), scale)

        values["debug_beat_color"] = self._rgb("debug_beat_color", flash_color)

        return UniformRecord(**values)
