"""
Camera speed governor.

Computes the camera-speed target from energy and transients and applies
the playback floor: while audio plays the smoothed target is never below
the current smoothed speed, so the camera never decelerates (and never
runs backward) mid-track.
"""

import logging

from shaderpulse.config import CameraConfig
from shaderpulse.core.smoother import ParameterSmoother

logger = logging.getLogger(__name__)


class CameraSpeedGovernor:
    """Drives the ``cameraSpeed`` parameter of a smoother."""

    def __init__(self, config: CameraConfig | None = None):
        self.cfg = config or CameraConfig()
        self._was_playing = False

    def reset(self):
        self._was_playing = False

    def instantaneous_target(
        self,
        smoother: ParameterSmoother,
        energy: float,
        transients: float,
        is_playing: bool,
        kick: float = 1.0,
    ) -> float:
        """
        Speed the camera should be heading for right now.

        Args:
            smoother: Parameter registry (control values are read as currents).
            energy: Audio-driven energy for this tick.
            transients: Audio-driven transient level for this tick.
            is_playing: Playback state.
            kick: One-tick multiplier requested by the beat dispatcher.
        """
        if not is_playing:
            return smoother.get("baseCameraSpeed").target

        base = smoother.value("baseCameraSpeed")
        max_boost = smoother.value("maxCameraSpeedBoostFactor")
        threshold = smoother.value("transientThresholdForSpeedBoost")
        energy_boost = energy * smoother.value("energyBoostFactor")
        strength = transients * smoother.value("transientEffect")

        if not self._was_playing:
            # Initial acceleration when playback starts
            speed = base * self.cfg.start_boost
        else:
            speed = base

        if strength > threshold:
            effect_range = max(1.0 - threshold, 1e-4)
            effect = min(1.0, (strength - threshold) / effect_range)
            speed = base * (1.0 + effect * (max_boost - 1.0)) + energy_boost
            if strength > self.cfg.strong_transient:
                speed *= self.cfg.strong_transient_boost
        else:
            speed += energy_boost

        speed *= kick
        return max(speed, base)

    def update(
        self,
        smoother: ParameterSmoother,
        energy: float,
        transients: float,
        now: float,
        is_playing: bool,
        kick: float = 1.0,
    ) -> float:
        """Advance ``cameraSpeed`` for one tick and return its value."""
        target = self.instantaneous_target(
            smoother, energy, transients, is_playing, kick
        )
        camera = smoother.get("cameraSpeed")

        if is_playing:
            # Floor: never ease below the speed we already have at ``now``
            current = smoother.advance("cameraSpeed", None, now)
            target = max(current, target)

        if is_playing != self._was_playing:
            logger.debug(
                "Camera %s (speed %.2f)",
                "floor engaged" if is_playing else "floor released",
                camera.current,
            )
        self._was_playing = is_playing

        return smoother.advance("cameraSpeed", target, now)

    def floor(self, smoother: ParameterSmoother, is_playing: bool) -> float | None:
        """Minimum output speed for this tick, or None when stopped."""
        if not is_playing:
            return None
        return smoother.value("baseCameraSpeed")
