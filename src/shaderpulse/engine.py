"""
Per-tick engine.

Wires the detector, normalizer, smoother, beat dispatcher, camera
governor and composer together, selects the normalization mode, and
exposes the host control surface.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Iterable

from shaderpulse.config import EngineConfig
from shaderpulse.core.beats import BeatEffect, BeatEventDispatcher, BeatPolicy
from shaderpulse.core.camera import CameraSpeedGovernor
from shaderpulse.core.composer import UniformComposer, UniformRecord
from shaderpulse.core.normalizer import AdaptiveNormalizer
from shaderpulse.core.smoother import ParameterSmoother
from shaderpulse.core.threshold import ThresholdDetector
from shaderpulse.core.types import BandIntensities
from shaderpulse.session import AudioSession

logger = logging.getLogger(__name__)

# smoother parameter -> (intensity field, response multiplier)
AUDIO_PARAMETERS = {
    "energy": ("energy", "midResponse"),
    "lowEnergy": ("low_energy", "bassResponse"),
    "midEnergy": ("mid_energy", "midResponse"),
    "highEnergy": ("high_energy", "trebleResponse"),
    "transients": ("transients", "bassResponse"),
}

# A silent band falls back to another field of the same frame
AUDIO_FALLBACKS = {"midEnergy": "energy"}

# Host-facing names for whole duration groups
DURATION_PARAMETERS = {
    "smoothingDuration": "general",
    "cameraSpeedSmoothingDuration": "camera",
    "colorSmoothingDuration": "color",
}

# The output camera speed is owned by the governor
PARAMETER_ALIASES = {"cameraSpeed": "baseCameraSpeed"}


class NormalizationMode(Enum):
    LEGACY = "legacy"
    ADAPTIVE = "adaptive"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ReactiveEngine:
    """
    Audio-reactive parameter engine.

    Call ``tick()`` once per rendered frame; it returns the
    ``UniformRecord`` for that frame. The host drives playback through
    ``engine.session`` and tunes the engine with the ``set_*`` methods.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        session: AudioSession | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """
        Args:
            config: Engine configuration (defaults if omitted).
            session: Playback session; one is created if omitted.
            clock: Wall-clock source in milliseconds.
        """
        self.config = config or EngineConfig()
        self.smoother = ParameterSmoother(self.config.smoothing)
        self.detector = ThresholdDetector(self.config.threshold)
        self.normalizer = AdaptiveNormalizer(self.config.normalizer)
        self.dispatcher = BeatEventDispatcher(self.config.beats)
        self.governor = CameraSpeedGovernor(self.config.camera)
        self.composer = UniformComposer()
        self.session = session or AudioSession(background=self.config.background_init)
        self._clock = clock or _monotonic_ms
        # Session track generation the per-track state belongs to
        self._track_generation: int | None = None

        self.requested_mode = NormalizationMode(self.config.mode)
        self._active_mode: NormalizationMode | None = None

        self.last_intensities = BandIntensities(0.0, 0.0, 0.0, 0.0, 0.0)
        self.last_effect = BeatEffect()
        self.last_record: UniformRecord | None = None

    # -- mode -----------------------------------------------------------------

    @property
    def effective_mode(self) -> NormalizationMode:
        """Adaptive only when requested and the current track has a table."""
        if (
            self.requested_mode is NormalizationMode.ADAPTIVE
            and self.normalizer.is_initialized
            and self._track_generation == self.session.generation
        ):
            return NormalizationMode.ADAPTIVE
        return NormalizationMode.LEGACY

    def _resolve_mode(self) -> NormalizationMode:
        mode = self.effective_mode
        if mode is not self._active_mode:
            logger.info("Normalization mode: %s", mode.value)
            self._active_mode = mode
        return mode

    def set_mode(self, mode: NormalizationMode | str):
        """Request a normalization mode. Smoothed values are kept."""
        try:
            self.requested_mode = NormalizationMode(mode)
        except ValueError:
            raise ValueError(
                f"Unknown mode {mode!r}, expected 'adaptive' or 'legacy'"
            ) from None
        logger.info("Requested mode: %s", self.requested_mode.value)

    # -- control surface ------------------------------------------------------

    def set_sensitivity(self, sensitivity: float):
        self.normalizer.set_sensitivity(sensitivity)

    def set_beat_policy(self, policy: BeatPolicy | str):
        self.dispatcher.set_policy(policy)

    def set_parameter_target(self, name: str, value: Any):
        """
        Host write of a parameter target.

        Scalars and colors ease from their current value starting at the
        next tick. Duration pseudo-parameters change a whole group.

        Raises:
            UnknownParameterError: ``name`` is not registered.
            ValueError: the value is not finite or not a valid color.
        """
        if name in DURATION_PARAMETERS:
            self.smoother.set_group_duration(DURATION_PARAMETERS[name], value)
            return

        name = PARAMETER_ALIASES.get(name, name)
        if name in self.smoother.color_names:
            self.smoother.set_color_target(name, value)
        else:
            self.smoother.set_target(name, value)

    def set_parameters(self, values: dict[str, Any]):
        """Apply several ``set_parameter_target`` writes."""
        for name, value in values.items():
            self.set_parameter_target(name, value)

    # -- track lifecycle ------------------------------------------------------

    def reset_for_new_track(self):
        """
        Drop all per-track state.

        The percentile table and rolling windows are discarded and the
        detector cache cleared; smoothed parameter values persist.
        """
        self.normalizer.reset()
        self.detector.reset()
        self.dispatcher.reset()
        self.governor.reset()
        logger.debug("Per-track state reset")

    def load_track(self, history: Any, timeline: Iterable[Any] | None = None):
        """Hand a new track to the session and install its table if ready."""
        self.session.load_track(history, timeline)
        self._install_table()

    def _follow_track(self):
        """Drop per-track state when the session has moved to another track."""
        generation = self.session.generation
        if generation != self._track_generation:
            self._track_generation = generation
            self.reset_for_new_track()

    def _install(self, table):
        self._follow_track()
        if table is not None:
            self.normalizer.install(table, self.session.history)
            logger.info("Percentile table installed for track %d", self.session.generation)

    def _install_table(self):
        self._install(self.session.poll_table())

    def wait_for_normalizer(self, timeout: float | None = None) -> bool:
        """
        Block until a background table build finishes and install it.

        Returns:
            True when adaptive normalization is available.
        """
        self._install(self.session.wait_for_table(timeout))
        return self.normalizer.is_initialized

    # -- tick -----------------------------------------------------------------

    def _raw_intensities(
        self, mode: NormalizationMode, now_ms: float
    ) -> BandIntensities:
        session = self.session
        if not session.is_playing:
            return BandIntensities(0.0, 0.0, 0.0, 0.0, 0.0)
        if mode is NormalizationMode.ADAPTIVE:
            return self.normalizer.values_at_time(session.current_time)
        return self.detector.detect(session.timeline, session.current_time, now_ms)

    def _apply_responses(self, raw: BandIntensities) -> dict[str, float]:
        targets = {}
        for name, (field_name, response) in AUDIO_PARAMETERS.items():
            value = getattr(raw, field_name)
            if not value and name in AUDIO_FALLBACKS:
                value = getattr(raw, AUDIO_FALLBACKS[name])
            targets[name] = min(1.0, value * self.smoother.value(response))
        return targets

    def tick(self, now_ms: float | None = None) -> UniformRecord:
        """
        Advance the engine by one frame.

        Args:
            now_ms: Wall-clock time in milliseconds (the clock if omitted).

        Returns:
            The uniform record for this frame.
        """
        now = self._clock() if now_ms is None else float(now_ms)
        session = self.session
        playing = session.is_playing

        self._install_table()
        mode = self._resolve_mode()

        raw = self._raw_intensities(mode, now)
        targets = self._apply_responses(raw)

        smoother = self.smoother
        smoother.advance_all(now, skip=(*AUDIO_PARAMETERS, "cameraSpeed"))
        for name, target in targets.items():
            smoother.advance(name, target, now)

        self.dispatcher.decay_flash(smoother, now)
        effect = self.dispatcher.dispatch(smoother, raw.transients, now)

        self.governor.update(
            smoother,
            targets["energy"],
            targets["transients"],
            now,
            playing,
            kick=effect.camera_kick,
        )

        record = self.composer.compose(
            smoother,
            time=session.current_time,
            camera_floor=self.governor.floor(smoother, playing),
            flash_color=self.dispatcher.flash_color,
        )

        self.last_intensities = raw
        self.last_effect = effect
        self.last_record = record
        return record

    # -- teardown -------------------------------------------------------------

    def close(self):
        self.session.close()

    def __enter__(self) -> "ReactiveEngine":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
