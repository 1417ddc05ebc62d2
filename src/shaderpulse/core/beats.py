"""
Beat-triggered parameter overrides.

When the raw transient level crosses a threshold, and the previous beat
is far enough in the past, the dispatcher applies one of two policies:

* STROBE: colors jump (non-eased) to fresh entries of a neon palette.
* PUNCH: a few effect strengths get an instant boost and then ease back
  to their baseline, an instant-attack / eased-release envelope.
"""

import colorsys
import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from shaderpulse.config import BeatConfig
from shaderpulse.core.smoother import ParameterSmoother

logger = logging.getLogger(__name__)


class BeatPolicy(Enum):
    STROBE = "strobe"
    PUNCH = "punch"


NEON_PALETTE: tuple[tuple[str, tuple[float, float, float]], ...] = (
    ("red", (1.0, 0.0, 0.0)),
    ("green", (0.0, 1.0, 0.0)),
    ("blue", (0.0, 0.0, 1.0)),
    ("yellow", (1.0, 1.0, 0.0)),
    ("magenta", (1.0, 0.0, 1.0)),
    ("cyan", (0.0, 1.0, 1.0)),
    ("orange", (1.0, 0.5, 0.0)),
    ("purple", (0.5, 0.0, 1.0)),
    ("spring_green", (0.0, 1.0, 0.5)),
    ("hot_pink", (1.0, 0.0, 0.5)),
)


@dataclass
class BeatEffect:
    """What the dispatcher did on one tick."""

    fired: bool = False
    policy: BeatPolicy | None = None
    # Multiplier for this tick's camera-speed target
    camera_kick: float = 1.0
    flashed: bool = False


class BeatEventDispatcher:
    """
    Debounced beat detector that writes overrides into a smoother.

    Single-threaded and cooperative: the debounce is a timestamp
    comparison, no locking is involved.
    """

    def __init__(self, config: BeatConfig | None = None, policy: BeatPolicy | str | None = None):
        self.cfg = config or BeatConfig()
        self.policy = BeatPolicy(policy or self.cfg.policy)
        self.rng = np.random.default_rng(self.cfg.seed)
        self._last_fire_ms: float | None = None
        self.fire_count = 0

        # Last color picked by the debug flash
        self.flash_color: tuple[float, float, float] = (1.0, 0.0, 0.0)

    def set_policy(self, policy: BeatPolicy | str):
        self.policy = BeatPolicy(policy)
        logger.info("Beat policy: %s", self.policy.value)

    def reset(self):
        self._last_fire_ms = None

    def should_fire(self, transients: float, now_ms: float) -> bool:
        if transients <= self.cfg.transient_threshold:
            return False
        if self._last_fire_ms is None:
            return True
        return now_ms - self._last_fire_ms >= self.cfg.min_interval_ms

    def dispatch(
        self,
        smoother: ParameterSmoother,
        transients: float,
        now_ms: float,
    ) -> BeatEffect:
        """
        Check one tick's raw transient level and apply the active policy.

        Args:
            smoother: Parameter registry to write into.
            transients: Raw (pre-smoothing) transient intensity.
            now_ms: Wall-clock time in milliseconds.
        """
        effect = BeatEffect()

        if self.cfg.debug_flash:
            effect.flashed = self._debug_flash(smoother, transients, now_ms)

        if not self.should_fire(transients, now_ms):
            return effect

        effect.fired = True
        effect.policy = self.policy
        if self.policy is BeatPolicy.STROBE:
            self._strobe(smoother, now_ms)
        else:
            effect.camera_kick = self._punch(smoother, now_ms)

        self._last_fire_ms = now_ms
        self.fire_count += 1
        return effect

    def _strobe(self, smoother: ParameterSmoother, now_ms: float):
        picks = self.rng.choice(len(NEON_PALETTE), size=3, replace=False)
        for name, idx in zip(("color1", "color2", "color3"), picks):
            smoother.set_color_instant(name, NEON_PALETTE[idx][1], now_ms)

        fog_idx, glow_idx = self.rng.integers(len(NEON_PALETTE), size=2)
        fog = tuple(c * self.cfg.fog_scale for c in NEON_PALETTE[fog_idx][1])
        glow = tuple(c * self.cfg.glow_scale for c in NEON_PALETTE[glow_idx][1])
        smoother.set_color_instant("fogColor", fog, now_ms)
        smoother.set_color_instant("glowColor", glow, now_ms)

        logger.debug(
            "Strobe: %s / %s / %s",
            *(NEON_PALETTE[i][0] for i in picks),
        )

    def _punch(self, smoother: ParameterSmoother, now_ms: float) -> float:
        for name in self.cfg.punch_parameters:
            param = smoother.get(name)
            baseline = param.target
            boosted = min(baseline * self.cfg.punch_gain, self.cfg.punch_ceiling)
            if boosted > param.current:
                smoother.punch(name, boosted, baseline, now_ms)

        return self.cfg.camera_kick if self.cfg.punch_camera else 1.0

    def _debug_flash(self, smoother: ParameterSmoother, transients: float, now_ms: float) -> bool:
        """Full flash with a random saturated hue on every raw transient."""
        if transients <= self.cfg.transient_threshold:
            return False
        hue = float(self.rng.random())
        self.flash_color = colorsys.hsv_to_rgb(hue, 1.0, 1.0)
        smoother.set_instant("debugBeatFlash", 1.0, now_ms)
        return True

    def decay_flash(self, smoother: ParameterSmoother, now_ms: float):
        """Per-tick fast decay of the debug flash."""
        flash = smoother.value("debugBeatFlash")
        if flash <= 0.0:
            return
        flash *= self.cfg.flash_decay
        if flash < 0.01:
            flash = 0.0
        smoother.set_instant("debugBeatFlash", flash, now_ms)
