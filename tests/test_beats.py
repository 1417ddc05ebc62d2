"""Tests for the BeatEventDispatcher module."""

import pytest

from shaderpulse.config import BeatConfig
from shaderpulse.core.beats import NEON_PALETTE, BeatEventDispatcher, BeatPolicy
from shaderpulse.core.smoother import ParameterSmoother, Transition

PALETTE_COLORS = {rgb for _, rgb in NEON_PALETTE}


def _dispatcher(**overrides) -> BeatEventDispatcher:
    config = BeatConfig(seed=99, **overrides)
    return BeatEventDispatcher(config)


class TestDebounce:
    """Threshold and minimum interval."""

    def test_two_transients_50ms_apart_fire_once(self, smoother):
        dispatcher = _dispatcher()

        first = dispatcher.dispatch(smoother, 0.8, now_ms=1000.0)
        second = dispatcher.dispatch(smoother, 0.8, now_ms=1050.0)

        assert first.fired
        assert not second.fired
        assert dispatcher.fire_count == 1

    def test_fires_again_after_interval(self, smoother):
        dispatcher = _dispatcher()

        dispatcher.dispatch(smoother, 0.8, now_ms=0.0)
        effect = dispatcher.dispatch(smoother, 0.8, now_ms=100.0)

        assert effect.fired
        assert dispatcher.fire_count == 2

    def test_threshold(self, smoother):
        dispatcher = _dispatcher()

        assert not dispatcher.dispatch(smoother, 0.05, now_ms=0.0).fired
        assert dispatcher.dispatch(smoother, 0.06, now_ms=0.0).fired

    def test_reset_clears_debounce(self, smoother):
        dispatcher = _dispatcher()

        dispatcher.dispatch(smoother, 0.8, now_ms=0.0)
        dispatcher.reset()

        assert dispatcher.dispatch(smoother, 0.8, now_ms=10.0).fired


class TestStrobePolicy:
    """Neon palette strobe."""

    def test_three_distinct_palette_colors(self, smoother):
        dispatcher = _dispatcher(policy="strobe")
        dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        colors = [smoother.color(name) for name in ("color1", "color2", "color3")]

        assert len(set(colors)) == 3
        assert set(colors) <= PALETTE_COLORS

    def test_fog_and_glow_scaled(self, smoother):
        dispatcher = _dispatcher(policy="strobe")
        dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        fog = smoother.color("fogColor")
        glow = smoother.color("glowColor")

        assert any(fog == tuple(c * 0.3 for c in rgb) for rgb in PALETTE_COLORS)
        assert any(glow == tuple(c * 0.5 for c in rgb) for rgb in PALETTE_COLORS)

    def test_writes_are_tagged_instant(self, smoother):
        dispatcher = _dispatcher(policy="strobe")
        dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        for name in ("color1", "color2", "color3", "fogColor", "glowColor"):
            channels = smoother.get_color(name).channels
            assert all(c.transition is Transition.INSTANT for c in channels)

    def test_seeded_colors_reproducible(self, smoother):
        other = ParameterSmoother()
        _dispatcher().dispatch(smoother, 0.9, now_ms=0.0)
        _dispatcher().dispatch(other, 0.9, now_ms=0.0)

        assert smoother.snapshot() == other.snapshot()


class TestPunchPolicy:
    """Instant-attack, eased-release punches."""

    def test_punch_boosts_and_releases(self, smoother):
        dispatcher = _dispatcher(policy="punch")
        effect = dispatcher.dispatch(smoother, 0.9, now_ms=0.0)
        param = smoother.get("colorIntensity")

        assert effect.policy is BeatPolicy.PUNCH
        assert param.current == pytest.approx(0.875)
        assert param.target == pytest.approx(0.5)
        assert param.transition is Transition.INSTANT

        assert smoother.advance("colorIntensity", None, 700.0) == pytest.approx(0.5)

    def test_all_punch_parameters(self, smoother):
        dispatcher = _dispatcher(policy="punch")
        dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        assert smoother.value("transientEffect") == pytest.approx(0.3 * 1.75)
        assert smoother.value("transientColorEffect") == pytest.approx(1.75)
        assert smoother.value("energyColorEffect") == pytest.approx(1.75)

    def test_repeated_punches_do_not_stack(self, smoother):
        dispatcher = _dispatcher(policy="punch")
        for i in range(10):
            now = i * 120.0
            smoother.advance_all(now)
            dispatcher.dispatch(smoother, 0.9, now_ms=now)
            assert smoother.value("colorIntensity") <= 0.875 + 1e-9

    def test_ceiling(self, smoother):
        dispatcher = _dispatcher(policy="punch", punch_gain=10.0, punch_ceiling=2.0)
        dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        assert smoother.value("energyColorEffect") == 2.0

    def test_colors_untouched(self, smoother):
        before = smoother.color("color1")
        _dispatcher(policy="punch").dispatch(smoother, 0.9, now_ms=0.0)

        assert smoother.color("color1") == before

    def test_camera_kick(self, smoother):
        plain = _dispatcher(policy="punch").dispatch(smoother, 0.9, now_ms=0.0)
        kicked = _dispatcher(policy="punch", punch_camera=True).dispatch(
            smoother, 0.9, now_ms=0.0
        )

        assert plain.camera_kick == 1.0
        assert kicked.camera_kick == pytest.approx(1.3)


class TestPolicySelection:
    """Runtime policy switching."""

    def test_set_policy(self, smoother):
        dispatcher = _dispatcher()
        dispatcher.set_policy("punch")

        assert dispatcher.policy is BeatPolicy.PUNCH

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            _dispatcher().set_policy("disco")


class TestDebugFlash:
    """Debug beat flash."""

    def test_flash_on_transient(self, smoother):
        dispatcher = _dispatcher(debug_flash=True)
        effect = dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        assert effect.flashed
        assert smoother.value("debugBeatFlash") == 1.0
        assert max(dispatcher.flash_color) == pytest.approx(1.0)

    def test_flash_decays_to_zero(self, smoother):
        dispatcher = _dispatcher(debug_flash=True)
        dispatcher.dispatch(smoother, 0.9, now_ms=0.0)

        dispatcher.decay_flash(smoother, now_ms=16.0)
        assert smoother.value("debugBeatFlash") == pytest.approx(0.85)

        for i in range(100):
            dispatcher.decay_flash(smoother, now_ms=32.0 + i * 16)
        assert smoother.value("debugBeatFlash") == 0.0

    def test_no_flash_when_disabled(self, smoother):
        effect = _dispatcher().dispatch(smoother, 0.9, now_ms=0.0)

        assert not effect.flashed
        assert smoother.value("debugBeatFlash") == 0.0
