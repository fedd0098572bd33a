import math
from dataclasses import FrozenInstanceError

import pytest

from weather_tuner.core.errors import InvalidParameterError
from weather_tuner.core.params import (
    RainParameters, SessionSettings, SnowParameters, loop_period, parse_size, particle_count,
)


class TestParticleCount:
    def test_reference_frame_uses_density_directly(self):
        assert particle_count(1200, 1920, 1080) == 1200

    def test_720p_rain_scenario(self):
        assert particle_count(1200, 1280, 720) == 533

    def test_scales_with_area(self):
        assert particle_count(1000, 960, 540) == 250

    def test_never_zero(self):
        assert particle_count(50, 16, 16) == 1

    def test_session_count(self):
        assert SessionSettings(kind='rain', seed=12345).particle_count == 533


class TestParseSize:
    def test_valid(self):
        assert parse_size("1280x720") == (1280, 720)

    def test_whitespace_and_case(self):
        assert parse_size(" 640 X 360 ") == (640, 360)

    def test_fractional_sides_are_floored(self):
        assert parse_size("100.9x50.2") == (100, 50)

    @pytest.mark.parametrize("text", ["", "1280", "axb", "1280x720x3", "15x720", "1280x8", None, "infx100"])
    def test_invalid(self, text):
        assert parse_size(text) is None

    def test_minimum_side_accepted(self):
        assert parse_size("16x16") == (16, 16)


def test_loop_period_floor():
    assert loop_period(8) == 8
    assert loop_period(0.05) == 0.2


class TestPairedSizeSetter:
    def test_snow_min_above_max_swaps_bounds(self):
        snow = SnowParameters()
        assert snow.max_flake_size == 5.5

        updated = snow.with_min_size(8.0)

        assert updated.min_flake_size == 5.5
        assert updated.max_flake_size == 8.0
        assert updated.min_flake_size <= updated.max_flake_size
        assert updated.flake_size == pytest.approx(6.75)
        assert updated.flake_size_jitter == pytest.approx(1.25)

    def test_rain_max_below_min_swaps_bounds(self):
        rain = RainParameters().with_max_size(0.6)
        assert rain.min_drop_size == 0.6
        assert rain.max_drop_size == 0.8

    def test_bounds_are_clamped(self):
        rain = RainParameters().with_size_bounds(-5, 100)
        assert rain.min_drop_size == 0.5
        assert rain.max_drop_size == 8

        snow = SnowParameters().with_size_bounds(50, 50)
        assert snow.min_flake_size == 10
        assert snow.max_flake_size == 14

    def test_jitter_floor(self):
        rain = RainParameters().with_size_bounds(2.0, 2.0)
        assert rain.drop_size == 2.0
        assert rain.drop_size_jitter == 0.01

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, bad):
        with pytest.raises(InvalidParameterError):
            SnowParameters().with_min_size(bad)

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            RainParameters().with_max_size(math.nan)

    def test_setter_returns_new_instance(self):
        rain = RainParameters()
        updated = rain.with_min_size(1.0)
        assert rain.min_drop_size == 0.8
        assert updated is not rain

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            RainParameters().speed = 10


class TestUpdate:
    def test_plain_field(self):
        rain = RainParameters().update(angle_deg=30)
        assert rain.angle_deg == 30

    def test_bound_goes_through_paired_setter(self):
        rain = RainParameters().update(max_drop_size=1.0)
        assert rain.min_drop_size == 0.8
        assert rain.max_drop_size == 1.0
        assert rain.drop_size == pytest.approx(0.9)
        assert rain.drop_size_jitter == pytest.approx(0.1)

    def test_unknown_field(self):
        with pytest.raises(InvalidParameterError):
            SnowParameters().update(gravity=3)


class TestValidated:
    def test_fields_clamped_to_ranges(self):
        rain = RainParameters(angle_deg=90, opacity=3, density_1080=1).validated()
        assert rain.angle_deg == 45
        assert rain.opacity == 1
        assert rain.density_1080 == 50

    def test_inverted_bounds_reordered(self):
        snow = SnowParameters(min_flake_size=9, max_flake_size=2).validated()
        assert snow.min_flake_size == 2
        assert snow.max_flake_size == 9

    def test_base_size_kept_inside_bounds(self):
        rain = RainParameters(drop_size=7.5).validated()
        assert rain.drop_size == rain.max_drop_size

    def test_non_finite_field(self):
        with pytest.raises(InvalidParameterError):
            RainParameters(speed=math.nan).validated()


class TestSerialization:
    def test_json_keys(self):
        data = RainParameters().to_json_dict()
        assert data['density1080'] == 1200
        assert data['angleDeg'] == 18
        assert data['streakLen'] == 34
        assert 'streak_len' not in data

    def test_from_dict_accepts_both_spellings(self):
        snow = SnowParameters.from_dict({'flakeSize': 3.3, 'wind': 40, 'glow': 1})
        assert snow.flake_size == 3.3
        assert snow.wind == 40
        assert snow.glow == 1

    def test_from_dict_ignores_unknown_keys(self):
        rain = RainParameters.from_dict({'colour': 'red', 'speed': 900})
        assert rain.speed == 900
        assert rain.angle_deg == 18

    def test_round_trip(self):
        snow = SnowParameters(wind=-120, drift=15)
        assert SnowParameters.from_dict(snow.to_json_dict()) == snow


class TestMotionHelpers:
    def test_rain_margin_follows_streak_length(self):
        assert RainParameters().margin == 68
        assert RainParameters(streak_len=10).margin == 40

    def test_snow_margin(self):
        assert SnowParameters().margin == 40

    def test_wobble_cycles_are_whole(self):
        assert SnowParameters(turbulence=8).wobble_cycles == 8
        assert SnowParameters(turbulence=7.6).wobble_cycles == 8
        assert SnowParameters(turbulence=0.2).wobble_cycles == 1


class TestSessionSettings:
    def test_defaults(self):
        s = SessionSettings()
        assert (s.kind, s.width, s.height, s.fps, s.duration, s.seed) == ('rain', 1280, 720, 30, 8.0, 12345)
        assert s.background == 'transparent'
        assert s.total_frames == 240
        assert s.loop_period == 8.0

    def test_active_params(self):
        assert isinstance(SessionSettings(kind='snow').params, SnowParameters)
        assert isinstance(SessionSettings(kind='rain').params, RainParameters)

    def test_with_params_touches_active_kind_only(self):
        s = SessionSettings(kind='snow').with_params(wind=100)
        assert s.snow.wind == 100
        assert s.rain == RainParameters()

    def test_with_size_fallback(self):
        s = SessionSettings(width=640, height=360).with_size("nonsense")
        assert (s.width, s.height) == (1280, 720)

    def test_total_frames_floor(self):
        assert SessionSettings(fps=24, duration=2.5).total_frames == 60
        assert SessionSettings(fps=1, duration=0.3).total_frames == 1

    def test_fractional_fps_survives_validation(self):
        s = SessionSettings(fps=29.97, duration=8).validated()
        assert s.fps == 29.97
        assert s.total_frames == 239

    def test_integral_fps_normalised_to_int(self):
        s = SessionSettings(fps=30.0).validated()
        assert s.fps == 30
        assert isinstance(s.fps, int)

    def test_short_duration_period(self):
        assert SessionSettings(duration=0.1).loop_period == 0.2

    def test_validated_masks_seed(self):
        assert SessionSettings(seed=-1).validated().seed == 0xFFFFFFFF

    @pytest.mark.parametrize("overrides", [
        {'kind': 'hail'},
        {'background': 'white'},
        {'duration': 0},
        {'duration': -2},
        {'duration': math.nan},
        {'fps': 0},
        {'width': 8},
        {'height': 15},
    ])
    def test_validated_rejects(self, overrides):
        with pytest.raises(InvalidParameterError):
            SessionSettings(**overrides).validated()

    def test_validated_clamps_both_kinds(self):
        s = SessionSettings(rain=RainParameters(angle_deg=-80), snow=SnowParameters(glow=99)).validated()
        assert s.rain.angle_deg == -45
        assert s.snow.glow == 6
