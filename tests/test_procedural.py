import math

import numpy as np
import pytest

import weather_tuner
from weather_tuner.core.canvas import Canvas
from weather_tuner.core.params import RainParameters, SessionSettings, SnowParameters
from weather_tuner.core.rng import Lcg, gaussian
from weather_tuner.core.utils import clamp
from weather_tuner.procedural import (
    WEATHER, RainParticle, RainWeather, SnowParticle, SnowWeather, build_batch, get_weather, render,
)


class TestRegistry:
    def test_kinds_and_aliases(self):
        assert get_weather('rain') is RainWeather
        assert get_weather('Snow') is SnowWeather
        assert WEATHER['drizzle'] is RainWeather
        assert WEATHER['flurry'] is SnowWeather

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown weather"):
            get_weather('hail')


class TestDeterminism:
    def test_same_seed_byte_identical(self):
        a = build_batch('rain', RainParameters(), 1280, 720, 12345)
        b = build_batch('rain', RainParameters(), 1280, 720, 12345)
        assert a.tobytes() == b.tobytes()

    def test_snow_byte_identical(self):
        a = build_batch('snow', SnowParameters(), 640, 360, 4242)
        b = build_batch('snow', SnowParameters(), 640, 360, 4242)
        assert a.tobytes() == b.tobytes()

    def test_different_seed_differs(self):
        a = build_batch('rain', RainParameters(), 320, 240, 1)
        b = build_batch('rain', RainParameters(), 320, 240, 2)
        assert a.tobytes() != b.tobytes()

    def test_batch_metadata(self):
        batch = build_batch('snow', SnowParameters(), 320, 240, 5)
        assert batch.kind == 'snow'
        assert (batch.seed, batch.width, batch.height) == (5, 320, 240)
        assert batch.to_array().shape == (len(batch), 7)


def test_720p_rain_scenario_count():
    batch = build_batch('rain', RainParameters(density_1080=1200), 1280, 720, 12345)
    assert len(batch) == 533


class TestRainFactory:
    def test_draw_order(self):
        p = RainParameters()
        rng = Lcg(12345)

        ang = math.radians(p.angle_deg)
        vy = p.speed * math.cos(ang) + (rng() * 2 - 1) * p.speed_jitter
        vx = p.speed * math.sin(ang) + (rng() * 2 - 1) * p.speed_jitter * 0.25
        size = max(1.0, clamp(p.drop_size + gaussian(rng) * p.drop_size_jitter,
                              p.min_drop_size, p.max_drop_size))
        alpha = clamp(p.opacity + gaussian(rng) * p.opacity_jitter, 0.05, 1.0)
        len_scale = clamp(1 + gaussian(rng) * 0.35, 0.55, 1.9)
        thick_scale = clamp(1 + gaussian(rng) * 0.25, 0.65, 1.7)
        sparkle = clamp(rng() * 1.25, 0.0, 1.0)
        x0 = (rng() * 1.4 - 0.2) * 1280
        y0 = (rng() * 1.2 - 0.2) * 720
        phase0 = rng() * math.pi * 2

        expected = RainParticle(x0, y0, vx, vy, size, alpha, len_scale, thick_scale, phase0, sparkle)
        assert build_batch('rain', p, 1280, 720, 12345)[0] == expected

    def test_attribute_ranges(self):
        p = RainParameters()
        batch = build_batch('rain', p, 640, 360, 99)
        for a in batch:
            assert 1.0 <= a.size <= max(1.0, p.max_drop_size)
            assert 0.05 <= a.alpha <= 1.0
            assert 0.55 <= a.len_scale <= 1.9
            assert 0.65 <= a.thick_scale <= 1.7
            assert 0.0 <= a.sparkle <= 1.0
            assert -0.2 * 640 <= a.x0 < 1.2 * 640
            assert -0.2 * 360 <= a.y0 < 1.0 * 360
            assert 0.0 <= a.phase0 < 2 * math.pi

    def test_straight_down_rain_has_small_cross_velocity(self):
        p = RainParameters(angle_deg=0, speed_jitter=100)
        for a in build_batch('rain', p, 320, 240, 8):
            assert abs(a.vx) <= 25.0
            assert p.speed - 100 <= a.vy <= p.speed + 100


class TestSnowFactory:
    def test_draw_order(self):
        p = SnowParameters()
        rng = Lcg(777)

        size = max(1.0, clamp(p.flake_size + gaussian(rng) * p.flake_size_jitter,
                              p.min_flake_size, p.max_flake_size))
        alpha = clamp(p.opacity + gaussian(rng) * p.opacity_jitter, 0.05, 1.0)
        x0 = (rng() * 1.2 - 0.1) * 640
        y0 = (rng() * 1.2 - 0.2) * 360
        vx = p.wind + (rng() * 2 - 1) * p.drift
        vy = (0.7 + 0.6 * rng()) * p.fall
        phase0 = rng() * math.pi * 2

        expected = SnowParticle(x0, y0, vx, vy, size, alpha, phase0)
        assert build_batch('snow', p, 640, 360, 777)[0] == expected

    def test_attribute_ranges(self):
        p = SnowParameters(wind=50)
        for a in build_batch('snow', p, 640, 360, 3):
            assert 1.0 <= a.size <= p.max_flake_size
            assert 0.05 <= a.alpha <= 1.0
            assert p.wind - p.drift <= a.vx < p.wind + p.drift
            assert 0.7 * p.fall <= a.vy < 1.3 * p.fall


class TestRenderer:
    def test_rain_draws_something(self):
        settings = SessionSettings(kind='rain', width=320, height=240)
        frame = weather_tuner.render_frame(settings, 1.0, quality='fast')
        assert frame.shape == (240, 320, 4)
        assert frame[:, :, 3].max() > 0

    def test_snow_draws_something(self):
        settings = SessionSettings(kind='snow', width=320, height=240)
        frame = weather_tuner.render_frame(settings, 2.5, quality='fast')
        assert frame[:, :, 3].max() > 0

    @pytest.mark.parametrize("kind", ['rain', 'snow'])
    def test_loop_seam_is_invisible(self, kind):
        settings = SessionSettings(kind=kind, width=96, height=64, duration=3.0)
        first = weather_tuner.render_frame(settings, 0.0, quality='fast')
        last = weather_tuner.render_frame(settings, 3.0, quality='fast')
        assert np.array_equal(first, last)

    def test_render_is_stateless(self):
        settings = SessionSettings(kind='rain', width=96, height=64)
        batch = weather_tuner.build_particles('rain', '96x64', seed=settings.seed)
        a = weather_tuner.render_frame(settings, 2.0, quality='fast', particles=batch)
        weather_tuner.render_frame(settings, 5.0, quality='fast', particles=batch)
        b = weather_tuner.render_frame(settings, 2.0, quality='fast', particles=batch)
        assert np.array_equal(a, b)

    def test_module_render_dispatches_on_params(self):
        params = SnowParameters(blur=0)
        batch = build_batch('snow', params, 64, 48, 1)
        direct = Canvas(64, 48, 'fast')
        SnowWeather(params).render(direct, batch, 0.5, 64, 48, 8.0)

        canvas = Canvas(64, 48, 'fast')
        render(canvas, batch, params, 0.5, 64, 48, 8.0)
        assert np.array_equal(canvas.coverage, direct.coverage)

    def test_blur_post_pass_softens(self):
        sharp = SnowParameters(blur=0, glow=0)
        soft = SnowParameters(blur=3, glow=0)
        batch = build_batch('snow', sharp, 256, 192, 11)

        a = Canvas(256, 192, 'fast')
        SnowWeather(sharp).render(a, batch, 1.0, 256, 192, 8.0)
        b = Canvas(256, 192, 'fast')
        SnowWeather(soft).render(b, batch, 1.0, 256, 192, 8.0)

        assert np.count_nonzero(b.coverage > 0.01) > np.count_nonzero(a.coverage > 0.01)

    def test_glow_adds_halo(self):
        plain = SnowParameters(blur=0, glow=0)
        glowing = SnowParameters(blur=0, glow=4)
        batch = build_batch('snow', plain, 256, 192, 11)

        a = Canvas(256, 192, 'fast')
        SnowWeather(plain).render(a, batch, 1.0, 256, 192, 8.0)
        b = Canvas(256, 192, 'fast')
        SnowWeather(glowing).render(b, batch, 1.0, 256, 192, 8.0)

        assert b.coverage.sum() > a.coverage.sum()
