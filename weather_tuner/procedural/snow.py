"""
Snow - drifting flakes with a soft halo
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .base import BaseWeather
from ..core.canvas import Canvas
from ..core.motion import Bounds, snow_position
from ..core.params import SnowParameters
from ..core.rng import Lcg, gaussian
from ..core.utils import clamp


HALO_OPACITY = 0.35


@dataclass(frozen=True)
class SnowParticle:
    """Static attributes of one snowflake"""
    x0: float
    y0: float
    vx: float
    vy: float
    size: float
    alpha: float
    phase0: float


class SnowWeather(BaseWeather):
    """Falling snow with wind, drift and per-flake wobble"""

    name = "snow"
    description = "Snowflakes swaying on whole-loop wobble cycles"

    parameter_type = SnowParameters

    def __init__(self, params: Optional[SnowParameters] = None):
        super().__init__(params)

    def create_particle(self, rng: Lcg, width: int, height: int) -> SnowParticle:
        p = self.params
        raw_size = p.flake_size + gaussian(rng) * p.flake_size_jitter
        size = max(1.0, clamp(raw_size, p.min_flake_size, p.max_flake_size))
        alpha = clamp(p.opacity + gaussian(rng) * p.opacity_jitter, 0.05, 1.0)

        x0 = (rng() * 1.2 - 0.1) * width
        y0 = (rng() * 1.2 - 0.2) * height
        vx = p.wind + rng.symmetric() * p.drift
        vy = (0.7 + 0.6 * rng()) * p.fall
        phase0 = rng() * math.pi * 2

        return SnowParticle(x0=x0, y0=y0, vx=vx, vy=vy, size=size, alpha=alpha, phase0=phase0)

    def position(self, particle: SnowParticle, t: float, bounds: Bounds, period: float) -> Tuple[float, float]:
        p = self.params
        return snow_position(particle, t, bounds, p.wobble, p.wobble_cycles, period)

    def draw(self, canvas: Canvas, particles, t: float, bounds: Bounds, period: float) -> None:
        p = self.params
        cycles = p.wobble_cycles

        for a in particles:
            x, y = snow_position(a, t, bounds, p.wobble, cycles, period)

            canvas.fill_circle(x, y, max(1.0, a.size), a.alpha)
            if p.glow > 0:
                canvas.fill_circle(x, y, max(1.0, a.size * p.glow), a.alpha * HALO_OPACITY)
