"""
Rain - slanted streaks with a bright leading droplet
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .base import BaseWeather
from ..core.canvas import Canvas
from ..core.motion import (
    Bounds, RAIN_GUST_CYCLES, advance_rain, oscillation_frequency, rain_gust, rain_position,
)
from ..core.params import RainParameters
from ..core.rng import Lcg, gaussian
from ..core.utils import clamp


# Head segment covers this fraction of the streak
HEAD_FRACTION = 0.35
HEAD_WIDTH = 0.85
TAIL_OPACITY = 0.18
# Bead highlight shows while the sparkle wave is above this
BEAD_THRESHOLD = 0.92


@dataclass(frozen=True)
class RainParticle:
    """Static attributes of one raindrop"""
    x0: float
    y0: float
    vx: float
    vy: float
    size: float
    alpha: float
    len_scale: float
    thick_scale: float
    phase0: float
    sparkle: float


class RainWeather(BaseWeather):
    """Wind-driven rain streaks"""

    name = "rain"
    description = "Slanted rain streaks with a shared breathing gust"

    parameter_type = RainParameters

    def __init__(self, params: Optional[RainParameters] = None):
        super().__init__(params)

    def create_particle(self, rng: Lcg, width: int, height: int) -> RainParticle:
        p = self.params
        ang = math.radians(p.angle_deg)
        base_vy = p.speed * math.cos(ang)
        base_vx = p.speed * math.sin(ang)

        # Cross-direction jitter is damped so streaks stay coherent
        vy = base_vy + rng.symmetric() * p.speed_jitter
        vx = base_vx + rng.symmetric() * p.speed_jitter * 0.25

        raw_size = p.drop_size + gaussian(rng) * p.drop_size_jitter
        size = max(1.0, clamp(raw_size, p.min_drop_size, p.max_drop_size))
        alpha = clamp(p.opacity + gaussian(rng) * p.opacity_jitter, 0.05, 1.0)

        len_scale = clamp(1 + gaussian(rng) * 0.35, 0.55, 1.9)
        thick_scale = clamp(1 + gaussian(rng) * 0.25, 0.65, 1.7)
        sparkle = clamp(rng() * 1.25, 0.0, 1.0)

        x0 = (rng() * 1.4 - 0.2) * width
        y0 = (rng() * 1.2 - 0.2) * height
        phase0 = rng() * math.pi * 2

        return RainParticle(
            x0=x0,
            y0=y0,
            vx=vx,
            vy=vy,
            size=size,
            alpha=alpha,
            len_scale=len_scale,
            thick_scale=thick_scale,
            phase0=phase0,
            sparkle=sparkle,
        )

    def position(self, particle: RainParticle, t: float, bounds: Bounds, period: float) -> Tuple[float, float]:
        return rain_position(particle, t, bounds, self.params.speed_jitter, period)

    def draw(self, canvas: Canvas, particles, t: float, bounds: Bounds, period: float) -> None:
        p = self.params
        omega = oscillation_frequency(RAIN_GUST_CYCLES, period)
        gust = rain_gust(t, p.speed_jitter, period)

        for a in particles:
            x, y, vx, vy = advance_rain(a, t, bounds, gust)

            n = math.hypot(vx, vy) + 1e-6
            ux = vx / n
            uy = vy / n

            length = p.streak_len * a.len_scale
            lw = max(1.0, a.size * p.thickness * a.thick_scale)

            head = clamp(a.alpha * (0.9 + 0.35 * a.sparkle), 0.0, 1.0)
            tail = clamp(a.alpha * TAIL_OPACITY, 0.0, 1.0)

            # Long faint wake, then a short bright leading edge over it
            canvas.stroke_line(x, y, x - ux * length, y - uy * length, lw, tail)
            canvas.stroke_line(
                x, y,
                x - ux * length * HEAD_FRACTION, y - uy * length * HEAD_FRACTION,
                lw * HEAD_WIDTH, head
            )

            bead = math.sin(a.phase0 + omega * t) * 0.5 + 0.5
            if bead > BEAD_THRESHOLD:
                canvas.fill_circle(x + ux * 1.5, y + uy * 1.5, max(0.6, lw * 0.45), head * 0.6)
