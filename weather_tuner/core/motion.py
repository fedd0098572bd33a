"""
Motion & Wrap Model - deterministic, phase-closed particle positions

A particle's position is origin + velocity * t plus an optional periodic
term, wrapped toroidally onto a margin-expanded frame. Time is always taken
modulo the loop period T and every periodic term completes a whole number
of cycles per loop, so position is a function on the circle [0, T).
"""

import math
from dataclasses import dataclass
from typing import Tuple

from .params import MIN_LOOP_PERIOD


def wrap_range(x: float, lo: float, hi: float) -> float:
    """
    Wrap x into [lo, hi).

    Python's float modulo is non-negative for a positive span whatever the
    sign of x. A non-positive span collapses to lo. Values already inside
    the range come back untouched, which keeps wrap_range idempotent.
    """
    span = hi - lo
    if span <= 0:
        return lo
    if lo <= x < hi:
        return x
    result = lo + (x - lo) % span
    # x just below lo can round up to exactly hi
    if result >= hi:
        return lo
    return result


def loop_time(elapsed: float, duration: float) -> float:
    """Reduce elapsed seconds into the loop [0, T), T = max(0.2, duration)"""
    period = max(MIN_LOOP_PERIOD, duration)
    return wrap_range(elapsed, 0.0, period)


def oscillation_frequency(cycles: int, period: float) -> float:
    """Angular frequency completing `cycles` whole cycles per loop period"""
    return (2 * math.pi * int(cycles)) / max(0.001, period)


@dataclass(frozen=True)
class Bounds:
    """Wrap rectangle: [x_min, x_max) x [y_min, y_max)"""
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @classmethod
    def expanded(cls, width: float, height: float, margin: float) -> 'Bounds':
        """Frame rectangle grown by `margin` on every side"""
        return cls(-margin, -margin, width + margin, height + margin)

    @property
    def span_x(self) -> float:
        return self.x_max - self.x_min

    @property
    def span_y(self) -> float:
        return self.y_max - self.y_min

    def wrap(self, x: float, y: float) -> Tuple[float, float]:
        return (
            wrap_range(x, self.x_min, self.x_max),
            wrap_range(y, self.y_min, self.y_max),
        )

    def contains(self, x: float, y: float) -> bool:
        return self.x_min <= x < self.x_max and self.y_min <= y < self.y_max


# =============================================================================
# Rain
# =============================================================================

RAIN_GUST_CYCLES = 2
RAIN_GUST_STRENGTH = 0.12
RAIN_GUST_X = 0.25
RAIN_GUST_Y = 0.05


def rain_gust(t: float, speed_jitter: float, period: float) -> float:
    """
    Shared low-frequency wind gust at time t.

    Identical for every particle: the whole field breathes together.
    """
    omega = oscillation_frequency(RAIN_GUST_CYCLES, period)
    return math.sin(omega * t) * (speed_jitter * RAIN_GUST_STRENGTH)


def rain_velocity(vx: float, vy: float, gust: float) -> Tuple[float, float]:
    """Particle velocity with the shared gust applied"""
    return vx + gust * RAIN_GUST_X, vy + gust * RAIN_GUST_Y


def advance_rain(
    particle,
    t: float,
    bounds: Bounds,
    gust: float
) -> Tuple[float, float, float, float]:
    """
    Head position and gusted velocity of a rain particle.

    `t` must already be reduced into the loop and `gust` computed for it.

    Returns:
        (x, y, vx, vy)
    """
    vx, vy = rain_velocity(particle.vx, particle.vy, gust)
    x, y = bounds.wrap(particle.x0 + vx * t, particle.y0 + vy * t)
    return x, y, vx, vy


def rain_position(
    particle,
    t: float,
    bounds: Bounds,
    speed_jitter: float,
    period: float
) -> Tuple[float, float]:
    """Wrapped head position of a rain particle at loop time t"""
    t = loop_time(t, period)
    gust = rain_gust(t, speed_jitter, period)
    x, y, _, _ = advance_rain(particle, t, bounds, gust)
    return x, y


# =============================================================================
# Snow
# =============================================================================

def snow_wobble(phase0: float, t: float, wobble: float, cycles: int, period: float) -> float:
    """Horizontal sway of one flake; whole cycles per loop"""
    omega = oscillation_frequency(cycles, period)
    return math.sin(phase0 + omega * t) * wobble


def snow_position(
    particle,
    t: float,
    bounds: Bounds,
    wobble: float,
    cycles: int,
    period: float
) -> Tuple[float, float]:
    """Wrapped centre of a snowflake at loop time t"""
    t = loop_time(t, period)
    sway = snow_wobble(particle.phase0, t, wobble, max(1, int(cycles)), period)
    return bounds.wrap(particle.x0 + particle.vx * t + sway, particle.y0 + particle.vy * t)
