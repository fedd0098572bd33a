"""
Procedural Weather - deterministic looping weather kinds
"""

from typing import Optional

from .base import BaseWeather, ParticleBatch
from .rain import RainWeather, RainParticle
from .snow import SnowWeather, SnowParticle
from ..core.canvas import Canvas
from ..core.params import WeatherParameters

# Weather registry for easy access
WEATHER = {
    'rain': RainWeather,
    'drizzle': RainWeather,  # Alias
    'storm': RainWeather,  # Alias
    'snow': SnowWeather,
    'snowfall': SnowWeather,  # Alias
    'flurry': SnowWeather,  # Alias
}


def get_weather(name: str) -> type:
    """Get weather class by name"""
    name = name.lower()
    if name not in WEATHER:
        raise ValueError(f"Unknown weather: {name}. Available: {sorted(WEATHER)}")
    return WEATHER[name]


def create_weather(kind: str, params: Optional[WeatherParameters] = None) -> BaseWeather:
    """Instantiate the weather kind with its parameters"""
    return get_weather(kind)(params)


def build_batch(
    kind: str,
    params: WeatherParameters,
    width: int,
    height: int,
    seed: int
) -> ParticleBatch:
    """Particle batch for one (kind, params, size, seed)"""
    return create_weather(kind, params).create_batch(width, height, seed)


def render(
    canvas: Canvas,
    particles,
    params: WeatherParameters,
    t: float,
    width: int,
    height: int,
    period: float
) -> None:
    """Draw one frame of `params.kind` weather at loop time t"""
    create_weather(params.kind, params).render(canvas, particles, t, width, height, period)


__all__ = [
    'BaseWeather',
    'ParticleBatch',
    'RainWeather',
    'RainParticle',
    'SnowWeather',
    'SnowParticle',
    'WEATHER',
    'get_weather',
    'create_weather',
    'build_batch',
    'render',
]
