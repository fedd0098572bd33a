"""
Weather Tuner - Core Utilities

Exporter, preview and presets build on the procedural weather kinds and are
imported from their own modules (or the top-level package).
"""

from .errors import (
    WeatherTunerError, InvalidParameterError, CaptureUnavailableError,
    ExportError, PreviewCancelled,
)
from .utils import MathUtils, clamp, setup_logging
from .rng import Lcg, gaussian
from .params import (
    # Constants
    REFERENCE_WIDTH, REFERENCE_HEIGHT, MIN_LOOP_PERIOD, MIN_FRAME_SIDE,
    KINDS, BACKGROUNDS,
    # Helpers
    particle_count, loop_period, parse_size,
    # Parameter sets
    WeatherParameters, RainParameters, SnowParameters, PARAMETER_TYPES,
    SessionSettings,
)
from .motion import (
    wrap_range, loop_time, oscillation_frequency, Bounds,
    rain_gust, rain_velocity, advance_rain, rain_position,
    snow_wobble, snow_position,
)
from .canvas import (
    Canvas, QUALITY_SUPERSAMPLE, CHECKER_TILE,
    checker_tile, tile_background,
)

__all__ = [
    # Errors
    'WeatherTunerError', 'InvalidParameterError', 'CaptureUnavailableError',
    'ExportError', 'PreviewCancelled',
    # Utilities
    'MathUtils', 'clamp', 'setup_logging',
    # RNG
    'Lcg', 'gaussian',
    # Parameters
    'REFERENCE_WIDTH', 'REFERENCE_HEIGHT', 'MIN_LOOP_PERIOD', 'MIN_FRAME_SIDE',
    'KINDS', 'BACKGROUNDS',
    'particle_count', 'loop_period', 'parse_size',
    'WeatherParameters', 'RainParameters', 'SnowParameters', 'PARAMETER_TYPES',
    'SessionSettings',
    # Motion
    'wrap_range', 'loop_time', 'oscillation_frequency', 'Bounds',
    'rain_gust', 'rain_velocity', 'advance_rain', 'rain_position',
    'snow_wobble', 'snow_position',
    # Raster
    'Canvas', 'QUALITY_SUPERSAMPLE', 'CHECKER_TILE',
    'checker_tile', 'tile_background',
]
