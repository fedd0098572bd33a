"""
Simulation Parameters - per-kind tunables and whole-session settings

Parameter sets are immutable values. Every "setter" returns a new instance,
so a preview loop and an export run can never observe each other's edits.
"""

import math
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, ClassVar, Dict, Optional, Tuple

from .errors import InvalidParameterError
from .utils import MathUtils


# Density is specified for this frame size and scaled by area
REFERENCE_WIDTH = 1920
REFERENCE_HEIGHT = 1080

MIN_LOOP_PERIOD = 0.2
MIN_FRAME_SIDE = 16

KINDS = ('rain', 'snow')
BACKGROUNDS = ('transparent', 'black', 'checker')


def particle_count(density_1080: float, width: int, height: int) -> int:
    """
    Number of particles for a frame, scaled from the 1080p density by area.

    Always at least 1, even for tiny frames.
    """
    area_scale = (width * height) / (REFERENCE_WIDTH * REFERENCE_HEIGHT)
    return max(1, int(math.floor(density_1080 * area_scale)))


def loop_period(duration: float) -> float:
    """Loop period T for a requested clip duration"""
    return max(MIN_LOOP_PERIOD, duration)


def _whole_or_float(value: Any):
    """Integral rates as int; fractional ones such as 29.97 stay float"""
    value = float(value)
    return int(value) if value.is_integer() else value


def parse_size(text: Any) -> Optional[Tuple[int, int]]:
    """
    Parse a "WIDTHxHEIGHT" string.

    Returns None for malformed input or when either side is below 16 px.
    Fractional sides are floored.
    """
    raw = str(text or '').strip().lower()
    parts = [p.strip() for p in raw.split('x')]
    if len(parts) != 2:
        return None
    try:
        w = float(parts[0])
        h = float(parts[1])
    except ValueError:
        return None
    if not MathUtils.is_finite(w, h) or w < MIN_FRAME_SIDE or h < MIN_FRAME_SIDE:
        return None
    return int(math.floor(w)), int(math.floor(h))


class WeatherParameters:
    """
    Shared behaviour for the per-kind parameter dataclasses.

    Subclasses declare:
        kind         - registry name
        RANGES       - valid (low, high) per field, used for clamping
        SIZE_FIELDS  - (min, max, base, jitter) field names
        SIZE_LIMITS  - clamp ranges for the user-facing (min, max) pair
        JSON_KEYS    - field name -> key in the settings text format
    """

    kind: ClassVar[str] = ''
    RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {}
    SIZE_FIELDS: ClassVar[Tuple[str, str, str, str]] = ('', '', '', '')
    SIZE_LIMITS: ClassVar[Tuple[Tuple[float, float], Tuple[float, float]]] = ((0, 0), (0, 0))
    JSON_KEYS: ClassVar[Dict[str, str]] = {}

    # -- size bounds --------------------------------------------------------

    @property
    def min_size(self) -> float:
        return getattr(self, self.SIZE_FIELDS[0])

    @property
    def max_size(self) -> float:
        return getattr(self, self.SIZE_FIELDS[1])

    @property
    def base_size(self) -> float:
        return getattr(self, self.SIZE_FIELDS[2])

    @property
    def size_jitter(self) -> float:
        return getattr(self, self.SIZE_FIELDS[3])

    def with_size_bounds(self, new_min: float, new_max: float):
        """
        Paired min/max setter.

        Clamps both bounds into their ranges, reorders them so min <= max,
        then re-derives base size (midpoint) and jitter (half the spread,
        floored at 0.01).
        """
        if not MathUtils.is_finite(new_min, new_max):
            raise InvalidParameterError(
                f"Size bounds must be finite, got min={new_min!r} max={new_max!r}"
            )
        (min_lo, min_hi), (max_lo, max_hi) = self.SIZE_LIMITS
        lo = MathUtils.clamp(float(new_min), min_lo, min_hi)
        hi = MathUtils.clamp(float(new_max), max_lo, max_hi)
        mn, mx = min(lo, hi), max(lo, hi)

        min_field, max_field, base_field, jitter_field = self.SIZE_FIELDS
        return replace(self, **{
            min_field: mn,
            max_field: mx,
            base_field: (mn + mx) / 2,
            jitter_field: max(0.01, (mx - mn) / 2),
        })

    def with_min_size(self, value: float):
        return self.with_size_bounds(value, self.max_size)

    def with_max_size(self, value: float):
        return self.with_size_bounds(self.min_size, value)

    # -- validation ---------------------------------------------------------

    def validated(self):
        """
        Return a copy with every field clamped into its valid range.

        Non-finite values are rejected. The size group is normalised so that
        min <= base <= max and jitter >= 0.01 hold.
        """
        values = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if not MathUtils.is_finite(value):
                raise InvalidParameterError(
                    f"{self.kind}.{f.name} must be a finite number, got {value!r}"
                )
            value = float(value)
            if f.name in self.RANGES:
                value = MathUtils.clamp(value, *self.RANGES[f.name])
            values[f.name] = value

        min_field, max_field, base_field, jitter_field = self.SIZE_FIELDS
        mn = min(values[min_field], values[max_field])
        mx = max(values[min_field], values[max_field])
        values[min_field] = mn
        values[max_field] = mx
        values[base_field] = MathUtils.clamp(values[base_field], mn, mx)
        values[jitter_field] = max(0.01, values[jitter_field])
        return replace(self, **values)

    def update(self, **overrides):
        """
        Apply field overrides.

        Touching either size bound goes through the paired setter so the
        derived base/jitter stay consistent.
        """
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise InvalidParameterError(
                f"Unknown {self.kind} parameter(s): {', '.join(sorted(unknown))}"
            )
        min_field, max_field = self.SIZE_FIELDS[:2]
        bounds_touched = min_field in overrides or max_field in overrides
        new_min = overrides.pop(min_field, self.min_size)
        new_max = overrides.pop(max_field, self.max_size)
        result = replace(self, **overrides)
        if bounds_touched:
            result = result.with_size_bounds(new_min, new_max)
        return result

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> Dict[str, float]:
        """Field values keyed by python field name"""
        return asdict(self)

    def to_json_dict(self) -> Dict[str, float]:
        """Field values keyed by the settings text format names"""
        return {self.JSON_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """
        Build from either python field names or settings-format keys.
        Unknown keys are ignored, missing keys keep their defaults.
        """
        reverse = {v: k for k, v in cls.JSON_KEYS.items()}
        valid_fields = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            name = key if key in valid_fields else reverse.get(key)
            if name is not None:
                values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class RainParameters(WeatherParameters):
    """Tunables for rain streaks"""

    kind: ClassVar[str] = 'rain'

    density_1080: float = 1200
    angle_deg: float = 18
    speed: float = 1750
    speed_jitter: float = 220
    streak_len: float = 34
    thickness: float = 1.2
    min_drop_size: float = 0.8
    max_drop_size: float = 2.6
    drop_size: float = 1.7
    drop_size_jitter: float = 0.9
    opacity: float = 0.42
    opacity_jitter: float = 0.12
    blur: float = 0

    RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {
        'density_1080': (50, 4000),
        'angle_deg': (-45, 45),
        'speed': (200, 3200),
        'speed_jitter': (0, 800),
        'streak_len': (4, 120),
        'thickness': (0.3, 3),
        'min_drop_size': (0.5, 6),
        'max_drop_size': (0.5, 8),
        'drop_size': (0.5, 8),
        'drop_size_jitter': (0.01, 4),
        'opacity': (0.05, 1),
        'opacity_jitter': (0, 0.6),
        'blur': (0, 6),
    }
    SIZE_FIELDS: ClassVar[Tuple[str, str, str, str]] = (
        'min_drop_size', 'max_drop_size', 'drop_size', 'drop_size_jitter'
    )
    SIZE_LIMITS: ClassVar[Tuple[Tuple[float, float], Tuple[float, float]]] = ((0.5, 6), (0.5, 8))
    JSON_KEYS: ClassVar[Dict[str, str]] = {
        'density_1080': 'density1080',
        'angle_deg': 'angleDeg',
        'speed': 'speed',
        'speed_jitter': 'speedJitter',
        'streak_len': 'streakLen',
        'thickness': 'thickness',
        'min_drop_size': 'minDropSize',
        'max_drop_size': 'maxDropSize',
        'drop_size': 'dropSize',
        'drop_size_jitter': 'dropSizeJitter',
        'opacity': 'opacity',
        'opacity_jitter': 'opacityJitter',
        'blur': 'blur',
    }

    @property
    def margin(self) -> float:
        """Wrap margin around the frame; long streaks need more room"""
        return max(40.0, self.streak_len * 2)


@dataclass(frozen=True)
class SnowParameters(WeatherParameters):
    """Tunables for snowflakes"""

    kind: ClassVar[str] = 'snow'

    density_1080: float = 650
    fall: float = 190
    wind: float = 0
    drift: float = 70
    wobble: float = 120
    turbulence: float = 8
    min_flake_size: float = 1.2
    max_flake_size: float = 5.5
    flake_size: float = 2.8
    flake_size_jitter: float = 1.1
    glow: float = 2.6
    opacity: float = 0.55
    opacity_jitter: float = 0.12
    blur: float = 1.2

    RANGES: ClassVar[Dict[str, Tuple[float, float]]] = {
        'density_1080': (50, 2500),
        'fall': (20, 900),
        'wind': (-400, 400),
        'drift': (0, 350),
        'wobble': (0, 320),
        'turbulence': (1, 30),
        'min_flake_size': (0.6, 10),
        'max_flake_size': (0.6, 14),
        'flake_size': (0.6, 14),
        'flake_size_jitter': (0.01, 7),
        'glow': (0, 6),
        'opacity': (0.05, 1),
        'opacity_jitter': (0, 0.6),
        'blur': (0, 6),
    }
    SIZE_FIELDS: ClassVar[Tuple[str, str, str, str]] = (
        'min_flake_size', 'max_flake_size', 'flake_size', 'flake_size_jitter'
    )
    SIZE_LIMITS: ClassVar[Tuple[Tuple[float, float], Tuple[float, float]]] = ((0.6, 10), (0.6, 14))
    JSON_KEYS: ClassVar[Dict[str, str]] = {
        'density_1080': 'density1080',
        'fall': 'fall',
        'wind': 'wind',
        'drift': 'drift',
        'wobble': 'wobble',
        'turbulence': 'turbulence',
        'min_flake_size': 'minFlakeSize',
        'max_flake_size': 'maxFlakeSize',
        'flake_size': 'flakeSize',
        'flake_size_jitter': 'flakeSizeJitter',
        'glow': 'glow',
        'opacity': 'opacity',
        'opacity_jitter': 'opacityJitter',
        'blur': 'blur',
    }

    @property
    def margin(self) -> float:
        return 40.0

    @property
    def wobble_cycles(self) -> int:
        """Whole wobble cycles per loop; fractional turbulence is rounded"""
        return max(1, int(round(self.turbulence)))


PARAMETER_TYPES = {
    'rain': RainParameters,
    'snow': SnowParameters,
}


@dataclass(frozen=True)
class SessionSettings:
    """Everything a user tunes in one session"""

    kind: str = 'rain'
    width: int = 1280
    height: int = 720
    fps: float = 30
    duration: float = 8.0
    seed: int = 12345
    rain: RainParameters = field(default_factory=RainParameters)
    snow: SnowParameters = field(default_factory=SnowParameters)
    background: str = 'transparent'

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def loop_period(self) -> float:
        return loop_period(self.duration)

    @property
    def total_frames(self) -> int:
        """Frames in one exported loop"""
        return max(1, int(math.floor(self.duration * self.fps)))

    @property
    def params(self) -> WeatherParameters:
        """Parameters of the active kind"""
        return getattr(self, self.kind)

    @property
    def particle_count(self) -> int:
        return particle_count(self.params.density_1080, self.width, self.height)

    def with_params(self, **overrides) -> 'SessionSettings':
        """Override fields of the active kind's parameters"""
        return replace(self, **{self.kind: self.params.update(**overrides)})

    def with_size(self, text: str) -> 'SessionSettings':
        """Apply a "WxH" string; malformed sizes fall back to 1280x720"""
        parsed = parse_size(text) or (1280, 720)
        return replace(self, width=parsed[0], height=parsed[1])

    def validated(self) -> 'SessionSettings':
        """Check and clamp the whole session before building particles"""
        if self.kind not in KINDS:
            raise InvalidParameterError(
                f"Unknown weather kind: {self.kind!r}. Available: {list(KINDS)}"
            )
        if self.background not in BACKGROUNDS:
            raise InvalidParameterError(
                f"Unknown background: {self.background!r}. Available: {list(BACKGROUNDS)}"
            )
        if not MathUtils.is_finite(self.width, self.height, self.fps, self.duration, self.seed):
            raise InvalidParameterError("Size, fps, duration and seed must be finite numbers")
        if self.duration <= 0:
            raise InvalidParameterError(f"Duration must be positive, got {self.duration}")
        if self.fps < 1:
            raise InvalidParameterError(f"FPS must be at least 1, got {self.fps}")
        if self.width < MIN_FRAME_SIDE or self.height < MIN_FRAME_SIDE:
            raise InvalidParameterError(
                f"Frame must be at least {MIN_FRAME_SIDE}x{MIN_FRAME_SIDE}, got {self.size}"
            )
        return replace(
            self,
            width=int(self.width),
            height=int(self.height),
            fps=_whole_or_float(self.fps),
            duration=float(self.duration),
            seed=int(self.seed) & 0xFFFFFFFF,
            rain=self.rain.validated(),
            snow=self.snow.validated(),
        )
