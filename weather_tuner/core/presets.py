"""
Weather Presets Library - named parameter sets and settings files
Allows users to start from a tuned look with a single flag
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import InvalidParameterError
from .params import PARAMETER_TYPES, RainParameters, SessionSettings, SnowParameters, parse_size


logger = logging.getLogger(__name__)


# ============================================================================
# Preset Data Structures
# ============================================================================

@dataclass
class WeatherPreset:
    """A single weather preset"""

    name: str
    description: str = ""

    kind: str = "rain"

    # Overrides for the kind's parameters (python or settings-file names)
    params: Dict[str, float] = field(default_factory=dict)

    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty fields, in the layout of a preset YAML file"""
        return {k: v for k, v in asdict(self).items() if v}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WeatherPreset':
        """Build from a YAML mapping, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def overrides(self) -> Dict[str, float]:
        """Parameter overrides keyed by python field name"""
        params_type = PARAMETER_TYPES.get(self.kind)
        if params_type is None:
            raise InvalidParameterError(f"Preset {self.name!r} has unknown kind {self.kind!r}")
        reverse = {v: k for k, v in params_type.JSON_KEYS.items()}
        return {reverse.get(k, k): v for k, v in self.params.items()}


# ============================================================================
# Built-in Presets
# ============================================================================

BUILTIN_PRESETS: Dict[str, Dict[str, Any]] = {
    # ==================== RAIN ====================
    "drizzle": {
        "name": "drizzle",
        "description": "Sparse, fine rain that barely slants",
        "kind": "rain",
        "params": {
            "density_1080": 450,
            "angle_deg": 6,
            "speed": 1100,
            "speed_jitter": 140,
            "streak_len": 18,
            "thickness": 0.8,
            "min_drop_size": 0.6,
            "max_drop_size": 1.6,
            "opacity": 0.3,
        },
        "tags": ["rain", "light", "calm"],
    },

    "downpour": {
        "name": "downpour",
        "description": "Dense heavy rain with long streaks",
        "kind": "rain",
        "params": {
            "density_1080": 2600,
            "angle_deg": 10,
            "speed": 2400,
            "speed_jitter": 320,
            "streak_len": 60,
            "thickness": 1.4,
            "min_drop_size": 1.0,
            "max_drop_size": 3.2,
            "opacity": 0.5,
            "blur": 1,
        },
        "tags": ["rain", "heavy"],
    },

    "storm_slant": {
        "name": "storm_slant",
        "description": "Wind-driven storm rain at a steep angle",
        "kind": "rain",
        "params": {
            "density_1080": 1800,
            "angle_deg": 38,
            "speed": 2800,
            "speed_jitter": 500,
            "streak_len": 70,
            "thickness": 1.3,
            "opacity": 0.46,
            "opacity_jitter": 0.18,
        },
        "tags": ["rain", "heavy", "wind", "storm"],
    },

    # ==================== SNOW ====================
    "light_snow": {
        "name": "light_snow",
        "description": "Slow scattered flakes with a soft glow",
        "kind": "snow",
        "params": {
            "density_1080": 300,
            "fall": 110,
            "drift": 40,
            "wobble": 90,
            "turbulence": 4,
            "min_flake_size": 1.0,
            "max_flake_size": 4.0,
            "glow": 2.2,
            "opacity": 0.5,
        },
        "tags": ["snow", "light", "calm"],
    },

    "blizzard": {
        "name": "blizzard",
        "description": "Dense fast snow pushed sideways by wind",
        "kind": "snow",
        "params": {
            "density_1080": 2000,
            "fall": 520,
            "wind": 280,
            "drift": 160,
            "wobble": 60,
            "turbulence": 14,
            "min_flake_size": 0.8,
            "max_flake_size": 4.5,
            "glow": 1.4,
            "opacity": 0.6,
            "blur": 1,
        },
        "tags": ["snow", "heavy", "wind", "storm"],
    },

    "snow_globe": {
        "name": "snow_globe",
        "description": "Big drifting flakes swirling in place",
        "kind": "snow",
        "params": {
            "density_1080": 500,
            "fall": 70,
            "drift": 120,
            "wobble": 260,
            "turbulence": 3,
            "min_flake_size": 2.5,
            "max_flake_size": 9.0,
            "glow": 3.0,
            "opacity": 0.65,
            "blur": 2,
        },
        "tags": ["snow", "stylized"],
    },
}


# ============================================================================
# Preset Manager
# ============================================================================

class PresetManager:
    """
    Built-in and user weather presets.

    User presets live as YAML files in one directory. A file holds either
    a single preset (named after the file) or a `presets:` mapping of
    several. A user preset shadows a built-in one of the same name.
    """

    def __init__(self, user_presets_dir: Optional[Path] = None):
        """
        Args:
            user_presets_dir: Where user presets are read and written
                              (default: ~/.weather-tuner/presets)
        """
        self.user_presets_dir = Path(user_presets_dir or Path.home() / '.weather-tuner' / 'presets')
        self.user_presets_dir.mkdir(parents=True, exist_ok=True)

        self._builtin: Dict[str, WeatherPreset] = {
            name: WeatherPreset.from_dict(data) for name, data in BUILTIN_PRESETS.items()
        }
        self._user: Dict[str, WeatherPreset] = {}
        self._files: Dict[str, Path] = {}
        self.reload()

    def reload(self) -> None:
        """Re-read every YAML file in the user directory"""
        self._user.clear()
        self._files.clear()
        for path in sorted(self.user_presets_dir.glob('*.yaml')):
            try:
                entries = self._read_file(path)
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning("Could not load preset file %s: %s", path, e)
                continue
            for preset in entries:
                self._user[preset.name] = preset
                self._files[preset.name] = path
        logger.debug("Loaded %d user preset(s) from %s", len(self._user), self.user_presets_dir)

    @staticmethod
    def _read_file(path: Path) -> List[WeatherPreset]:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            return []
        if 'presets' not in data:
            return [WeatherPreset.from_dict({**data, 'name': path.stem})]
        return [
            WeatherPreset.from_dict({**entry, 'name': name})
            for name, entry in data['presets'].items()
        ]

    @property
    def _all(self) -> Dict[str, WeatherPreset]:
        return {**self._builtin, **self._user}

    def get(self, name: str) -> Optional[WeatherPreset]:
        return self._all.get(name)

    def exists(self, name: str) -> bool:
        return name in self._all

    def list_all(self) -> List[str]:
        return sorted(self._all)

    def list_by_tag(self, tag: str) -> List[str]:
        """Names of presets carrying the tag (case-insensitive)"""
        wanted = tag.lower()
        return sorted(
            name for name, preset in self._all.items()
            if wanted in (t.lower() for t in preset.tags)
        )

    def list_by_kind(self, kind: str) -> List[str]:
        return sorted(name for name, preset in self._all.items() if preset.kind == kind)

    def list_tags(self) -> List[str]:
        return sorted({tag for preset in self._all.values() for tag in preset.tags})

    def search(self, query: str) -> List[str]:
        """Names whose name, description or tags contain the query"""
        needle = query.lower()

        def matches(name: str, preset: WeatherPreset) -> bool:
            haystack = [name, preset.description] + list(preset.tags)
            return any(needle in text.lower() for text in haystack)

        return sorted(name for name, preset in self._all.items() if matches(name, preset))

    def save_preset(self, preset: WeatherPreset, filename: Optional[str] = None) -> Path:
        """
        Write a preset to its own YAML file in the user directory.

        Returns:
            Path of the written file (<name>.yaml unless filename is given)
        """
        stem = filename or preset.name
        path = self.user_presets_dir / (stem if stem.endswith('.yaml') else f"{stem}.yaml")
        with open(path, 'w') as f:
            yaml.safe_dump(preset.to_dict(), f, default_flow_style=False, sort_keys=False)

        self._user[preset.name] = preset
        self._files[preset.name] = path
        logger.info("Saved preset %s to %s", preset.name, path)
        return path

    def delete_preset(self, name: str) -> bool:
        """
        Remove a user preset and its file.

        Built-in presets cannot be deleted; returns False for them and for
        unknown names. A file holding several presets is left in place.
        """
        if name not in self._user:
            return False

        path = self._files.pop(name)
        if path.stem == name and path.exists():
            path.unlink()
        del self._user[name]
        logger.info("Deleted preset %s", name)
        return True

    def preset_from_settings(
        self,
        name: str,
        settings: SessionSettings,
        description: str = "",
        tags: Optional[List[str]] = None
    ) -> WeatherPreset:
        """Capture the active kind's parameters as a preset"""
        return WeatherPreset(
            name=name,
            description=description,
            kind=settings.kind,
            params=settings.params.to_dict(),
            tags=list(tags or []),
        )

    def get_preset_info(self, name: str) -> Optional[Dict[str, Any]]:
        preset = self.get(name)
        if preset is None:
            return None
        info = preset.to_dict()
        info.update(
            description=preset.description,
            params=dict(preset.params),
            tags=list(preset.tags),
            is_builtin=name in self._builtin,
            is_user=name in self._user,
        )
        return info



# ============================================================================
# Preset Application
# ============================================================================

def apply_preset(settings: SessionSettings, preset: WeatherPreset) -> SessionSettings:
    """
    Switch the session to the preset's kind and apply its overrides.

    Size bounds in the preset go through the paired setter, so base size
    and jitter are re-derived from them.
    """
    current = getattr(settings, preset.kind)
    updated = current.update(**preset.overrides())
    return replace(settings, kind=preset.kind, **{preset.kind: updated})


# ============================================================================
# Settings Text
# ============================================================================

def _plain_number(value: Any) -> Any:
    """Integral floats as ints, so 1200.0 is written as 1200"""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def settings_to_dict(settings: SessionSettings) -> Dict[str, Any]:
    return {
        'mode': settings.kind,
        'size': settings.size,
        'fps': _plain_number(settings.fps),
        'duration': _plain_number(settings.duration),
        'seed': settings.seed,
        'rain': {k: _plain_number(v) for k, v in settings.rain.to_json_dict().items()},
        'snow': {k: _plain_number(v) for k, v in settings.snow.to_json_dict().items()},
    }


def settings_from_dict(data: Dict[str, Any]) -> SessionSettings:
    """
    Parse the settings structure.

    Unknown keys are ignored and missing keys keep their defaults. A
    malformed size falls back to 1280x720.
    """
    if not isinstance(data, dict):
        raise InvalidParameterError(f"Settings must be a mapping, got {type(data).__name__}")

    defaults = SessionSettings()
    width, height = parse_size(data.get('size', defaults.size)) or (defaults.width, defaults.height)
    return SessionSettings(
        kind=data.get('mode', data.get('kind', defaults.kind)),
        width=width,
        height=height,
        fps=data.get('fps', defaults.fps),
        duration=data.get('duration', defaults.duration),
        seed=data.get('seed', defaults.seed),
        rain=RainParameters.from_dict(data.get('rain') or {}),
        snow=SnowParameters.from_dict(data.get('snow') or {}),
        background=data.get('background', defaults.background),
    )


def settings_to_json(settings: SessionSettings) -> str:
    """Settings as indented JSON text"""
    return json.dumps(settings_to_dict(settings), indent=2)


def settings_from_json(text: str) -> SessionSettings:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidParameterError(f"Invalid settings JSON: {e}") from e
    return settings_from_dict(data)


def save_settings(settings: SessionSettings, path: Union[str, Path]) -> Path:
    """
    Write settings to a .json or .yaml/.yml file.

    Returns:
        Path to saved file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() in ('.yaml', '.yml'):
        with open(path, 'w') as f:
            yaml.safe_dump(settings_to_dict(settings), f, default_flow_style=False, sort_keys=False)
    else:
        path.write_text(settings_to_json(settings) + "\n")

    logger.info("Saved settings to %s", path)
    return path


def load_settings(path: Union[str, Path]) -> SessionSettings:
    """Read settings from a .json or .yaml/.yml file"""
    path = Path(path)
    text = path.read_text()

    if path.suffix.lower() in ('.yaml', '.yml'):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InvalidParameterError(f"Invalid settings YAML in {path}: {e}") from e
        return settings_from_dict(data)
    return settings_from_json(text)


# ============================================================================
# Generator Command
# ============================================================================

RAIN_COMMAND_FLAGS = (
    ('density', 'density_1080'),
    ('angle', 'angle_deg'),
    ('speed', 'speed'),
    ('speed-jitter', 'speed_jitter'),
    ('streak-len', 'streak_len'),
    ('drop-size', 'drop_size'),
    ('drop-size-jitter', 'drop_size_jitter'),
    ('thickness', 'thickness'),
    ('opacity', 'opacity'),
    ('opacity-jitter', 'opacity_jitter'),
    ('blur', 'blur'),
)

SNOW_COMMAND_FLAGS = (
    ('density', 'density_1080'),
    ('fall', 'fall'),
    ('wind', 'wind'),
    ('drift', 'drift'),
    ('wobble', 'wobble'),
    ('turbulence', 'turbulence'),
    ('flake-size', 'flake_size'),
    ('flake-size-jitter', 'flake_size_jitter'),
    ('glow', 'glow'),
    ('opacity', 'opacity'),
    ('opacity-jitter', 'opacity_jitter'),
    ('blur', 'blur'),
)

COMMAND_CRF = 20


def generator_command(settings: SessionSettings) -> str:
    """
    Command line that re-renders the active kind offline.

    Example:
        python3 procedural_overlay.py rain --out rain_alpha.webm --duration 8
        --fps 30 --size 1280x720 --density 1200 ... --crf 20
    """
    kind = settings.kind
    flags = RAIN_COMMAND_FLAGS if kind == 'rain' else SNOW_COMMAND_FLAGS
    params = settings.params

    parts = [
        "python3", "procedural_overlay.py", kind,
        "--out", f"{kind}_alpha.webm",
        "--duration", str(_plain_number(settings.duration)),
        "--fps", str(_plain_number(settings.fps)),
        "--size", settings.size,
    ]
    for flag, name in flags:
        parts += [f"--{flag}", str(_plain_number(getattr(params, name)))]
    parts += ["--crf", str(COMMAND_CRF)]
    return " ".join(parts)


# ============================================================================
# Global Instance & Convenience Functions
# ============================================================================

_manager: Optional[PresetManager] = None


def get_preset_manager() -> PresetManager:
    """Shared manager over the default user directory"""
    global _manager
    if _manager is None:
        _manager = PresetManager()
    return _manager


def get_preset(name: str) -> Optional[WeatherPreset]:
    return get_preset_manager().get(name)


def list_presets(tag: Optional[str] = None, kind: Optional[str] = None) -> List[str]:
    """Preset names, filtered by tag or kind when given"""
    manager = get_preset_manager()

    if tag:
        return manager.list_by_tag(tag)
    elif kind:
        return manager.list_by_kind(kind)
    else:
        return manager.list_all()
