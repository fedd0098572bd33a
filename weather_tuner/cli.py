"""
Weather Tuner CLI - seamless looping rain and snow overlays

Usage:
    weather-tuner <command> [kind] [options]

Examples:
    weather-tuner export rain                          # 8s 1280x720 rain loop
    weather-tuner export snow --preset blizzard -o snow.webm
    weather-tuner preview rain --set angle_deg=30      # Live window (pygame)
    weather-tuner settings snow -o snow.yaml           # Save settings
    weather-tuner command rain --size 1920x1080        # Offline render command
    weather-tuner presets --info storm_slant
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Dict, List, Optional

from .core.errors import WeatherTunerError
from .core.exporter import DEFAULT_BITRATE, FORMATS, export_clip
from .core.params import BACKGROUNDS, KINDS, PARAMETER_TYPES, SessionSettings, parse_size
from .core.presets import (
    PresetManager, apply_preset, generator_command, load_settings, save_settings,
    settings_to_json,
)
from .core.preview import PreviewConfig, check_pygame_available, preview
from .core.utils import setup_logging


logger = logging.getLogger(__name__)


def _add_session_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        'kind',
        type=str,
        nargs='?',
        default=None,
        choices=list(KINDS),
        help='Weather kind (default: rain, or the mode in --settings)'
    )

    parser.add_argument(
        '--settings',
        type=str,
        default=None,
        metavar='FILE',
        help='Load settings from a .json or .yaml file'
    )

    parser.add_argument(
        '--preset',
        type=str,
        default=None,
        metavar='NAME',
        help='Start from a preset (e.g., drizzle, blizzard)'
    )

    parser.add_argument(
        '--size',
        type=str,
        default=None,
        metavar='WxH',
        help='Frame size (default: 1280x720, sides >= 16)'
    )

    parser.add_argument(
        '--fps',
        type=int,
        default=None,
        help='Frames per second (default: 30)'
    )

    parser.add_argument(
        '--duration',
        type=float,
        default=None,
        help='Loop length in seconds (default: 8)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='RNG seed (default: 12345)'
    )

    parser.add_argument(
        '--background',
        type=str,
        default=None,
        choices=list(BACKGROUNDS),
        help='Backdrop behind the overlay (default: transparent)'
    )

    parser.add_argument(
        '--set',
        type=str,
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Override a parameter of the active kind (repeatable, e.g. angle_deg=30 or streakLen=50)'
    )

    parser.add_argument(
        '--min-size',
        type=float,
        default=None,
        help='Minimum drop/flake size (base size and jitter follow)'
    )

    parser.add_argument(
        '--max-size',
        type=float,
        default=None,
        help='Maximum drop/flake size (base size and jitter follow)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Debug logging'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        metavar='PATH',
        help='Also log to a rotating file'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='weather-tuner',
        description="Seamless looping rain and snow overlays",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  export    - Render one loop to WebM/MP4/GIF/PNG frames
  preview   - Live preview window (requires pygame)
  settings  - Print or save the settings text
  command   - Print the offline render command
  presets   - List presets or show one

Examples:
  %(prog)s export rain
  %(prog)s export snow --preset blizzard --background checker -o blizzard.webm
  %(prog)s preview rain --set angle_deg=30
  %(prog)s presets --tag storm
        """
    )
    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    # === EXPORT ===
    export_parser = subparsers.add_parser('export', help='Render one loop to a clip')
    _add_session_arguments(export_parser)
    export_parser.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Output path (default: <kind>_alpha.<format>)'
    )
    export_parser.add_argument(
        '--format',
        type=str,
        default='webm',
        choices=list(FORMATS),
        help='Output format (default: webm)'
    )
    export_parser.add_argument(
        '--bitrate',
        type=int,
        default=DEFAULT_BITRATE,
        help='Video bitrate in bits/s (default: 6000000)'
    )
    export_parser.add_argument(
        '-q', '--quality',
        type=str,
        default='high',
        choices=['fast', 'high', 'best'],
        help='Rasterisation quality: fast (aliased), high (2x supersampled), best (4x)'
    )
    export_parser.add_argument(
        '--no-fallback',
        action='store_true',
        help='Fail instead of falling back to another format'
    )

    # === PREVIEW ===
    preview_parser = subparsers.add_parser('preview', help='Open the live preview window')
    _add_session_arguments(preview_parser)
    preview_parser.add_argument(
        '-q', '--quality',
        type=str,
        default='fast',
        choices=['fast', 'high', 'best'],
        help='Rasterisation quality while previewing (default: fast)'
    )

    # === SETTINGS ===
    settings_parser = subparsers.add_parser('settings', help='Print or save the settings text')
    _add_session_arguments(settings_parser)
    settings_parser.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Write to a .json or .yaml file instead of printing'
    )

    # === COMMAND ===
    command_parser = subparsers.add_parser('command', help='Print the offline render command')
    _add_session_arguments(command_parser)

    # === PRESETS ===
    presets_parser = subparsers.add_parser('presets', help='List presets or show one')
    presets_parser.add_argument(
        '--info',
        type=str,
        default=None,
        metavar='NAME',
        help='Show detailed info about a preset'
    )
    presets_parser.add_argument('--tag', type=str, default=None, help='Only presets with this tag')
    presets_parser.add_argument('--kind', type=str, default=None, choices=list(KINDS))
    presets_parser.add_argument(
        '--presets-dir',
        type=str,
        default=None,
        metavar='DIR',
        help='User presets directory (default: ~/.weather-tuner/presets)'
    )
    presets_parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    presets_parser.add_argument('--log-file', type=str, default=None, metavar='PATH')

    return parser


def parse_overrides(items: List[str], kind: str) -> Dict[str, float]:
    """
    Parse KEY=VALUE overrides for one kind.

    Keys may use python names (streak_len) or settings-file names (streakLen).
    """
    params_type = PARAMETER_TYPES[kind]
    reverse = {v: k for k, v in params_type.JSON_KEYS.items()}
    overrides = {}
    for item in items:
        if '=' not in item:
            raise ValueError(f"Expected KEY=VALUE, got {item!r}")
        key, value = item.split('=', 1)
        key = key.strip()
        name = reverse.get(key, key.replace('-', '_'))
        try:
            overrides[name] = float(value)
        except ValueError:
            raise ValueError(f"Value for {key} must be a number, got {value!r}") from None
    return overrides


def session_from_args(args: argparse.Namespace) -> SessionSettings:
    """
    Build the session from CLI arguments.

    Order: settings file, kind, preset, session options, --set overrides,
    then the paired size bounds.
    """
    settings = load_settings(args.settings) if args.settings else SessionSettings()

    if args.kind:
        settings = replace(settings, kind=args.kind)

    if args.preset:
        preset = PresetManager().get(args.preset)
        if preset is None:
            raise ValueError(f"Preset '{args.preset}' not found (see: weather-tuner presets)")
        settings = apply_preset(settings, preset)
        if args.kind and args.kind != preset.kind:
            logger.warning("Preset %s is for %s; switching kind", preset.name, preset.kind)
        print(f"Using preset: {preset.name} ({preset.description})")

    if args.size:
        size = parse_size(args.size)
        if size is None:
            raise ValueError(f"Invalid size {args.size!r}: expected WxH with sides >= 16")
        settings = replace(settings, width=size[0], height=size[1])

    for name in ('fps', 'duration', 'seed', 'background'):
        value = getattr(args, name)
        if value is not None:
            settings = replace(settings, **{name: value})

    if args.set:
        settings = settings.with_params(**parse_overrides(args.set, settings.kind))

    if args.min_size is not None or args.max_size is not None:
        params = settings.params
        new_min = args.min_size if args.min_size is not None else params.min_size
        new_max = args.max_size if args.max_size is not None else params.max_size
        settings = replace(settings, **{settings.kind: params.with_size_bounds(new_min, new_max)})

    return settings.validated()


def _run_export(args: argparse.Namespace) -> int:
    settings = session_from_args(args)
    ext = 'png' if args.format == 'frames' else args.format
    output = args.output or f"{settings.kind}_alpha.{ext}"

    print(f"Exporting: {settings.kind} {settings.size} @ {settings.fps} fps, {settings.duration:g}s")
    print(f"Particles: {settings.particle_count}  Seed: {settings.seed}  Background: {settings.background}")

    result = export_clip(
        settings,
        output,
        format=args.format,
        bitrate=args.bitrate,
        quality=args.quality,
        fallback=not args.no_fallback,
    )
    print(f"Frames: {result.frames} ({result.encoding})")
    print(f"Output: {result.path}")
    print("Done!")
    return 0


def _run_preview(args: argparse.Namespace) -> int:
    if not check_pygame_available():
        print("Error: Preview requires pygame. Install with: pip install pygame")
        return 1
    settings = session_from_args(args)
    preview(settings, PreviewConfig(quality=args.quality))
    return 0


def _run_settings(args: argparse.Namespace) -> int:
    settings = session_from_args(args)
    if args.output:
        path = save_settings(settings, args.output)
        print(f"Saved: {path}")
    else:
        print(settings_to_json(settings))
    return 0


def _run_command(args: argparse.Namespace) -> int:
    print(generator_command(session_from_args(args)))
    return 0


def _run_presets(args: argparse.Namespace) -> int:
    manager = PresetManager(args.presets_dir)

    if args.info:
        info = manager.get_preset_info(args.info)
        if info is None:
            print(f"Error: Preset '{args.info}' not found")
            print("Use 'weather-tuner presets' to see available presets")
            return 1

        print(f"Preset: {info['name']}")
        print(f"Description: {info['description']}")
        print(f"Kind: {info['kind']}")
        print("\nParameters:")
        for key, value in info['params'].items():
            print(f"  {key}: {value}")
        print(f"\nTags: {', '.join(info['tags'])}")
        print(f"Source: {'user' if info['is_user'] else 'built-in'}")
        return 0

    if args.tag:
        names = manager.list_by_tag(args.tag)
    elif args.kind:
        names = manager.list_by_kind(args.kind)
    else:
        names = manager.list_all()

    print("Available Weather Presets:\n")
    for kind in KINDS:
        kind_names = [n for n in names if manager.get(n).kind == kind]
        if not kind_names:
            continue
        print(f"  [{kind.upper()}]")
        for name in kind_names:
            print(f"    {name:<20} - {manager.get(name).description}")
        print()

    print(f"Total: {len(names)} presets")
    print("\nUsage: --preset <name>")
    print("Details: weather-tuner presets --info <name>")
    return 0


COMMANDS = {
    'export': _run_export,
    'preview': _run_preview,
    'settings': _run_settings,
    'command': _run_command,
    'presets': _run_presets,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging('DEBUG' if args.verbose else 'INFO', args.log_file)

    try:
        return COMMANDS[args.command](args)
    except (WeatherTunerError, ValueError, OSError) as e:
        print(f"Error: {e}")
        logger.debug("Command %s failed", args.command, exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
