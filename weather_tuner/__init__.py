"""
Weather Tuner - Seamless looping rain and snow overlays
"""

from .core import (
    SessionSettings, RainParameters, SnowParameters,
    Canvas, Lcg, gaussian, MathUtils,
    WeatherTunerError, InvalidParameterError, CaptureUnavailableError,
    ExportError, PreviewCancelled,
)
from .procedural import WEATHER, get_weather, create_weather, build_batch, ParticleBatch
from .core.exporter import OverlayExporter, ExportResult, export_clip, frame_times, select_sink
from .core.preview import PreviewLoop, PreviewWindow, check_pygame_available
from .core.presets import (
    PresetManager, WeatherPreset, apply_preset,
    settings_to_json, settings_from_json, save_settings, load_settings,
    generator_command,
)

__version__ = "0.1.0"
__all__ = [
    'SessionSettings',
    'RainParameters',
    'SnowParameters',
    'Canvas',
    'Lcg',
    'gaussian',
    'MathUtils',
    'WeatherTunerError',
    'InvalidParameterError',
    'CaptureUnavailableError',
    'ExportError',
    'PreviewCancelled',
    'WEATHER',
    'get_weather',
    'create_weather',
    'build_batch',
    'ParticleBatch',
    'OverlayExporter',
    'ExportResult',
    'export_clip',
    'frame_times',
    'select_sink',
    'PreviewLoop',
    'PreviewWindow',
    'check_pygame_available',
    'PresetManager',
    'WeatherPreset',
    'apply_preset',
    'settings_to_json',
    'settings_from_json',
    'save_settings',
    'load_settings',
    'generator_command',
    'build_particles',
    'render_frame',
    'export',
    'preview',
]


def build_particles(
    kind: str = 'rain',
    size: str = '1280x720',
    seed: int = 12345,
    **params
) -> ParticleBatch:
    """
    Build the particle batch for a weather kind.

    Args:
        kind: 'rain' or 'snow'
        size: Frame size as "WxH"
        seed: RNG seed
        **params: Overrides for the kind's parameters

    Returns:
        Immutable ParticleBatch
    """
    settings = SessionSettings(kind=kind, seed=seed).with_size(size)
    if params:
        settings = settings.with_params(**params)
    settings = settings.validated()
    return build_batch(settings.kind, settings.params, settings.width, settings.height, settings.seed)


def render_frame(
    settings: SessionSettings,
    t: float,
    quality: str = 'high',
    particles: ParticleBatch = None
):
    """
    Render a single overlay frame at loop time t.

    Args:
        settings: Session to render
        t: Time in seconds (wrapped into the loop period)
        quality: Rasterisation quality ('fast', 'high', 'best')
        particles: Reuse an existing batch instead of building one

    Returns:
        HxWx4 uint8 RGBA array composed over settings.background
    """
    settings = settings.validated()
    weather = create_weather(settings.kind, settings.params)
    if particles is None:
        particles = weather.create_batch(settings.width, settings.height, settings.seed)

    canvas = Canvas(settings.width, settings.height, quality)
    weather.render(canvas, particles, t, settings.width, settings.height, settings.loop_period)
    return canvas.to_rgba(settings.background)


def export(
    settings: SessionSettings,
    output_path: str = None,
    format: str = 'webm',
    quality: str = 'high',
    **kwargs
) -> ExportResult:
    """
    Export one seamless loop of the session.

    Args:
        settings: Session to export
        output_path: Output path (auto-generated if None)
        format: Output format ('webm', 'mp4', 'gif', 'frames')
        quality: Rasterisation quality
        **kwargs: Passed to export_clip (bitrate, fallback)

    Returns:
        ExportResult describing the written clip
    """
    if output_path is None:
        output_path = f"{settings.kind}_alpha.{format if format != 'frames' else 'png'}"
    return export_clip(settings, output_path, format=format, quality=quality, **kwargs)


def preview(settings: SessionSettings = None, **kwargs) -> None:
    """Open the live preview window (requires pygame)"""
    from .core.preview import preview as _preview
    _preview(settings or SessionSettings(), **kwargs)
