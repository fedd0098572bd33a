"""
Overlay Exporter - samples one loop period and feeds it to a capture sink

The exporter rebuilds its own particle batch from the session seed, renders
exactly floor(fps * duration) evenly spaced frames over [0, T) and hands them
to the sink one at a time. Each write returns only after the sink has
consumed the frame, and the returned frame count is checked, so the clip
holds exactly one encoded frame per sample in order.
"""

import functools
import logging
import math
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import imageio.v2 as iio
import imageio_ffmpeg
import numpy as np
from PIL import Image

from .canvas import Canvas
from .errors import CaptureUnavailableError, ExportError
from .params import SessionSettings, loop_period
from ..procedural import create_weather


logger = logging.getLogger(__name__)

DEFAULT_BITRATE = 6_000_000

# Encoders tried per container, best first
VIDEO_CODECS = {
    'webm': ('libvpx-vp9', 'libvpx'),
    'mp4': ('libx264', 'mpeg4'),
}
ALPHA_CODECS = {'libvpx-vp9', 'libvpx'}

FORMATS = ('webm', 'mp4', 'gif', 'frames')
FALLBACK_ORDER = ('webm', 'mp4', 'gif')


def frame_times(fps: float, duration: float) -> List[float]:
    """
    Sample times for one exported loop.

    N = max(1, floor(duration * fps)) samples at t = f / N * T, f = 0..N-1.
    The endpoint t = T is left out since it is the same frame as t = 0.
    """
    total = max(1, int(math.floor(duration * fps)))
    period = loop_period(duration)
    return [(f / total) * period for f in range(total)]


@functools.lru_cache(maxsize=1)
def available_encoders() -> frozenset:
    """
    Video encoders the bundled ffmpeg reports.

    Empty when no ffmpeg executable can be found.
    """
    try:
        exe = imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        logger.warning("ffmpeg not available: %s", e)
        return frozenset()

    try:
        proc = subprocess.run(
            [exe, '-hide_banner', '-encoders'],
            capture_output=True, text=True, check=True, timeout=30
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning("Could not list ffmpeg encoders: %s", e)
        return frozenset()

    encoders = set()
    for line in proc.stdout.splitlines():
        parts = line.split()
        # Encoder rows look like " V....D libvpx-vp9   libvpx VP9 ..."
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] == 'V':
            encoders.add(parts[1])
    logger.debug("ffmpeg reports %d video encoders", len(encoders))
    return frozenset(encoders)


# =============================================================================
# Capture sinks
# =============================================================================

class CaptureSink(ABC):
    """
    Consumer of rendered frames at a fixed rate.

    Lifecycle: open() -> write(frame) * N -> close(). write() blocks until
    the frame is consumed and returns how many frames have been consumed.
    """

    encoding: str = "raw"

    def __init__(self, path: Union[str, Path], fps: float):
        self.path = Path(path)
        self.fps = fps
        self.frames_written = 0
        self.is_open = False

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.frames_written = 0
        self.is_open = True

    def write(self, frame: np.ndarray) -> int:
        if not self.is_open:
            raise ExportError(f"{type(self).__name__} is not open")
        self._consume(frame)
        self.frames_written += 1
        return self.frames_written

    @abstractmethod
    def _consume(self, frame: np.ndarray) -> None:
        """Encode or store one HxWx4 RGBA frame"""
        pass

    def close(self) -> Path:
        """Finalize and return the clip location"""
        self.is_open = False
        return self.path

    def abort(self) -> None:
        """Release resources after a failed export"""
        self.is_open = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False


class VideoSink(CaptureSink):
    """ffmpeg-encoded clip written through imageio"""

    def __init__(
        self,
        path: Union[str, Path],
        fps: float,
        codec: str = 'libvpx-vp9',
        bitrate: Optional[int] = DEFAULT_BITRATE,
        transparent: bool = False
    ):
        super().__init__(path, fps)
        self.codec = codec
        self.bitrate = bitrate
        self.encoding = codec
        # Alpha only survives in VP8/VP9 WebM
        self.keep_alpha = transparent and codec in ALPHA_CODECS
        self._writer = None

    @staticmethod
    def available(codec: str) -> bool:
        return codec in available_encoders()

    def open(self) -> None:
        super().open()
        options = {
            'format': 'FFMPEG',
            'mode': 'I',
            'fps': self.fps,
            'codec': self.codec,
            'macro_block_size': 1,
            'ffmpeg_log_level': 'error',
            'pixelformat': 'yuva420p' if self.keep_alpha else 'yuv420p',
        }
        if self.bitrate:
            options['bitrate'] = self.bitrate
            options['quality'] = None
        if self.codec == 'libvpx-vp9':
            # VP9 defaults to a slow two-pass-quality path
            options['output_params'] = ['-deadline', 'realtime', '-cpu-used', '8']
        self._writer = iio.get_writer(str(self.path), **options)
        logger.info("Encoding %s with %s at %s fps", self.path, self.codec, self.fps)

    def _consume(self, frame: np.ndarray) -> None:
        if self.keep_alpha:
            self._writer.append_data(frame)
            return
        # No alpha channel in the stream: flatten over black
        rgb = frame[:, :, :3].astype(np.float32) * (frame[:, :, 3:4].astype(np.float32) / 255.0)
        self._writer.append_data(np.clip(rgb + 0.5, 0, 255).astype(np.uint8))

    def close(self) -> Path:
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        return super().close()

    def abort(self) -> None:
        if self._writer is not None:
            try:
                self._writer.close()
            except Exception as e:
                logger.debug("Ignoring writer close error after failure: %s", e)
            self._writer = None
        super().abort()


class GifSink(CaptureSink):
    """Animated GIF through Pillow, looping forever"""

    encoding = "gif"

    def __init__(self, path: Union[str, Path], fps: float, transparent: bool = False):
        super().__init__(path, fps)
        self.transparent = transparent
        self._images: List[Image.Image] = []

    def open(self) -> None:
        super().open()
        self._images = []

    def _consume(self, frame: np.ndarray) -> None:
        img = Image.fromarray(frame)
        if not self.transparent:
            self._images.append(img.convert('RGB').convert('P', palette=Image.Palette.ADAPTIVE, colors=256))
            return
        # Extract alpha channel to create proper transparency mask
        alpha = img.split()[3]
        mask = Image.eval(alpha, lambda a: 255 if a < 128 else 0)
        img_p = img.convert('RGB').convert('P', palette=Image.Palette.ADAPTIVE, colors=255)
        img_p.paste(255, mask)
        self._images.append(img_p)

    def close(self) -> Path:
        if not self._images:
            raise ExportError("No frames to export")
        options = {
            'save_all': True,
            'append_images': self._images[1:],
            'duration': max(1, int(round(1000 / self.fps))),
            'loop': 0,
        }
        if self.transparent:
            options['transparency'] = 255
            options['disposal'] = 2
        self._images[0].save(self.path, **options)
        self._images = []
        return super().close()

    def abort(self) -> None:
        self._images = []
        super().abort()


class FrameSequenceSink(CaptureSink):
    """Numbered PNG frames in a directory"""

    encoding = "png-sequence"

    def __init__(self, directory: Union[str, Path], fps: float, prefix: str = "frame"):
        super().__init__(directory, fps)
        self.prefix = prefix

    def open(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self.frames_written = 0
        self.is_open = True

    def _consume(self, frame: np.ndarray) -> None:
        frame_path = self.path / f"{self.prefix}_{self.frames_written:04d}.png"
        Image.fromarray(frame).save(frame_path, 'PNG')


def _sink_for_format(
    fmt: str,
    path: Path,
    fps: float,
    bitrate: Optional[int],
    transparent: bool
) -> Optional[CaptureSink]:
    if fmt in VIDEO_CODECS:
        for codec in VIDEO_CODECS[fmt]:
            if VideoSink.available(codec):
                return VideoSink(path.with_suffix(f'.{fmt}'), fps, codec, bitrate, transparent)
        return None
    if fmt == 'gif':
        return GifSink(path.with_suffix('.gif'), fps, transparent)
    if fmt == 'frames':
        return FrameSequenceSink(path.with_suffix(''), fps)
    raise ValueError(f"Unknown format: {fmt}. Available: {list(FORMATS)}")


def select_sink(
    path: Union[str, Path],
    fps: float,
    formats: Sequence[str] = ('webm',),
    bitrate: Optional[int] = DEFAULT_BITRATE,
    transparent: bool = False
) -> CaptureSink:
    """
    First available sink among the requested formats, in order.

    Degrading to a later format is logged, not fatal. Only when nothing in
    the list can capture does this raise CaptureUnavailableError.
    """
    path = Path(path)
    for i, fmt in enumerate(formats):
        sink = _sink_for_format(fmt, path, fps, bitrate, transparent)
        if sink is None:
            logger.info("No encoder available for %s", fmt)
            continue
        if i > 0 or (fmt in VIDEO_CODECS and sink.encoding != VIDEO_CODECS[fmt][0]):
            logger.warning(
                "Requested %s, falling back to %s (%s)", formats[0], fmt, sink.encoding
            )
        return sink
    raise CaptureUnavailableError(
        f"No capture sink available for formats: {', '.join(formats)}"
    )


def fallback_formats(requested: str) -> Tuple[str, ...]:
    """Requested format followed by the remaining fallbacks"""
    return (requested,) + tuple(f for f in FALLBACK_ORDER if f != requested)


# =============================================================================
# Export pipeline
# =============================================================================

@dataclass
class ExportConfig:
    """Where and how a clip is written"""
    output: str = "overlay.webm"
    format: str = 'webm'
    bitrate: Optional[int] = DEFAULT_BITRATE
    quality: str = 'high'
    fallback: bool = True


@dataclass
class ExportResult:
    """What an export run produced"""
    path: Path
    frames: int
    times: Tuple[float, ...] = field(default_factory=tuple)
    encoding: str = ""
    particle_count: int = 0


class OverlayExporter:
    """
    Renders one loop of a session and drives a capture sink.

    Example:
        exporter = OverlayExporter(SessionSettings(kind='snow'))
        sink = select_sink('snow.webm', fps=30)
        result = exporter.export(sink)
    """

    def __init__(self, settings: SessionSettings, quality: str = 'high', log_every: int = 30):
        self.settings = settings.validated()
        self.quality = quality
        self.log_every = max(1, log_every)

    @property
    def times(self) -> List[float]:
        return frame_times(self.settings.fps, self.settings.duration)

    def frames(self) -> Iterator[Tuple[int, float, np.ndarray]]:
        """
        Yield (index, t, rgba) for every sample of the loop.

        Uses a batch of its own, never one shared with a running preview.
        With blur on a black or checker background the whole composed
        frame is blurred, background included.
        """
        s = self.settings
        weather = create_weather(s.kind, s.params)
        batch = weather.create_batch(s.width, s.height, s.seed)
        canvas = Canvas(s.width, s.height, self.quality)
        period = s.loop_period

        for f, t in enumerate(self.times):
            canvas.clear()
            weather.render(canvas, batch, t, s.width, s.height, period)
            yield f, t, canvas.to_rgba(s.background)

    def export(self, sink: CaptureSink) -> ExportResult:
        """Render every frame in lockstep with the sink and finalize it"""
        s = self.settings
        times = self.times
        total = len(times)
        logger.info(
            "Exporting %s loop: %s, %d frames at %s fps (T=%.3fs, seed %d)",
            s.kind, s.size, total, s.fps, s.loop_period, s.seed
        )

        try:
            sink.open()
            for f, t, frame in self.frames():
                consumed = sink.write(frame)
                if consumed != f + 1:
                    raise ExportError(
                        f"Frame lockstep broken: sink reports {consumed} frames after frame {f + 1}"
                    )
                if (f + 1) % self.log_every == 0:
                    logger.info("Exported frame %d/%d", f + 1, total)
                logger.debug("Frame %d at t=%.4f", f, t)
            path = sink.close()
        except ExportError:
            sink.abort()
            raise
        except Exception as e:
            sink.abort()
            raise ExportError(f"Export failed: {e}") from e

        logger.info("Export finished: %s (%d frames, %s)", path, total, sink.encoding)
        return ExportResult(
            path=path,
            frames=total,
            times=tuple(times),
            encoding=sink.encoding,
            particle_count=s.particle_count,
        )


def export_clip(
    settings: SessionSettings,
    output: Union[str, Path],
    format: str = 'webm',
    bitrate: Optional[int] = DEFAULT_BITRATE,
    quality: str = 'high',
    fallback: bool = True
) -> ExportResult:
    """
    Export one seamless loop of the session to a file.

    Args:
        settings: Session to render
        output: Output path (suffix is adjusted to the chosen encoding)
        format: 'webm', 'mp4', 'gif' or 'frames'
        bitrate: Target video bitrate in bits/s
        quality: Rasterisation quality ('fast', 'high', 'best')
        fallback: Degrade to other formats when the requested one is unavailable

    Returns:
        ExportResult describing the written clip
    """
    if format not in FORMATS:
        raise ValueError(f"Unknown format: {format}. Available: {list(FORMATS)}")
    formats = fallback_formats(format) if fallback else (format,)
    exporter = OverlayExporter(settings, quality=quality)
    sink = select_sink(
        output,
        exporter.settings.fps,
        formats=formats,
        bitrate=bitrate,
        transparent=exporter.settings.background == 'transparent',
    )
    return exporter.export(sink)


def export_with_config(settings: SessionSettings, config: ExportConfig) -> ExportResult:
    return export_clip(
        settings,
        config.output,
        format=config.format,
        bitrate=config.bitrate,
        quality=config.quality,
        fallback=config.fallback,
    )
