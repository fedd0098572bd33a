"""
Real-Time Preview

Live animation of the current weather settings. Settings can change while
the loop runs; changes that alter the particle set start a new loop.

Features:
- Continuous playback on a seamless loop of period T
- Rain/snow switching and seed stepping while running
- Checker or black backdrop behind the transparent overlay
- Export the current settings to a clip

Controls:
    TAB         - Switch rain/snow
    UP/DOWN     - Next/previous seed
    R           - Reset simulation (restart the loop)
    C           - Toggle checker backdrop
    E           - Export clip
    I           - Toggle info
    H           - Show/hide help
    ESC/Q       - Quit

Requires: pygame (pip install pygame)
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Tuple

import numpy as np

from .canvas import Canvas
from .errors import PreviewCancelled, WeatherTunerError
from .exporter import ExportConfig, ExportResult, export_with_config
from .motion import loop_time
from .params import SessionSettings
from ..procedural import ParticleBatch, create_weather

# Try to import pygame
try:
    import pygame
    from pygame import Surface
    PYGAME_AVAILABLE = True
except ImportError:
    PYGAME_AVAILABLE = False
    pygame = None
    # Dummy type for annotations when pygame not installed
    Surface = Any


logger = logging.getLogger(__name__)


# =============================================================================
# Preview Configuration
# =============================================================================

@dataclass
class PreviewConfig:
    """Configuration for the preview window"""
    # Window settings
    window_title: str = "Weather Tuner Preview"
    max_window: Tuple[int, int] = (1280, 720)

    # Playback settings
    fps: int = 60
    quality: str = 'fast'

    # Display settings
    checker: bool = True
    show_info: bool = True
    show_help: bool = False

    # Used by the E key
    export: ExportConfig = field(default_factory=ExportConfig)


@dataclass
class LoopState:
    """Particle set and phase origin of the running loop"""
    kind: str
    width: int
    height: int
    particles: ParticleBatch
    start_ms: Optional[float] = None


# =============================================================================
# Headless loop
# =============================================================================

class PreviewLoop:
    """
    Frame scheduler for live preview, independent of any display.

    Example:
        loop = PreviewLoop(SessionSettings(kind='snow'))
        t = loop.tick(now_ms)      # first tick latches the loop start
        frame = loop.frame()
    """

    def __init__(self, settings: SessionSettings, quality: str = 'fast'):
        self.settings = settings.validated()
        self.quality = quality
        self.cancelled = False
        self.frames_rendered = 0
        self.last_t = 0.0
        self.state: Optional[LoopState] = None
        self.canvas: Optional[Canvas] = None
        self.weather = None
        self.reset()

    @staticmethod
    def _batch_key(settings: SessionSettings) -> tuple:
        return (
            settings.kind,
            settings.width,
            settings.height,
            settings.particle_count,
            settings.seed,
            settings.params,
        )

    def reset(self) -> None:
        """Rebuild the particle set and restart the loop phase"""
        s = self.settings
        self.weather = create_weather(s.kind, s.params)
        batch = self.weather.create_batch(s.width, s.height, s.seed)
        self.state = LoopState(s.kind, s.width, s.height, batch)
        if self.canvas is None or (self.canvas.width, self.canvas.height) != (s.width, s.height):
            self.canvas = Canvas(s.width, s.height, self.quality)
        logger.info("Preview loop reset: %s %s, %d particles, seed %d",
                    s.kind, s.size, len(batch), s.seed)

    def update_settings(self, settings: SessionSettings) -> bool:
        """
        Apply new settings.

        Returns True when the particle set was rebuilt (kind, size, count,
        seed or a parameter of the active kind changed). Otherwise the
        running loop keeps its particles and phase.
        """
        settings = settings.validated()
        rebuild = self._batch_key(settings) != self._batch_key(self.settings)
        self.settings = settings
        if rebuild:
            self.reset()
        return rebuild

    def tick(self, now_ms: float) -> float:
        """
        Render the frame for the given clock reading.

        The first tick after a (re)start latches the loop start, so it
        always shows t = 0.
        """
        if self.cancelled:
            raise PreviewCancelled("Preview loop was cancelled")

        state = self.state
        if state.start_ms is None:
            state.start_ms = now_ms

        s = self.settings
        t = loop_time((now_ms - state.start_ms) / 1000.0, s.duration)

        self.canvas.clear()
        self.weather.render(self.canvas, state.particles, t, s.width, s.height, s.loop_period)
        self.frames_rendered += 1
        self.last_t = t
        return t

    def frame(self, background: Optional[str] = None) -> np.ndarray:
        """Last rendered frame as HxWx4 RGBA"""
        return self.canvas.to_rgba(background or self.settings.background)

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def running(self) -> bool:
        return not self.cancelled


# =============================================================================
# Preview Window
# =============================================================================

class PreviewWindow:
    """
    Live weather preview window.

    Example:
        preview = PreviewWindow(SessionSettings(kind='rain'))
        preview.run()
    """

    def __init__(
        self,
        settings: SessionSettings,
        config: Optional[PreviewConfig] = None,
        on_export: Optional[Callable[[SessionSettings], Any]] = None
    ):
        """
        Initialize preview window.

        Args:
            settings: Starting session
            config: Preview configuration
            on_export: Called with the current settings on E; defaults to
                       exporting with config.export
        """
        if not PYGAME_AVAILABLE:
            raise ImportError(
                "pygame is required for preview. Install with: pip install pygame"
            )

        self.config = config or PreviewConfig()
        self.loop = PreviewLoop(settings, self.config.quality)
        self.on_export = on_export
        self.checker = self.config.checker

        self._init_pygame()

    @property
    def settings(self) -> SessionSettings:
        return self.loop.settings

    def _init_pygame(self):
        """Initialize pygame and create window"""
        pygame.init()
        pygame.display.set_caption(self.config.window_title)
        self._resize_window()
        self.clock = pygame.time.Clock()

        # Load font
        try:
            self.font = pygame.font.SysFont('consolas', 14)
        except (pygame.error, OSError):
            self.font = pygame.font.Font(None, 16)

    def _resize_window(self):
        """Fit the frame into the maximum window size, keeping aspect"""
        s = self.settings
        max_w, max_h = self.config.max_window
        scale = min(1.0, max_w / s.width, max_h / s.height)
        self.view_size = (max(1, int(s.width * scale)), max(1, int(s.height * scale)))
        self.screen = pygame.display.set_mode(self.view_size)

    def _array_to_surface(self, array: np.ndarray) -> Surface:
        """Convert an opaque RGBA numpy array to a pygame surface"""
        # Pygame expects (width, height) but numpy is (height, width)
        surf = pygame.surfarray.make_surface(array[:, :, :3].swapaxes(0, 1))
        if surf.get_size() != self.view_size:
            surf = pygame.transform.smoothscale(surf, self.view_size)
        return surf

    def run(self):
        """Run the preview window main loop"""
        while self.loop.running:
            self.clock.tick(self.config.fps)

            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    self.loop.cancel()
                elif event.type == pygame.KEYDOWN:
                    self._handle_key(event.key)

            try:
                self.loop.tick(pygame.time.get_ticks())
            except PreviewCancelled:
                break

            self._render()
            pygame.display.flip()

        pygame.quit()

    def _handle_key(self, key: int):
        """Handle keyboard input"""
        if key in (pygame.K_ESCAPE, pygame.K_q):
            self.loop.cancel()

        elif key == pygame.K_TAB:
            kind = 'snow' if self.settings.kind == 'rain' else 'rain'
            self._apply(replace(self.settings, kind=kind))

        elif key == pygame.K_UP:
            self._apply(replace(self.settings, seed=(self.settings.seed + 1) & 0xFFFFFFFF))
        elif key == pygame.K_DOWN:
            self._apply(replace(self.settings, seed=(self.settings.seed - 1) & 0xFFFFFFFF))

        elif key == pygame.K_r:
            self.loop.reset()

        elif key == pygame.K_c:
            self.checker = not self.checker

        elif key == pygame.K_e:
            self._export()

        elif key == pygame.K_h:
            self.config.show_help = not self.config.show_help

        elif key == pygame.K_i:
            self.config.show_info = not self.config.show_info

    def _apply(self, settings: SessionSettings):
        old_size = (self.settings.width, self.settings.height)
        self.loop.update_settings(settings)
        if (self.settings.width, self.settings.height) != old_size:
            self._resize_window()

    def _backdrop(self) -> str:
        if self.settings.background != 'transparent':
            return self.settings.background
        return 'checker' if self.checker else 'black'

    def _render(self):
        """Render the preview"""
        frame = self.loop.frame(self._backdrop())
        self.screen.blit(self._array_to_surface(frame), (0, 0))

        if self.config.show_info:
            self._render_info()

        if self.config.show_help:
            self._render_help()

    def _render_info(self):
        """Render info panel"""
        s = self.settings
        lines = [
            f"{s.kind.upper()}  {s.size}",
            f"Particles: {len(self.loop.state.particles)}",
            f"Seed: {s.seed}",
            f"t = {self.loop.last_t:5.2f} / {s.loop_period:.2f}s",
            f"FPS: {self.clock.get_fps():.0f}",
        ]

        y = 10
        for line in lines:
            self._render_text(line, (10, y))
            y += 18

    def _render_help(self):
        """Render help overlay"""
        help_text = [
            "CONTROLS:",
            "",
            "TAB        Switch rain/snow",
            "UP/DOWN    Next/previous seed",
            "R          Reset simulation",
            "C          Toggle checker",
            "E          Export clip",
            "I          Toggle info",
            "",
            "H          Hide this help",
            "ESC/Q      Quit",
        ]

        # Semi-transparent background
        overlay = pygame.Surface((280, len(help_text) * 20 + 20), pygame.SRCALPHA)
        overlay.fill((0, 0, 0, 180))

        x = (self.view_size[0] - 280) // 2
        y = (self.view_size[1] - len(help_text) * 20) // 2
        self.screen.blit(overlay, (x, y))

        for i, line in enumerate(help_text):
            self._render_text(line, (x + 20, y + 10 + i * 20), color=(255, 255, 255))

    def _render_text(
        self,
        text: str,
        pos: Tuple[int, int],
        color: Tuple[int, int, int] = (200, 200, 200)
    ):
        """Render text with shadow"""
        shadow = self.font.render(text, True, (0, 0, 0))
        self.screen.blit(shadow, (pos[0] + 1, pos[1] + 1))

        surface = self.font.render(text, True, color)
        self.screen.blit(surface, pos)

    def _export(self) -> Optional[ExportResult]:
        """Export the current settings; failures never stop the preview"""
        try:
            if self.on_export:
                return self.on_export(self.settings)
            result = export_with_config(self.settings, self.config.export)
        except WeatherTunerError as e:
            logger.error("Export failed: %s", e)
            print(f"Export failed: {e}")
            return None
        print(f"Exported: {result.path} ({result.frames} frames, {result.encoding})")
        return result


# =============================================================================
# Convenience Functions
# =============================================================================

def preview(settings: SessionSettings, config: Optional[PreviewConfig] = None) -> None:
    """
    Open a live preview of the session.

    Args:
        settings: Session to preview
        config: Optional preview configuration
    """
    if not PYGAME_AVAILABLE:
        print("Preview requires pygame. Install with: pip install pygame")
        print("Alternatively, export a clip and view it in an external player.")
        return

    PreviewWindow(settings, config).run()


def check_pygame_available() -> bool:
    """Check if pygame is available for preview"""
    return PYGAME_AVAILABLE
