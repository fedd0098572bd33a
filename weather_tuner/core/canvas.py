"""
Overlay Canvas - raster surface for white-ink weather overlays

Every primitive the renderer draws is white with some opacity, composited
source-over. With a single ink colour the result only depends on how much
light each pixel lets through, so the canvas stores a float transmittance
map (1 - alpha) and every primitive multiplies the pixels it covers by
(1 - opacity * coverage). Compositing order therefore never matters.

Primitives are rasterised with Pillow into a small supersampled mask around
their bounding box and box-filtered back down for antialiased edges.
"""

import logging
import math
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFilter

from .errors import InvalidParameterError


logger = logging.getLogger(__name__)

# Supersampling factor per quality level
QUALITY_SUPERSAMPLE: Dict[str, int] = {
    'fast': 1,
    'high': 2,
    'best': 4,
}

CHECKER_TILE = 24
CHECKER_DARK = (0x1f, 0x1f, 0x1f)
CHECKER_LIGHT = (0x2b, 0x2b, 0x2b)


# =============================================================================
# Background collaborator
# =============================================================================

def checker_tile(tile: int = CHECKER_TILE) -> Image.Image:
    """
    One repeat of the transparency checkerboard: a 2*tile square in the
    dark shade with the top-left and bottom-right quadrants lighter.
    """
    size = tile * 2
    img = Image.new('RGB', (size, size), CHECKER_DARK)
    draw = ImageDraw.Draw(img)
    draw.rectangle([0, 0, tile - 1, tile - 1], fill=CHECKER_LIGHT)
    draw.rectangle([tile, tile, size - 1, size - 1], fill=CHECKER_LIGHT)
    return img


def tile_background(width: int, height: int, tile: int = CHECKER_TILE) -> np.ndarray:
    """Checkerboard repeated over a width x height frame (HxWx3 uint8)"""
    pattern = np.asarray(checker_tile(tile), dtype=np.uint8)
    reps_y = math.ceil(height / pattern.shape[0])
    reps_x = math.ceil(width / pattern.shape[1])
    return np.tile(pattern, (reps_y, reps_x, 1))[:height, :width]


# =============================================================================
# Canvas
# =============================================================================

class Canvas:
    """
    White-ink coverage surface.

    Example:
        canvas = Canvas(1280, 720)
        canvas.stroke_line(10, 10, 40, 80, width=2, alpha=0.5)
        canvas.fill_circle(100, 100, 4, alpha=0.8)
        canvas.blur(1.5)
        rgba = canvas.to_rgba('black')
    """

    def __init__(self, width: int, height: int, quality: str = 'high'):
        if quality not in QUALITY_SUPERSAMPLE:
            raise InvalidParameterError(
                f"Unknown quality: {quality!r}. Available: {list(QUALITY_SUPERSAMPLE)}"
            )
        self.width = int(width)
        self.height = int(height)
        self.quality = quality
        self.supersample = QUALITY_SUPERSAMPLE[quality]
        self.transmittance = np.ones((self.height, self.width), dtype=np.float32)
        self._checker: Optional[np.ndarray] = None
        # Unblurred overlay, kept for composing over opaque backgrounds
        self._sharp: Optional[np.ndarray] = None
        self.blur_radius = 0.0

    @property
    def coverage(self) -> np.ndarray:
        """Overlay alpha in [0, 1], shape (height, width)"""
        return 1.0 - self.transmittance

    def clear(self) -> None:
        self.transmittance.fill(1.0)
        self._sharp = None
        self.blur_radius = 0.0

    # -- primitives ---------------------------------------------------------

    def _stamp(
        self,
        bbox: Tuple[float, float, float, float],
        alpha: float,
        draw_fn: Callable[[ImageDraw.ImageDraw, Callable[[float, float], Tuple[float, float]], int], None]
    ) -> None:
        """Rasterise one primitive inside bbox and composite it"""
        if alpha <= 0:
            return
        x_lo = max(0, int(math.floor(bbox[0])) - 1)
        y_lo = max(0, int(math.floor(bbox[1])) - 1)
        x_hi = min(self.width, int(math.ceil(bbox[2])) + 1)
        y_hi = min(self.height, int(math.ceil(bbox[3])) + 1)
        if x_hi <= x_lo or y_hi <= y_lo:
            return

        ss = self.supersample
        mask = Image.new('L', ((x_hi - x_lo) * ss, (y_hi - y_lo) * ss), 0)

        def to_local(x: float, y: float) -> Tuple[float, float]:
            return (x - x_lo) * ss, (y - y_lo) * ss

        draw_fn(ImageDraw.Draw(mask), to_local, ss)
        if ss > 1:
            mask = mask.reduce(ss)

        cov = np.asarray(mask, dtype=np.float32) / 255.0
        factor = 1.0 - min(1.0, alpha) * cov
        self.transmittance[y_lo:y_hi, x_lo:x_hi] *= factor
        if self._sharp is not None:
            self._sharp[y_lo:y_hi, x_lo:x_hi] *= factor

    def stroke_line(
        self,
        x0: float,
        y0: float,
        x1: float,
        y1: float,
        width: float,
        alpha: float,
        round_cap: bool = True
    ) -> None:
        """Straight segment of the given width (px) and opacity"""
        half = width / 2
        bbox = (min(x0, x1) - half, min(y0, y1) - half, max(x0, x1) + half, max(y0, y1) + half)

        def draw_fn(draw, to_local, ss):
            a = to_local(x0, y0)
            b = to_local(x1, y1)
            w = max(1, int(round(width * ss)))
            draw.line([a, b], fill=255, width=w)
            if round_cap:
                r = w / 2
                for cx, cy in (a, b):
                    draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=255)

        self._stamp(bbox, alpha, draw_fn)

    def fill_circle(self, cx: float, cy: float, radius: float, alpha: float) -> None:
        """Filled disc centred at (cx, cy)"""
        bbox = (cx - radius, cy - radius, cx + radius, cy + radius)

        def draw_fn(draw, to_local, ss):
            x, y = to_local(cx, cy)
            r = radius * ss
            draw.ellipse([x - r, y - r, x + r, y + r], fill=255)

        self._stamp(bbox, alpha, draw_fn)

    # -- post-pass ----------------------------------------------------------

    def blur(self, radius: float) -> None:
        """
        Uniform Gaussian blur over the whole overlay, done on an
        intermediate Pillow image and written back.

        Opaque backgrounds are blurred together with the overlay when the
        frame is composed, see to_rgba().
        """
        b = int(math.floor(radius))
        if b <= 0:
            return
        if self._sharp is None:
            self._sharp = self.transmittance.copy()
        self.blur_radius = math.hypot(self.blur_radius, b)
        layer = Image.fromarray(self._coverage_u8())
        blurred = layer.filter(ImageFilter.GaussianBlur(radius=b))
        self.transmittance[:] = 1.0 - np.asarray(blurred, dtype=np.float32) / 255.0

    # -- composition --------------------------------------------------------

    def _coverage_u8(self) -> np.ndarray:
        return np.clip(self.coverage * 255.0 + 0.5, 0, 255).astype(np.uint8)

    def to_rgba(self, background: str = 'transparent') -> np.ndarray:
        """
        Compose the overlay over a background.

        Args:
            background: 'transparent' (white ink, alpha = coverage),
                        'black' or 'checker' (opaque). After blur() an
                        opaque frame is composed from the sharp overlay
                        and blurred as a whole, background included.

        Returns:
            HxWx4 uint8 RGBA array
        """
        out = np.empty((self.height, self.width, 4), dtype=np.uint8)

        if background == 'transparent':
            out[:, :, :3] = 255
            out[:, :, 3] = self._coverage_u8()
            return out

        if background == 'black':
            base = np.zeros((self.height, self.width, 3), dtype=np.float32)
        elif background == 'checker':
            if self._checker is None:
                self._checker = tile_background(self.width, self.height).astype(np.float32)
            base = self._checker
        else:
            raise InvalidParameterError(f"Unknown background: {background!r}")

        transmittance = self.transmittance if self._sharp is None else self._sharp
        alpha = (1.0 - transmittance)[:, :, np.newaxis]
        rgb = np.clip(base * (1.0 - alpha) + 255.0 * alpha + 0.5, 0, 255).astype(np.uint8)
        if self._sharp is not None:
            frame = Image.fromarray(rgb).filter(ImageFilter.GaussianBlur(radius=self.blur_radius))
            rgb = np.asarray(frame, dtype=np.uint8)
        out[:, :, :3] = rgb
        out[:, :, 3] = 255
        return out

    def to_image(self, background: str = 'transparent') -> Image.Image:
        return Image.fromarray(self.to_rgba(background))
