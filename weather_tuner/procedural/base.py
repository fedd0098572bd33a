"""
Base Weather - abstract base class for the procedural weather kinds

A weather kind knows three things: how to create one particle from the
seeded stream, where that particle is at loop time t, and how to draw a
whole batch at t. Everything else (batching, bounds, blur post-pass) is
shared here.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import astuple, dataclass
from typing import Iterator, Optional, Tuple

import numpy as np

from ..core.canvas import Canvas
from ..core.motion import Bounds, loop_time
from ..core.params import WeatherParameters, particle_count
from ..core.rng import Lcg


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticleBatch:
    """
    Immutable set of particles for one (kind, seed, size, count, params).

    A batch is only ever replaced as a whole, never edited.
    """
    kind: str
    seed: int
    width: int
    height: int
    particles: Tuple = ()

    def __len__(self) -> int:
        return len(self.particles)

    def __iter__(self) -> Iterator:
        return iter(self.particles)

    def __getitem__(self, index):
        return self.particles[index]

    def to_array(self) -> np.ndarray:
        """Particle attributes as an (N, fields) float64 array"""
        if not self.particles:
            return np.zeros((0, 0), dtype=np.float64)
        return np.array([astuple(p) for p in self.particles], dtype=np.float64)

    def tobytes(self) -> bytes:
        return self.to_array().tobytes()


class BaseWeather(ABC):
    """Abstract base class for procedural weather kinds"""

    # Weather metadata
    name: str = "base"
    description: str = "Base weather"

    parameter_type: type = WeatherParameters

    def __init__(self, params: Optional[WeatherParameters] = None):
        self.params = params if params is not None else self.parameter_type()

    # -- factory ------------------------------------------------------------

    @abstractmethod
    def create_particle(self, rng: Lcg, width: int, height: int):
        """Draw one particle's static attributes from the stream"""
        pass

    def count(self, width: int, height: int) -> int:
        return particle_count(self.params.density_1080, width, height)

    def create_batch(self, width: int, height: int, seed: int) -> ParticleBatch:
        """
        Build the full particle batch.

        One fresh stream per batch; the same (seed, params, size) always
        produces the same particles.
        """
        rng = Lcg(seed)
        n = self.count(width, height)
        particles = tuple(self.create_particle(rng, width, height) for _ in range(n))
        logger.debug(
            "Built %s batch: %d particles at %dx%d (seed %d, %d draws)",
            self.name, n, width, height, rng.seed, rng.draws
        )
        return ParticleBatch(self.name, rng.seed, width, height, particles)

    # -- motion -------------------------------------------------------------

    def bounds(self, width: int, height: int) -> Bounds:
        """Wrap region: the frame expanded by the kind's margin"""
        return Bounds.expanded(width, height, self.params.margin)

    @abstractmethod
    def position(self, particle, t: float, bounds: Bounds, period: float) -> Tuple[float, float]:
        """Wrapped particle position at loop time t"""
        pass

    # -- rendering ----------------------------------------------------------

    @abstractmethod
    def draw(self, canvas: Canvas, particles, t: float, bounds: Bounds, period: float) -> None:
        """Draw every particle at loop time t (no post-pass)"""
        pass

    def render(
        self,
        canvas: Canvas,
        particles,
        t: float,
        width: int,
        height: int,
        period: float
    ) -> None:
        """
        Draw one frame into the canvas.

        Pure with respect to t: nothing is remembered between calls.
        """
        t = loop_time(t, period)
        self.draw(canvas, particles, t, self.bounds(width, height), period)
        if self.params.blur > 0:
            canvas.blur(self.params.blur)
