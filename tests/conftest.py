from pathlib import Path

import numpy as np
import pytest

from weather_tuner.core.exporter import CaptureSink
from weather_tuner.core.params import SessionSettings


class MemorySink(CaptureSink):
    """Keeps every consumed frame in a list"""

    encoding = "memory"

    def __init__(self, fps: float = 30):
        super().__init__(Path("memory-sink"), fps)
        self.frames = []
        self.closed = False
        self.aborted = False

    def open(self) -> None:
        self.frames = []
        self.frames_written = 0
        self.is_open = True

    def _consume(self, frame: np.ndarray) -> None:
        self.frames.append(frame.copy())

    def close(self) -> Path:
        self.closed = True
        return super().close()

    def abort(self) -> None:
        self.aborted = True
        super().abort()


class SkippingSink(MemorySink):
    """Acknowledges one frame too many once, like a sink that duplicated a frame"""

    def __init__(self, fps: float = 30, fail_at: int = 2):
        super().__init__(fps)
        self.fail_at = fail_at

    def write(self, frame: np.ndarray) -> int:
        count = super().write(frame)
        if count == self.fail_at:
            self.frames_written += 1
        return self.frames_written


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def small_rain():
    return SessionSettings(kind='rain', width=64, height=48, fps=4, duration=1.0)


@pytest.fixture
def small_snow():
    return SessionSettings(kind='snow', width=64, height=48, fps=4, duration=1.0)
