"""
Utility functions for logging setup and small math helpers
"""

import logging
import logging.handlers
import math
from pathlib import Path
from typing import Optional, Union


DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: Union[int, str] = 'INFO',
    log_file: Optional[Union[str, Path]] = None,
    fmt: str = DEFAULT_LOG_FORMAT
) -> None:
    """
    Configure the root logger with a console handler and, optionally, a
    rotating file handler.

    Args:
        level: Log level name or number
        log_file: Optional log file path (rotates at 1MB, keeps 5 backups)
        fmt: Record format string
    """
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger()
    logger.setLevel(level)

    # Clear existing handlers to avoid duplication
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(fmt)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.debug("Logging initialized at level %s", level)


class MathUtils:
    """Scalar helpers shared by the particle factory and renderer"""

    @staticmethod
    def clamp(value: float, min_val: float, max_val: float) -> float:
        """Clamp value between min and max"""
        if value < min_val:
            return min_val
        if value > max_val:
            return max_val
        return value

    @staticmethod
    def is_finite(*values: float) -> bool:
        """True when every value is a finite real number"""
        try:
            return all(math.isfinite(float(v)) for v in values)
        except (TypeError, ValueError):
            return False


clamp = MathUtils.clamp
