"""
Error types raised by the weather tuner
"""


class WeatherTunerError(Exception):
    """Base class for all weather tuner errors"""


class InvalidParameterError(WeatherTunerError, ValueError):
    """A parameter is non-finite or outside anything we can clamp to"""


class CaptureUnavailableError(WeatherTunerError, RuntimeError):
    """No capture sink can produce any of the requested encodings"""


class ExportError(WeatherTunerError, RuntimeError):
    """An export run failed (sink error or broken frame lockstep)"""


class PreviewCancelled(WeatherTunerError):
    """Raised when a cancelled preview loop is ticked again"""
