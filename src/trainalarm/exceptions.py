"""Error types for the train destination alarm."""

from typing import Optional


class TrainAlarmError(Exception):
    """Base class for all trainalarm errors."""


class ConfigurationError(TrainAlarmError):
    """Raised when settings cannot be loaded or are invalid."""


class SensorError(TrainAlarmError):
    """
    A position sensor failure.

    ``fatal`` errors stop tracking until resolved outside the application;
    non-fatal errors are reported while the watch keeps retrying.
    """

    kind = "unknown"
    fatal = False
    default_message = "Unknown location error."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class SensorPermissionDenied(SensorError):
    kind = "permission_denied"
    fatal = True
    default_message = "Location permission denied. Please allow location access in your settings."


class SensorUnavailable(SensorError):
    kind = "unavailable"
    fatal = True
    default_message = "Location unavailable. Check your GPS or network connection."


class SensorTimeout(SensorError):
    kind = "timeout"
    default_message = "Location request timed out. Retrying..."


class SensorUnknownError(SensorError):
    pass


# W3C GeolocationPositionError codes
_SENSOR_ERROR_CODES = {
    1: SensorPermissionDenied,
    2: SensorUnavailable,
    3: SensorTimeout,
}


def classify_sensor_error(code: int, message: Optional[str] = None) -> SensorError:
    """Map a platform geolocation error code onto the sensor error taxonomy."""
    return _SENSOR_ERROR_CODES.get(code, SensorUnknownError)(message)


class RouteUnavailable(TrainAlarmError):
    """The route provider could not supply a route; the trip cannot start."""

    def __init__(self, reason: str, status: int = 500):
        super().__init__(reason)
        self.reason = reason
        self.status = status


class MalformedCoordinate(TrainAlarmError, ValueError):
    """A coordinate value that cannot be used. Treated as a missing coordinate."""


class ChannelUnavailable(TrainAlarmError):
    """The other execution context is not installed or not reachable."""
