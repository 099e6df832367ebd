"""Error taxonomy shared by the sunrise alarm modules."""

from __future__ import annotations


class SunriseError(Exception):
    """Base class for sunrise alarm failures."""


class NotificationPermissionError(SunriseError, PermissionError):
    """Raised when notification permission is missing or denied."""


class LocationPermissionError(SunriseError, PermissionError):
    """Raised when the location provider is not allowed to report coordinates."""


class NetworkError(SunriseError):
    """Raised when a provider request fails at the transport or HTTP level."""


class ParseError(SunriseError, ValueError):
    """Raised when a provider response is missing fields or malformed."""


class StorageError(SunriseError, OSError):
    """Raised when the persistent key/value store cannot be read or written."""


class SchedulingError(SunriseError):
    """Raised when the notification service rejects a scheduling request."""
