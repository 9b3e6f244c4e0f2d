"""Failure taxonomy for Almanac Alarm.

An undefined sun event (polar day or night) is not represented here: the sun
engine returns ``None`` for an instant that does not occur.
"""

from __future__ import annotations


class AlmanacError(RuntimeError):
    """Base class for every Almanac failure."""

    retryable = False


class LocationError(AlmanacError):
    """No usable geographic fix could be obtained."""

    code = 999
    spoken_message = "Unable to get location. Please check your location permissions."


class PermissionDenied(LocationError):
    code = 1
    spoken_message = "Location permission is denied. Please enable location access."


class PositionUnavailable(LocationError):
    code = 2
    spoken_message = "Your location is currently unavailable."


class LocationTimeout(LocationError):
    code = 3
    spoken_message = "The location request timed out."


class NetworkError(AlmanacError):
    """An external HTTP provider failed or returned an unusable payload."""


class ProviderTimeout(NetworkError):
    """An external provider did not answer within its time bound."""


class NoStationFound(AlmanacError):
    """The tide station catalog was empty or unreachable."""


class SchedulingDenied(AlmanacError):
    """The trigger store refused to arm a precise trigger."""

    retryable = True


class TriggerStoreUnavailable(AlmanacError):
    """The trigger store could not be opened or written."""

    retryable = True
