"""Exception hierarchy for the truck tracking service and its clients."""

from typing import Optional


class TrackingError(Exception):
    """Base exception for all wastetrack errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TruckValidationError(TrackingError):
    """A required field is missing or has an invalid value."""

    status_code = 400


class TruckConflictError(TrackingError):
    """A truck with the same truckId is already registered."""

    status_code = 400


class TruckNotFoundError(TrackingError):
    """No truck is registered under the given truckId."""

    status_code = 404


class TruckStoreError(TrackingError):
    """The truck store could not be read or written."""

    status_code = 500


class TrackingApiError(TrackingError):
    """The tracking API answered a client request with an error status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, endpoint: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ChannelTransportError(TrackingError):
    """Network-level failure talking to the API or the realtime channel.

    Viewers surface it as a retry-able connection state rather than a
    hard failure.
    """

    def __init__(self, message: str, *, endpoint: str = ""):
        super().__init__(message)
        self.endpoint = endpoint
