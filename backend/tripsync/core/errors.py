"""Error taxonomy for live location sharing.

Everything raised from the presence layer is caught by the WebSocket
dispatcher and reported to the originating connection only.
"""


class TripSyncError(Exception):
    message = "Location sharing error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class AuthError(TripSyncError):
    """The connection credential could not be bound to an active user."""

    MISSING = "missing credential"
    INVALID = "invalid credential"
    EXPIRED = "expired credential"
    INACTIVE = "unknown or inactive user"

    message = INVALID

    def __init__(self, reason: str):
        super().__init__(f"Authentication error: {reason}")
        self.reason = reason


class AccessDenied(TripSyncError):
    message = "Access denied to this trip"


class TripNotFound(AccessDenied):
    # a trip that does not exist has no members, so it is an access denial
    message = "Trip not found"


class InvalidLocation(TripSyncError):
    message = "Invalid location coordinates"


class InvalidPayload(TripSyncError):
    message = "Malformed event payload"
