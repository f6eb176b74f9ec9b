class TrackingError(Exception):
    """Base exception for the tracking core."""

    status_code = 500
    public_message: str | None = None

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    @property
    def detail(self) -> str:
        return self.public_message or self.message or self.__class__.__name__


class ValidationError(TrackingError):
    """Malformed or out-of-range input; surfaced verbatim to the caller."""

    status_code = 400


class AuthError(TrackingError):
    """Missing or invalid credential."""

    status_code = 401
    public_message = "Not authenticated"


class ForbiddenError(AuthError):
    """Authenticated, but the role does not allow the operation."""

    status_code = 403
    public_message = "Forbidden - insufficient permissions"


class NotFoundError(TrackingError):
    status_code = 404


class InternalError(TrackingError):
    """Persistence failure or unexpected exception; details stay server-side."""

    status_code = 500
    public_message = "Internal Server Error"
