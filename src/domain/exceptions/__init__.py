from .tracking import (
    AuthError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    TrackingError,
    ValidationError,
)

__all__ = [
    "AuthError",
    "ForbiddenError",
    "InternalError",
    "NotFoundError",
    "TrackingError",
    "ValidationError",
]
