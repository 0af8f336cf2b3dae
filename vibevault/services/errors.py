"""Exceptions raised by the service layer.

Each carries the HTTP status the API layer answers with.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised for an empty required field or a malformed value."""

    status_code = 400


class AuthenticationError(ServiceError):
    """Raised when a write is attempted without an acting user."""

    status_code = 401

    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(message)


class NotFoundError(ServiceError):
    """Raised when an entity is absent or owned by another user."""

    status_code = 404


class ConflictError(ServiceError):
    """Raised when a create or rename would break a uniqueness constraint."""

    status_code = 409


def require_user(user_id: int | None) -> int:
    if user_id is None:
        raise AuthenticationError()
    return user_id
