"""Custom exception classes for the console backend."""

from fastapi import status


class ConsoleError(Exception):
    """Base exception for Stellar Console."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(ConsoleError):
    """Raised when a request is malformed or internally inconsistent."""
    pass


class AuthenticationError(ConsoleError):
    """Raised when authentication fails."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ConsoleError):
    """Raised when the caller lacks the capability for an operation."""

    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFoundError(ConsoleError):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(ConsoleError):
    """Raised when a resource already exists."""

    status_code = status.HTTP_409_CONFLICT


class StaleStateError(ConsoleError):
    """Raised when a record is no longer in the state a transition expects.

    Recoverable: re-fetch the record and decide again.
    """

    status_code = status.HTTP_409_CONFLICT


class ExecutionError(ConsoleError):
    """Raised when the database engine rejects a privilege statement.

    The permission request workflow records it on the request instead of
    propagating it.
    """

    status_code = status.HTTP_502_BAD_GATEWAY


class IndexRefreshError(ConsoleError):
    """Raised when the authorization index could not be refreshed.

    The previous index stays in effect.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
