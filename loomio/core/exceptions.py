"""Domain errors raised by the Loomio services and rendered by the API layer."""

from fastapi import status


class LoomioError(Exception):
    """Base class for errors that map onto an HTTP response with a `message` body."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LoomioError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(LoomioError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class AuthorizationError(LoomioError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class NotFoundError(LoomioError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class CapacityExceeded(LoomioError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Maximum number of assignees reached for this task"


class InvalidState(LoomioError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Transition not allowed from the current status"


class DeadlinePassed(LoomioError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Task cannot be submitted after the deadline has passed"


class ConflictError(LoomioError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"
