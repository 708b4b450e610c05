"""Error taxonomy shared by the scheduling engine and the HTTP layer."""

from typing import Any

from fastapi import status


class SchedulingError(Exception):
    """Base class for errors the HTTP boundary maps to a status code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = 'INTERNAL_ERROR'

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            'success': False,
            'message': self.message,
            'error_code': self.error_code,
        }
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(SchedulingError):
    """Malformed or missing input. ``details`` maps field paths to messages."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = 'VALIDATION_ERROR'


class ConflictError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    error_code = 'CONFLICT'


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = 'NOT_FOUND'


class AuthenticationError(SchedulingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = 'AUTHENTICATION_FAILED'


class AuthorizationError(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = 'FORBIDDEN'


class DatabaseError(SchedulingError):
    """Storage failure. The caller only ever sees a generic message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = 'DATABASE_ERROR'

    def __init__(self, message: str = 'A database error occurred') -> None:
        super().__init__('A database error occurred')
        self.internal_message = message
