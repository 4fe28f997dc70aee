"""
Application error taxonomy

Services raise these; main.py maps them to HTTP responses.
"""
from typing import Optional
from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "An internal error occurred"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AppError):
    """Malformed or missing input; nothing was changed."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class AuthenticationRequired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"


class InvalidCredentials(AuthenticationRequired):
    default_detail = "Invalid email or password"


class AuthorizationDenied(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Insufficient permissions"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class PairingCodeExhausted(Conflict):
    default_detail = "Could not allocate a unique pairing code"
