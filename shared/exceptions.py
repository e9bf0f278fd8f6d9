"""
shared/exceptions.py
Domain exceptions raised by the service layer.

Services never build HTTP responses themselves; they raise one of these and
the handler registered in main.py turns it into a JSON error body:

    {"detail": "...", "code": "...", "errors": [...], "request_id": "..."}
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class AppError(Exception):
    """Base class for all expected, caller-recoverable errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors
        self.headers = headers
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.errors is not None:
            body["errors"] = self.errors
        return body


class ValidationError(AppError):
    """Malformed or incomplete input. `errors` lists every violated field."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class AuthError(AppError):
    """
    Bad credentials or an unusable bearer token.
    Deliberately generic: never says which part was wrong.
    """
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authorized"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class DeactivatedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account is deactivated. Please contact support."


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AppError):
    """Uniqueness violation (email, mobile, booking reference...)."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class InvalidStateError(AppError):
    """Illegal lifecycle transition."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "Invalid state transition"


class ExpiredError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "OTP expired"


class InvalidCodeError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid OTP"


class LockedError(AppError):
    """Temporary lockout after repeated failed logins."""
    status_code = status.HTTP_423_LOCKED

    def __init__(self, retry_after_minutes: int) -> None:
        self.retry_after_minutes = retry_after_minutes
        super().__init__(
            "Account is locked due to multiple failed login attempts. "
            f"Please try again after {retry_after_minutes} minutes.",
            headers={"Retry-After": str(retry_after_minutes * 60)},
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["retry_after_minutes"] = self.retry_after_minutes
        return body


class RateLimitedError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please slow down."

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"Retry-After": str(retry_after_seconds)})
