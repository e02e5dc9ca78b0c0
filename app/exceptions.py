# =============================================================================
# app/exceptions.py - Custom Exceptions and Handlers
# =============================================================================
# Centralized exception handling for the API.
# Every error carries a human-readable message; the handlers below turn them
# into JSON responses so routes never crash the process.
# =============================================================================

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class TaskBoardException(Exception):
    """
    Base exception for the TaskBoard API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "TASKBOARD_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationFailedError(TaskBoardException):
    """Raised when user input fails a field rule."""

    def __init__(self, message: str, errors: dict[str, str] | None = None):
        super().__init__(
            message=message,
            code="VALIDATION_FAILED",
            status_code=422,
            details={"errors": errors} if errors else None,
        )
        self.errors = errors or {}


# =============================================================================
# To-do Exceptions
# =============================================================================

class TodoNotFoundError(TaskBoardException):
    """Raised when a to-do ID doesn't exist."""

    def __init__(self, todo_id: str):
        super().__init__(
            message="To-do not found",
            code="TODO_NOT_FOUND",
            status_code=404,
            suggestion="Check that the to-do id is correct and it hasn't been deleted",
            details={"todo_id": todo_id}
        )


class UnauthorizedAccessError(TaskBoardException):
    """Raised when the caller is not the owner of the record."""

    def __init__(self, resource_id: str):
        super().__init__(
            message="Unauthorized access",
            code="UNAUTHORIZED_ACCESS",
            status_code=403,
            details={"resource_id": resource_id}
        )


# =============================================================================
# Profile Exceptions
# =============================================================================

class ProfileNotFoundError(TaskBoardException):
    """Raised when a user has no profile record."""

    def __init__(self, user_id: str):
        super().__init__(
            message="User profile not found",
            code="PROFILE_NOT_FOUND",
            status_code=404,
            suggestion="Sign in again to recreate your profile",
            details={"user_id": user_id}
        )


# =============================================================================
# Auth Exceptions
# =============================================================================

class NotAuthenticatedError(TaskBoardException):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self):
        super().__init__(
            message="No user logged in",
            code="NOT_AUTHENTICATED",
            status_code=401,
            suggestion="Sign in and retry with a valid Bearer token",
        )


class AuthErrorKind(str, Enum):
    """
    Known failure modes of the identity provider.

    Each value is the message shown to the user. UNKNOWN is the catch-all;
    its message comes from the provider (see AuthProviderError.message).
    """
    EMAIL_ALREADY_IN_USE = "This email is already registered"
    INVALID_EMAIL = "Invalid email address"
    OPERATION_NOT_ALLOWED = "Operation not allowed"
    WEAK_PASSWORD = "Password is too weak (minimum 6 characters)"
    USER_DISABLED = "This account has been disabled"
    USER_NOT_FOUND = "No account found with this email"
    WRONG_PASSWORD = "Incorrect password"
    TOO_MANY_REQUESTS = "Too many failed attempts. Please try again later"
    NETWORK_REQUEST_FAILED = "Network error. Please check your connection"
    SIGN_IN_CANCELLED = "Sign-in was cancelled"
    SIGN_IN_EXPIRED = "This sign-in request has expired. Please start again"
    SIGN_IN_REJECTED = "The sign-in callback was rejected by the provider"
    ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL = (
        "An account already exists with the same email but different sign-in credentials"
    )
    REQUIRES_RECENT_LOGIN = "This operation requires recent authentication. Please log in again"
    UNKNOWN = "An error occurred during authentication"


class AuthProviderError(TaskBoardException):
    """
    Raised when the identity provider rejects a request.

    `kind` tags the failure; `provider_code` keeps the raw provider code
    (if any) for logs.
    """

    def __init__(
        self,
        kind: AuthErrorKind,
        message: str | None = None,
        provider_code: str | None = None,
    ):
        super().__init__(
            message=message or kind.value,
            code=f"AUTH_{kind.name}",
            status_code=429 if kind is AuthErrorKind.TOO_MANY_REQUESTS else 400,
            details={"provider_code": provider_code} if provider_code else None,
        )
        self.kind = kind
        self.provider_code = provider_code


# =============================================================================
# Backend Exceptions
# =============================================================================

class BackendError(TaskBoardException):
    """Raised when the hosted database call fails."""

    def __init__(self, message: str, error: str | None = None):
        super().__init__(
            message=message,
            code="BACKEND_ERROR",
            status_code=502,
            suggestion="Try again later or contact support if the issue persists",
            details={"error": error} if error else None,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def taskboard_exception_handler(
    request: Request,
    exc: TaskBoardException
) -> JSONResponse:
    """
    Handle custom TaskBoard exceptions.

    Converts exception to JSON response with appropriate status code.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Converts validation errors to user-friendly messages.
    """
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": str(exc)
        }
    )
