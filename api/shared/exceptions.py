"""Shared exceptions for the NyaAI API.

Every exception carries an internal ``message`` (logged) and a
``public_message`` (the only text ever returned to the caller).
"""
from typing import Any, Dict, Optional


class NyaAIException(Exception):
    """Base exception for the NyaAI API."""

    status_code: int = 500
    public_message: Optional[str] = None

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def client_message(self) -> str:
        return self.public_message or self.message


class AuthError(NyaAIException):
    """Raised when the caller credential is missing or invalid."""

    status_code = 401

    def __init__(self, message: str = "Invalid authentication"):
        super().__init__(message, "AUTH_ERROR")


class ValidationError(NyaAIException):
    """Raised when input validation fails."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(NyaAIException):
    """Raised when a resource is not found."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(message, "NOT_FOUND", {"resource": resource, "identifier": identifier})


class ForbiddenError(NyaAIException):
    """Raised when the caller may not touch a resource it can see."""

    status_code = 403
    public_message = "Access denied"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "FORBIDDEN", details)


class ConflictError(NyaAIException):
    """Raised when there's a conflict with in-flight work."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class StoreError(NyaAIException):
    """Raised when the message store is unreachable or rejects a write."""

    public_message = "Failed to access conversation storage"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORE_ERROR", details)


class ExternalServiceError(NyaAIException):
    """Raised when external service calls fail."""

    public_message = "An upstream service is unavailable"

    def __init__(self, service: str, message: str, details: Optional[Dict[str, Any]] = None):
        full_message = f"{service} service error: {message}"
        super().__init__(full_message, "EXTERNAL_SERVICE_ERROR", details)
