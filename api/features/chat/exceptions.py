"""Exceptions for the Chat feature."""
from typing import Any, Dict, Optional

from api.shared.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    NyaAIException,
)


class SessionNotFoundError(NotFoundError):
    """Raised when a caller-supplied session id does not exist."""

    def __init__(self, session_id: str):
        super().__init__("Chat session", session_id)


class SessionAccessDeniedError(ForbiddenError):
    """Raised when a caller addresses a session owned by someone else."""

    def __init__(self, session_id: str, user_id: str):
        super().__init__(
            f"User '{user_id}' does not own chat session '{session_id}'",
            {"session_id": session_id},
        )


class TurnConflictError(ConflictError):
    """Raised when another turn on the same session did not finish in time."""

    def __init__(self, session_id: str, waited_seconds: float):
        super().__init__(
            "Another reply is still being generated for this session",
            {"session_id": session_id, "waited_seconds": waited_seconds},
        )


class ProviderError(NyaAIException):
    """Raised when the completion provider fails or returns an unusable reply."""

    public_message = "Failed to generate a response"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.provider_status = status_code
        error_details: Dict[str, Any] = {"provider_status": status_code}
        if details:
            error_details.update(details)
        super().__init__(message, "PROVIDER_ERROR", error_details)
