"""Shared DTOs for the NyaAI API."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.shared.utils import utc_now


class BaseDTO(BaseModel):
    """Base DTO with common configuration."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class HealthCheckResponse(BaseDTO):
    """Health check response DTO."""
    status: str = Field(description="Service status")
    timestamp: datetime = Field(default_factory=utc_now)
    version: str = Field(default="0.1.0")
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ErrorResponse(BaseDTO):
    """Error body returned by every failing endpoint."""
    error: str = Field(description="Error message safe to show the caller")
    code: str = Field(description="Error code")
    message_saved: Optional[bool] = Field(
        default=None,
        alias="messageSaved",
        description="Whether the user message was durably stored before the failure",
    )
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    details: Optional[Dict[str, Any]] = Field(default=None)
