"""DTOs for the Chat feature."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from api.features.chat.entities import MessageRole
from api.shared.dtos import BaseDTO


class ChatRequest(BaseDTO):
    """One user message, optionally continuing an existing session."""

    message: str = Field(..., description="User message")
    session_id: Optional[UUID] = Field(
        default=None, alias="sessionId", description="Existing session to continue"
    )
    stream: bool = Field(default=False, description="Stream the reply as server-sent events")

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message is required")
        return v


class ChatResponse(BaseDTO):
    """Buffered reply."""

    success: bool = Field(default=True)
    response: str = Field(description="Assistant reply")
    session_id: str = Field(alias="sessionId", description="Session the turn was stored in")


class SummarizeRequest(BaseDTO):
    content: str = Field(..., description="Document text")
    document_id: Optional[str] = Field(default=None, alias="documentId")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Document content is required")
        return v


class SummarizeResponse(BaseDTO):
    success: bool = Field(default=True)
    summary: str = Field(description="Generated summary")
    document_id: Optional[str] = Field(default=None, alias="documentId")


class CreateSessionRequest(BaseDTO):
    title: Optional[str] = Field(default=None, max_length=500, description="Session title")


class SessionDTO(BaseDTO):
    id: str = Field(description="Session identifier")
    title: str = Field(description="Session title")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class SessionListResponse(BaseDTO):
    items: List[SessionDTO] = Field(description="Sessions, most recently active first")
    total: int = Field(description="Number of sessions returned")


class MessageDTO(BaseDTO):
    id: str = Field(description="Message identifier")
    role: MessageRole = Field(description="user or assistant")
    content: str = Field(description="Message content")
    created_at: datetime = Field(alias="createdAt")


class MessagesResponse(BaseDTO):
    session_id: str = Field(alias="sessionId")
    items: List[MessageDTO] = Field(description="Messages in chronological order")
    total: int = Field(description="Number of messages returned")
