"""Domain models for the Chat feature."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from api.features.chat.entities import ChatMessage, ChatSession, MessageRole


class SessionModel(BaseModel):
    """Domain model for a chat session."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Session identifier")
    user_id: str = Field(description="Owning user")
    title: str = Field(description="Human readable title")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last message timestamp")

    @classmethod
    def from_entity(cls, entity: ChatSession) -> "SessionModel":
        return cls(
            id=str(entity.id),
            user_id=entity.user_id,
            title=entity.title,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class MessageModel(BaseModel):
    """Domain model for a stored message."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Message identifier")
    session_id: str = Field(description="Owning session")
    role: MessageRole = Field(description="user or assistant")
    content: str = Field(description="Message text")
    created_at: datetime = Field(description="Creation timestamp")

    @classmethod
    def from_entity(cls, entity: ChatMessage) -> "MessageModel":
        return cls(
            id=str(entity.id),
            session_id=str(entity.session_id),
            role=MessageRole(entity.role),
            content=entity.content,
            created_at=entity.created_at,
        )


class HistoryEntry(BaseModel):
    """One prior message as supplied to the model."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str

    def as_prompt_message(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class TurnState(str, Enum):
    """Progress of a single conversation turn."""

    IDLE = "idle"
    SESSION_RESOLVED = "session_resolved"
    USER_MESSAGE_PERSISTED = "user_message_persisted"
    HISTORY_LOADED = "history_loaded"
    GENERATION_IN_FLIGHT = "generation_in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TurnResult:
    """Outcome of a buffered turn."""

    session_id: str
    response: str
    user_message_id: str
    assistant_message_id: str
    history_size: int
    history_degraded: bool = False


# Completion outcome at the provider boundary.


@dataclass(frozen=True)
class CompletionOk:
    text: str


@dataclass(frozen=True)
class CompletionErr:
    reason: str
    status_code: Optional[int] = None


CompletionResult = Union[CompletionOk, CompletionErr]


# Events emitted by a streaming turn, in order:
# one SessionEvent, zero or more ContentEvents, then DoneEvent or ErrorEvent.


@dataclass(frozen=True)
class SessionEvent:
    session_id: str
    kind: Literal["session"] = "session"


@dataclass(frozen=True)
class ContentEvent:
    content: str
    kind: Literal["content"] = "content"


@dataclass(frozen=True)
class DoneEvent:
    session_id: str
    assistant_message_id: str
    kind: Literal["done"] = "done"


@dataclass(frozen=True)
class ErrorEvent:
    error: str
    code: str
    session_id: str
    message_saved: bool = True
    kind: Literal["error"] = "error"


TurnEvent = Union[SessionEvent, ContentEvent, DoneEvent, ErrorEvent]
