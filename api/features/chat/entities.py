"""Chat session and message entities."""
from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from api.shared.entities.base import BaseEntity
from api.shared.utils import utc_now

DEFAULT_SESSION_TITLE = "New Consultation"


class MessageRole(str, Enum):
    """Author of a message within a session."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatSession(BaseEntity):
    """One ongoing conversation owned by a single user."""

    __tablename__ = "chat_sessions"

    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    title: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_SESSION_TITLE
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class ChatMessage(BaseEntity):
    """Immutable turn entry; ordered by created_at within its session."""

    __tablename__ = "chat_messages"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_chat_messages_role"),
        Index("ix_chat_messages_session_created", "session_id", "created_at"),
    )

    session_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
