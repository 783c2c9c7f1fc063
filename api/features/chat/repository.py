"""Message store: append-only persistence for chat sessions and messages.

Each operation opens its own short-lived AsyncSession and commits before
returning, so a successful call means the row is durable. The store is
constructed once per process and shared by all requests.
"""
from __future__ import annotations

from typing import List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from api.features.chat.entities import ChatMessage, ChatSession, MessageRole
from api.features.chat.models import MessageModel, SessionModel
from api.shared.exceptions import StoreError
from api.shared.utils import utc_now
from infra.resources import DatabaseResource


class MessageStore(Protocol):
    """Capability the orchestrator needs from persistence."""

    async def create_session(self, *, user_id: str, title: str) -> SessionModel: ...

    async def get_session(self, session_id: str) -> Optional[SessionModel]: ...

    async def list_sessions(self, *, user_id: str, limit: int = 50) -> List[SessionModel]: ...

    async def append_message(
        self, *, session_id: str, role: MessageRole, content: str
    ) -> MessageModel: ...

    async def fetch_recent_messages(
        self,
        *,
        session_id: str,
        limit: int = 10,
        exclude_message_id: Optional[str] = None,
    ) -> List[MessageModel]: ...


class SqlMessageStore:
    """SQLAlchemy implementation of :class:`MessageStore`."""

    def __init__(self, database: DatabaseResource):
        self.database = database

    async def create_session(self, *, user_id: str, title: str) -> SessionModel:
        now = utc_now()
        entity = ChatSession(user_id=user_id, title=title, created_at=now, updated_at=now)
        try:
            async with self.database.get_session() as session:
                session.add(entity)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(
                f"Session creation error: {e}", {"user_id": user_id}
            ) from e
        return SessionModel.from_entity(entity)

    async def get_session(self, session_id: str) -> Optional[SessionModel]:
        try:
            async with self.database.get_session() as session:
                entity = await session.get(ChatSession, session_id)
        except SQLAlchemyError as e:
            raise StoreError(
                f"Session lookup error: {e}", {"session_id": session_id}
            ) from e
        return SessionModel.from_entity(entity) if entity else None

    async def list_sessions(self, *, user_id: str, limit: int = 50) -> List[SessionModel]:
        stmt = (
            select(ChatSession)
            .where(ChatSession.user_id == user_id)
            .order_by(ChatSession.updated_at.desc())
            .limit(limit)
        )
        try:
            async with self.database.get_session() as session:
                result = await session.execute(stmt)
                entities = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Session listing error: {e}", {"user_id": user_id}) from e
        return [SessionModel.from_entity(e) for e in entities]

    async def append_message(
        self, *, session_id: str, role: MessageRole, content: str
    ) -> MessageModel:
        now = utc_now()
        entity = ChatMessage(
            session_id=session_id,
            role=MessageRole(role).value,
            content=content,
            created_at=now,
        )
        try:
            async with self.database.get_session() as session:
                session.add(entity)
                # Bump session updated_at for recency ordering
                await session.execute(
                    update(ChatSession)
                    .where(ChatSession.id == session_id)
                    .values(updated_at=now)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(
                f"{MessageRole(role).value.capitalize()} message save error: {e}",
                {"session_id": session_id, "role": MessageRole(role).value},
            ) from e
        return MessageModel.from_entity(entity)

    async def fetch_recent_messages(
        self,
        *,
        session_id: str,
        limit: int = 10,
        exclude_message_id: Optional[str] = None,
    ) -> List[MessageModel]:
        """Return the newest ``limit`` messages in chronological order."""
        if limit <= 0:
            return []
        stmt = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if exclude_message_id is not None:
            stmt = stmt.where(ChatMessage.id != exclude_message_id)
        stmt = stmt.order_by(ChatMessage.created_at.desc()).limit(limit)
        try:
            async with self.database.get_session() as session:
                result = await session.execute(stmt)
                entities = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(
                f"Message history error: {e}", {"session_id": session_id}
            ) from e
        # Return chronological order
        return [MessageModel.from_entity(e) for e in reversed(entities)]
