"""Session registry: resolve or lazily create the session for a turn."""
from typing import Optional

import structlog

from api.features.chat.entities import DEFAULT_SESSION_TITLE
from api.features.chat.exceptions import SessionAccessDeniedError, SessionNotFoundError
from api.features.chat.models import SessionModel
from api.features.chat.repository import MessageStore
from api.shared.utils import truncate_text

logger = structlog.get_logger("nyaai.chat.registry")


def derive_session_title(first_message: str, max_length: int = 50) -> str:
    """Title for a new session: the message itself, or its head plus an ellipsis."""
    return truncate_text(first_message, max_length, suffix="...")


class SessionRegistry:
    """Creates sessions and enforces that callers only address their own."""

    def __init__(self, store: MessageStore, title_max_length: int = 50):
        self.store = store
        self.title_max_length = title_max_length

    async def ensure_session(
        self,
        *,
        user_id: str,
        session_id: Optional[str],
        first_message: str,
    ) -> str:
        if session_id:
            session = await self.get_owned_session(user_id=user_id, session_id=session_id)
            return session.id

        session = await self.store.create_session(
            user_id=user_id,
            title=derive_session_title(first_message, self.title_max_length),
        )
        logger.info("chat_session_created", user_id=user_id, session_id=session.id)
        return session.id

    async def create_empty_session(
        self, *, user_id: str, title: Optional[str] = None
    ) -> SessionModel:
        title = (title or "").strip() or DEFAULT_SESSION_TITLE
        session = await self.store.create_session(
            user_id=user_id,
            title=derive_session_title(title, self.title_max_length),
        )
        logger.info("chat_session_created", user_id=user_id, session_id=session.id)
        return session

    async def get_owned_session(self, *, user_id: str, session_id: str) -> SessionModel:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.user_id != user_id:
            logger.warning(
                "chat_session_access_denied",
                user_id=user_id,
                session_id=session_id,
            )
            raise SessionAccessDeniedError(session_id, user_id)
        return session
