"""Controller for the Chat feature."""
import json
import logging
from contextlib import aclosing
from typing import AsyncIterator, Union
from uuid import UUID

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from api.features.chat.dtos import (
    ChatRequest,
    ChatResponse,
    CreateSessionRequest,
    MessageDTO,
    MessagesResponse,
    SessionDTO,
    SessionListResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from api.features.chat.models import (
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    MessageModel,
    SessionEvent,
    SessionModel,
    TurnEvent,
)
from api.features.chat.registry import SessionRegistry
from api.features.chat.repository import MessageStore
from api.features.chat.service import ChatOrchestrator, StreamingTurn

logger = logging.getLogger("nyaai.chat")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: TurnEvent) -> str:
    """Render one turn event as a server-sent event frame."""
    if isinstance(event, DoneEvent):
        return "data: [DONE]\n\n"
    if isinstance(event, SessionEvent):
        body = {"sessionId": event.session_id}
    elif isinstance(event, ContentEvent):
        body = {"content": event.content}
    elif isinstance(event, ErrorEvent):
        body = {
            "error": event.error,
            "code": event.code,
            "messageSaved": event.message_saved,
            "sessionId": event.session_id,
        }
    else:
        raise TypeError(f"Unsupported turn event: {event!r}")
    return f"data: {json.dumps(body)}\n\n"


def _session_dto(session: SessionModel) -> SessionDTO:
    return SessionDTO(
        id=session.id,
        title=session.title,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


def _message_dto(message: MessageModel) -> MessageDTO:
    return MessageDTO(
        id=message.id,
        role=message.role,
        content=message.content,
        created_at=message.created_at,
    )


class ChatController:
    """Controller handling chat turns and session browsing."""

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        registry: SessionRegistry,
        store: MessageStore,
    ) -> None:
        self.orchestrator = orchestrator
        self.registry = registry
        self.store = store

    async def send_message(
        self, *, request: ChatRequest, user_id: str
    ) -> Union[ChatResponse, StreamingResponse]:
        session_id = str(request.session_id) if request.session_id else None
        logger.info(
            "Processing chat for user %s (stream=%s, session=%s)",
            user_id,
            request.stream,
            session_id,
        )

        if request.stream:
            turn = await self.orchestrator.open_turn_stream(
                user_id=user_id, message=request.message, session_id=session_id
            )
            return StreamingResponse(
                self._stream_events(turn),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
                background=BackgroundTask(turn.aclose),
            )

        result = await self.orchestrator.run_turn(
            user_id=user_id, message=request.message, session_id=session_id
        )
        return ChatResponse(response=result.response, session_id=result.session_id)

    @staticmethod
    async def _stream_events(turn: StreamingTurn) -> AsyncIterator[str]:
        async with aclosing(turn.events()) as events:
            async for event in events:
                yield format_sse(event)

    async def summarize(
        self, *, request: SummarizeRequest, user_id: str
    ) -> SummarizeResponse:
        summary = await self.orchestrator.summarize(user_id=user_id, content=request.content)
        return SummarizeResponse(summary=summary, document_id=request.document_id)

    async def create_session(
        self, *, request: CreateSessionRequest, user_id: str
    ) -> SessionDTO:
        session = await self.registry.create_empty_session(
            user_id=user_id, title=request.title
        )
        return _session_dto(session)

    async def list_sessions(self, *, user_id: str, limit: int) -> SessionListResponse:
        sessions = await self.store.list_sessions(user_id=user_id, limit=limit)
        items = [_session_dto(s) for s in sessions]
        return SessionListResponse(items=items, total=len(items))

    async def get_messages(
        self, *, session_id: UUID, user_id: str, limit: int
    ) -> MessagesResponse:
        session = await self.registry.get_owned_session(
            user_id=user_id, session_id=str(session_id)
        )
        messages = await self.store.fetch_recent_messages(
            session_id=session.id, limit=limit
        )
        items = [_message_dto(m) for m in messages]
        return MessagesResponse(session_id=session.id, items=items, total=len(items))
