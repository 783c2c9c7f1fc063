"""Conversation orchestrator: turns one user message into a persisted turn.

Side effects are strictly ordered. The user message is durable before the
provider is called, and the assistant message is written only after the
provider finished (buffered) or sent its end-of-stream marker (streamed).
"""
from __future__ import annotations

import asyncio
import weakref
from contextlib import aclosing
from typing import AsyncIterator, List, Mapping, Optional, Tuple

import structlog

from api.features.chat.capabilities import Capability, CapabilityProfile
from api.features.chat.exceptions import ProviderError, TurnConflictError
from api.features.chat.gateway import CompletionStream, LLMGateway
from api.features.chat.history import HistoryWindow
from api.features.chat.models import (
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    HistoryEntry,
    MessageModel,
    SessionEvent,
    TurnEvent,
    TurnResult,
    TurnState,
)
from api.features.chat.entities import MessageRole
from api.features.chat.prompts import build_summary_request
from api.features.chat.registry import SessionRegistry
from api.features.chat.repository import MessageStore
from api.shared.exceptions import NyaAIException, StoreError, ValidationError

logger = structlog.get_logger("nyaai.chat.service")


class SessionLockRegistry:
    """Per-session asyncio locks serializing turns within one process.

    Locks are held weakly, so idle sessions cost nothing.
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def acquire(self, session_id: str) -> asyncio.Lock:
        lock = self.lock_for(session_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise TurnConflictError(session_id, self.timeout)
        return lock


_PROMPT_SAVED_STATES = frozenset(
    {
        TurnState.USER_MESSAGE_PERSISTED,
        TurnState.HISTORY_LOADED,
        TurnState.GENERATION_IN_FLIGHT,
    }
)


def _mark_failed(
    error: NyaAIException, *, session_id: Optional[str], state: TurnState
) -> None:
    """Annotate an error with where the turn stopped."""
    error.details.setdefault("session_id", session_id)
    error.details.setdefault("turn_state", state.value)
    error.details.setdefault("message_saved", state in _PROMPT_SAVED_STATES)


class StreamingTurn:
    """A turn whose reply is being streamed; owns the session lock until closed."""

    def __init__(
        self,
        *,
        store: MessageStore,
        session_id: str,
        user_message: MessageModel,
        completion: CompletionStream,
        lock: asyncio.Lock,
        log,
    ):
        self.store = store
        self.session_id = session_id
        self.user_message = user_message
        self.completion = completion
        self.state = TurnState.GENERATION_IN_FLIGHT
        self.assistant_message: Optional[MessageModel] = None
        self._lock = lock
        self._log = log
        self._closed = False

    async def events(self) -> AsyncIterator[TurnEvent]:
        try:
            yield SessionEvent(session_id=self.session_id)

            try:
                async with aclosing(self.completion.fragments()) as fragments:
                    async for fragment in fragments:
                        yield ContentEvent(content=fragment)
                if not self.completion.text.strip():
                    raise ProviderError("Provider returned an empty completion")
            except ProviderError as e:
                _mark_failed(e, session_id=self.session_id, state=self.state)
                self.state = TurnState.FAILED
                self._log.error("chat_stream_failed", error=e.message)
                await self._persist_partial()
                yield ErrorEvent(
                    error=e.client_message,
                    code=e.error_code,
                    session_id=self.session_id,
                    message_saved=True,
                )
                return

            try:
                self.assistant_message = await self.store.append_message(
                    session_id=self.session_id,
                    role=MessageRole.ASSISTANT,
                    content=self.completion.text,
                )
            except StoreError as e:
                self.state = TurnState.FAILED
                self._log.error("chat_assistant_message_save_failed", error=e.message)
                yield ErrorEvent(
                    error=e.client_message,
                    code=e.error_code,
                    session_id=self.session_id,
                    message_saved=True,
                )
                return

            self.state = TurnState.COMPLETED
            self._log.info(
                "chat_turn_completed",
                streamed=True,
                response_chars=len(self.completion.text),
            )
            yield DoneEvent(
                session_id=self.session_id,
                assistant_message_id=self.assistant_message.id,
            )
        except (asyncio.CancelledError, GeneratorExit):
            if self.state is not TurnState.COMPLETED:
                self.state = TurnState.FAILED
                self._log.info(
                    "chat_stream_cancelled",
                    partial_chars=len(self.completion.text),
                )
            raise
        finally:
            await self.aclose()

    async def _persist_partial(self) -> None:
        partial = self.completion.text
        if not partial.strip():
            return
        try:
            self.assistant_message = await self.store.append_message(
                session_id=self.session_id,
                role=MessageRole.ASSISTANT,
                content=partial,
            )
            self._log.warning("chat_stream_partial_persisted", partial_chars=len(partial))
        except StoreError as e:
            self._log.error("chat_stream_partial_lost", error=e.message, partial_chars=len(partial))

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.completion.aclose()
        finally:
            self._lock.release()


class ChatOrchestrator:
    """Composes registry, store, history window and gateway into a turn."""

    def __init__(
        self,
        *,
        store: MessageStore,
        registry: SessionRegistry,
        history: HistoryWindow,
        gateway: LLMGateway,
        capabilities: Mapping[Capability, CapabilityProfile],
        locks: SessionLockRegistry,
        summary_max_chars: int = 15000,
    ):
        self.store = store
        self.registry = registry
        self.history = history
        self.gateway = gateway
        self.capabilities = capabilities
        self.locks = locks
        self.summary_max_chars = summary_max_chars

    @staticmethod
    def _validate_message(message: Optional[str]) -> str:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Message is required")
        return message

    async def _load_history(
        self, session_id: str, user_message_id: str, log
    ) -> Tuple[List[HistoryEntry], bool]:
        try:
            entries = await self.history.load_history(
                session_id, exclude_message_id=user_message_id
            )
            return entries, False
        except StoreError as e:
            log.warning("chat_history_unavailable", error=e.message)
            return [], True

    async def _begin_turn(
        self, *, user_id: str, message: str, session_id: Optional[str], log
    ) -> Tuple[str, asyncio.Lock, MessageModel]:
        """Steps 1-2: resolve the session, then durably record the prompt."""
        try:
            session_id = await self.registry.ensure_session(
                user_id=user_id, session_id=session_id, first_message=message
            )
        except NyaAIException as e:
            _mark_failed(e, session_id=session_id, state=TurnState.IDLE)
            log.warning("chat_session_unresolved", error=e.message, code=e.error_code)
            raise
        log = log.bind(session_id=session_id)

        lock = await self.locks.acquire(session_id)
        try:
            user_message = await self.store.append_message(
                session_id=session_id, role=MessageRole.USER, content=message
            )
        except NyaAIException as e:
            lock.release()
            _mark_failed(e, session_id=session_id, state=TurnState.SESSION_RESOLVED)
            log.error("chat_user_message_save_failed", error=e.message)
            raise
        except BaseException:
            lock.release()
            raise
        return session_id, lock, user_message

    async def run_turn(
        self,
        *,
        user_id: str,
        message: str,
        session_id: Optional[str] = None,
        capability: Capability = Capability.LEGAL_CHAT,
    ) -> TurnResult:
        """Buffered turn: returns once the assistant message is stored."""
        message = self._validate_message(message)
        profile = self.capabilities[capability]
        log = logger.bind(user_id=user_id, capability=capability.value)

        session_id, lock, user_message = await self._begin_turn(
            user_id=user_id, message=message, session_id=session_id, log=log
        )
        state = TurnState.USER_MESSAGE_PERSISTED
        log = log.bind(session_id=session_id)
        try:
            history, degraded = await self._load_history(session_id, user_message.id, log)
            state = TurnState.HISTORY_LOADED
            try:
                state = TurnState.GENERATION_IN_FLIGHT
                response = await self.gateway.complete(profile, history, message)
                assistant_message = await self.store.append_message(
                    session_id=session_id, role=MessageRole.ASSISTANT, content=response
                )
            except NyaAIException as e:
                _mark_failed(e, session_id=session_id, state=state)
                log.error("chat_turn_failed", error=e.message, code=e.error_code)
                raise
            state = TurnState.COMPLETED
        finally:
            lock.release()

        log.info(
            "chat_turn_completed",
            streamed=False,
            state=state.value,
            history_size=len(history),
            history_degraded=degraded,
            response_chars=len(response),
        )
        return TurnResult(
            session_id=session_id,
            response=response,
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            history_size=len(history),
            history_degraded=degraded,
        )

    async def open_turn_stream(
        self,
        *,
        user_id: str,
        message: str,
        session_id: Optional[str] = None,
        capability: Capability = Capability.LEGAL_CHAT,
    ) -> StreamingTurn:
        """Run everything up to the provider's status line, then hand back the stream.

        Failures up to that point raise here, so they surface as ordinary
        error responses rather than stream events.
        """
        message = self._validate_message(message)
        profile = self.capabilities[capability]
        log = logger.bind(user_id=user_id, capability=capability.value)

        session_id, lock, user_message = await self._begin_turn(
            user_id=user_id, message=message, session_id=session_id, log=log
        )
        log = log.bind(session_id=session_id)
        handed_off = False
        try:
            history, degraded = await self._load_history(session_id, user_message.id, log)
            try:
                completion = await self.gateway.open_stream(profile, history, message)
            except NyaAIException as e:
                _mark_failed(e, session_id=session_id, state=TurnState.GENERATION_IN_FLIGHT)
                log.error("chat_turn_failed", error=e.message, code=e.error_code)
                raise
            log.info(
                "chat_stream_opened",
                history_size=len(history),
                history_degraded=degraded,
            )
            turn = StreamingTurn(
                store=self.store,
                session_id=session_id,
                user_message=user_message,
                completion=completion,
                lock=lock,
                log=log,
            )
            handed_off = True
            return turn
        finally:
            if not handed_off:
                lock.release()

    async def summarize(self, *, user_id: str, content: str) -> str:
        """Stateless document summary through the same gateway."""
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Document content is required")
        profile = self.capabilities[Capability.DOCUMENT_SUMMARY]
        try:
            summary = await self.gateway.complete(
                profile, [], build_summary_request(content, self.summary_max_chars)
            )
        except ProviderError as e:
            logger.error("document_summary_failed", user_id=user_id, error=e.message)
            raise
        logger.info("document_summary_completed", user_id=user_id, chars=len(content))
        return summary
