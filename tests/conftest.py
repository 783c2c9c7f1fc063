import json
from typing import Dict, Iterable, List, Optional, Set
from uuid import uuid4

import httpx
import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from api.features.chat.capabilities import DEFAULT_PROFILES
from api.features.chat.entities import MessageRole
from api.features.chat.gateway import LLMGateway
from api.features.chat.history import HistoryWindow
from api.features.chat.models import MessageModel, SessionModel
from api.features.chat.registry import SessionRegistry
from api.features.chat.service import ChatOrchestrator, SessionLockRegistry
from api.shared.exceptions import AuthError, StoreError
from api.shared.utils import utc_now
from infra.resources import HttpClientResource

LLM_BASE_URL = "https://llm.test/v1"


class InMemoryMessageStore:
    """Message store kept in lists, with switches to simulate outages."""

    def __init__(self):
        self.sessions: Dict[str, SessionModel] = {}
        self.messages: List[MessageModel] = []
        self.fail_create = False
        self.fail_fetch = False
        self.fail_append_roles: Set[MessageRole] = set()

    async def create_session(self, *, user_id: str, title: str) -> SessionModel:
        if self.fail_create:
            raise StoreError("Session creation error: store offline")
        now = utc_now()
        session = SessionModel(
            id=str(uuid4()), user_id=user_id, title=title, created_at=now, updated_at=now
        )
        self.sessions[session.id] = session
        return session

    async def get_session(self, session_id: str) -> Optional[SessionModel]:
        return self.sessions.get(session_id)

    async def list_sessions(self, *, user_id: str, limit: int = 50) -> List[SessionModel]:
        owned = [s for s in self.sessions.values() if s.user_id == user_id]
        owned.sort(key=lambda s: s.updated_at, reverse=True)
        return owned[:limit]

    async def append_message(
        self, *, session_id: str, role: MessageRole, content: str
    ) -> MessageModel:
        role = MessageRole(role)
        if role in self.fail_append_roles:
            raise StoreError(f"{role.value.capitalize()} message save error: store offline")
        message = MessageModel(
            id=str(uuid4()),
            session_id=session_id,
            role=role,
            content=content,
            created_at=utc_now(),
        )
        self.messages.append(message)
        session = self.sessions.get(session_id)
        if session is not None:
            self.sessions[session_id] = session.model_copy(
                update={"updated_at": message.created_at}
            )
        return message

    async def fetch_recent_messages(
        self,
        *,
        session_id: str,
        limit: int = 10,
        exclude_message_id: Optional[str] = None,
    ) -> List[MessageModel]:
        if self.fail_fetch:
            raise StoreError("Message history error: store offline")
        if limit <= 0:
            return []
        rows = [
            m
            for m in self.messages
            if m.session_id == session_id and m.id != exclude_message_id
        ]
        return rows[-limit:]

    def messages_for(self, session_id: str) -> List[MessageModel]:
        return [m for m in self.messages if m.session_id == session_id]


class FakeAuthVerifier:
    def __init__(self, tokens: Dict[str, str]):
        self.tokens = tokens

    async def verify(self, authorization: Optional[str]) -> str:
        if not authorization:
            raise AuthError("No authorization header")
        token = authorization.removeprefix("Bearer ").strip()
        if token not in self.tokens:
            raise AuthError("Invalid authentication")
        return self.tokens[token]


def completion_body(text: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
    }


def chunk_frame(delta: dict, finish_reason: Optional[str] = None) -> str:
    choice = {"index": 0, "delta": delta, "finish_reason": finish_reason}
    return "data: " + json.dumps({"choices": [choice]}) + "\n\n"


def sse_frames(fragments: Iterable[str], *, done: bool = True) -> bytes:
    frames = [chunk_frame({"content": f}) for f in fragments]
    if done:
        frames.append(chunk_frame({}, "stop"))
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode()


def split_bytes(body: bytes, size: int) -> List[bytes]:
    return [body[i : i + size] for i in range(0, len(body), size)]


async def _aiter(chunks: List[bytes]):
    for chunk in chunks:
        yield chunk


class FakeProvider:
    """MockTransport handler speaking the OpenAI-compatible completions API.

    Streamed bodies end with a finish-reason chunk and the end marker when
    ``done`` is set, and are cut into small byte chunks so SSE lines straddle
    network reads. Every decoded request payload is kept in ``requests``.
    """

    def __init__(
        self,
        fragments: Iterable[str] = ("Under ", "Indian law, ", "tenants are protected."),
        *,
        status: int = 200,
        error: str = "Rate limit reached",
        done: bool = True,
        tail: bytes = b"",
        chunk_size: int = 7,
    ):
        self.fragments = list(fragments)
        self.status = status
        self.error = error
        self.done = done
        self.tail = tail
        self.chunk_size = chunk_size
        self.requests: List[dict] = []

    @property
    def text(self) -> str:
        return "".join(self.fragments)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        if self.status >= 400:
            return httpx.Response(self.status, json={"error": {"message": self.error}})
        if payload.get("stream"):
            body = sse_frames(self.fragments, done=False) + self.tail
            if self.done:
                body += sse_frames([], done=True)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=_aiter(split_bytes(body, self.chunk_size)),
            )
        return httpx.Response(200, json=completion_body(self.text))


def mock_http(handler) -> HttpClientResource:
    resource = HttpClientResource(timeout=5.0, transport=httpx.MockTransport(handler))
    resource.client = httpx.AsyncClient(transport=resource.transport)
    return resource


def make_gateway(provider) -> LLMGateway:
    return LLMGateway(mock_http(provider), base_url=LLM_BASE_URL, api_key="test-key")


def make_orchestrator(
    store: InMemoryMessageStore,
    provider,
    *,
    history_limit: int = 10,
    lock_timeout: float = 30.0,
) -> ChatOrchestrator:
    return ChatOrchestrator(
        store=store,
        registry=SessionRegistry(store),
        history=HistoryWindow(store, limit=history_limit),
        gateway=make_gateway(provider),
        capabilities=dict(DEFAULT_PROFILES),
        locks=SessionLockRegistry(timeout=lock_timeout),
    )


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_client(store):
    """Build a TestClient whose container talks to in-memory fakes."""

    def _make(provider, tokens: Optional[Dict[str, str]] = None) -> TestClient:
        from api.main import create_fastapi_app

        app = create_fastapi_app()
        services = app.container.services
        services.message_store.override(providers.Object(store))
        services.llm_gateway.override(providers.Object(make_gateway(provider)))
        services.auth_verifier.override(
            providers.Object(FakeAuthVerifier(tokens or {"token-a": "user-a", "token-b": "user-b"}))
        )
        return TestClient(app)

    return _make
