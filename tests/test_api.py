import asyncio
import json

from dependency_injector import providers

from api.features.chat.controller import format_sse
from api.features.chat.entities import MessageRole
from api.features.chat.models import ContentEvent, DoneEvent, ErrorEvent, SessionEvent
from api.shared.dtos import BaseDTO, HealthCheckResponse
from api.shared.response import ResponseModel
from tests.conftest import FakeProvider

AUTH_A = {"Authorization": "Bearer token-a"}


def _sse_payloads(body: str):
    frames = [f for f in body.split("\n\n") if f]
    assert all(f.startswith("data: ") for f in frames)
    return [f[len("data: "):] for f in frames]


def test_sse_frame_format():
    assert format_sse(SessionEvent(session_id="s-1")) == 'data: {"sessionId": "s-1"}\n\n'
    assert format_sse(ContentEvent(content="Hi")) == 'data: {"content": "Hi"}\n\n'
    assert format_sse(DoneEvent(session_id="s-1", assistant_message_id="m-1")) == "data: [DONE]\n\n"
    error = json.loads(
        format_sse(ErrorEvent(error="Failed", code="PROVIDER_ERROR", session_id="s-1"))[6:]
    )
    assert error == {
        "error": "Failed",
        "code": "PROVIDER_ERROR",
        "messageSaved": True,
        "sessionId": "s-1",
    }


def test_missing_credential_is_401(make_client, store, provider):
    client = make_client(provider)

    response = client.post("/api/v1/chat", json={"message": "Hello"})

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_ERROR"
    assert store.sessions == {}


def test_unknown_token_is_401(make_client, provider):
    client = make_client(provider)

    response = client.post(
        "/api/v1/chat", json={"message": "Hello"}, headers={"Authorization": "Bearer nope"}
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid authentication"


def test_blank_message_is_400(make_client, store, provider):
    client = make_client(provider)

    response = client.post("/api/v1/chat", json={"message": "  "}, headers=AUTH_A)

    assert response.status_code == 400
    assert response.json() == {"error": "Message is required", "code": "VALIDATION_ERROR"}
    assert store.sessions == {}
    assert provider.requests == []


def test_missing_message_field_is_400(make_client, provider):
    client = make_client(provider)

    response = client.post("/api/v1/chat", json={}, headers=AUTH_A)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_buffered_chat_returns_reply_and_session(make_client, store, provider):
    client = make_client(provider)

    response = client.post("/api/v1/chat", json={"message": "Hello"}, headers=AUTH_A)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["response"] == provider.text
    assert store.sessions[body["sessionId"]].user_id == "user-a"


def test_legacy_path_serves_the_same_endpoint(make_client, provider):
    client = make_client(provider)

    response = client.post("/chat", json={"message": "Hello"}, headers=AUTH_A)

    assert response.status_code == 200
    assert response.json()["response"] == provider.text


def test_streamed_chat_emits_session_content_done(make_client, store, provider):
    client = make_client(provider)

    response = client.post(
        "/api/v1/chat", json={"message": "Hello", "stream": True}, headers=AUTH_A
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    payloads = _sse_payloads(response.text)
    session_id = json.loads(payloads[0])["sessionId"]
    content = "".join(json.loads(p)["content"] for p in payloads[1:-1])
    assert content == provider.text
    assert payloads[-1] == "[DONE]"
    stored = store.messages_for(session_id)
    assert [(m.role, m.content) for m in stored] == [
        (MessageRole.USER, "Hello"),
        (MessageRole.ASSISTANT, provider.text),
    ]


def test_stream_rejected_up_front_is_plain_500(make_client, store):
    client = make_client(FakeProvider(status=503))

    response = client.post(
        "/api/v1/chat", json={"message": "Hello", "stream": True}, headers=AUTH_A
    )

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "PROVIDER_ERROR"
    assert body["error"] == "Failed to generate a response"
    assert body["messageSaved"] is True
    assert [m.role for m in store.messages_for(body["sessionId"])] == [MessageRole.USER]


def test_provider_failure_is_500_with_message_saved(make_client, store):
    client = make_client(FakeProvider(status=500, error="secret upstream detail"))

    response = client.post("/api/v1/chat", json={"message": "Hello"}, headers=AUTH_A)

    assert response.status_code == 500
    body = response.json()
    assert body["messageSaved"] is True
    assert "secret upstream detail" not in response.text


def test_store_failure_is_500(make_client, store, provider):
    store.fail_create = True
    client = make_client(provider)

    response = client.post("/api/v1/chat", json={"message": "Hello"}, headers=AUTH_A)

    assert response.status_code == 500
    assert response.json()["code"] == "STORE_ERROR"
    assert response.json()["messageSaved"] is False
    assert provider.requests == []


def test_foreign_session_is_403(make_client, store, provider):
    foreign = asyncio.run(store.create_session(user_id="user-b", title="Private"))
    client = make_client(provider)

    response = client.post(
        "/api/v1/chat",
        json={"message": "Hello", "sessionId": foreign.id},
        headers=AUTH_A,
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Access denied"
    assert store.messages == []


def test_unknown_session_is_404(make_client, provider):
    client = make_client(provider)

    response = client.post(
        "/api/v1/chat",
        json={"message": "Hello", "sessionId": "0b6f3b7e-3c39-4d3e-9a53-2a0f0a1f6d11"},
        headers=AUTH_A,
    )

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_malformed_session_id_is_400(make_client, provider):
    client = make_client(provider)

    response = client.post(
        "/api/v1/chat", json={"message": "Hello", "sessionId": "not-a-uuid"}, headers=AUTH_A
    )

    assert response.status_code == 400


def test_session_browsing(make_client, store, provider):
    client = make_client(provider)
    chat = client.post("/api/v1/chat", json={"message": "Hello"}, headers=AUTH_A).json()

    created = client.post("/api/v1/chat/sessions", json={}, headers=AUTH_A)
    listed = client.get("/api/v1/chat/sessions", headers=AUTH_A)
    messages = client.get(
        f"/api/v1/chat/sessions/{chat['sessionId']}/messages", headers=AUTH_A
    )

    assert created.json()["data"]["title"] == "New Consultation"
    ids = [s["id"] for s in listed.json()["data"]["items"]]
    assert set(ids) == {chat["sessionId"], created.json()["data"]["id"]}
    items = messages.json()["data"]["items"]
    assert [m["role"] for m in items] == ["user", "assistant"]
    assert "createdAt" in items[0]


def test_other_users_messages_are_hidden(make_client, store, provider):
    foreign = asyncio.run(store.create_session(user_id="user-b", title="Private"))
    client = make_client(provider)

    response = client.get(f"/api/v1/chat/sessions/{foreign.id}/messages", headers=AUTH_A)

    assert response.status_code == 403


def test_summarize_endpoint(make_client, store, provider):
    client = make_client(provider)

    response = client.post(
        "/api/v1/chat/summarize",
        json={"content": "Lease agreement text", "documentId": "doc-1"},
        headers=AUTH_A,
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "summary": provider.text,
        "documentId": "doc-1",
    }
    assert store.sessions == {}


class _ReachableDatabase:
    async def ping(self) -> None:
        return None


def test_chat_health_reports_unreachable_database(make_client, provider):
    client = make_client(provider)

    response = client.get("/api/v1/chat/health")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "error"
    assert body["data"]["status"] == "degraded"
    assert body["data"]["dependencies"] == {"database": "error"}


def test_chat_health_pings_database(make_client, provider):
    client = make_client(provider)
    client.app.container.infrastructure.database.override(
        providers.Object(_ReachableDatabase())
    )

    response = client.get("/api/v1/chat/health")

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "healthy"
    assert body["data"]["dependencies"] == {"database": "ok"}


def test_envelope_and_dto_serialization():
    envelope = ResponseModel[HealthCheckResponse].success(
        data=HealthCheckResponse(status="healthy"), message="ok"
    )

    dumped = json.loads(envelope.model_dump_json())

    assert dumped["status"] == "ok"
    assert isinstance(dumped["data"]["timestamp"], str)
    assert not hasattr(ResponseModel, "error")
    assert "json_encoders" not in BaseDTO.model_config
