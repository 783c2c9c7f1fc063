import asyncio

import httpx
import pytest

from api.shared.auth import SupabaseAuthVerifier, extract_bearer_token
from api.shared.exceptions import AuthError, ExternalServiceError
from tests.conftest import mock_http


def _verifier(handler) -> SupabaseAuthVerifier:
    return SupabaseAuthVerifier(
        mock_http(handler), supabase_url="https://auth.test/", anon_key="anon"
    )


def test_bearer_token_extraction():
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("bearer  abc ") == "abc"
    for header in (None, "", "Basic abc", "Bearer "):
        with pytest.raises(AuthError):
            extract_bearer_token(header)


def test_valid_token_resolves_user_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["apikey"] = request.headers["apikey"]
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"id": "user-a", "email": "a@example.com"})

    user_id = asyncio.run(_verifier(handler).verify("Bearer jwt-1"))

    assert user_id == "user-a"
    assert seen == {
        "url": "https://auth.test/auth/v1/user",
        "apikey": "anon",
        "auth": "Bearer jwt-1",
    }


def test_rejected_token_is_auth_error():
    verifier = _verifier(lambda request: httpx.Response(401, json={"msg": "bad jwt"}))

    with pytest.raises(AuthError):
        asyncio.run(verifier.verify("Bearer expired"))


def test_missing_header_never_calls_provider():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"id": "user-a"})

    with pytest.raises(AuthError):
        asyncio.run(_verifier(handler).verify(None))
    assert calls == []


def test_provider_outage_is_not_an_auth_error():
    verifier = _verifier(lambda request: httpx.Response(503))

    with pytest.raises(ExternalServiceError):
        asyncio.run(verifier.verify("Bearer jwt-1"))
