"""Bearer-token verification against the hosted auth provider."""
import logging
from typing import Optional

import httpx

from api.shared.exceptions import AuthError, ExternalServiceError
from infra.resources import HttpClientResource

logger = logging.getLogger("nyaai.auth")


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("No authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid authentication")
    return token.strip()


class SupabaseAuthVerifier:
    """Resolves a bearer token to a user id via ``GET /auth/v1/user``."""

    def __init__(
        self,
        http: HttpClientResource,
        *,
        supabase_url: str,
        anon_key: str,
        timeout: float = 10.0,
    ):
        self.http = http
        self.user_url = f"{supabase_url.rstrip('/')}/auth/v1/user"
        self.anon_key = anon_key
        self.timeout = timeout

    async def verify(self, authorization: Optional[str]) -> str:
        token = extract_bearer_token(authorization)
        client = self.http.get_client()
        try:
            response = await client.get(
                self.user_url,
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError("auth", str(e)) from e

        if response.status_code in (400, 401, 403, 404):
            raise AuthError("Invalid authentication")
        if response.is_error:
            logger.warning("Auth provider returned status %s", response.status_code)
            raise ExternalServiceError("auth", f"status {response.status_code}")

        try:
            user_id = response.json().get("id")
        except (ValueError, AttributeError):
            user_id = None
        if not user_id:
            raise AuthError("Invalid authentication")
        logger.debug("Authenticated request for user %s", user_id)
        return str(user_id)
