"""LLM gateway for OpenAI-compatible chat completion providers.

Buffered calls are reduced to ``CompletionOk | CompletionErr`` at the
boundary; streamed calls are exposed as a :class:`CompletionStream` that
forwards each decoded fragment as soon as the provider sends it.
"""
from __future__ import annotations

import time
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import httpx
import structlog
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    AsyncStream,
    OpenAIError,
)

from api.features.chat.capabilities import CapabilityProfile
from api.features.chat.exceptions import ProviderError
from api.features.chat.models import (
    CompletionErr,
    CompletionOk,
    CompletionResult,
    HistoryEntry,
)
from infra.resources import HttpClientResource

logger = structlog.get_logger("nyaai.chat.gateway")


def build_prompt_messages(
    system_prompt: str, history: Sequence[HistoryEntry], user_message: str
) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(entry.as_prompt_message() for entry in history)
    messages.append({"role": "user", "content": user_message})
    return messages


def parse_completion(completion: Any) -> CompletionResult:
    """Reduce a buffered provider completion to the text it carries."""
    choices = getattr(completion, "choices", None)
    if not isinstance(choices, list) or not choices:
        return CompletionErr("Malformed provider response")
    message = getattr(choices[0], "message", None)
    if message is None:
        return CompletionErr("Malformed provider response")
    text = getattr(message, "content", None)
    if not isinstance(text, str) or not text.strip():
        return CompletionErr("Provider returned an empty completion")
    return CompletionOk(text)


def read_chunk(chunk: Any) -> Tuple[Optional[str], Optional[str]]:
    """``(content, finish_reason)`` carried by one streamed chunk.

    Chunks without a usable first choice carry nothing. Content that is
    present but not text is a provider fault.
    """
    choices = getattr(chunk, "choices", None)
    if not isinstance(choices, list) or not choices:
        return None, None
    choice = choices[0]
    finish_reason = getattr(choice, "finish_reason", None)
    delta = getattr(choice, "delta", None)
    content = getattr(delta, "content", None) if delta is not None else None
    if content is not None and not isinstance(content, str):
        raise ProviderError(
            "Malformed provider stream chunk",
            details={"content_type": type(content).__name__},
        )
    return content or None, finish_reason if isinstance(finish_reason, str) else None


def _error_text(body: Any) -> str:
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    if isinstance(body, str) and body:
        return body
    return "Unknown error"


class CompletionStream:
    """Live sequence of fragments from one streamed provider response.

    Iterate :meth:`fragments` once. ``text`` accumulates everything forwarded
    so far; ``completed`` turns true only once the provider reports a finish
    reason. The upstream response is closed when iteration ends for any
    reason, including the consumer closing the iterator.
    """

    def __init__(self, stream: AsyncStream):
        self._stream = stream
        self._parts: List[str] = []
        self.finish_reason: Optional[str] = None
        self.completed = False
        self.closed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def fragments(self) -> AsyncIterator[str]:
        try:
            async for chunk in self._stream:
                fragment, finish_reason = read_chunk(chunk)
                if fragment:
                    self._parts.append(fragment)
                    yield fragment
                if finish_reason:
                    self.finish_reason = finish_reason
                    self.completed = True
        except APIError as e:
            raise ProviderError(f"Provider stream error: {e.message}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider stream interrupted: {e}") from e
        except ValueError as e:
            raise ProviderError("Malformed provider stream frame") from e
        finally:
            await self.aclose()

        if not self.completed:
            raise ProviderError("Provider stream ended before the completion marker")

    async def aclose(self) -> None:
        if not self.closed:
            self.closed = True
            await self._stream.close()


class LLMGateway:
    """Sends system + history + user prompts to the completion provider.

    The OpenAI client rides on the shared HTTP client, so it is built on
    first use, after the application lifespan has opened that client.
    """

    def __init__(
        self,
        http: HttpClientResource,
        *,
        base_url: str,
        api_key: str,
        timeout: float = 60.0,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: Optional[AsyncOpenAI] = None
        self._http_client: Optional[httpx.AsyncClient] = None

    def _openai(self) -> AsyncOpenAI:
        http_client = self.http.get_client()
        if self._client is None or self._http_client is not http_client:
            try:
                self._client = AsyncOpenAI(
                    api_key=self.api_key,
                    base_url=self.base_url,
                    http_client=http_client,
                    timeout=self.timeout,
                    max_retries=0,
                )
                self._http_client = http_client
            except OpenAIError as e:
                raise ProviderError(f"Provider client misconfigured: {e}") from e
        return self._client

    def _request_params(
        self,
        profile: CapabilityProfile,
        history: Sequence[HistoryEntry],
        user_message: str,
        *,
        stream: bool,
    ) -> Dict[str, Any]:
        params = profile.sampling_params()
        params["messages"] = build_prompt_messages(
            profile.system_prompt, history, user_message
        )
        params["stream"] = stream
        return params

    async def request_completion(
        self,
        profile: CapabilityProfile,
        history: Sequence[HistoryEntry],
        user_message: str,
    ) -> CompletionResult:
        start = time.time()
        try:
            client = self._openai()
            completion = await client.chat.completions.create(
                **self._request_params(profile, history, user_message, stream=False)
            )
        except ProviderError as e:
            return CompletionErr(e.message)
        except APIStatusError as e:
            logger.warning(
                "provider_call_failed",
                model=profile.model,
                status=e.status_code,
                latency_ms=int((time.time() - start) * 1000),
            )
            return CompletionErr(f"Provider API error: {_error_text(e.body)}", e.status_code)
        except APIConnectionError as e:
            return CompletionErr(f"Provider unreachable: {e}")
        except APIError as e:
            return CompletionErr(f"Provider request failed: {e.message}")
        except ValueError:
            return CompletionErr("Provider returned a non-JSON body")

        usage = getattr(completion, "usage", None)
        logger.info(
            "provider_call_completed",
            model=profile.model,
            latency_ms=int((time.time() - start) * 1000),
            total_tokens=getattr(usage, "total_tokens", None),
        )
        return parse_completion(completion)

    async def complete(
        self,
        profile: CapabilityProfile,
        history: Sequence[HistoryEntry],
        user_message: str,
    ) -> str:
        result = await self.request_completion(profile, history, user_message)
        if isinstance(result, CompletionErr):
            raise ProviderError(result.reason, result.status_code)
        return result.text

    async def open_stream(
        self,
        profile: CapabilityProfile,
        history: Sequence[HistoryEntry],
        user_message: str,
    ) -> CompletionStream:
        """Start a streamed completion; the status line is checked before returning."""
        client = self._openai()
        try:
            stream = await client.chat.completions.create(
                **self._request_params(profile, history, user_message, stream=True)
            )
        except APIStatusError as e:
            logger.warning(
                "provider_stream_rejected",
                model=profile.model,
                status=e.status_code,
            )
            raise ProviderError(
                f"Provider API error: {_error_text(e.body)}", e.status_code
            ) from e
        except APIConnectionError as e:
            raise ProviderError(f"Provider unreachable: {e}") from e
        except APIError as e:
            raise ProviderError(f"Provider request failed: {e.message}") from e

        return CompletionStream(stream)
