"""Provider adapters: protocol-level handling for each text-generation backend.

Each adapter translates a CompletionRequest into the provider's HTTP protocol,
sends it, and returns the generated text. Every failure leaves the adapter as a
``ProviderError`` whose ``kind`` is decided here, where the raw error is caught:

  - HTTP 401, ``invalid_api_key``, ``authentication_error`` → AUTH
  - HTTP 429, HTTP >= 500, connection errors, timeouts       → TRANSIENT
  - anything else (other 4xx, malformed payloads)            → UNKNOWN

Provider-specific behaviors:
  - OpenAI: Chat Completions, system prompt sent as a system message
  - Claude: Anthropic Messages API, system prompt as top-level ``system``,
    content returned as a list of text blocks
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from app.gateway.errors import ProviderError
from app.gateway.types import AiProvider, CompletionRequest, ProviderErrorKind

logger = logging.getLogger(__name__)

_AUTH_ERROR_CODES = {"invalid_api_key", "authentication_error"}
_TRANSIENT_MESSAGE_MARKERS = ("timeout", "network")


def classify_status(status_code: int, error_code: str = "", message: str = "") -> ProviderErrorKind:
    """Map an HTTP status / provider error code onto a ProviderErrorKind."""
    if status_code == 401 or error_code in _AUTH_ERROR_CODES:
        return ProviderErrorKind.AUTH
    if status_code == 429 or status_code >= 500:
        return ProviderErrorKind.TRANSIENT
    lowered = message.lower()
    if any(marker in lowered for marker in _TRANSIENT_MESSAGE_MARKERS):
        return ProviderErrorKind.TRANSIENT
    return ProviderErrorKind.UNKNOWN


class BaseProviderAdapter(ABC):
    """Base class for all provider adapters."""

    provider: AiProvider
    default_model: str = ""
    api_url: str = ""

    def __init__(
        self,
        api_key: str,
        model: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model or self.default_model
        self.timeout = timeout
        self._transport = transport

    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    @abstractmethod
    def _payload(self, request: CompletionRequest) -> dict: ...

    @abstractmethod
    def _extract_text(self, data: dict) -> str: ...

    async def complete(self, request: CompletionRequest) -> str:
        """Send a prompt and return the generated text.

        The call is bounded by ``self.timeout`` both at the HTTP layer and as a
        whole, so a stalled provider cannot hold the request open.
        """
        try:
            return await asyncio.wait_for(self._send(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"{self.provider.value} request timeout after {self.timeout}s",
                kind=ProviderErrorKind.TRANSIENT,
                provider=self.provider,
                error_code="timeout",
            ) from e

    async def _send(self, request: CompletionRequest) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.api_url, json=self._payload(request), headers=self._headers())
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.provider.value} request timeout after {self.timeout}s",
                kind=ProviderErrorKind.TRANSIENT,
                provider=self.provider,
                error_code="timeout",
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"{self.provider.value} network error: {e}",
                kind=ProviderErrorKind.TRANSIENT,
                provider=self.provider,
                error_code="network",
            ) from e

        if resp.status_code >= 400:
            raise self._error_from_response(resp)

        try:
            data = resp.json()
            return self._extract_text(data)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Malformed {self.provider.value} response: {e}",
                kind=ProviderErrorKind.UNKNOWN,
                provider=self.provider,
                status_code=resp.status_code,
            ) from e

    def _error_from_response(self, resp: httpx.Response) -> ProviderError:
        error_code = ""
        try:
            error = resp.json().get("error", {})
            message = error.get("message") or resp.text[:500]
            error_code = error.get("code") or error.get("type") or ""
        except (ValueError, AttributeError):
            message = resp.text[:500]

        kind = classify_status(resp.status_code, error_code, message)
        logger.error(
            "%s API %d (%s) for model=%s: %s",
            self.provider.value,
            resp.status_code,
            kind.value,
            self.model,
            message,
        )
        return ProviderError(
            message,
            kind=kind,
            provider=self.provider,
            status_code=resp.status_code,
            error_code=error_code,
        )


# ---------------------------------------------------------------------------
# OpenAI Adapter
# ---------------------------------------------------------------------------


class OpenAIAdapter(BaseProviderAdapter):
    """OpenAI Chat Completions adapter."""

    provider = AiProvider.OPENAI
    default_model = "gpt-3.5-turbo"
    api_url = "https://api.openai.com/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, request: CompletionRequest) -> dict:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})
        return {
            "model": request.model or self.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    def _extract_text(self, data: dict) -> str:
        return data["choices"][0]["message"]["content"] or ""


# ---------------------------------------------------------------------------
# Claude Adapter (Anthropic)
# ---------------------------------------------------------------------------


class ClaudeAdapter(BaseProviderAdapter):
    """Anthropic Messages API adapter."""

    provider = AiProvider.CLAUDE
    default_model = "claude-3-haiku-20240307"
    api_url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }

    def _payload(self, request: CompletionRequest) -> dict:
        payload = {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        return payload

    def _extract_text(self, data: dict) -> str:
        # Content is a list of blocks; concatenate the text ones
        blocks = data["content"]
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[AiProvider, type[BaseProviderAdapter]] = {
    AiProvider.OPENAI: OpenAIAdapter,
    AiProvider.CLAUDE: ClaudeAdapter,
}


def get_adapter(provider: AiProvider, api_key: str, **kwargs) -> BaseProviderAdapter:
    """Factory: create an adapter for the given provider."""
    adapter_cls = ADAPTER_REGISTRY.get(provider)
    if adapter_cls is None:
        raise ValueError(f"No adapter for provider: {provider}")
    return adapter_cls(api_key=api_key, **kwargs)
