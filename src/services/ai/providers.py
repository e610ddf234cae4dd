"""Streaming chat-completion adapters for the supported LLM providers.

Every adapter turns the same canonical request (ordered role-tagged messages,
token budget, temperature) into one provider's native streaming HTTP call and
exposes the reply as an async iterator of plain text fragments.

Two wire formats are supported:

* split-system (`anthropic`): the system message travels in a dedicated
  `system` field; text arrives in `content_block_delta` frames.
* unified (`openai`, `openrouter`): all messages go in one list; text arrives
  in `choices[0].delta.content`.

Opening a stream performs the HTTP handshake eagerly so that configuration
and upstream status problems surface before the caller commits to a streamed
response. Usage:

    config = resolve_provider_config(get_settings())
    stream = await open_provider_stream(config, messages, http_client=client)
    async with aclosing(stream):
        async for fragment in stream:
            ...
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from typing import Any, ClassVar

import httpx

from core.config import Settings
from core.observability import get_tracer
from services.ai.audit import AuditLog, NullAuditLog
from services.ai.exceptions import ProviderHTTPError, ProviderUnavailable
from services.ai.models import Message, ProviderConfig
from services.ai.sse import iter_sse_json


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# A single canonical fragment of generated text.
TextDelta = str

DEFAULT_MAX_TOKENS = 2048
UPSTREAM_ERROR_PREVIEW_CHARS = 200


class DeltaStream:
    """Lazy, single-use sequence of text deltas over an open upstream response.

    The upstream response is released exactly once: when iteration finishes,
    fails, or when `aclose()` is called by a consumer that stops early.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        response: httpx.Response,
        debug_log: AuditLog,
        span: Any,
    ) -> None:
        self._adapter = adapter
        self._response = response
        self._debug_log = debug_log
        self._span = span
        self._closed = False
        self._fragments = 0
        self._iterator: AsyncGenerator[TextDelta, None] | None = None

    def __aiter__(self) -> AsyncIterator[TextDelta]:
        if self._iterator is None:
            self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncGenerator[TextDelta, None]:
        collected: list[str] = []
        try:
            async for frame in iter_sse_json(self._response.aiter_bytes()):
                text = self._adapter.extract_text(frame)
                if not text:
                    continue
                self._fragments += 1
                collected.append(text)
                yield text
        except httpx.HTTPError as exc:
            logger.error(
                "%s stream interrupted after %d fragments: %s",
                self._adapter.kind,
                self._fragments,
                exc,
            )
            raise ProviderHTTPError() from exc
        finally:
            await self._release()
        self._debug_log.write("RESPONSE", "".join(collected))

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        if self._iterator is not None:
            await self._iterator.aclose()
        await self._release()

    async def _release(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # Shielded: a disconnecting client cancels the task that owns us.
            await asyncio.shield(self._response.aclose())
        finally:
            self._span.set_attribute("ai.fragments", self._fragments)
            self._span.end()


class ProviderAdapter(ABC):
    """Base class for one provider wire format.

    Subclasses describe the endpoint, headers and body for a request and how
    to pull text out of a decoded frame; transport, handshake checking and
    frame decoding live here.
    """

    kind: ClassVar[str]
    default_model: ClassVar[str]
    default_base_url: ClassVar[str]
    path: ClassVar[str]

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        debug_log: AuditLog | None = None,
    ) -> None:
        self.config = config
        self.http_client = http_client
        self.debug_log = debug_log or NullAuditLog()

    @abstractmethod
    def build_headers(self) -> dict[str, str]: ...

    @abstractmethod
    def build_body(
        self,
        messages: Sequence[Message],
        max_tokens: int,
        temperature: float | None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    def extract_text(self, frame: dict[str, Any]) -> str:
        """Return the text carried by one decoded frame, or '' for control frames."""

    @property
    def url(self) -> str:
        return f"{self.config.base_url}{self.path}"

    def _log_request(
        self,
        messages: Sequence[Message],
        max_tokens: int,
        temperature: float | None,
    ) -> None:
        self.debug_log.write(
            "REQUEST",
            json.dumps(
                {
                    "provider": self.config.provider_kind,
                    "model": self.config.model,
                    "baseUrl": self.config.base_url,
                    "maxTokens": max_tokens,
                    "temperature": temperature,
                    "messages": [m.to_wire() for m in messages],
                },
                indent=2,
            ),
        )

    async def open_stream(
        self,
        messages: Sequence[Message],
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> DeltaStream:
        """Send the request and return a delta stream once headers arrive.

        Raises:
            ProviderHTTPError: connection failure or non-2xx handshake.
        """
        budget = max_tokens or DEFAULT_MAX_TOKENS
        self._log_request(messages, budget, temperature)

        span = tracer.start_span(
            "ai.provider.stream",
            attributes={
                "ai.provider": self.config.provider_kind,
                "ai.model": self.config.model,
                "ai.messages": len(messages),
            },
        )
        request = self.http_client.build_request(
            "POST",
            self.url,
            headers=self.build_headers(),
            json=self.build_body(messages, budget, temperature),
        )
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error("%s API request failed: %s", self.kind, exc)
            span.end()
            raise ProviderHTTPError() from exc

        if not response.is_success:
            preview = await self._read_error_preview(response)
            logger.error(
                "%s API error %s: %s", self.kind, response.status_code, preview
            )
            span.set_attribute("ai.upstream_status", response.status_code)
            span.end()
            raise ProviderHTTPError(upstream_status=response.status_code)

        return DeltaStream(self, response, self.debug_log, span)

    @staticmethod
    async def _read_error_preview(response: httpx.Response) -> str:
        try:
            body = await response.aread()
            return body.decode("utf-8", errors="replace")[:UPSTREAM_ERROR_PREVIEW_CHARS]
        except httpx.HTTPError:
            return ""
        finally:
            await response.aclose()


class AnthropicAdapter(ProviderAdapter):
    """Split-system variant: `system` is sent outside the message list."""

    kind = "anthropic"
    default_model = "claude-sonnet-4-20250514"
    default_base_url = "https://api.anthropic.com"
    path = "/v1/messages"
    api_version = "2023-06-01"

    def build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": self.api_version,
        }

    def build_body(
        self,
        messages: Sequence[Message],
        max_tokens: int,
        temperature: float | None,
    ) -> dict[str, Any]:
        system = next((m for m in messages if m.role == "system"), None)
        body: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": max_tokens,
            "stream": True,
            "messages": [m.to_wire() for m in messages if m.role != "system"],
        }
        if temperature is not None:
            body["temperature"] = temperature
        if system is not None:
            body["system"] = system.content
        return body

    def extract_text(self, frame: dict[str, Any]) -> str:
        if frame.get("type") != "content_block_delta":
            return ""
        delta = frame.get("delta")
        if not isinstance(delta, dict) or delta.get("type") != "text_delta":
            return ""
        text = delta.get("text")
        return text if isinstance(text, str) else ""


class OpenAICompatibleAdapter(ProviderAdapter):
    """Unified variant: one homogeneous message list, system included."""

    kind = "openai"
    default_model = "gpt-4o"
    default_base_url = "https://api.openai.com"
    path = "/v1/chat/completions"

    def build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def build_body(
        self,
        messages: Sequence[Message],
        max_tokens: int,
        temperature: float | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": max_tokens,
            "stream": True,
            "messages": [m.to_wire() for m in messages],
        }
        if temperature is not None:
            body["temperature"] = temperature
        return body

    def extract_text(self, frame: dict[str, Any]) -> str:
        choices = frame.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        delta = first.get("delta") if isinstance(first, dict) else None
        if not isinstance(delta, dict):
            return ""
        content = delta.get("content")
        return content if isinstance(content, str) else ""


class OpenRouterAdapter(OpenAICompatibleAdapter):
    kind = "openrouter"
    default_model = "anthropic/claude-sonnet-4"
    default_base_url = "https://openrouter.ai/api"

    referer = "https://completo.app"
    title = "Completo"

    def build_headers(self) -> dict[str, str]:
        headers = super().build_headers()
        headers["HTTP-Referer"] = self.referer
        headers["X-Title"] = self.title
        return headers


PROVIDERS: dict[str, type[ProviderAdapter]] = {
    adapter.kind: adapter
    for adapter in (AnthropicAdapter, OpenAICompatibleAdapter, OpenRouterAdapter)
}


def resolve_provider_config(settings: Settings) -> ProviderConfig | None:
    """Build the provider configuration from settings, or None if unusable.

    A configuration is usable when `AI_PROVIDER` names a registered provider
    and that provider's API key is set. Model and base URL fall back to the
    provider-independent settings and then to the built-in defaults.
    """
    kind = settings.AI_PROVIDER
    adapter = PROVIDERS.get(kind)
    if adapter is None:
        if kind:
            logger.warning("Unknown AI_PROVIDER '%s'; AI generation disabled", kind)
        return None

    prefix = kind.upper()
    api_key = getattr(settings, f"{prefix}_API_KEY", "")
    if not api_key:
        logger.warning("AI_PROVIDER=%s but %s_API_KEY is not set", kind, prefix)
        return None

    model = (
        getattr(settings, f"{prefix}_MODEL", "")
        or settings.AI_MODEL
        or adapter.default_model
    )
    base_url = (
        getattr(settings, f"{prefix}_BASE_URL", "")
        or settings.AI_BASE_URL
        or adapter.default_base_url
    )
    return ProviderConfig(
        provider_kind=kind,
        api_key=api_key,
        model=model,
        base_url=base_url.rstrip("/"),
    )


def get_adapter(
    config: ProviderConfig,
    http_client: httpx.AsyncClient,
    debug_log: AuditLog | None = None,
) -> ProviderAdapter:
    return PROVIDERS[config.provider_kind](config, http_client, debug_log)


async def open_provider_stream(
    config: ProviderConfig | None,
    messages: Sequence[Message],
    max_tokens: int | None = None,
    temperature: float | None = None,
    *,
    http_client: httpx.AsyncClient,
    debug_log: AuditLog | None = None,
) -> DeltaStream:
    """Open a streaming completion with whichever provider `config` selects.

    Raises:
        ProviderUnavailable: no usable configuration.
        ProviderHTTPError: connection failure or non-2xx handshake.
    """
    if config is None or config.provider_kind not in PROVIDERS:
        raise ProviderUnavailable()
    adapter = get_adapter(config, http_client, debug_log)
    return await adapter.open_stream(messages, max_tokens, temperature)
