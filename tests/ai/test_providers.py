"""Provider adapter tests against mocked upstream HTTP endpoints."""

from __future__ import annotations

import json
from contextlib import aclosing

import httpx
import pytest

from core.config import Settings
from services.ai.exceptions import ProviderHTTPError, ProviderUnavailable
from services.ai.models import Message, ProviderConfig
from services.ai.providers import (
    DEFAULT_MAX_TOKENS,
    AnthropicAdapter,
    OpenAICompatibleAdapter,
    OpenRouterAdapter,
    open_provider_stream,
    resolve_provider_config,
)
from tests.fixtures.ai_fixtures import (
    RecordingAuditLog,
    anthropic_body,
    chunked,
    mock_client,
    openai_body,
    split_every,
)


MESSAGES = [
    Message(role="system", content="You write card descriptions."),
    Message(role="user", content="Generate a description for this card:"),
]


def settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


async def drain(stream) -> list[str]:
    async with aclosing(stream):
        return [fragment async for fragment in stream]


class Upstream:
    """Records requests and replies with a fixed SSE body."""

    def __init__(self, body: bytes | None = None, status_code: int = 200, parts=None):
        self.body = body
        self.status_code = status_code
        self.parts = parts
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        content = chunked(self.parts) if self.parts is not None else self.body
        return httpx.Response(
            self.status_code,
            headers={"content-type": "text/event-stream"},
            content=content,
        )

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.mark.asyncio
async def test_unified_variant_request_and_deltas(openai_config):
    upstream = Upstream(openai_body("Hel", "lo"))
    async with mock_client(upstream) as client:
        stream = await open_provider_stream(
            openai_config, MESSAGES, 1500, 0.7, http_client=client
        )
        fragments = await drain(stream)

    assert fragments == ["Hel", "lo"]
    request = upstream.requests[0]
    assert str(request.url) == "https://llm.example.test/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test-placeholder"
    body = upstream.last_json
    assert body == {
        "model": "gpt-test",
        "max_tokens": 1500,
        "stream": True,
        "temperature": 0.7,
        "messages": [m.to_wire() for m in MESSAGES],
    }


@pytest.mark.asyncio
async def test_split_system_variant_request_and_deltas(anthropic_config):
    upstream = Upstream(anthropic_body("## Steps", "\n1. Open"))
    async with mock_client(upstream) as client:
        stream = await open_provider_stream(
            anthropic_config, MESSAGES, http_client=client
        )
        fragments = await drain(stream)

    assert fragments == ["## Steps", "\n1. Open"]
    request = upstream.requests[0]
    assert str(request.url) == "https://anthropic.example.test/v1/messages"
    assert request.headers["x-api-key"] == "ak-test-placeholder"
    assert request.headers["anthropic-version"] == AnthropicAdapter.api_version
    body = upstream.last_json
    assert body["system"] == "You write card descriptions."
    assert body["messages"] == [
        {"role": "user", "content": "Generate a description for this card:"}
    ]
    assert body["max_tokens"] == DEFAULT_MAX_TOKENS
    assert "temperature" not in body


@pytest.mark.asyncio
async def test_openrouter_adds_attribution_headers():
    config = ProviderConfig(
        provider_kind="openrouter",
        api_key="or-test",  # pragma: allowlist secret
        model="m",
        base_url="https://router.example.test/api",
    )
    upstream = Upstream(openai_body("x"))
    async with mock_client(upstream) as client:
        await drain(await open_provider_stream(config, MESSAGES, http_client=client))

    headers = upstream.requests[0].headers
    assert str(upstream.requests[0].url) == (
        "https://router.example.test/api/v1/chat/completions"
    )
    assert headers["http-referer"] == OpenRouterAdapter.referer
    assert headers["x-title"] == OpenRouterAdapter.title
    assert headers["authorization"] == "Bearer or-test"


@pytest.mark.asyncio
async def test_deltas_independent_of_chunking(openai_config):
    body = openai_body("a", "bc", "déf")
    upstream = Upstream(parts=split_every(body, 5))
    async with mock_client(upstream) as client:
        fragments = await drain(
            await open_provider_stream(openai_config, MESSAGES, http_client=client)
        )

    assert fragments == ["a", "bc", "déf"]


@pytest.mark.asyncio
async def test_non_success_handshake_raises(openai_config):
    upstream = Upstream(b'{"error": "invalid key"}', status_code=401)
    async with mock_client(upstream) as client:
        with pytest.raises(ProviderHTTPError) as excinfo:
            await open_provider_stream(openai_config, MESSAGES, http_client=client)

    assert excinfo.value.status_code == 502
    assert excinfo.value.upstream_status == 401


@pytest.mark.asyncio
async def test_connection_failure_raises(openai_config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(ProviderHTTPError):
            await open_provider_stream(openai_config, MESSAGES, http_client=client)


@pytest.mark.asyncio
async def test_missing_config_raises_unavailable():
    async with mock_client(Upstream(b"")) as client:
        with pytest.raises(ProviderUnavailable) as excinfo:
            await open_provider_stream(None, MESSAGES, http_client=client)

    assert excinfo.value.status_code == 501


@pytest.mark.asyncio
async def test_stream_interruption_raises_provider_error(openai_config):
    async def broken():
        yield b'data: {"choices":[{"delta":{"content":"par"}}]}\n\n'
        raise httpx.ReadError("connection reset")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=broken())

    async with mock_client(handler) as client:
        stream = await open_provider_stream(openai_config, MESSAGES, http_client=client)
        received: list[str] = []
        with pytest.raises(ProviderHTTPError):
            async for fragment in stream:
                received.append(fragment)

    assert received == ["par"]
    assert stream.closed


@pytest.mark.asyncio
async def test_debug_log_records_request_and_response(openai_config):
    log = RecordingAuditLog()
    async with mock_client(Upstream(openai_body("Hel", "lo"))) as client:
        await drain(
            await open_provider_stream(
                openai_config, MESSAGES, http_client=client, debug_log=log
            )
        )

    labels = [label for label, _ in log.entries]
    assert labels == ["REQUEST", "RESPONSE"]
    request_entry = json.loads(log.entries[0][1])
    assert request_entry["provider"] == "openai"
    assert "sk-test-placeholder" not in log.entries[0][1]
    assert log.entries[1][1] == "Hello"


@pytest.mark.asyncio
async def test_early_close_releases_response(openai_config):
    async with mock_client(Upstream(openai_body("a", "b", "c"))) as client:
        stream = await open_provider_stream(openai_config, MESSAGES, http_client=client)
        iterator = aiter(stream)
        assert await anext(iterator) == "a"
        await stream.aclose()
        await stream.aclose()

    assert stream.closed


def test_extract_text_ignores_control_frames():
    adapter = AnthropicAdapter.__new__(AnthropicAdapter)
    assert adapter.extract_text({"type": "message_start"}) == ""
    assert (
        adapter.extract_text(
            {"type": "content_block_delta", "delta": {"type": "input_json_delta"}}
        )
        == ""
    )

    unified = OpenAICompatibleAdapter.__new__(OpenAICompatibleAdapter)
    assert unified.extract_text({"choices": []}) == ""
    assert unified.extract_text({"choices": [{"delta": {}}]}) == ""
    assert unified.extract_text({"choices": [{"delta": {"content": None}}]}) == ""


def test_resolve_provider_config_defaults():
    config = resolve_provider_config(
        settings(AI_PROVIDER="Anthropic", ANTHROPIC_API_KEY="key")
    )

    assert config is not None
    assert config.provider_kind == "anthropic"
    assert config.model == AnthropicAdapter.default_model
    assert config.base_url == AnthropicAdapter.default_base_url


def test_resolve_provider_config_precedence():
    config = resolve_provider_config(
        settings(
            AI_PROVIDER="openai",
            OPENAI_API_KEY="key",
            AI_MODEL="generic-model",
            OPENAI_MODEL="specific-model",
            AI_BASE_URL="https://proxy.example.test/",
        )
    )

    assert config is not None
    assert config.model == "specific-model"
    assert config.base_url == "https://proxy.example.test"


@pytest.mark.parametrize(
    "overrides",
    [
        {"AI_PROVIDER": ""},
        {"AI_PROVIDER": "openai"},
        {"AI_PROVIDER": "cohere", "OPENAI_API_KEY": "key"},
    ],
)
def test_resolve_provider_config_unusable(overrides):
    assert resolve_provider_config(settings(**overrides)) is None


def test_provider_config_repr_hides_key(openai_config):
    assert "sk-test-placeholder" not in repr(openai_config)
