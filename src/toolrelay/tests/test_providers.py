"""Tests for provider adapters against a mocked HTTP transport."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import orjson
import pytest
from pydantic import SecretStr

from toolrelay.foundation.config import ProviderSettings
from toolrelay.foundation.core import AgentConfiguration, Message
from toolrelay.foundation.errors import ConfigurationError, ErrorCode, ProtocolError, TransportError
from toolrelay.providers import (
    AiPipeAdapter,
    OpenAIAdapter,
    ProviderDelta,
    ToolCallFragment,
    create_adapter,
    delta_from_chunk,
    deltas_from_completion,
)

Handler = Callable[[httpx.Request], httpx.Response]
TOOLS = [{"type": "function", "function": {"name": "echo", "description": "Echo text", "parameters": {}}}]


def _sse(*chunks: dict | str) -> bytes:
    lines = [f"data: {c if isinstance(c, str) else orjson.dumps(c).decode()}\n\n" for c in chunks]
    return "".join(lines).encode()


def _chunk(content: str | None = None, tool_calls: list | None = None, finish: str | None = None) -> dict:
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish}]}


def _openai(handler: Handler, api_key: str | None = "sk-test") -> OpenAIAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIAdapter(
        client,
        base_url="https://api.test/v1/",
        api_key=SecretStr(api_key) if api_key else None,
        default_model="gpt-test",
    )


def _aipipe(handler: Handler) -> AiPipeAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AiPipeAdapter(client, base_url="https://pipe.test/v1", api_key=SecretStr("pipe-key"), default_model="pipe-model")


async def _drain(adapter, messages=None, config=None, tools=()) -> list[ProviderDelta]:  # noqa: ANN001
    messages = messages or [Message.user("hi")]
    return [d async for d in adapter.stream(messages, config or AgentConfiguration(), list(tools))]


# ─────────────────────────────────────────────────────────────────────────────
# Request Shaping
# ─────────────────────────────────────────────────────────────────────────────


class TestPayload:
    def test_tools_only_when_declared(self) -> None:
        adapter = _openai(lambda r: httpx.Response(200))
        config = AgentConfiguration(provider="openai", temperature=0.2, max_tokens=50)

        bare = adapter.build_payload([Message.user("hi")], config, [], stream=True)
        assert "tools" not in bare and "tool_choice" not in bare
        assert bare["model"] == "gpt-test"
        assert bare["temperature"] == 0.2
        assert bare["max_tokens"] == 50
        assert bare["messages"] == [{"role": "user", "content": "hi"}]

        with_tools = adapter.build_payload([Message.user("hi")], config, TOOLS, stream=True)
        assert with_tools["tools"] == TOOLS
        assert with_tools["tool_choice"] == "auto"

    def test_history_uses_provider_shape(self) -> None:
        adapter = _openai(lambda r: httpx.Response(200))
        history = [
            Message.user("2+2?"),
            Message.tool("call_1", '{"result":4}'),
        ]
        body = adapter.build_payload(history, AgentConfiguration(model="custom"), [], stream=False)
        assert body["model"] == "custom"
        assert body["messages"][1] == {"role": "tool", "content": '{"result":4}', "tool_call_id": "call_1"}

    @pytest.mark.asyncio
    async def test_request_carries_credential_and_stream_flag(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_sse("[DONE]"))

        await _drain(_openai(handler), config=AgentConfiguration(provider="openai", apiKey="sk-turn"))
        (request,) = seen
        assert str(request.url) == "https://api.test/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-turn"
        assert orjson.loads(request.content)["stream"] is True

    def test_factory(self) -> None:
        client = httpx.AsyncClient()
        settings = ProviderSettings(openai_api_key="sk-x")
        adapter = create_adapter("openai", settings, client)
        assert isinstance(adapter, OpenAIAdapter)
        assert adapter.configured
        with pytest.raises(ConfigurationError):
            create_adapter("anthropic", settings, client)  # type: ignore[arg-type]


# ─────────────────────────────────────────────────────────────────────────────
# OpenAI Streaming
# ─────────────────────────────────────────────────────────────────────────────


class TestOpenAIStream:
    @pytest.mark.asyncio
    async def test_text_deltas_then_done(self) -> None:
        body = _sse(
            {"choices": [{"index": 0, "delta": {"role": "assistant"}, "finish_reason": None}]},
            _chunk("Hel"), _chunk("lo"), _chunk(finish="stop"),
            "[DONE]",
            _chunk("ignored"),
        )
        deltas = await _drain(_openai(lambda r: httpx.Response(200, content=body)))
        assert deltas == [
            ProviderDelta(content="Hel"),
            ProviderDelta(content="lo"),
            ProviderDelta(finish_reason="stop"),
        ]

    @pytest.mark.asyncio
    async def test_tool_call_fragments(self) -> None:
        body = _sse(
            _chunk(tool_calls=[{"index": 0, "id": "call_1", "type": "function",
                                "function": {"name": "execute_python", "arguments": ""}}]),
            _chunk(tool_calls=[{"index": 0, "function": {"arguments": '{"co'}}]),
            _chunk(tool_calls=[{"index": 0, "function": {"arguments": 'de":"1+1"}'}}]),
            _chunk(finish="tool_calls"),
            "[DONE]",
        )
        deltas = await _drain(_openai(lambda r: httpx.Response(200, content=body)))
        fragments = [f for d in deltas for f in d.tool_calls]
        assert fragments == [
            ToolCallFragment(index=0, id="call_1", name="execute_python"),
            ToolCallFragment(index=0, arguments='{"co'),
            ToolCallFragment(index=0, arguments='de":"1+1"}'),
        ]
        assert deltas[-1].finish_reason == "tool_calls"

    @pytest.mark.asyncio
    async def test_malformed_chunk_is_skipped(self) -> None:
        body = _sse(_chunk("a"), "{broken", '"just a string"', _chunk("b"), "[DONE]")
        deltas = await _drain(_openai(lambda r: httpx.Response(200, content=body)))
        assert [d.content for d in deltas] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unauthorized_is_auth_shaped(self) -> None:
        adapter = _openai(lambda r: httpx.Response(401, json={"error": {"message": "bad key"}}))
        with pytest.raises(ConfigurationError) as exc_info:
            await _drain(adapter)
        assert exc_info.value.is_auth
        assert "bad key" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("status", "code"), [(500, ErrorCode.EXTERNAL_SERVICE_ERROR), (429, ErrorCode.RATE_LIMITED)])
    async def test_server_errors_are_transport_errors(self, status: int, code: ErrorCode) -> None:
        adapter = _openai(lambda r: httpx.Response(status, text="upstream unhappy"))
        with pytest.raises(TransportError) as exc_info:
            await _drain(adapter)
        assert exc_info.value.status_code == status
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            await _drain(_openai(handler))

    @pytest.mark.asyncio
    async def test_missing_credential(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            await _drain(_openai(lambda r: httpx.Response(200), api_key=None))
        assert exc_info.value.is_auth

    def test_in_band_error_chunk(self) -> None:
        with pytest.raises(TransportError):
            delta_from_chunk({"error": {"message": "overloaded"}})
        with pytest.raises(ProtocolError):
            delta_from_chunk(["not", "a", "chunk"])
        assert delta_from_chunk({"choices": []}) is None


# ─────────────────────────────────────────────────────────────────────────────
# AI Pipe
# ─────────────────────────────────────────────────────────────────────────────


class TestAiPipe:
    @pytest.mark.asyncio
    async def test_completion_becomes_deltas(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(orjson.loads(request.content))
            return httpx.Response(200, json={"choices": [{
                "message": {
                    "role": "assistant",
                    "content": "Checking.",
                    "tool_calls": [
                        {"id": "call_a", "type": "function", "function": {"name": "echo", "arguments": '{"text":"x"}'}},
                        {"id": "call_b", "type": "function", "function": {"name": "echo", "arguments": {"text": "y"}}},
                    ],
                },
                "finish_reason": "tool_calls",
            }]})

        deltas = await _drain(_aipipe(handler), tools=TOOLS)

        assert seen[0]["stream"] is False
        assert seen[0]["tools"] == TOOLS
        assert deltas[0] == ProviderDelta(content="Checking.")
        assert deltas[1].tool_calls == (ToolCallFragment(index=0, id="call_a", name="echo", arguments='{"text":"x"}'),)
        assert orjson.loads(deltas[2].tool_calls[0].arguments) == {"text": "y"}
        assert deltas[-1] == ProviderDelta(finish_reason="tool_calls")

    def test_missing_choices(self) -> None:
        with pytest.raises(ProtocolError, match="No response from AI Pipe"):
            deltas_from_completion({"choices": []})

    def test_finish_reason_defaults(self) -> None:
        deltas = deltas_from_completion({"choices": [{"message": {"content": "4"}}]})
        assert deltas == [ProviderDelta(content="4"), ProviderDelta(finish_reason="stop")]

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        with pytest.raises(ProtocolError):
            await _drain(_aipipe(lambda r: httpx.Response(200, text="<html>")))

    @pytest.mark.asyncio
    async def test_connection_check_is_minimal(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(orjson.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": "p"}}]})

        model = await _aipipe(handler).check_connection(AgentConfiguration())
        assert model == "pipe-model"
        assert seen[0]["max_tokens"] == 1
        assert seen[0]["stream"] is False
