"""AI Pipe adapter (OpenRouter-compatible proxy, non-streaming).

The proxy is called without `stream`; its single response is re-expressed
as deltas (content, then one fragment per tool call, then the finish
reason) so the orchestrator sees the same vocabulary as a streaming backend.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any

import orjson

from toolrelay.foundation.errors import ErrorCode, JsonDict, ProtocolError, TransportError

from .base import ProviderAdapter, ProviderDelta, ToolCallFragment

if TYPE_CHECKING:
    from toolrelay.foundation.core import AgentConfiguration, Message


def deltas_from_completion(body: Any) -> list[ProviderDelta]:
    """Split a `chat.completion` response into ordered deltas."""
    if not isinstance(body, dict):
        raise ProtocolError("completion body is not an object")
    if (error := body.get("error")) is not None:
        message = error.get("message", error) if isinstance(error, dict) else error
        raise TransportError(f"AI Pipe error: {message}", code=ErrorCode.EXTERNAL_SERVICE_ERROR)
    choices = body.get("choices")
    if not choices or not isinstance(choices[0], dict):
        raise ProtocolError("No response from AI Pipe")
    choice = choices[0]
    message = choice.get("message") or {}

    deltas: list[ProviderDelta] = []
    if content := message.get("content") or "":
        deltas.append(ProviderDelta(content=content))
    tool_calls = message.get("tool_calls") or []
    for index, tc in enumerate(tool_calls):
        function = tc.get("function") or {}
        arguments = function.get("arguments") or ""
        if not isinstance(arguments, str):
            arguments = orjson.dumps(arguments).decode()
        deltas.append(ProviderDelta(tool_calls=(ToolCallFragment(
            index=index,
            id=tc.get("id") or "",
            name=function.get("name") or "",
            arguments=arguments,
        ),)))
    finish_reason = choice.get("finish_reason") or ("tool_calls" if tool_calls else "stop")
    deltas.append(ProviderDelta(finish_reason=finish_reason))
    return deltas


class AiPipeAdapter(ProviderAdapter):
    """One-shot `POST {base}/chat/completions` against the AI Pipe proxy."""

    provider = "aipipe"

    __slots__ = ()

    async def stream(
        self,
        messages: Sequence[Message],
        config: AgentConfiguration,
        tools: Sequence[JsonDict],
    ) -> AsyncIterator[ProviderDelta]:
        body = await self._post_json(self.build_payload(messages, config, tools, stream=False), config)
        for delta in deltas_from_completion(body):
            yield delta
