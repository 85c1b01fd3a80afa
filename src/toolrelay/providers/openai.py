"""OpenAI chat-completions adapter (server-sent events streaming)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Any

import httpx
import orjson

from toolrelay.foundation.errors import ErrorCode, JsonDict, ProtocolError, TransportError

from .base import ProviderAdapter, ProviderDelta, ToolCallFragment, log, raise_for_status

if TYPE_CHECKING:
    from toolrelay.foundation.core import AgentConfiguration, Message

_SSE_PREFIX = "data:"
_SSE_DONE = "[DONE]"


def delta_from_chunk(chunk: Any) -> ProviderDelta | None:
    """Map one decoded `chat.completion.chunk` onto a ProviderDelta.

    Returns None for chunks that carry nothing (role-only deltas, usage).
    Raises ProtocolError for shapes that cannot be interpreted and
    TransportError for in-band provider errors.
    """
    if not isinstance(chunk, dict):
        raise ProtocolError(f"expected a JSON object, got {type(chunk).__name__}")
    if (error := chunk.get("error")) is not None:
        message = error.get("message", error) if isinstance(error, dict) else error
        raise TransportError(f"provider stream error: {message}", code=ErrorCode.EXTERNAL_SERVICE_ERROR)
    choices = chunk.get("choices") or []
    if not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        raise ProtocolError("choice is not an object")
    delta = choice.get("delta") or {}
    fragments: list[ToolCallFragment] = []
    for position, tc in enumerate(delta.get("tool_calls") or ()):
        function = tc.get("function") or {}
        fragments.append(ToolCallFragment(
            index=int(tc.get("index", position)),
            id=tc.get("id") or "",
            name=function.get("name") or "",
            arguments=function.get("arguments") or "",
        ))
    content = delta.get("content") or ""
    finish_reason = choice.get("finish_reason")
    if not content and not fragments and finish_reason is None:
        return None
    return ProviderDelta(content=content, tool_calls=tuple(fragments), finish_reason=finish_reason)


class OpenAIAdapter(ProviderAdapter):
    """Streams `POST {base}/chat/completions` with `stream: true`.

    Decodes `data:` lines as they arrive; `[DONE]` ends the stream.
    Undecodable lines are logged and skipped without aborting the stream.
    """

    provider = "openai"

    __slots__ = ()

    async def stream(
        self,
        messages: Sequence[Message],
        config: AgentConfiguration,
        tools: Sequence[JsonDict],
    ) -> AsyncIterator[ProviderDelta]:
        payload = self.build_payload(messages, config, tools, stream=True)
        headers = self._headers(config)
        try:
            async with self._client.stream(
                "POST", self.endpoint, json=payload, headers=headers, timeout=self._timeout,
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise_for_status(self.provider, response)
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith(_SSE_PREFIX):
                        continue
                    data = line[len(_SSE_PREFIX):].strip()
                    if data == _SSE_DONE:
                        return
                    if (delta := self._decode(data)) is not None:
                        yield delta
        except httpx.TimeoutException as e:
            raise TransportError(f"{self.provider} stream timed out", code=ErrorCode.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{self.provider} stream failed: {e}") from e

    def _decode(self, data: str) -> ProviderDelta | None:
        try:
            return delta_from_chunk(orjson.loads(data))
        except (orjson.JSONDecodeError, ProtocolError, AttributeError, TypeError, ValueError) as e:
            log.warning("skipping malformed chunk", provider=self.provider, error=str(e), size=len(data))
            return None
