"""Streaming chat orchestrator: the per-turn state machine.

Phases, run as an explicit bounded loop:

    Dispatch -> Accumulate -> (ToolRoundTrip -> Dispatch -> Accumulate)* -> terminal

- Dispatch: history + tool declarations go to the adapter for the active provider.
- Accumulate: text deltas become `content` events; tool-call fragments are
  appended by index and reported as `tool_calls` snapshots.
- ToolRoundTrip: finalized calls run sequentially in index order through the
  dispatcher; each result is appended to history as a `tool` message.
- Fallback: the first provider failure of a turn switches, once, to the
  secondary provider with a copied configuration. Authentication failures
  and a second failure end the turn with an `error` event.

Every turn ends with exactly one `complete` or `error` event.
"""

from __future__ import annotations

import contextlib
import uuid
from collections.abc import AsyncIterator, Collection, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, get_args

import httpx

from toolrelay.foundation.core import AgentConfiguration, ChatTurnRequest, Message, ToolCallRequest
from toolrelay.foundation.errors import ConfigurationError, ErrorCode, JsonDict, RelayError, classify_exception
from toolrelay.io.streaming import (
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    FinishReason,
    MessageEvent,
    StreamEvent,
    ToolCallsCompleteEvent,
    ToolCallsEvent,
)
from toolrelay.providers import ProviderAdapter, create_adapters
from toolrelay.runtime.dispatcher import ToolDispatcher
from toolrelay.runtime.observability import BoundLogger, get_logger

from .accumulator import ToolCallAccumulator

if TYPE_CHECKING:
    from toolrelay.foundation.config import ProviderName, RelaySettings
    from toolrelay.foundation.registry import ToolRegistry

log = get_logger("toolrelay.orchestrator")

_FINISH_REASONS: frozenset[str] = frozenset(get_args(FinishReason))


def _finish_reason(raw: str | None) -> FinishReason:
    return raw if raw in _FINISH_REASONS else "stop"  # type: ignore[return-value]


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


@dataclass(slots=True)
class _Attempt:
    """Accumulation buffers for one Dispatch phase. Discarded afterwards."""

    content: str = ""
    calls: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    finish_reason: str | None = None
    failure: Exception | None = None


class ChatOrchestrator:
    """Drives one provider-backed chat turn at a time per call; holds no per-turn state.

    Example:
        >>> orchestrator = ChatOrchestrator(adapters, ToolDispatcher(registry))
        >>> async for event in orchestrator.stream_chat([Message.user("2+2?")], AgentConfiguration()):
        ...     print(event.type)
        content
        complete
    """

    __slots__ = ("_adapters", "_dispatcher", "_fallback_provider", "_max_round_trips", "_continue_after_tools")

    def __init__(
        self,
        adapters: Mapping[str, ProviderAdapter],
        dispatcher: ToolDispatcher,
        *,
        fallback_provider: ProviderName | None = "openai",
        max_round_trips: int = 5,
        continue_after_tools: bool = True,
    ) -> None:
        if max_round_trips < 1:
            raise ValueError("max_round_trips must be >= 1")
        self._adapters = dict(adapters)
        self._dispatcher = dispatcher
        self._fallback_provider = fallback_provider
        self._max_round_trips = max_round_trips
        self._continue_after_tools = continue_after_tools

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        client: httpx.AsyncClient,
        registry: ToolRegistry | None = None,
    ) -> ChatOrchestrator:
        """Composition root: adapters, tools and limits resolved once from settings."""
        if registry is None:
            from toolrelay.tools import build_registry
            registry = build_registry(settings, client)
        return cls(
            create_adapters(settings.providers, client),
            ToolDispatcher(registry),
            fallback_provider=settings.providers.fallback_provider,
            max_round_trips=settings.orchestrator.max_round_trips,
            continue_after_tools=settings.orchestrator.continue_after_tools,
        )

    @property
    def registry(self) -> ToolRegistry:
        return self._dispatcher.registry

    def secondary_for(self, provider: str) -> ProviderName | None:
        """Fallback provider for `provider`, if one is configured and distinct."""
        fb = self._fallback_provider
        return fb if fb is not None and fb != provider and fb in self._adapters else None

    def _fallback_config(self, config: AgentConfiguration, provider: ProviderName) -> AgentConfiguration:
        return config.for_fallback(provider, self._adapters[provider].default_model)

    # ─────────────────────────────────────────────────────────────────
    # Turn
    # ─────────────────────────────────────────────────────────────────

    def handle(self, request: ChatTurnRequest) -> AsyncIterator[StreamEvent]:
        return self.stream_chat(request.messages, request.config, request.tools)

    async def stream_chat(
        self,
        messages: Sequence[Message],
        config: AgentConfiguration,
        enabled_tools: Collection[str] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn, yielding events in order. Not restartable."""
        history: list[Message] = list(messages)
        enabled = frozenset(enabled_tools)
        declarations = self.registry.declarations(enabled)
        active = config
        primary_failure: str | None = None
        turn_id = uuid.uuid4().hex[:12]
        turn_log = self._turn_log(turn_id, active)
        turn_log.info("turn started", messages=len(history), tools=len(declarations))

        round_trips = 0
        while True:
            attempt = _Attempt()
            async with contextlib.aclosing(self._accumulate(attempt, history, active, declarations, turn_log)) as events:
                async for event in events:
                    yield event

            if attempt.failure is not None:
                failure = attempt.failure
                secondary = self.secondary_for(active.provider)
                auth = isinstance(failure, ConfigurationError) and failure.is_auth
                if primary_failure is not None or secondary is None or auth:
                    yield self._failed(failure, primary_failure, active, turn_log)
                    return
                primary_failure = f"{active.provider}: {_describe(failure)}"
                turn_log.warning("provider failed, falling back", error=_describe(failure), fallback=secondary)
                active = self._fallback_config(active, secondary)
                turn_log = self._turn_log(turn_id, active)
                continue

            if not attempt.calls:
                turn_log.info("turn complete", round_trips=round_trips, chars=len(attempt.content))
                yield CompleteEvent(content=attempt.content, finish_reason=_finish_reason(attempt.finish_reason))
                return

            # Tool round trip
            calls = attempt.calls.finalize()
            yield ToolCallsCompleteEvent(tool_calls=calls)
            assistant = Message.assistant(attempt.content, calls)
            history.append(assistant)
            yield MessageEvent(message=assistant)
            async with contextlib.aclosing(self._round_trip(calls, history, active, enabled, turn_log)) as events:
                async for event in events:
                    yield event
            round_trips += 1

            if not self._continue_after_tools:
                yield CompleteEvent(content=attempt.content, tool_calls=calls, finish_reason="tool_calls")
                return
            if round_trips >= self._max_round_trips:
                turn_log.warning("round trip limit reached", round_trips=round_trips)
                yield CompleteEvent(content=attempt.content, tool_calls=calls, finish_reason="round_trip_limit")
                return

    async def _accumulate(
        self,
        attempt: _Attempt,
        history: Sequence[Message],
        config: AgentConfiguration,
        declarations: Sequence[JsonDict],
        turn_log: BoundLogger,
    ) -> AsyncIterator[StreamEvent]:
        """Dispatch + Accumulate. Provider failures land in `attempt.failure`."""
        adapter = self._adapters.get(config.provider)
        if adapter is None:
            attempt.failure = ConfigurationError(f"Unsupported provider: {config.provider}")
            return
        turn_log.debug("dispatching to provider", history=len(history))
        try:
            async with contextlib.aclosing(adapter.stream(history, config, declarations)) as deltas:
                async for delta in deltas:
                    if delta.content:
                        attempt.content += delta.content
                        yield ContentEvent(content=delta.content, accumulated=attempt.content)
                    if delta.tool_calls:
                        for fragment in delta.tool_calls:
                            attempt.calls.append(fragment)
                        yield ToolCallsEvent(tool_calls=attempt.calls.snapshot())
                    if delta.finish_reason is not None:
                        attempt.finish_reason = delta.finish_reason
                        break
        except RelayError as e:
            attempt.failure = e
        except Exception as e:
            turn_log.exception("provider stream raised")
            attempt.failure = e

    async def _round_trip(
        self,
        calls: Sequence[ToolCallRequest],
        history: list[Message],
        config: AgentConfiguration,
        enabled: Collection[str],
        turn_log: BoundLogger,
    ) -> AsyncIterator[StreamEvent]:
        """Dispatch calls one at a time, in index order, appending each result."""
        for call in calls:
            turn_log.info("dispatching tool", tool=call.name, call_id=call.id)
            result = await self._dispatcher.dispatch(call.name, call.arguments, config, enabled=enabled, call_id=call.id)
            message = Message.tool(call.id, result.to_content())
            history.append(message)
            yield MessageEvent(message=message)

    def _failed(
        self,
        failure: Exception,
        primary_failure: str | None,
        config: AgentConfiguration,
        turn_log: BoundLogger,
    ) -> ErrorEvent:
        current = f"{config.provider}: {_describe(failure)}"
        if primary_failure is not None:
            message = f"Primary provider failed ({primary_failure}); fallback provider failed ({current})"
        else:
            message = f"Provider failed ({current})"
        turn_log.error("turn failed", error=message)
        return ErrorEvent(error=message, code=classify_exception(failure))

    def _turn_log(self, turn_id: str, config: AgentConfiguration) -> BoundLogger:
        adapter = self._adapters.get(config.provider)
        model = config.model or (adapter.default_model if adapter else "")
        return log.bind_turn(turn_id, config.provider, model)

    # ─────────────────────────────────────────────────────────────────
    # Connection check
    # ─────────────────────────────────────────────────────────────────

    async def test_connection(self, config: AgentConfiguration) -> dict[str, Any]:
        """Check the configured provider, then its fallback if that check fails."""
        result = await self._check_one(config)
        if result["success"]:
            return result
        secondary = self.secondary_for(config.provider)
        if secondary is None:
            return result
        fallback = await self._check_one(self._fallback_config(config, secondary))
        fallback["fallback"] = True
        fallback["primary_error"] = result["error"]
        return fallback

    async def _check_one(self, config: AgentConfiguration) -> dict[str, Any]:
        adapter = self._adapters.get(config.provider)
        if adapter is None:
            return {"success": False, "provider": config.provider, "error": f"Unsupported provider: {config.provider}",
                    "code": ErrorCode.CONFIGURATION_ERROR.value}
        try:
            model = await adapter.check_connection(config)
        except Exception as e:
            log.warning("connection check failed", provider=config.provider, error=_describe(e))
            return {"success": False, "provider": config.provider, "error": _describe(e),
                    "code": classify_exception(e).value}
        return {"success": True, "provider": config.provider, "model": model}
