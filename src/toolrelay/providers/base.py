"""Provider adapter contract.

An adapter wraps one upstream chat-completions backend and exposes a uniform
stream of `ProviderDelta` values: text deltas, tool-call fragments addressed
by position index, and a finish reason. Adapters differ only in request
shaping and response decoding; the orchestrator never branches on provider.

Failure mapping (raised from `stream()` / `check_connection()`):
- HTTP 401/403, missing credential  -> ConfigurationError(is_auth=True)
- HTTP 429                          -> TransportError(code=RATE_LIMITED)
- other non-2xx, network, timeout   -> TransportError
- unusable response body            -> ProtocolError
Malformed individual stream chunks are logged and skipped.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import httpx
from pydantic import SecretStr

from toolrelay.foundation.core import Message
from toolrelay.foundation.errors import ConfigurationError, ErrorCode, JsonDict, ProtocolError, TransportError
from toolrelay.runtime.observability import get_logger

if TYPE_CHECKING:
    from toolrelay.foundation.config import ProviderName, ProviderSettings
    from toolrelay.foundation.core import AgentConfiguration

log = get_logger("toolrelay.providers")


@dataclass(frozen=True, slots=True)
class ToolCallFragment:
    """Partial tool call. Name and arguments are appended to the call at `index`."""

    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True, slots=True)
class ProviderDelta:
    """One incremental unit from a provider."""

    content: str = ""
    tool_calls: tuple[ToolCallFragment, ...] = ()
    finish_reason: str | None = None


class ProviderAdapter(ABC):
    """Base class for upstream chat-completions backends."""

    provider: ClassVar[ProviderName]

    __slots__ = ("_client", "_base_url", "_api_key", "_default_model", "_timeout")

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: SecretStr | None = None,
        default_model: str,
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._default_model = default_model
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: ProviderSettings, client: httpx.AsyncClient) -> ProviderAdapter:
        return cls(
            client,
            base_url=settings.base_url_for(cls.provider),
            api_key=settings.api_key_for(cls.provider),
            default_model=settings.default_model_for(cls.provider),
            timeout=settings.request_timeout,
        )

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/chat/completions"

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def resolve_model(self, config: AgentConfiguration) -> str:
        return config.model or self._default_model

    def _credential(self, config: AgentConfiguration) -> str:
        key = config.api_key or self._api_key
        if key is None:
            raise ConfigurationError(f"{self.provider} API key not configured", is_auth=True)
        return key.get_secret_value()

    def _headers(self, config: AgentConfiguration) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._credential(config)}", "Content-Type": "application/json"}

    def build_payload(
        self,
        messages: Sequence[Message],
        config: AgentConfiguration,
        tools: Sequence[JsonDict],
        *,
        stream: bool,
    ) -> JsonDict:
        """Chat-completions request body. Tools (and tool_choice) only when declared."""
        payload: JsonDict = {
            "model": self.resolve_model(config),
            "messages": [m.to_provider() for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": stream,
        }
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = "auto"
        return payload

    @abstractmethod
    def stream(
        self,
        messages: Sequence[Message],
        config: AgentConfiguration,
        tools: Sequence[JsonDict],
    ) -> AsyncIterator[ProviderDelta]:
        """Send one completion request and yield its deltas in arrival order."""
        ...

    async def check_connection(self, config: AgentConfiguration) -> str:
        """Minimal non-streaming request (max_tokens=1). Returns the model used."""
        body = self.build_payload([Message.user("ping")], config.model_copy(update={"max_tokens": 1}), (), stream=False)
        await self._post_json(body, config)
        return body["model"]

    async def _post_json(self, body: JsonDict, config: AgentConfiguration) -> Any:
        headers = self._headers(config)
        try:
            response = await self._client.post(self.endpoint, json=body, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"{self.provider} request timed out", code=ErrorCode.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{self.provider} request failed: {e}") from e
        raise_for_status(self.provider, response)
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"{self.provider} returned a non-JSON body") from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self._base_url!r}, default_model={self._default_model!r})"


def raise_for_status(provider: str, response: httpx.Response) -> None:
    """Map an HTTP error status to the relay taxonomy. Body must already be read."""
    status = response.status_code
    if status < 400:
        return
    detail = _error_detail(response)
    if status in (401, 403):
        raise ConfigurationError(f"{provider} rejected the credential (HTTP {status}): {detail}", is_auth=True)
    code = ErrorCode.RATE_LIMITED if status == 429 else ErrorCode.EXTERNAL_SERVICE_ERROR
    raise TransportError(f"{provider} API error (HTTP {status}): {detail}", status_code=status, code=code)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and isinstance(err := body.get("error"), dict):
        return str(err.get("message", err))[:200]
    return str(body)[:200]
