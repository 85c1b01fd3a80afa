"""Tests for settings and the request data model."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from toolrelay.foundation.config import (
    OrchestratorSettings,
    ProviderSettings,
    SandboxSettings,
    SearchSettings,
    get_settings,
)
from toolrelay.foundation.core import AgentConfiguration, ChatTurnRequest, Message, Role, ToolResult
from toolrelay.foundation.errors import ErrorCode, ToolError


class TestProviderSettings:
    def test_defaults(self) -> None:
        settings = get_settings()
        assert settings.providers.fallback_provider == "openai"
        assert settings.orchestrator.max_round_trips == 5
        assert settings.sandbox.default_timeout_ms == 5000
        assert settings.providers.openai_api_key is None

    def test_conventional_env_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("AI_PIPE_API_KEY", "pipe-env")
        settings = ProviderSettings()
        assert settings.api_key_for("openai").get_secret_value() == "sk-env"  # type: ignore[union-attr]
        assert settings.api_key_for("aipipe").get_secret_value() == "pipe-env"  # type: ignore[union-attr]

    @pytest.mark.parametrize("placeholder", ["", "  ", "default_key"])
    def test_placeholder_keys_are_dropped(self, placeholder: str) -> None:
        assert ProviderSettings(openai_api_key=placeholder).openai_api_key is None

    def test_google_needs_key_and_engine(self) -> None:
        assert not SearchSettings(google_api_key="k").google_enabled
        assert SearchSettings(google_api_key="k", google_engine_id="e").google_enabled

    def test_settings_are_cached(self) -> None:
        assert get_settings() is get_settings()


class TestLimits:
    def test_sandbox_default_within_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SandboxSettings(default_timeout_ms=500)
        with pytest.raises(ValidationError):
            SandboxSettings(default_timeout_ms=40000)

    def test_round_trip_bounds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOOLRELAY_ORCHESTRATOR_MAX_ROUND_TRIPS", "3")
        assert OrchestratorSettings().max_round_trips == 3
        with pytest.raises(ValidationError):
            OrchestratorSettings(max_round_trips=0)


class TestRequestModel:
    def test_wire_aliases(self) -> None:
        request = ChatTurnRequest.model_validate({
            "messages": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": None, "toolCalls": [
                    {"id": "call_1", "type": "function", "function": {"name": "echo", "arguments": "{}"}},
                ]},
                {"role": "tool", "content": "{}", "toolCallId": "call_1"},
            ],
            "config": {"provider": "openai", "apiKey": "", "maxTokens": 10, "temperature": 0},
        })
        assistant = request.messages[1]
        assert assistant.content == ""
        assert assistant.tool_calls is not None and assistant.tool_calls[0].name == "echo"
        assert request.messages[2].tool_call_id == "call_1"
        assert request.config.api_key is None
        assert request.config.max_tokens == 10
        assert request.tools == ()

    @pytest.mark.parametrize("overrides", [{"temperature": 2.5}, {"maxTokens": 0}, {"maxTokens": 4001},
                                           {"provider": "anthropic"}])
    def test_config_bounds(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            AgentConfiguration.model_validate(overrides)

    def test_config_is_immutable_and_fallback_copies(self) -> None:
        config = AgentConfiguration(apiKey="secret", model="pipe-model")
        with pytest.raises(ValidationError):
            config.model = "other"  # type: ignore[misc]
        fallback = config.for_fallback("openai", "gpt-4o")
        assert (fallback.provider, fallback.model, fallback.api_key) == ("openai", "gpt-4o", None)
        assert config.provider == "aipipe"
        assert "secret" not in repr(config)

    def test_provider_message_shape(self) -> None:
        msg = Message.tool("call_1", "{}")
        assert msg.role == Role.TOOL
        assert msg.to_provider() == {"role": "tool", "content": "{}", "tool_call_id": "call_1"}

    def test_tool_result_content(self) -> None:
        failed = ToolResult.fail(ToolError.create("echo", "bad input", ErrorCode.INVALID_PARAMS))
        assert failed.to_content() == '{"success":false,"error":"bad input","code":"INVALID_PARAMS"}'
        assert ToolResult.ok("calc", 4).to_content() == '{"success":true,"result":4}'
