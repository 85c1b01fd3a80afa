"""AI Pipe workflow executor."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from toolrelay.foundation.config import ProviderSettings, WorkflowSettings
from toolrelay.foundation.core import BaseTool, ToolMetadata
from toolrelay.foundation.errors import ErrorCode, JsonDict
from toolrelay.runtime.observability import get_logger

log = get_logger("toolrelay.tools.workflow")


class WorkflowParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workflow: str = Field(
        ...,
        min_length=1,
        pattern=r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$",
        description="The AI workflow to execute",
    )
    input_data: dict[str, Any] = Field(
        default_factory=dict,
        alias="inputData",
        description="Input data for the workflow",
    )


class AiPipeTool(BaseTool[WorkflowParams]):
    """Runs a named workflow through the AI Pipe proxy.

    The workflow input is the caller's data plus a default `model` and the
    configured `fallback_models` list.
    """

    metadata = ToolMetadata(
        name="ai_pipe",
        description="Execute an AI workflow through the AI Pipe proxy API",
        category="workflow",
        requires_api_key=True,
        timeout=90.0,
    )
    params_schema = WorkflowParams

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: SecretStr | None,
        default_model: str,
        fallback_models: list[str],
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._default_model = default_model
        self._fallback_models = list(fallback_models)
        self._timeout = timeout

    @classmethod
    def from_settings(
        cls,
        providers: ProviderSettings,
        workflow: WorkflowSettings,
        client: httpx.AsyncClient,
    ) -> AiPipeTool:
        return cls(
            client,
            base_url=providers.aipipe_base_url,
            api_key=providers.aipipe_api_key,
            default_model=providers.aipipe_default_model,
            fallback_models=workflow.fallback_models,
            timeout=workflow.timeout,
        )

    @property
    def available(self) -> bool:
        return self._api_key is not None

    def timeout_for(self, params: WorkflowParams) -> float:
        return self._timeout + 5.0

    def _headers(self) -> dict[str, str]:
        if self._api_key is None:
            raise self._fail("AI Pipe API key not configured", ErrorCode.API_KEY_MISSING, recoverable=False)
        return {"Authorization": f"Bearer {self._api_key.get_secret_value()}"}

    def build_input(self, input_data: dict[str, Any]) -> dict[str, Any]:
        return {
            **input_data,
            "model": input_data.get("model") or self._default_model,
            "fallback_models": list(self._fallback_models),
        }

    async def run(self, params: WorkflowParams) -> JsonDict:
        url = f"{self._base_url}/workflows/{params.workflow}/execute"
        headers = self._headers()
        try:
            response = await self._client.post(
                url, json={"input": self.build_input(params.input_data)}, headers=headers, timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise self._fail(f"AI Pipe request timed out: {e}", ErrorCode.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise self._fail(f"AI Pipe request failed: {e}", ErrorCode.NETWORK_ERROR) from e
        if response.is_error:
            code = ErrorCode.API_KEY_INVALID if response.status_code in (401, 403) else ErrorCode.EXTERNAL_SERVICE_ERROR
            raise self._fail(f"AI Pipe API error: {response.status_code} {response.reason_phrase}", code)
        try:
            data = response.json()
        except ValueError as e:
            raise self._fail("AI Pipe returned a non-JSON body", ErrorCode.PARSE_ERROR) from e
        log.debug("workflow executed", workflow=params.workflow, status=data.get("status"))
        return {
            "success": True,
            "output": data.get("output"),
            "executionId": data.get("execution_id"),
            "status": data.get("status"),
            "metadata": data.get("metadata"),
        }

    async def list_workflows(self) -> JsonDict:
        """Workflows visible to the configured key. Never raises."""
        try:
            response = await self._client.get(f"{self._base_url}/workflows", headers=self._headers(), timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            log.warning("workflow listing failed", error=str(e) or type(e).__name__)
            return {"success": False, "error": str(e) or "Failed to fetch workflows", "workflows": []}
        return {"success": True, "workflows": data.get("workflows") or []}
