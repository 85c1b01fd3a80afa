"""Web search with an ordered backend chain.

Google Custom Search (when key and engine id are configured), then the
DuckDuckGo instant-answer API, then a deterministic placeholder. Backend
failures are logged and the next backend is tried; the tool never raises.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote_plus

import httpx
from pydantic import BaseModel, ConfigDict, Field

from toolrelay.foundation.config import SearchSettings
from toolrelay.foundation.core import BaseTool, ToolMetadata
from toolrelay.foundation.errors import ErrorCode, JsonDict, TransportError
from toolrelay.runtime.observability import get_logger

log = get_logger("toolrelay.tools.search")

GOOGLE_PROVIDER = "Google Custom Search"
DUCKDUCKGO_PROVIDER = "DuckDuckGo (Alternative)"
PLACEHOLDER_PROVIDER = "Simulated Search"

# Slack on top of the backend chain budget
_DISPATCH_MARGIN_S = 5.0


class SearchParams(BaseModel):
    query: str = Field(..., min_length=1, description="The search query string")
    limit: int = Field(default=5, ge=1, le=10, description="Maximum number of results to return (1-10)")


class SearchHit(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    snippet: str
    url: str
    display_link: str = Field(alias="displayLink")


class SearchResponse(BaseModel):
    """Normalized result, identical in shape for every backend."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    results: list[SearchHit] = Field(default_factory=list)
    total_results: str = "0"
    search_time: float = 0.0
    provider: str

    def to_payload(self) -> JsonDict:
        return {
            "success": self.success,
            "results": [hit.model_dump(by_alias=True) for hit in self.results],
            "searchInformation": {"totalResults": self.total_results, "searchTime": self.search_time},
            "provider": self.provider,
        }


def placeholder_results(query: str) -> SearchResponse:
    """Deterministic last-resort result."""
    return SearchResponse(
        results=[SearchHit(
            title=f'Search Results for "{query}"',
            snippet=(
                f'This is a simulated search result for "{query}". No search backend was reachable, '
                "so this is a placeholder result."
            ),
            url=f"https://www.google.com/search?q={quote_plus(query)}",
            display_link="google.com",
        )],
        total_results="1",
        search_time=0.1,
        provider=PLACEHOLDER_PROVIDER,
    )


def _flatten_topics(topics: list[Any]) -> list[dict[str, Any]]:
    """DuckDuckGo nests related topics in named groups; flatten them in order."""
    flat: list[dict[str, Any]] = []
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        if "Topics" in topic:
            flat.extend(_flatten_topics(topic.get("Topics") or []))
        else:
            flat.append(topic)
    return flat


class GoogleSearchTool(BaseTool[SearchParams]):
    """Search with Google -> DuckDuckGo -> placeholder fallback."""

    metadata = ToolMetadata(
        name="google_search",
        description="Search Google for current information and return snippet results",
        category="search",
        timeout=30.0,
    )
    params_schema = SearchParams

    def __init__(self, settings: SearchSettings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client

    @property
    def available(self) -> bool:
        # The placeholder backend always answers
        return True

    def _backends(self) -> list[tuple[str, Callable[[SearchParams], Awaitable[SearchResponse]]]]:
        backends: list[tuple[str, Callable[[SearchParams], Awaitable[SearchResponse]]]] = []
        if self._settings.google_enabled:
            backends.append((GOOGLE_PROVIDER, self._google))
        backends.append((DUCKDUCKGO_PROVIDER, self._duckduckgo))
        return backends

    def timeout_for(self, params: SearchParams) -> float:
        """Every backend may use its full budget before the placeholder answers."""
        return len(self._backends()) * self._settings.timeout + _DISPATCH_MARGIN_S

    async def run(self, params: SearchParams) -> JsonDict:
        for name, backend in self._backends():
            try:
                # httpx timeouts are per phase; bound the whole backend call
                return (await asyncio.wait_for(backend(params), self._settings.timeout)).to_payload()
            except TimeoutError:
                log.warning("search backend timed out", backend=name, timeout=self._settings.timeout)
            except (httpx.HTTPError, TransportError, ValueError, KeyError, TypeError, AttributeError) as e:
                log.warning("search backend failed", backend=name, error=str(e) or type(e).__name__)
        return placeholder_results(params.query).to_payload()

    async def _get_json(self, url: str, query: dict[str, Any]) -> Any:
        response = await self._client.get(url, params=query, timeout=self._settings.timeout)
        if response.is_error:
            raise TransportError(
                f"search API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                code=ErrorCode.RATE_LIMITED if response.status_code == 429 else ErrorCode.EXTERNAL_SERVICE_ERROR,
            )
        return response.json()

    async def _google(self, params: SearchParams) -> SearchResponse:
        assert self._settings.google_api_key is not None
        started = time.perf_counter()
        data = await self._get_json(self._settings.google_endpoint, {
            "key": self._settings.google_api_key.get_secret_value(),
            "cx": self._settings.google_engine_id,
            "q": params.query,
            "num": min(params.limit, 10),
        })
        if error := data.get("error"):
            raise TransportError(f"Google Search API error: {error.get('message', error)}")
        info = data.get("searchInformation") or {}
        return SearchResponse(
            results=[
                SearchHit(
                    title=item.get("title", ""),
                    snippet=item.get("snippet", ""),
                    url=item.get("link", ""),
                    display_link=item.get("displayLink", ""),
                )
                for item in data.get("items") or []
            ],
            total_results=str(info.get("totalResults", "0")),
            search_time=float(info.get("searchTime", time.perf_counter() - started)),
            provider=GOOGLE_PROVIDER,
        )

    async def _duckduckgo(self, params: SearchParams) -> SearchResponse:
        data = await self._get_json(self._settings.duckduckgo_endpoint, {
            "q": params.query,
            "format": "json",
            "no_html": 1,
            "skip_disambig": 1,
        })
        fallback_url = f"https://duckduckgo.com/?q={quote_plus(params.query)}"
        hits = []
        for i, item in enumerate(_flatten_topics(data.get("RelatedTopics") or [])[: params.limit]):
            text = item.get("Text") or ""
            hits.append(SearchHit(
                title=text.split(" - ")[0] or f"Search Result {i + 1}",
                snippet=text or f"Information about {params.query}",
                url=item.get("FirstURL") or fallback_url,
                display_link="duckduckgo.com",
            ))
        return SearchResponse(
            results=hits,
            total_results=str(len(hits)),
            search_time=0.1,
            provider=DUCKDUCKGO_PROVIDER,
        )
