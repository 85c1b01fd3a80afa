"""Fetch a web page and reduce it to plain text."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import httpx
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, Field
from soupsieve import SelectorSyntaxError

from toolrelay.foundation.core import BaseTool, ToolMetadata
from toolrelay.foundation.errors import JsonDict
from toolrelay.runtime.observability import get_logger

log = get_logger("toolrelay.tools.scrape")

MAX_CONTENT_CHARS = 5000
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

_STRIPPED_TAGS = ["script", "style", "noscript"]
_SPACE = re.compile(r"\s+")


def parse_page(markup: str) -> BeautifulSoup:
    """Parse HTML with scripts and styles removed."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(_STRIPPED_TAGS):
        tag.decompose()
    return soup


def extract_title(soup: BeautifulSoup) -> str:
    title = soup.title.get_text(strip=True) if soup.title else ""
    return title or "No title found"


def extract_text(soup: BeautifulSoup, selector: str = "") -> str:
    """Whitespace-collapsed text of the region matching `selector` (whole page when nothing matches)."""
    region: Tag = soup
    if selector:
        try:
            region = soup.select_one(selector) or soup
        except SelectorSyntaxError:
            log.info("ignoring invalid selector", selector=selector)
    return _SPACE.sub(" ", region.get_text(" ", strip=True)).strip()


class ScrapeParams(BaseModel):
    url: str = Field(..., pattern=r"^https?://", description="The http(s) URL of the page to read")
    selector: str = Field(default="body", description="CSS selector of the page region to read")


class BrowserScrapeTool(BaseTool[ScrapeParams]):
    """Fetches a page, strips scripts and styles, returns truncated text."""

    metadata = ToolMetadata(
        name="browser_scrape",
        description="Fetch a web page and return its title and plain-text content",
        category="web",
        timeout=30.0,
    )
    params_schema = ScrapeParams

    def __init__(self, client: httpx.AsyncClient, *, timeout: float = 20.0) -> None:
        self._client = client
        self._timeout = timeout

    async def run(self, params: ScrapeParams) -> JsonDict:
        try:
            response = await self._client.get(
                params.url, headers={"User-Agent": USER_AGENT}, timeout=self._timeout, follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            return {"success": False, "url": params.url, "error": f"HTTP error! status: {e.response.status_code}"}
        except httpx.HTTPError as e:
            log.info("scrape failed", url=params.url, error=str(e))
            return {"success": False, "url": params.url, "error": str(e) or type(e).__name__}

        soup = parse_page(response.text)
        text = extract_text(soup, params.selector)
        return {
            "success": True,
            "url": params.url,
            "title": extract_title(soup),
            "content": text[:MAX_CONTENT_CHARS],
            "metadata": {
                "contentLength": len(text),
                "selector": params.selector,
                "timestamp": datetime.now(UTC).isoformat(),
            },
        }
