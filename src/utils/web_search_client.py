"""HTTP client for the Exa neural search API."""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from constants import EXA_SEARCH_URL
from agents.exceptions import ToolExecutionError
from settings import settings
from utils.logging import logger


class SearchResult(BaseModel):
    """A single web search hit as handed to models."""

    title: str = ""
    url: str
    content: str = ""


class ExaSearchClient:
    """Thin async wrapper around ``POST /search``."""

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key if api_key is not None else settings.exa_api_key
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.web_search_timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=20),
        )

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        """Run a neural search; summaries are used as result content."""
        if not self.api_key:
            raise ToolExecutionError("Web search is not configured")

        payload: Dict[str, Any] = {
            "query": query,
            "type": "neural",
            "numResults": max_results,
            "contents": {"summary": True},
        }
        try:
            response = await self._http_client.post(EXA_SEARCH_URL, json=payload, headers={"x-api-key": self.api_key})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Exa search failed with status {e.response.status_code}")
            raise ToolExecutionError(f"Web search failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Exa search request error: {str(e)}")
            raise ToolExecutionError(f"Web search request failed: {str(e)}") from e

        results = []
        for item in response.json().get("results", []):
            if not item.get("url"):
                continue
            results.append(SearchResult(title=item.get("title") or "", url=item["url"], content=item.get("summary") or item.get("text") or ""))
        return results

    async def close(self) -> None:
        await self._http_client.aclose()
