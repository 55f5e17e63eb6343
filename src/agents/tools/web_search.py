"""Web search tool with a per-conversation result cache."""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field

from agents.tools.base import ToolAgent
from settings import settings
from utils.logging import logger
from utils.metrics import record_cache_hit, record_cache_miss
from utils.web_search_cache import CachedSearch, SearchHistory, WebSearchCache, cache_key
from utils.web_search_client import ExaSearchClient


class WebSearchArgs(BaseModel):
    query: str = Field(description="The search query. Be specific; include names, dates and places when relevant.", min_length=1)
    max_results: int = Field(
        default=settings.web_search_max_results, description="Number of results to return.", ge=1, le=settings.web_search_max_results
    )


WEB_SEARCH_TOOL = "web_search"


class WebSearchAgent(ToolAgent):
    """Searches the web, answering repeated queries of the same conversation from cache."""

    name: str = WEB_SEARCH_TOOL
    description: str = (
        "Search the web for current information. Use it for recent events, facts you are unsure about, "
        "or anything after your knowledge cutoff. Do not repeat a query that was already performed."
    )
    args_schema: Type[BaseModel] = WebSearchArgs
    timeout: float = settings.web_search_timeout

    search_client: ExaSearchClient
    cache: WebSearchCache
    history: Optional[SearchHistory] = None
    scope: Optional[str] = None

    async def _execute(self, args: WebSearchArgs) -> Dict[str, Any]:
        key = cache_key(self.scope, args.query)

        cached = await self._lookup(key)
        if cached is not None:
            logger.info(f"Web search cache hit for '{args.query}'")
            record_cache_hit(self.scope)
            self._remember(args.query, cached=True)
            return {**cached.result, "cached": True, "cached_at": cached.cached_at.isoformat()}

        record_cache_miss(self.scope)
        results = await self.search_client.search(args.query, args.max_results)
        result = {
            "query": args.query,
            "results": [item.model_dump() for item in results],
            "number_of_results": len(results),
        }
        await self._store(key, result)
        self._remember(args.query, cached=False)
        return {**result, "cached": False}

    async def _lookup(self, key: str) -> Optional[CachedSearch]:
        # A cache outage degrades to a miss
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Web search cache read failed: {str(e)}")
            return None

    async def _store(self, key: str, result: Dict[str, Any]) -> None:
        try:
            await self.cache.set(key, result)
        except Exception as e:
            logger.warning(f"Web search cache write failed: {str(e)}")

    def _remember(self, query: str, cached: bool) -> None:
        if self.history is not None:
            self.history.record(self.scope, query, cached)
