"""Per-conversation web search cache and recent-query history.

Redis is used when ``REDIS_URL`` is configured so cached results are shared across workers;
otherwise entries live in process memory.
"""

import json
import time
from collections import OrderedDict, deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple

import redis.asyncio as redis
from pydantic import BaseModel

from constants import WEB_SEARCH_HISTORY_LIMIT
from models.base import utcnow
from settings import settings
from utils.logging import logger
from utils.text import normalize_query


class CachedSearch(BaseModel):
    result: Dict[str, Any]
    cached_at: datetime


def cache_key(scope: Optional[str], query: str) -> str:
    """Build the cache key for a query within a conversation scope."""
    return f"web_search:{scope or 'global'}:{normalize_query(query)}"


class WebSearchCache:
    """Cache interface; subclasses store JSON-serializable search results with a TTL."""

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Optional[CachedSearch]:
        raise NotImplementedError

    async def set(self, key: str, result: Dict[str, Any]) -> CachedSearch:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryWebSearchCache(WebSearchCache):
    """Process-local cache with lazy expiry."""

    def __init__(self, ttl_seconds: int, max_entries: int = 2048):
        super().__init__(ttl_seconds)
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[float, CachedSearch]]" = OrderedDict()

    async def get(self, key: str) -> Optional[CachedSearch]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, cached = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return cached

    async def set(self, key: str, result: Dict[str, Any]) -> CachedSearch:
        cached = CachedSearch(result=result, cached_at=utcnow())
        self._entries[key] = (time.monotonic() + self.ttl_seconds, cached)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return cached


class RedisWebSearchCache(WebSearchCache):
    """Redis-backed cache storing one JSON document per key with SETEX."""

    def __init__(self, client: "redis.Redis", ttl_seconds: int):
        super().__init__(ttl_seconds)
        self._redis = client

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "RedisWebSearchCache":
        return cls(redis.from_url(url, decode_responses=True), ttl_seconds)

    async def get(self, key: str) -> Optional[CachedSearch]:
        raw = await self._redis.get(key)
        if not raw:
            return None
        try:
            return CachedSearch.model_validate_json(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable web search cache entry {key}")
            return None

    async def set(self, key: str, result: Dict[str, Any]) -> CachedSearch:
        cached = CachedSearch(result=result, cached_at=utcnow())
        await self._redis.setex(key, self.ttl_seconds, cached.model_dump_json())
        return cached

    async def close(self) -> None:
        await self._redis.aclose()


def create_web_search_cache() -> WebSearchCache:
    """Pick the cache backend from settings."""
    if settings.redis_url:
        logger.info("Using Redis web search cache")
        return RedisWebSearchCache.from_url(settings.redis_url, settings.web_search_cache_ttl)
    logger.info("Using in-memory web search cache")
    return InMemoryWebSearchCache(settings.web_search_cache_ttl)


class SearchHistory:
    """Most recent distinct queries per conversation, newest last.

    Only the ``max_scopes`` most recently active conversations are kept.
    """

    def __init__(self, limit: int = WEB_SEARCH_HISTORY_LIMIT, max_scopes: int = 1024):
        self.limit = limit
        self.max_scopes = max_scopes
        self._queries: "OrderedDict[str, Deque[Tuple[str, bool]]]" = OrderedDict()

    def record(self, scope: Optional[str], query: str, cached: bool) -> None:
        if not scope:
            return
        normalized = normalize_query(query)
        entries = self._queries.setdefault(scope, deque(maxlen=self.limit))
        self._queries.move_to_end(scope)
        while len(self._queries) > self.max_scopes:
            self._queries.popitem(last=False)
        for existing in list(entries):
            if existing[0] == normalized:
                entries.remove(existing)
        entries.append((normalized, cached))

    def recent(self, scope: Optional[str]) -> List[str]:
        """Queries formatted for prompts; cached hits are marked."""
        if not scope:
            return []
        return [f"{query} (cached)" if cached else query for query, cached in self._queries.get(scope, ())]
