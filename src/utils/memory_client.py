"""HTTP client for the mem0 memory search API."""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from constants import MEM0_SEARCH_URL
from agents.exceptions import ToolExecutionError
from settings import settings
from utils.logging import logger


class MemoryRecord(BaseModel):
    id: str
    memory: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class Mem0Client:
    """Searches the memories of one user, optionally narrowed to an app."""

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key if api_key is not None else settings.mem0_api_key
        self._http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout or settings.memory_search_timeout))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, user_id: str, app_id: Optional[str] = None, limit: int = 5) -> List[MemoryRecord]:
        if not self.api_key:
            raise ToolExecutionError("Memory search is not configured")

        conditions: List[Dict[str, Any]] = [{"user_id": user_id}]
        if app_id:
            conditions.append({"metadata": {"app_id": app_id}})
        payload = {"query": query, "filters": {"AND": conditions}, "top_k": limit}

        try:
            response = await self._http_client.post(MEM0_SEARCH_URL, json=payload, headers={"Authorization": f"Token {self.api_key}"})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"mem0 search failed with status {e.response.status_code}")
            raise ToolExecutionError(f"Memory search failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"mem0 search request error: {str(e)}")
            raise ToolExecutionError(f"Memory search request failed: {str(e)}") from e

        body = response.json()
        items = body.get("results", []) if isinstance(body, dict) else body
        return [
            MemoryRecord(id=str(item.get("id")), memory=item.get("memory", ""), metadata=item.get("metadata") or {}, created_at=item.get("created_at"))
            for item in items[:limit]
        ]

    async def close(self) -> None:
        await self._http_client.aclose()
