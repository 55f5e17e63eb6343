"""Memory search tool over a user's stored memories."""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field

from agents.tools.base import ToolAgent
from settings import settings
from utils.memory_client import Mem0Client


class MemorySearchArgs(BaseModel):
    query: str = Field(description="What to look for in the user's memories.", min_length=1)
    max_results: int = Field(default=5, description="Maximum number of memories to return.", ge=1, le=20)


MEMORY_SEARCH_TOOL = "memory_search"


class MemorySearchAgent(ToolAgent):
    name: str = MEMORY_SEARCH_TOOL
    description: str = (
        "Search personal memories: past experiences, opinions, preferences and facts the user has shared. "
        "Use it when the answer depends on who the user (or persona) is."
    )
    args_schema: Type[BaseModel] = MemorySearchArgs
    timeout: float = settings.memory_search_timeout

    memory_client: Mem0Client
    user_id: str
    app_id: Optional[str] = None

    async def _execute(self, args: MemorySearchArgs) -> Dict[str, Any]:
        memories = await self.memory_client.search(args.query, self.user_id, self.app_id, args.max_results)
        return {
            "query": args.query,
            "memories": [memory.model_dump() for memory in memories],
            "number_of_results": len(memories),
        }
