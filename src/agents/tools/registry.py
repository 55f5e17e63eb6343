"""Builds the tool agents available to one target."""

from typing import List, Optional, Tuple

from agents.tools.base import ToolAgent, ToolResultBuffer
from agents.tools.deep_think_progress import DeepThinkProgressTool
from agents.tools.memory_search import MemorySearchAgent
from agents.tools.web_search import WebSearchAgent
from models.caller import Caller
from models.targets import Target
from utils.memory_client import Mem0Client
from utils.web_search_cache import SearchHistory, WebSearchCache
from utils.web_search_client import ExaSearchClient


class ToolFactory:
    """Creates fresh tool agents per target so each writes only to its own result buffer."""

    def __init__(
        self,
        search_client: ExaSearchClient,
        cache: WebSearchCache,
        history: Optional[SearchHistory] = None,
        memory_client: Optional[Mem0Client] = None,
    ):
        self.search_client = search_client
        self.cache = cache
        self.history = history if history is not None else SearchHistory()
        self.memory_client = memory_client

    def build(
        self,
        target: Target,
        caller: Caller,
        conversation_unique_id: Optional[str],
        buffer: ToolResultBuffer,
        deep_think: bool = False,
    ) -> List[ToolAgent]:
        tools: List[ToolAgent] = [
            WebSearchAgent(
                search_client=self.search_client,
                cache=self.cache,
                history=self.history,
                scope=conversation_unique_id,
                buffer=buffer,
            )
        ]

        scope = self.memory_scope(target, caller)
        if scope and self.memory_client is not None and self.memory_client.is_configured:
            user_id, app_id = scope
            tools.append(MemorySearchAgent(memory_client=self.memory_client, user_id=user_id, app_id=app_id, buffer=buffer))

        if deep_think:
            tools.append(DeepThinkProgressTool(buffer=buffer))

        return tools

    def recent_searches(self, conversation_unique_id: Optional[str]) -> List[str]:
        return self.history.recent(conversation_unique_id)

    @staticmethod
    def memory_scope(target: Target, caller: Caller) -> Optional[Tuple[str, Optional[str]]]:
        """Whose memories a target may search: a persona's creator, or the logged-in caller for plain models."""
        if target.app is not None:
            if target.app.is_me and target.app.user_id:
                return target.app.user_id, target.app.id
            return None
        if caller.user_id:
            return caller.user_id, None
        return None
