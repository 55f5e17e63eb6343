"""Tool agents callable by models during generation."""

from agents.tools.base import ToolAgent, ToolResultBuffer
from agents.tools.deep_think_progress import DeepThinkProgressTool, ProgressStage
from agents.tools.memory_search import MemorySearchAgent
from agents.tools.registry import ToolFactory
from agents.tools.web_search import WebSearchAgent

__all__ = [
    "DeepThinkProgressTool",
    "MemorySearchAgent",
    "ProgressStage",
    "ToolAgent",
    "ToolFactory",
    "ToolResultBuffer",
    "WebSearchAgent",
]
