"""Model dispatcher: one round-based generation loop per target."""

import asyncio
import json
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from langchain_core.messages import AIMessageChunk, BaseMessage, HumanMessage, SystemMessage, ToolMessage, message_chunk_to_message

from agents.exceptions import ModelAccessError, ProviderError
from agents.prompts import build_system_prompt
from agents.providers import ProviderAdapter, ProviderRegistry
from agents.tools.base import ToolAgent, ToolResultBuffer
from agents.tools.deep_think_progress import DEEP_THINK_PROGRESS_TOOL, ProgressStage
from agents.tools.memory_search import MEMORY_SEARCH_TOOL, MemorySearchAgent
from agents.tools.registry import ToolFactory
from agents.tools.web_search import WEB_SEARCH_TOOL
from constants import PROACTIVE_MEMORY_LIMIT
from models.caller import Caller
from models.events import EventKind, StreamChunk, ToolInvocation
from models.targets import Target
from settings import Settings, settings
from utils.logging import logger

FINAL_ROUND_INSTRUCTION = "You have reached the tool-use limit for this answer. Reply now using the information gathered so far, without calling tools."

PROACTIVE_MEMORY_TOOL = "proactive_memory_search"
RESEARCH_TOOLS = frozenset({WEB_SEARCH_TOOL, MEMORY_SEARCH_TOOL})


class RoundState(str, Enum):
    ROUND_PENDING = "round-pending"
    ROUND_STREAMING = "round-streaming"
    ROUND_COMPLETE = "round-complete"
    FINALIZE = "finalize"


def chunk_text(chunk: BaseMessage) -> str:
    """Text carried by a message or streamed chunk; providers send either a string or content blocks."""
    content = chunk.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class DispatchContext:
    """Everything shared by the targets of one turn."""

    def __init__(
        self,
        messages: List[BaseMessage],
        caller: Caller,
        participants: Sequence[Target],
        conversation_unique_id: Optional[str] = None,
        deep_think: bool = False,
        query: str = "",
    ):
        self.messages = messages
        self.caller = caller
        self.participants = list(participants)
        self.conversation_unique_id = conversation_unique_id
        self.deep_think = deep_think
        self.query = query


class TargetRun:
    """Generation loop for a single target.

    Each round streams the model's output; if the model asked for tools, they run and
    their results are fed into the next round. The loop stops when a round produces no
    tool calls or the round ceiling is reached.
    """

    def __init__(
        self,
        target: Target,
        context: DispatchContext,
        registry: ProviderRegistry,
        tools: List[ToolAgent],
        buffer: ToolResultBuffer,
        max_rounds: int,
        timeout: Optional[float],
        tool_factory: Optional[ToolFactory] = None,
        memory_timeout: Optional[float] = None,
    ):
        self.target = target
        self.context = context
        self.registry = registry
        self.tools = tools
        self.buffer = buffer
        self.max_rounds = max_rounds
        self.timeout = timeout
        self.tool_factory = tool_factory
        self.memory_timeout = memory_timeout or settings.memory_search_timeout
        self.state = RoundState.ROUND_PENDING
        self.rounds = 0

    @property
    def deep_think(self) -> bool:
        return self.context.deep_think

    async def events(self) -> AsyncIterator[StreamChunk]:
        adapter = self._adapter()
        tools = self.tools if adapter.supports_tools else []
        tools_by_name = {tool.name: tool for tool in tools}

        memory_context = None
        scope = self._proactive_memory_scope()
        if scope is not None:
            memory_context, sources = await self._prefetch_memories(*scope)
            if sources:
                yield StreamChunk(kind=EventKind.MEMORY_SOURCES, payload={"memories": sources})

        if self.deep_think:
            yield self._progress(ProgressStage.NOTE, f"{self.target.display_name} is thinking deeply about your question")

        messages: List[BaseMessage] = [SystemMessage(self._system_prompt(tools, memory_context)), *self.context.messages]
        text_started = False

        while self.rounds < self.max_rounds:
            self.state = RoundState.ROUND_PENDING
            self.rounds += 1
            if self.rounds == self.max_rounds and self.rounds > 1:
                messages.append(HumanMessage(FINAL_ROUND_INSTRUCTION))

            self.state = RoundState.ROUND_STREAMING
            aggregate: Optional[AIMessageChunk] = None
            async for chunk in adapter.stream(messages, tools):
                aggregate = chunk if aggregate is None else aggregate + chunk
                text = chunk_text(chunk)
                if not text:
                    continue
                if self.deep_think and not text_started:
                    yield self._progress(ProgressStage.REFLECTION, "Writing the answer")
                text_started = True
                yield StreamChunk(kind=EventKind.TEXT_DELTA, payload={"text": text})

            self.state = RoundState.ROUND_COMPLETE
            if aggregate is None or not aggregate.tool_calls or self.rounds >= self.max_rounds:
                break

            messages.append(message_chunk_to_message(aggregate))
            for call in aggregate.tool_calls:
                yield StreamChunk(
                    kind=EventKind.TOOL_CALL,
                    payload={"tool_name": call["name"], "input": call.get("args") or {}, "call_id": call.get("id")},
                )
                result = await self._call_tool(tools_by_name, call)
                if call["name"] == DEEP_THINK_PROGRESS_TOOL and not result.get("error"):
                    yield self._progress(ProgressStage(result["stage"]), result["message"])
                else:
                    yield StreamChunk(
                        kind=EventKind.TOOL_RESULT,
                        payload={"tool_name": call["name"], "call_id": call.get("id"), "result": result},
                    )
                    if self.deep_think and call["name"] in RESEARCH_TOOLS and not result.get("error"):
                        yield self._progress(ProgressStage.RESEARCH, f"Reviewed results for '{call.get('args', {}).get('query', '')}'")
                messages.append(ToolMessage(content=json.dumps(result, default=str), tool_call_id=call.get("id") or "", name=call["name"]))

        self.state = RoundState.FINALIZE
        if self.deep_think:
            yield self._progress(ProgressStage.SYNTHESIS, "Finished thinking")
        logger.debug(f"Target {self.target.id} finished after {self.rounds} round(s)")
        yield StreamChunk(
            kind=EventKind.DONE,
            payload={"rounds": self.rounds, "tool_results": [item.model_dump() for item in self.buffer.snapshot()]},
        )

    def _adapter(self) -> ProviderAdapter:
        if self.target.model is None:
            raise ProviderError(f"Target {self.target.id} has no model", self.target.id)
        return self.registry.adapter_for(self.target.model)

    def _system_prompt(self, tools: Sequence[ToolAgent], memory_context: Optional[str]) -> str:
        recent = self.tool_factory.recent_searches(self.context.conversation_unique_id) if self.tool_factory else []
        return build_system_prompt(
            self.target,
            self.context.participants,
            caller=self.context.caller,
            deep_think=self.deep_think,
            has_memory_search=any(isinstance(tool, MemorySearchAgent) for tool in tools),
            has_web_search=any(tool.name == WEB_SEARCH_TOOL for tool in tools),
            has_progress=any(tool.name == DEEP_THINK_PROGRESS_TOOL for tool in tools),
            recent_searches=recent,
            memory_context=memory_context,
        )

    async def _call_tool(self, tools_by_name: Dict[str, ToolAgent], call: Dict[str, Any]) -> Dict[str, Any]:
        tool = tools_by_name.get(call["name"])
        if tool is None:
            logger.warning(f"Target {self.target.id} called unknown tool {call['name']}")
            return {"error": True, "message": f"Unknown tool: {call['name']}", "tool_name": call["name"]}
        return await tool.execute(call.get("args") or {}, call_id=call.get("id"))

    def _proactive_memory_scope(self) -> Optional[Tuple[str, Optional[str]]]:
        app = self.target.app
        if app is None or not app.is_me or not self.context.query or self.tool_factory is None:
            return None
        client = self.tool_factory.memory_client
        if client is None or not client.is_configured:
            return None
        return self.tool_factory.memory_scope(self.target, self.context.caller)

    async def _prefetch_memories(self, user_id: str, app_id: Optional[str]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Load memories relevant to the message before the first round; failures leave the prompt unchanged."""
        try:
            memories = await asyncio.wait_for(
                self.tool_factory.memory_client.search(self.context.query, user_id, app_id, PROACTIVE_MEMORY_LIMIT),
                timeout=self.memory_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Proactive memory search timed out for target {self.target.id}")
            return None, []
        except Exception as e:
            logger.warning(f"Proactive memory search failed for target {self.target.id}: {str(e)}")
            return None, []

        sources = [memory.model_dump() for memory in memories]
        self.buffer.append(
            ToolInvocation(
                tool_name=PROACTIVE_MEMORY_TOOL,
                input={"query": self.context.query},
                result={"memories": sources, "number_of_results": len(sources)},
            )
        )
        if not memories:
            return None, []
        return "\n".join(f"- {memory.memory}" for memory in memories), sources

    @staticmethod
    def _progress(stage: ProgressStage, message: str) -> StreamChunk:
        return StreamChunk(kind=EventKind.PROGRESS, payload={"stage": stage.value, "message": message})


class ModelDispatcher:
    """Turns resolved targets into independent target runs."""

    def __init__(self, registry: ProviderRegistry, tool_factory: ToolFactory, config: Optional[Settings] = None):
        self.registry = registry
        self.tool_factory = tool_factory
        self.config = config or settings

    def authorize(self, targets: Sequence[Target], caller: Caller) -> None:
        """Check plan and login requirements before any provider is contacted."""
        for target in targets:
            model = target.model
            if model is None:
                raise ModelAccessError(f"No model available for {target.display_name}")
            if caller.is_anonymous and model.is_login_required:
                raise ModelAccessError(f"Please sign in to use {model.display_name}")
            if caller.is_free and model.is_pro_model:
                raise ModelAccessError(f"{model.display_name} requires a paid plan")

    def round_ceiling(self, deep_think: bool) -> int:
        return self.config.deep_think_round_ceiling if deep_think else self.config.max_rounds

    def dispatch(self, context: DispatchContext, targets: Sequence[Target]) -> List[TargetRun]:
        self.authorize(targets, context.caller)

        runs = []
        for target in targets:
            buffer = ToolResultBuffer()
            tools = self.tool_factory.build(target, context.caller, context.conversation_unique_id, buffer, context.deep_think)
            runs.append(
                TargetRun(
                    target=target,
                    context=context,
                    registry=self.registry,
                    tools=tools,
                    buffer=buffer,
                    max_rounds=self.round_ceiling(context.deep_think),
                    timeout=self.config.deep_think_timeout if context.deep_think else self.config.provider_timeout,
                    tool_factory=self.tool_factory,
                    memory_timeout=self.config.memory_search_timeout,
                )
            )
        logger.info(f"Dispatching {len(runs)} target(s): {', '.join(run.target.id for run in runs)}")
        return runs
