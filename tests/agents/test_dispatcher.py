"""Tests for the model dispatcher and per-target round loop."""

import asyncio
import time
from typing import List

import pytest
from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage

from agents.dispatcher import FINAL_ROUND_INSTRUCTION, DispatchContext, ModelDispatcher, RoundState
from agents.exceptions import ModelAccessError, ProviderNotConfiguredError
from agents.stream_merger import StreamMerger
from agents.tools.registry import ToolFactory
from conftest import FakeMemoryClient, FakeSearchClient, ScriptedAdapter, ScriptedRegistry, text_round, tool_round
from models.caller import Caller, SubscriptionPlan
from models.events import EventKind, StreamChunk
from models.targets import Target
from settings import Settings
from utils.memory_client import MemoryRecord


@pytest.fixture
def config() -> Settings:
    return Settings(max_rounds=3, deep_think_max_rounds=1)


@pytest.fixture
def caller() -> Caller:
    return Caller(user_id="user-1", subscription_plan=SubscriptionPlan.PLUS)


@pytest.fixture
def tool_factory(search_client, search_cache) -> ToolFactory:
    return ToolFactory(search_client, search_cache)


def make_context(caller, targets, deep_think=False, query="compare Rust and Go") -> DispatchContext:
    return DispatchContext(
        messages=[HumanMessage(query)],
        caller=caller,
        participants=targets,
        conversation_unique_id="conv-1",
        deep_think=deep_think,
        query=query,
    )


async def collect(run) -> List[StreamChunk]:
    return [chunk async for chunk in run.events()]


@pytest.mark.asyncio
async def test_text_only_round(model_catalog, caller, tool_factory, config):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter([text_round("Rust ", "is fast.")])
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])
    chunks = await collect(run)

    assert [chunk.kind for chunk in chunks] == [EventKind.TEXT_DELTA, EventKind.TEXT_DELTA, EventKind.DONE]
    assert "".join(chunk.payload["text"] for chunk in chunks[:2]) == "Rust is fast."
    assert chunks[-1].payload == {"rounds": 1, "tool_results": []}
    assert run.state == RoundState.FINALIZE
    assert isinstance(adapter.calls[0]["messages"][0], SystemMessage)
    assert adapter.calls[0]["tools"] == ["web_search"]


@pytest.mark.asyncio
async def test_tool_round_feeds_results_into_next_round(model_catalog, caller, tool_factory, config, search_client):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter([tool_round("web_search", {"query": "Rust 2024 release"}), text_round("Rust 1.80 shipped.")])
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])
    chunks = await collect(run)

    kinds = [chunk.kind for chunk in chunks]
    assert kinds == [EventKind.TOOL_CALL, EventKind.TOOL_RESULT, EventKind.TEXT_DELTA, EventKind.DONE]
    assert chunks[0].payload["tool_name"] == "web_search"
    assert chunks[0].payload["input"] == {"query": "Rust 2024 release"}
    assert chunks[1].payload["result"]["number_of_results"] == 1
    assert search_client.queries == ["Rust 2024 release"]

    second_round = adapter.calls[1]["messages"]
    assert isinstance(second_round[-1], ToolMessage)
    assert second_round[-1].tool_call_id == "call_1"
    assert chunks[-1].payload["rounds"] == 2
    assert [item["tool_name"] for item in chunks[-1].payload["tool_results"]] == ["web_search"]


@pytest.mark.asyncio
async def test_unknown_tool_yields_error_result(model_catalog, caller, tool_factory, config):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter([tool_round("launch_rockets", {"count": 3}), text_round("I can't do that.")])
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])
    chunks = await collect(run)

    result = next(chunk for chunk in chunks if chunk.kind == EventKind.TOOL_RESULT)
    assert result.payload["result"]["error"] is True
    assert chunks[-1].kind == EventKind.DONE


@pytest.mark.asyncio
async def test_round_ceiling_stops_tool_loop(model_catalog, caller, tool_factory, config, search_client):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    rounds = [tool_round("web_search", {"query": f"query {index}"}, call_id=f"call_{index}") for index in range(5)]
    adapter = ScriptedAdapter(rounds)
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])
    chunks = await collect(run)

    assert len(adapter.calls) == 3
    assert search_client.queries == ["query 0", "query 1"]
    assert adapter.calls[2]["messages"][-1].content == FINAL_ROUND_INSTRUCTION
    assert chunks[-1].payload["rounds"] == 3


@pytest.mark.asyncio
async def test_models_without_tool_support_get_no_tools(model_catalog, caller, tool_factory, config):
    target = Target.for_model(model_catalog.get("sonar"))
    adapter = ScriptedAdapter([text_round("Answer")], supports_tools=False)
    dispatcher = ModelDispatcher(ScriptedRegistry({"sonar": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])
    await collect(run)

    assert adapter.calls[0]["tools"] == []


@pytest.mark.asyncio
async def test_missing_credentials_fail_only_when_streamed(model_catalog, caller, tool_factory, config):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": ProviderNotConfiguredError("No API key", "gpt-4o")}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])

    with pytest.raises(ProviderNotConfiguredError):
        await collect(run)


@pytest.mark.asyncio
async def test_deep_think_emits_progress_and_forwards_progress_tool(model_catalog, caller, tool_factory, config):
    target = Target.for_model(model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter(
        [
            tool_round("deep_think_progress", {"stage": "planning", "message": "Plan the comparison"}),
            text_round("Here is a long answer."),
        ]
    )
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target], deep_think=True), [target])
    chunks = await collect(run)

    progress = [chunk.payload["stage"] for chunk in chunks if chunk.kind == EventKind.PROGRESS]
    assert progress == ["note", "planning", "reflection", "synthesis"]
    assert not any(chunk.kind == EventKind.TOOL_RESULT for chunk in chunks)
    assert "deep_think_progress" in adapter.calls[0]["tools"]
    assert chunks[-1].payload["tool_results"] == []
    assert run.max_rounds == 8


@pytest.mark.asyncio
async def test_own_app_prefetches_memories(model_catalog, caller, own_app, search_client, search_cache, config):
    memory_client = FakeMemoryClient([MemoryRecord(id="m1", memory="Alice lived in Lisbon")])
    factory = ToolFactory(search_client, search_cache, memory_client=memory_client)
    target = Target.for_app(own_app, model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter([text_round("I loved Lisbon.")])
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), factory, config)

    [run] = dispatcher.dispatch(make_context(Caller(user_id="user-1"), [target], query="where did I live?"), [target])
    chunks = await collect(run)

    assert chunks[0].kind == EventKind.MEMORY_SOURCES
    assert chunks[0].payload["memories"][0]["memory"] == "Alice lived in Lisbon"
    assert memory_client.searches[0] == ("where did I live?", "user-1", "app-me", 10)
    assert "Alice lived in Lisbon" in adapter.calls[0]["messages"][0].content
    assert "memory_search" in adapter.calls[0]["tools"]
    assert [item["tool_name"] for item in chunks[-1].payload["tool_results"]] == ["proactive_memory_search"]


def test_authorize_rejects_login_required_model_for_anonymous(model_catalog, tool_factory, config):
    dispatcher = ModelDispatcher(ScriptedRegistry(), tool_factory, config)

    with pytest.raises(ModelAccessError):
        dispatcher.authorize([Target.for_model(model_catalog.get("o3-mini"))], Caller())


def test_authorize_rejects_pro_model_for_free_plan(model_catalog, tool_factory, config):
    dispatcher = ModelDispatcher(ScriptedRegistry(), tool_factory, config)

    with pytest.raises(ModelAccessError):
        dispatcher.authorize([Target.for_model(model_catalog.get("o3"))], Caller(user_id="user-1"))


def test_authorize_allows_pro_model_for_paid_plan(model_catalog, caller, tool_factory, config):
    dispatcher = ModelDispatcher(ScriptedRegistry(), tool_factory, config)

    dispatcher.authorize([Target.for_model(model_catalog.get("o3"))], caller)


def test_round_ceiling(tool_factory):
    dispatcher = ModelDispatcher(ScriptedRegistry(), tool_factory, Settings())

    assert dispatcher.round_ceiling(False) == 6
    assert dispatcher.round_ceiling(True) == 22


class StalledSearchClient(FakeSearchClient):
    """Search client that never answers, recording whether it was cancelled."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.cancelled = False

    async def search(self, query: str, max_results: int):
        self.queries.append(query)
        self.started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return []


class StalledMemoryClient(FakeMemoryClient):
    async def search(self, query, user_id, app_id=None, limit=5):
        await asyncio.sleep(30)
        return []


@pytest.mark.asyncio
async def test_targets_stream_in_parallel(model_catalog, caller, tool_factory, config):
    targets = [Target.for_model(model_catalog.get(name)) for name in ("gpt-4o", "claude-3-5-sonnet")]
    adapters = {target.id: ScriptedAdapter([text_round("done")], delay=0.2) for target in targets}
    dispatcher = ModelDispatcher(ScriptedRegistry(adapters), tool_factory, config)
    runs = dispatcher.dispatch(make_context(caller, targets), targets)

    started = time.monotonic()
    events = [event async for event in StreamMerger().merge(runs)]
    elapsed = time.monotonic() - started

    assert [event.kind for event in events].count(EventKind.DONE) == 2
    assert elapsed < 0.35


@pytest.mark.asyncio
async def test_closing_the_stream_cancels_a_running_tool(model_catalog, caller, search_cache, config):
    search_client = StalledSearchClient()
    target = Target.for_model(model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter([tool_round("web_search", {"query": "slow news"}), text_round("never")])
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), ToolFactory(search_client, search_cache), config)
    [run] = dispatcher.dispatch(make_context(caller, [target]), [target])

    merged = StreamMerger().merge([run])
    first = await merged.__anext__()
    await asyncio.wait_for(search_client.started.wait(), timeout=1)
    await merged.aclose()

    assert first.kind == EventKind.TOOL_CALL
    assert search_client.cancelled is True
    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_deep_think_prompt_without_tool_support(model_catalog, caller, tool_factory, config):
    target = Target.for_model(model_catalog.get("deepseek-r1"))
    adapter = ScriptedAdapter([text_round("Reasoned answer.")], supports_tools=False)
    dispatcher = ModelDispatcher(ScriptedRegistry({"deepseek-r1": adapter}), tool_factory, config)

    [run] = dispatcher.dispatch(make_context(caller, [target], deep_think=True), [target])
    await collect(run)

    system_prompt = adapter.calls[0]["messages"][0].content
    assert adapter.calls[0]["tools"] == []
    assert "web_search" not in system_prompt
    assert "deep_think_progress" not in system_prompt


@pytest.mark.asyncio
async def test_memory_prefetch_uses_configured_timeout(model_catalog, own_app, search_client, search_cache):
    config = Settings(max_rounds=3, memory_search_timeout=0.05)
    factory = ToolFactory(search_client, search_cache, memory_client=StalledMemoryClient())
    target = Target.for_app(own_app, model_catalog.get("gpt-4o"))
    adapter = ScriptedAdapter([text_round("Hi.")])
    dispatcher = ModelDispatcher(ScriptedRegistry({"gpt-4o": adapter}), factory, config)

    [run] = dispatcher.dispatch(make_context(Caller(user_id="user-1"), [target], query="hello"), [target])
    chunks = await asyncio.wait_for(collect(run), timeout=2)

    assert run.memory_timeout == 0.05
    assert not any(chunk.kind == EventKind.MEMORY_SOURCES for chunk in chunks)
    assert chunks[-1].payload["tool_results"] == []
