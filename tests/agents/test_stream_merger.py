"""Tests for fan-in of concurrent target streams."""

import asyncio
from typing import List, Optional

import pytest

from agents.exceptions import ProviderError
from agents.stream_merger import StreamMerger
from models.events import EventKind, StreamChunk, StreamEvent
from models.targets import Target


class FakeStream:
    """Target stream yielding text chunks, optionally failing or stalling part-way."""

    def __init__(
        self,
        target: Target,
        parts: List[str],
        fail_after: Optional[int] = None,
        error: Exception = None,
        delay: float = 0,
        timeout: Optional[float] = None,
    ):
        self.target = target
        self.parts = parts
        self.fail_after = fail_after
        self.error = error or ProviderError("upstream 500", target.id)
        self.delay = delay
        self.timeout = timeout
        self.closed = False

    async def events(self):
        try:
            for index, part in enumerate(self.parts):
                if self.fail_after is not None and index == self.fail_after:
                    raise self.error
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield StreamChunk(kind=EventKind.TEXT_DELTA, payload={"text": part})
            yield StreamChunk(kind=EventKind.DONE, payload={"rounds": 1})
        finally:
            self.closed = True


@pytest.fixture
def targets(model_catalog) -> List[Target]:
    return [Target.for_model(model_catalog.get(name)) for name in ("gpt-4o", "claude-3-5-sonnet", "llama-3.3-70b")]


async def collect(merger: StreamMerger, streams) -> List[StreamEvent]:
    return [event async for event in merger.merge(streams)]


def text_of(events: List[StreamEvent], source_id: str) -> str:
    return "".join(event.text for event in events if event.source_id == source_id)


@pytest.mark.asyncio
async def test_events_are_tagged_with_their_target(targets):
    events = await collect(StreamMerger(), [FakeStream(targets[0], ["a", "b"]), FakeStream(targets[1], ["c"])])

    assert text_of(events, "gpt-4o") == "ab"
    assert text_of(events, "claude-3-5-sonnet") == "c"
    assert {event.models[0] for event in events} == {"gpt-4o", "claude-3-5-sonnet"}
    assert [event.kind for event in events].count(EventKind.DONE) == 2


@pytest.mark.asyncio
async def test_per_target_order_is_preserved(targets):
    parts = [str(index) for index in range(50)]
    events = await collect(StreamMerger(max_buffered=2), [FakeStream(targets[0], parts), FakeStream(targets[1], parts)])

    for target in targets[:2]:
        own = [event for event in events if event.source_id == target.id]
        assert [event.text for event in own[:-1]] == parts
        assert own[-1].kind == EventKind.DONE


@pytest.mark.asyncio
async def test_failing_target_does_not_affect_others(targets):
    streams = [
        FakeStream(targets[0], ["one ", "two"]),
        FakeStream(targets[1], ["partial ", "never"], fail_after=1),
        FakeStream(targets[2], ["three"]),
    ]

    events = await collect(StreamMerger(), streams)

    assert text_of(events, "gpt-4o") == "one two"
    assert text_of(events, "llama-3.3-70b") == "three"
    failed = [event for event in events if event.source_id == "claude-3-5-sonnet"]
    assert failed[0].text == "partial "
    assert failed[-1].kind == EventKind.ERROR
    assert failed[-1].payload["error_type"] == "provider_error"
    assert [event.kind for event in failed].count(EventKind.ERROR) == 1
    assert not any(event.kind == EventKind.DONE for event in failed)
    assert all(stream.closed for stream in streams)


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_error_event(targets):
    events = await collect(StreamMerger(), [FakeStream(targets[0], ["x"], fail_after=0, error=RuntimeError("boom"))])

    assert len(events) == 1
    assert events[0].kind == EventKind.ERROR
    assert "boom" not in events[0].payload["error"]


@pytest.mark.asyncio
async def test_slow_target_times_out(targets):
    streams = [FakeStream(targets[0], ["fast"]), FakeStream(targets[1], ["slow"] * 5, delay=0.2, timeout=0.05)]

    events = await collect(StreamMerger(), streams)

    assert text_of(events, "gpt-4o") == "fast"
    slow = [event for event in events if event.source_id == "claude-3-5-sonnet"]
    assert slow[-1].kind == EventKind.ERROR
    assert slow[-1].payload["error_type"] == "timeout"


@pytest.mark.asyncio
async def test_closing_the_merged_stream_cancels_targets(targets):
    streams = [FakeStream(targets[0], ["tick"] * 100, delay=0.01), FakeStream(targets[1], ["tock"] * 100, delay=0.01)]
    merged = StreamMerger(max_buffered=1).merge(streams)

    first = await merged.__anext__()
    await merged.aclose()

    assert first.kind == EventKind.TEXT_DELTA
    assert all(stream.closed for stream in streams)


@pytest.mark.asyncio
async def test_no_streams_yields_nothing():
    assert await collect(StreamMerger(), []) == []
