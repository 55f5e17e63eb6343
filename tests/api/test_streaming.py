"""Tests for chunk conversion and SSE framing."""

import json

import pytest

from api.models import ChunkType, CompletionChunk
from api.services.streaming import StreamingService
from models.events import EventKind, StreamEvent


def make_event(kind: EventKind, payload: dict) -> StreamEvent:
    return StreamEvent(kind=kind, payload=payload, source_id="app-elon", models=["claude-3-5-haiku"], app_id="app-elon")


def test_text_event_is_attributed_to_its_target():
    chunk = StreamingService.to_chunk(make_event(EventKind.TEXT_DELTA, {"text": "Hi"}), "conv-1")

    assert chunk.type == ChunkType.TEXT
    assert chunk.content == "Hi"
    assert chunk.models == ["claude-3-5-haiku"]
    assert chunk.app_id == "app-elon"
    assert chunk.target_id == "app-elon"
    assert chunk.conversation_unique_id == "conv-1"


def test_tool_result_event():
    chunk = StreamingService.to_chunk(make_event(EventKind.TOOL_RESULT, {"tool_name": "web_search", "call_id": "c1", "result": {"x": 1}}), None)

    assert chunk.type == ChunkType.TOOL_RESULTS
    assert chunk.tool_results == [{"tool_name": "web_search", "result": {"x": 1}}]


def test_error_event_becomes_target_error():
    chunk = StreamingService.to_chunk(make_event(EventKind.ERROR, {"error": "took too long", "error_type": "timeout"}), None)

    assert chunk.type == ChunkType.TARGET_ERROR
    assert chunk.error == "took too long"


@pytest.mark.asyncio
async def test_sse_frames_omit_empty_fields():
    async def chunks():
        yield CompletionChunk(type=ChunkType.DONE, conversation_unique_id="conv-1")

    frames = [frame async for frame in StreamingService.to_sse(chunks())]

    assert len(frames) == 1
    assert frames[0].startswith("data: ") and frames[0].endswith("\n\n")
    assert json.loads(frames[0][len("data: ") :]) == {"type": "done", "conversation_unique_id": "conv-1"}
