"""Service for handling streaming responses."""

from typing import AsyncIterator, Optional

from api.models import ChunkType, CompletionChunk
from models.events import EventKind, StreamEvent

_EVENT_CHUNK_TYPES = {
    EventKind.TEXT_DELTA: ChunkType.TEXT,
    EventKind.TOOL_CALL: ChunkType.TOOL_CALL,
    EventKind.TOOL_RESULT: ChunkType.TOOL_RESULTS,
    EventKind.MEMORY_SOURCES: ChunkType.MEMORY_SOURCES,
    EventKind.PROGRESS: ChunkType.DEEP_THINK_PROGRESS,
    EventKind.ERROR: ChunkType.TARGET_ERROR,
    EventKind.DONE: ChunkType.TARGET_DONE,
}


class StreamingService:
    """Converts merged target events into client chunks and SSE frames."""

    @staticmethod
    def to_chunk(event: StreamEvent, conversation_unique_id: Optional[str]) -> CompletionChunk:
        """Map a tagged event to the chunk sent to the client.

        Args:
            event: The event emitted by the stream merger
            conversation_unique_id: The conversation the turn belongs to

        Returns:
            The client chunk, attributed to the event's target
        """
        chunk = CompletionChunk(
            type=_EVENT_CHUNK_TYPES[event.kind],
            models=event.models,
            app_id=event.app_id,
            target_id=event.source_id,
            conversation_unique_id=conversation_unique_id,
        )
        payload = event.payload
        if event.kind == EventKind.TEXT_DELTA:
            chunk.content = payload.get("text", "")
        elif event.kind == EventKind.TOOL_CALL:
            chunk.tool_call = payload
        elif event.kind == EventKind.TOOL_RESULT:
            chunk.tool_results = [{"tool_name": payload.get("tool_name"), "result": payload.get("result")}]
        elif event.kind == EventKind.MEMORY_SOURCES:
            chunk.memory_sources = payload.get("memories", [])
        elif event.kind == EventKind.PROGRESS:
            chunk.deep_think_progress = payload
        elif event.kind == EventKind.ERROR:
            chunk.error = payload.get("error")
        return chunk

    @staticmethod
    async def to_sse(chunks: AsyncIterator[CompletionChunk]) -> AsyncIterator[str]:
        async for chunk in chunks:
            yield StreamingService._format_sse_event(chunk)

    @staticmethod
    def _format_sse_event(response: CompletionChunk) -> str:
        """Format a response as an SSE event.

        Args:
            response: The response to format

        Returns:
            SSE formatted event
        """
        return f"data: {response.model_dump_json(exclude_none=True)}\n\n"
