"""Fan-in of concurrent target streams into one tagged event sequence."""

import asyncio
from typing import AsyncIterator, List, Optional, Sequence

from agents.exceptions import ProviderError
from models.events import EventKind, StreamChunk, StreamEvent
from models.targets import Target
from settings import settings
from utils.logging import logger
from utils.metrics import record_provider_failure


class TargetStream:
    """Interface of what the merger consumes; ``TargetRun`` implements it."""

    target: Target
    timeout: Optional[float]

    def events(self) -> AsyncIterator[StreamChunk]:
        raise NotImplementedError


class StreamMerger:
    """Merges N target streams with per-target isolation.

    Each stream is pumped by its own task into a bounded queue, so a slow consumer
    pauses every producer instead of buffering without limit. A failing or timed-out
    stream contributes exactly one error event and the others keep going. Closing the
    merged iterator cancels every stream still in flight.
    """

    def __init__(self, max_buffered: Optional[int] = None):
        self.max_buffered = max_buffered or settings.merger_buffer_size

    async def merge(self, streams: Sequence[TargetStream]) -> AsyncIterator[StreamEvent]:
        if not streams:
            return

        queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue(maxsize=self.max_buffered)
        tasks: List[asyncio.Task] = [asyncio.create_task(self._pump(stream, queue)) for stream in streams]
        remaining = len(tasks)

        try:
            while remaining:
                event = await queue.get()
                if event.is_terminal:
                    remaining -= 1
                yield event
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _pump(self, stream: TargetStream, queue: "asyncio.Queue[StreamEvent]") -> None:
        target = stream.target
        iterator = stream.events()
        loop = asyncio.get_running_loop()
        budget = stream.timeout
        terminal: Optional[StreamEvent] = None

        try:
            while True:
                started = loop.time()
                try:
                    if budget is None:
                        chunk = await iterator.__anext__()
                    else:
                        chunk = await asyncio.wait_for(iterator.__anext__(), timeout=max(budget, 0))
                except StopAsyncIteration:
                    break
                if budget is not None:
                    # Only time spent waiting on the stream counts against the budget
                    budget -= loop.time() - started

                event = self._tag(target, chunk)
                if event.is_terminal:
                    terminal = event
                    break
                await queue.put(event)

        except asyncio.TimeoutError:
            logger.warning(f"Target {target.id} timed out after {stream.timeout}s")
            record_provider_failure(target.id, "timeout")
            terminal = self._error(target, f"{target.display_name} took too long to respond", "timeout")
        except ProviderError as e:
            logger.error(f"Provider error for target {target.id}: {str(e)}")
            record_provider_failure(target.id, "provider_error")
            terminal = self._error(target, str(e), "provider_error")
        except Exception as e:
            logger.error(f"Stream for target {target.id} failed: {str(e)}", exc_info=True)
            record_provider_failure(target.id, type(e).__name__)
            terminal = self._error(target, f"{target.display_name} failed to respond", "provider_error")
        finally:
            await iterator.aclose()

        if terminal is None:
            terminal = self._tag(target, StreamChunk(kind=EventKind.DONE))
        await queue.put(terminal)

    @staticmethod
    def _tag(target: Target, chunk: StreamChunk) -> StreamEvent:
        return StreamEvent(kind=chunk.kind, payload=chunk.payload, source_id=target.id, models=target.models, app_id=target.app_id)

    @staticmethod
    def _error(target: Target, message: str, error_type: str) -> StreamEvent:
        return StreamEvent(
            kind=EventKind.ERROR,
            payload={"error": message, "error_type": error_type},
            source_id=target.id,
            models=target.models,
            app_id=target.app_id,
        )
