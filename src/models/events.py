"""Stream chunks produced by target runs and the tagged events forwarded by the merger."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    TEXT_DELTA = "text-delta"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    MEMORY_SOURCES = "memory-sources"
    PROGRESS = "deep-think-progress"
    ERROR = "error"
    DONE = "done"


TERMINAL_KINDS = frozenset({EventKind.ERROR, EventKind.DONE})


class StreamChunk(BaseModel):
    """Untagged output of a single target run."""

    kind: EventKind
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS


class StreamEvent(StreamChunk):
    """A chunk tagged with the target that produced it."""

    source_id: str
    models: List[str] = Field(default_factory=list)
    app_id: Optional[str] = None

    @property
    def text(self) -> str:
        return self.payload.get("text", "") if self.kind == EventKind.TEXT_DELTA else ""


class ToolInvocation(BaseModel):
    """A completed tool call as recorded in a target's result buffer."""

    tool_name: str
    call_id: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    result: Dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False
