"""Message model for chat history."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.base import BaseDocument, PydanticUUID


class MessageRole(str, Enum):
    """Enum for message roles."""

    USER = "user"
    ASSISTANT = "assistant"


class Attachment(BaseModel):
    key: str = Field(..., description="Storage key of the attached object")


class ToolResult(BaseModel):
    """A tool result folded into an assistant message."""

    tool_name: str
    call_id: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    result: Dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False


class Message(BaseDocument):
    """Model representing a chat message.

    Messages are append-only; ``dislike`` is the only field changed after insert.
    """

    conversation_id: PydanticUUID = Field(..., description="ID of the conversation this message belongs to")
    role: MessageRole = Field(..., description="Role of the message sender")
    content: str = ""
    models: List[str] = Field(default_factory=list, description="Model that produced an assistant message")
    app_id: Optional[str] = None
    tool_name: Optional[str] = Field(default=None, description="Last tool the target called")
    tool_results: List[ToolResult] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    error: Optional[str] = Field(default=None, description="Set when the target stream failed")
    dislike: bool = False
