"""API request and response models."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models.base import validate_uuid_v4


class AttachmentIn(BaseModel):
    url: str = Field(..., description="Signed URL of an uploaded image")
    name: Optional[str] = None
    content_type: Optional[str] = None

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("attachment url must be http(s)")
        return v


class ChatMessage(BaseModel):
    """One message of the conversation as sent by the client."""

    role: Literal["user", "assistant", "system"]
    content: str
    experimental_attachments: List[AttachmentIn] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    def to_langchain(self, content: Optional[str] = None) -> BaseMessage:
        """Convert to a LangChain message; attachments become image parts of a user turn."""
        text = self.content if content is None else content
        if self.role == "assistant":
            return AIMessage(content=text)
        if not self.experimental_attachments:
            return HumanMessage(content=text)
        parts: List[Dict[str, Any]] = [{"type": "text", "text": text}]
        parts.extend({"type": "image_url", "image_url": {"url": attachment.url}} for attachment in self.experimental_attachments)
        return HumanMessage(content=parts)


class CompletionRequest(BaseModel):
    """Body of ``POST /completions``. Accepts camelCase or snake_case keys."""

    model: Optional[str] = None
    app: Optional[str] = None
    models: List[str] = Field(default_factory=list)
    apps: List[str] = Field(default_factory=list)
    messages: List[ChatMessage] = Field(..., min_length=1)
    conversation_unique_id: Optional[str] = None
    new_unique_id: Optional[str] = None
    message_id: str
    is_anonymous: bool = False
    is_deep_think_mode: bool = False

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    @field_validator("message_id")
    @classmethod
    def validate_message_id(cls, v: str) -> str:
        return validate_uuid_v4(v)

    @field_validator("conversation_unique_id", "new_unique_id")
    @classmethod
    def validate_optional_ids(cls, v: Optional[str]) -> Optional[str]:
        return validate_uuid_v4(v) if v is not None else None

    @model_validator(mode="after")
    def validate_last_message(self) -> "CompletionRequest":
        if self.messages[-1].role != "user":
            raise ValueError("the last message must come from the user")
        return self

    @property
    def last_message(self) -> ChatMessage:
        return self.messages[-1]


class ChunkType(str, Enum):
    TEXT = "text"
    TOOL_CALL = "tool-call"
    TOOL_RESULTS = "tool-results"
    MEMORY_SOURCES = "memory-sources"
    DEEP_THINK_PROGRESS = "deep-think-progress"
    TARGET_DONE = "target-done"
    TARGET_ERROR = "target-error"
    WARNING = "warning"
    CONVERSATION_TITLE = "conversation-title"
    FOLLOW_UP_QUESTIONS = "follow-up-questions"
    DONE = "done"


class CompletionChunk(BaseModel):
    """One server-sent event of a completion stream."""

    type: ChunkType
    content: Optional[str] = Field(default=None, description="Text delta for text chunks, message for warnings")
    models: Optional[List[str]] = None
    app_id: Optional[str] = None
    target_id: Optional[str] = None
    conversation_unique_id: Optional[str] = None
    tool_call: Optional[Dict[str, Any]] = None
    tool_results: Optional[List[Dict[str, Any]]] = None
    deep_think_progress: Optional[Dict[str, Any]] = None
    memory_sources: Optional[List[Dict[str, Any]]] = None
    conversation_title: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    error: Optional[str] = None
