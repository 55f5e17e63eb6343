"""Models for conversation store."""

from database.conversation_store.models.conversation import Conversation, DebateMetadata, DebateParticipant
from database.conversation_store.models.message import Attachment, Message, MessageRole, ToolResult

__all__ = ["Attachment", "Conversation", "DebateMetadata", "DebateParticipant", "Message", "MessageRole", "ToolResult"]
