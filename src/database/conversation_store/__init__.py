"""Conversation persistence backed by MongoDB."""

from database.conversation_store.conversation_manager import ConversationManager

__all__ = ["ConversationManager"]
