"""Exceptions for conversation store operations."""

from typing import Union
from uuid import UUID


class ConversationStoreError(Exception):
    """Base exception for conversation and message persistence."""

    pass


class ConversationNotFoundError(ConversationStoreError):
    """Raised when no conversation has the given client-facing id."""

    def __init__(self, unique_id: str):
        super().__init__(f"Conversation {unique_id} not found")
        self.unique_id = unique_id


class MessageNotFoundError(ConversationStoreError):
    """Raised when a message id does not exist."""

    def __init__(self, message_id: Union[str, UUID]):
        super().__init__(f"Message {message_id} not found")
        self.message_id = str(message_id)


class InvalidConversationError(ConversationStoreError):
    """Raised when a conversation cannot be read or written, or a patch touches read-only fields."""

    pass


class InvalidMessageError(ConversationStoreError):
    """Raised when a message cannot be read or written."""

    pass
