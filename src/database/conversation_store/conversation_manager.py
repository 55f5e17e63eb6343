"""Manager for conversation and message persistence (the gateway used by completion turns)."""

from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import pymongo
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import DuplicateKeyError

from database.conversation_store.exceptions import (
    ConversationNotFoundError,
    InvalidConversationError,
    InvalidMessageError,
    MessageNotFoundError,
)
from database.conversation_store.models.conversation import Conversation
from database.conversation_store.models.message import Message
from models.base import utcnow
from settings import settings
from utils.logging import logger


class ConversationManager:
    """Manager for conversation and message operations."""

    COLLECTION_CONVERSATIONS: str = "conversations"
    COLLECTION_MESSAGES: str = "messages"

    # Fields a completion turn may patch after creation
    METADATA_FIELDS = frozenset({"title", "models", "follow_up_questions", "is_debate", "debate_metadata", "app_id", "is_public"})

    def __init__(self, mongodb_client: AsyncIOMotorClient, database_name: Optional[str] = None) -> None:
        """Initialize manager with MongoDB client.
        Note: Use ConversationManager.setup() to create a properly initialized instance."""
        self.client = mongodb_client
        self._db: AsyncIOMotorDatabase = self.client.get_database(database_name or settings.database_name)
        self._conversations: AsyncIOMotorCollection = self._db.get_collection(self.COLLECTION_CONVERSATIONS)
        self._messages: AsyncIOMotorCollection = self._db.get_collection(self.COLLECTION_MESSAGES)

    @classmethod
    async def setup(cls, mongodb_client: AsyncIOMotorClient, database_name: Optional[str] = None) -> "ConversationManager":
        """Factory method to create and setup a ConversationManager instance."""
        try:
            manager = cls(mongodb_client, database_name)

            await manager._conversations.create_indexes(
                [
                    # Client-facing id, also the idempotency key for creation
                    pymongo.IndexModel([("unique_id", 1)], unique=True, background=True),
                    # Index for listing user's conversations
                    pymongo.IndexModel([("user_id", 1), ("updated_at", -1)], background=True),
                ]
            )

            await manager._messages.create_indexes(
                [
                    # Index for listing conversation messages
                    pymongo.IndexModel([("conversation_id", 1), ("created_at", 1)], background=True),
                ]
            )

            return manager

        except Exception as e:
            raise InvalidConversationError(f"Failed to setup indexes: {str(e)}")

    async def load_conversation(self, unique_id: str) -> Conversation:
        """Load a conversation by its client-facing unique id."""
        try:
            logger.debug(f"Loading conversation {unique_id}")
            doc = await self._conversations.find_one({"unique_id": unique_id})
            if not doc:
                raise ConversationNotFoundError(unique_id)
            return Conversation.model_validate(doc)

        except ConversationNotFoundError:
            raise
        except Exception as e:
            raise InvalidConversationError(f"Failed to load conversation: {str(e)}")

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Insert a conversation. A repeated insert with the same unique id returns the stored one."""
        try:
            logger.info(f"Creating conversation {conversation.unique_id} for user {conversation.user_id}")
            await self._conversations.insert_one(conversation.to_document())
            return conversation

        except DuplicateKeyError:
            logger.info(f"Conversation {conversation.unique_id} already exists, reusing it")
            return await self.load_conversation(conversation.unique_id)
        except Exception as e:
            raise InvalidConversationError(f"Failed to create conversation: {str(e)}")

    async def append_message(self, conversation_id: UUID, message: Message) -> Tuple[Message, bool]:
        """Append a message. Message ids are deterministic, so a retried write is a no-op.

        Returns:
            The message and whether it was inserted (False when it was already stored)
        """
        try:
            message.conversation_id = conversation_id
            logger.debug(f"Appending {message.role} message {message.id} to conversation {conversation_id}")
            await self._messages.insert_one(message.to_document())
            await self._conversations.update_one({"_id": str(conversation_id)}, {"$set": {"updated_at": utcnow()}})
            return message, True

        except DuplicateKeyError:
            logger.info(f"Message {message.id} already stored, skipping")
            return message, False
        except Exception as e:
            raise InvalidMessageError(f"Failed to append message: {str(e)}")

    async def update_conversation_metadata(self, unique_id: str, patch: Dict[str, Any]) -> None:
        """Set allow-listed conversation fields."""
        unknown = set(patch) - self.METADATA_FIELDS
        if unknown:
            raise InvalidConversationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        try:
            logger.info(f"Updating conversation {unique_id}: {', '.join(sorted(patch))}")
            update_data = dict(patch)
            update_data["updated_at"] = utcnow()
            result = await self._conversations.update_one({"unique_id": unique_id}, {"$set": update_data})

            if result.matched_count == 0:
                raise ConversationNotFoundError(unique_id)

        except ConversationNotFoundError:
            raise
        except Exception as e:
            raise InvalidConversationError(f"Failed to update conversation: {str(e)}")

    async def list_messages(self, conversation_id: UUID, limit: int = 200) -> List[Message]:
        """List messages of a conversation, oldest first."""
        try:
            cursor = self._messages.find({"conversation_id": str(conversation_id)})
            cursor = cursor.sort([("created_at", 1)]).limit(limit)

            messages = []
            async for doc in cursor:
                messages.append(Message.model_validate(doc))
            return messages

        except Exception as e:
            raise InvalidMessageError(f"Failed to list messages: {str(e)}")

    async def set_message_dislike(self, message_id: UUID, dislike: bool) -> None:
        """Flag or unflag an assistant message as disliked."""
        try:
            result = await self._messages.update_one({"_id": str(message_id)}, {"$set": {"dislike": dislike}})
            if result.matched_count == 0:
                raise MessageNotFoundError(message_id)

        except MessageNotFoundError:
            raise
        except Exception as e:
            raise InvalidMessageError(f"Failed to update message: {str(e)}")
