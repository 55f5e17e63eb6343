"""Conversation resolution and turn persistence."""

from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4, uuid5

from api.exceptions import CompletionValidationError, ConversationForbiddenError
from api.models import CompletionRequest
from database.conversation_store.conversation_manager import ConversationManager
from database.conversation_store.exceptions import ConversationNotFoundError
from database.conversation_store.models.conversation import Conversation
from database.conversation_store.models.message import Attachment, Message, MessageRole, ToolResult
from models.caller import Caller
from models.targets import Target
from utils.logging import logger
from utils.text import extract_storage_key


def assistant_message_id(message_id: str, target: Target) -> UUID:
    """Deterministic id of a target's reply, so a retried turn cannot store it twice."""
    return uuid5(UUID(message_id), f"{target.kind.value}:{target.id}")


class ConversationService:
    """Service for loading conversations and writing the messages of a turn."""

    def __init__(self, conversation_db: ConversationManager):
        """Initialize the conversation service.

        Args:
            conversation_db: The conversation store
        """
        self.conversation_db = conversation_db

    async def resolve(self, request: CompletionRequest, caller: Caller) -> Tuple[Conversation, bool]:
        """Load the conversation a request continues, or prepare a new one.

        New conversations are only built in memory here; they are written during persistence.

        Args:
            request: The validated completion request
            caller: The caller the turn runs for

        Returns:
            A tuple containing:
            - The conversation
            - A boolean indicating if the conversation is new

        Raises:
            CompletionValidationError: If ``conversation_unique_id`` does not exist
            ConversationForbiddenError: If the conversation belongs to someone else
        """
        if request.conversation_unique_id:
            conversation = await self._load(request.conversation_unique_id)
            if conversation is None:
                raise CompletionValidationError("Conversation not found")
            self._check_owner(conversation, caller)
            return conversation, False

        unique_id = request.new_unique_id or str(uuid4())
        if request.new_unique_id:
            # A retried first turn finds the conversation its earlier attempt created
            existing = await self._load(unique_id)
            if existing is not None:
                self._check_owner(existing, caller)
                return existing, False

        owner = None if request.is_anonymous else caller.user_id
        logger.info(f"Starting new conversation {unique_id}")
        return Conversation(unique_id=unique_id, user_id=owner), True

    async def create(self, conversation: Conversation, caller: Caller) -> Conversation:
        """Write a new conversation; a concurrent first turn may have stored it already."""
        stored = await self.conversation_db.create_conversation(conversation)
        self._check_owner(stored, caller)
        return stored

    async def update_metadata(self, unique_id: str, patch: Dict[str, Any]) -> None:
        await self.conversation_db.update_conversation_metadata(unique_id, patch)

    async def save_user_message(self, conversation: Conversation, request: CompletionRequest, caller: Caller) -> Tuple[Message, bool]:
        """Store the user's message under the client-supplied message id.

        Args:
            conversation: The stored conversation
            request: The completion request
            caller: The caller the turn runs for

        Returns:
            The message and whether it was newly stored
        """
        last = request.last_message
        attachments = []
        for item in last.experimental_attachments:
            key = extract_storage_key(item.url)
            if key:
                attachments.append(Attachment(key=key))

        message = Message(
            id=UUID(request.message_id),
            user_id=conversation.user_id if conversation.user_id is not None else caller.user_id,
            conversation_id=conversation.id,
            role=MessageRole.USER,
            content=last.content,
            attachments=attachments,
        )
        return await self.conversation_db.append_message(conversation.id, message)

    async def save_assistant_message(
        self,
        conversation: Conversation,
        request: CompletionRequest,
        target: Target,
        content: str,
        tool_results: list,
        error: Optional[str] = None,
    ) -> Tuple[Message, bool]:
        """Store one target's reply, attributed to its model and persona.

        Args:
            conversation: The stored conversation
            request: The completion request
            target: The target that produced the reply
            content: The reply text (partial if the stream failed)
            tool_results: Tool invocations recorded by the target
            error: Error message when the target's stream failed

        Returns:
            The message and whether it was newly stored
        """
        message = Message(
            id=assistant_message_id(request.message_id, target),
            user_id=conversation.user_id,
            conversation_id=conversation.id,
            role=MessageRole.ASSISTANT,
            content=content,
            models=target.models,
            app_id=target.app_id,
            tool_name=tool_results[-1].tool_name if tool_results else None,
            tool_results=[
                ToolResult(tool_name=item.tool_name, call_id=item.call_id, input=item.input, result=item.result, is_error=item.is_error)
                for item in tool_results
            ],
            error=error,
        )
        return await self.conversation_db.append_message(conversation.id, message)

    async def _load(self, unique_id: str) -> Optional[Conversation]:
        try:
            return await self.conversation_db.load_conversation(unique_id)
        except ConversationNotFoundError:
            return None

    @staticmethod
    def _check_owner(conversation: Conversation, caller: Caller) -> None:
        if not conversation.is_owned_by(caller.user_id):
            logger.warning(f"Caller {caller.user_id} tried to use conversation {conversation.unique_id}")
            raise ConversationForbiddenError("Conversation does not belong to the caller")
