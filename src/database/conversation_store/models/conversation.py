"""Conversation model for chat history."""

from typing import List, Optional

from pydantic import BaseModel, Field

from constants import DEFAULT_CONVERSATION_TITLE
from models.base import BaseDocument
from models.targets import TargetKind


class DebateParticipant(BaseModel):
    """One member of a multi-target conversation roster."""

    type: TargetKind
    id: str
    display_name: str


class DebateMetadata(BaseModel):
    participants: List[DebateParticipant] = Field(default_factory=list)


class Conversation(BaseDocument):
    """Model representing a chat conversation."""

    unique_id: str = Field(..., description="Client-facing conversation identifier (UUIDv4)")
    title: str = Field(default=DEFAULT_CONVERSATION_TITLE, description="Title of the conversation")
    models: List[str] = Field(default_factory=list, description="Every model that has answered in this conversation")
    app_id: Optional[str] = Field(default=None, description="Persona the conversation is bound to")
    is_public: bool = False
    is_debate: bool = False
    debate_metadata: Optional[DebateMetadata] = None
    follow_up_questions: List[str] = Field(default_factory=list)

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        """Anonymous conversations (no owner) are open to every caller."""
        return self.user_id is None or self.user_id == user_id
