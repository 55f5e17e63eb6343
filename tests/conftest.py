"""Shared fakes for completion pipeline tests."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.messages.tool import tool_call_chunk

from database.catalog_store.exceptions import CatalogStoreError
from database.conversation_store.exceptions import ConversationNotFoundError, InvalidConversationError
from database.conversation_store.models.conversation import Conversation
from database.conversation_store.models.message import Message
from models.catalog import AppRef, default_model_catalog
from utils.memory_client import Mem0Client, MemoryRecord
from utils.web_search_cache import InMemoryWebSearchCache
from utils.web_search_client import ExaSearchClient, SearchResult


def text_round(*parts: str) -> List[AIMessageChunk]:
    """A generation round that only streams text."""
    return [AIMessageChunk(content=part) for part in parts]


def tool_round(name: str, args: Dict[str, Any], call_id: str = "call_1", text: str = "") -> List[AIMessageChunk]:
    """A generation round that requests one tool call."""
    chunks = [AIMessageChunk(content=text)] if text else []
    chunks.append(AIMessageChunk(content="", tool_call_chunks=[tool_call_chunk(name=name, args=json.dumps(args), id=call_id, index=0)]))
    return chunks


class ScriptedAdapter:
    """Provider adapter replaying scripted rounds and recording what each round was sent."""

    def __init__(self, rounds: Sequence[List[AIMessageChunk]] = (), supports_tools: bool = True, error: Exception = None, delay: float = 0):
        self.rounds = list(rounds)
        self.supports_tools = supports_tools
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def stream(self, messages: List[BaseMessage], tools: Sequence[Any] = ()):
        self.calls.append({"messages": list(messages), "tools": [tool.name for tool in tools]})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        chunks = self.rounds.pop(0) if self.rounds else text_round("")
        for chunk in chunks:
            yield chunk


class ScriptedRegistry:
    """Stands in for the provider registry; maps model names to scripted adapters."""

    def __init__(self, adapters: Optional[Dict[str, Any]] = None):
        self.adapters = adapters or {}

    def adapter_for(self, spec):
        adapter = self.adapters[spec.name]
        if isinstance(adapter, Exception):
            raise adapter
        return adapter


class InMemoryConversationStore:
    """Conversation store keeping documents in dicts, with the same uniqueness rules as MongoDB."""

    def __init__(self):
        self.conversations: Dict[str, Conversation] = {}
        self.messages: Dict[str, Message] = {}
        self.metadata_updates: List[Dict[str, Any]] = []
        self.fail_writes = False

    async def load_conversation(self, unique_id: str) -> Conversation:
        if unique_id not in self.conversations:
            raise ConversationNotFoundError(unique_id)
        return self.conversations[unique_id]

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        if self.fail_writes:
            raise InvalidConversationError("Failed to create conversation: connection refused")
        return self.conversations.setdefault(conversation.unique_id, conversation)

    async def append_message(self, conversation_id, message: Message) -> Tuple[Message, bool]:
        if self.fail_writes:
            raise InvalidConversationError("Failed to append message: connection refused")
        message.conversation_id = conversation_id
        if str(message.id) in self.messages:
            return message, False
        self.messages[str(message.id)] = message
        return message, True

    async def update_conversation_metadata(self, unique_id: str, patch: Dict[str, Any]) -> None:
        conversation = await self.load_conversation(unique_id)
        self.metadata_updates.append(dict(patch))
        self.conversations[unique_id] = Conversation.model_validate({**conversation.model_dump(), **patch})

    def messages_for(self, conversation: Conversation) -> List[Message]:
        return [message for message in self.messages.values() if message.conversation_id == conversation.id]


class FakeCatalog:
    """Catalog with apps kept in memory."""

    def __init__(self, apps: Sequence[AppRef] = ()):
        self.model_catalog = default_model_catalog()
        self.apps = {app.name.lower(): app for app in apps}
        self.usage: List[tuple] = []
        self.lookups: List[str] = []

    async def resolve_app(self, name_or_id: str) -> Optional[AppRef]:
        self.lookups.append(name_or_id)
        app = self.apps.get(name_or_id.lower())
        if app is None:
            app = next((item for item in self.apps.values() if item.id == name_or_id), None)
        return app

    async def get_own_app(self, user_id: str) -> Optional[AppRef]:
        return next((app for app in self.apps.values() if app.is_me and app.user_id == user_id), None)

    async def increment_text_usage(self, user_id: str, tier: int) -> None:
        if user_id == "broken-usage":
            raise CatalogStoreError("Failed to record usage")
        self.usage.append((user_id, tier))


class FakeSearchClient(ExaSearchClient):
    """Search client answering from canned results and counting requests."""

    def __init__(self, results: Optional[List[SearchResult]] = None, error: Exception = None):
        self.api_key = "test-key"
        self.results = results if results is not None else [SearchResult(title="Result", url="https://example.com/a", content="Summary")]
        self.error = error
        self.queries: List[str] = []

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results[:max_results]

    async def close(self) -> None:
        return None


class FakeMemoryClient(Mem0Client):
    """Memory client answering from canned memories."""

    def __init__(self, memories: Optional[List[MemoryRecord]] = None, api_key: Optional[str] = "test-key", error: Exception = None):
        self.api_key = api_key
        self.memories = memories or []
        self.error = error
        self.searches: List[tuple] = []

    async def search(self, query: str, user_id: str, app_id: Optional[str] = None, limit: int = 5) -> List[MemoryRecord]:
        self.searches.append((query, user_id, app_id, limit))
        if self.error is not None:
            raise self.error
        return self.memories[:limit]

    async def close(self) -> None:
        return None


class RecordingChatModel:
    """Chat model stand-in for title and follow-up generation."""

    def __init__(self, replies: Optional[Dict[str, str]] = None, error: Exception = None):
        self.replies = replies or {}
        self.error = error
        self.prompts: List[str] = []

    async def ainvoke(self, messages):
        prompt = messages[-1].content
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        for marker, reply in self.replies.items():
            if marker in prompt:
                return AIMessage(content=reply)
        return AIMessage(content="")


@pytest.fixture
def model_catalog():
    """The built-in model catalog."""
    return default_model_catalog()


@pytest.fixture
def search_cache() -> InMemoryWebSearchCache:
    """Empty in-memory web search cache."""
    return InMemoryWebSearchCache(ttl_seconds=900)


@pytest.fixture
def search_client() -> FakeSearchClient:
    """Search client with one canned result."""
    return FakeSearchClient()


@pytest.fixture
def conversation_store() -> InMemoryConversationStore:
    """Empty in-memory conversation store."""
    return InMemoryConversationStore()


@pytest.fixture
def persona_app() -> AppRef:
    """A published persona backed by Claude."""
    return AppRef(
        id="app-elon",
        name="Elon Musk",
        display_name="Elon Musk",
        user_id="creator-1",
        instruction="You are Elon Musk.",
        base_model="claude-3-5-haiku",
        is_published=True,
    )


@pytest.fixture
def own_app() -> AppRef:
    """The caller's own digital clone."""
    return AppRef(id="app-me", name="alice", display_name="Alice", user_id="user-1", instruction="You are Alice.", is_me=True)


@pytest.fixture
def private_app() -> AppRef:
    """An unpublished persona owned by someone else."""
    return AppRef(id="app-private", name="secret", display_name="Secret", user_id="someone-else", instruction="Hidden.")


@pytest.fixture
def fake_catalog(persona_app: AppRef, own_app: AppRef, private_app: AppRef) -> FakeCatalog:
    """Catalog with three apps."""
    return FakeCatalog([persona_app, own_app, private_app])
