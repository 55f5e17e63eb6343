"""Tests for the completions endpoint."""

import json

import pytest
from fastapi.testclient import TestClient

from agents.dispatcher import ModelDispatcher
from agents.tools.registry import ToolFactory
from api.main import app
from api.routers.dependencies import get_caller, get_completion_service
from api.services.completion_service import CompletionService
from api.services.conversation_service import ConversationService
from conftest import FakeSearchClient, ScriptedAdapter, ScriptedRegistry, text_round
from database.conversation_store.models.conversation import Conversation
from models.caller import Caller

MESSAGE_ID = "2b1c6f1e-8a4d-4c3b-9f5e-1a2b3c4d5e6f"
CONVERSATION_ID = "7d0a9a52-3c1e-4f7b-8d2e-5b6c7d8e9f01"


@pytest.fixture
def client(conversation_store, fake_catalog, search_cache):
    """Test client with the completion service wired to scripted providers."""
    adapters = {"gpt-4o": ScriptedAdapter([text_round("Hello ", "world.")])}
    service = CompletionService(
        conversations=ConversationService(conversation_store),
        catalog=fake_catalog,
        dispatcher=ModelDispatcher(ScriptedRegistry(adapters), ToolFactory(FakeSearchClient(), search_cache)),
    )
    app.dependency_overrides[get_caller] = lambda: Caller(user_id="user-1")
    app.dependency_overrides[get_completion_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def read_events(body: str) -> list:
    return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


def test_streams_server_sent_events(client):
    payload = {"messages": [{"role": "user", "content": "@gpt-4o hi"}], "messageId": MESSAGE_ID}

    response = client.post("/completions", json=payload)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = read_events(response.text)
    assert "".join(event.get("content", "") for event in events if event["type"] == "text") == "Hello world."
    assert events[-1]["type"] == "done"
    assert {event["type"] for event in events} >= {"text", "target-done", "done"}


def test_invalid_request_returns_400(client):
    response = client.post("/completions", json={"messages": [], "messageId": MESSAGE_ID})

    assert response.status_code == 400


def test_foreign_conversation_returns_403(client, conversation_store):
    conversation_store.conversations[CONVERSATION_ID] = Conversation(unique_id=CONVERSATION_ID, user_id="someone-else")
    payload = {"messages": [{"role": "user", "content": "hi"}], "messageId": MESSAGE_ID, "conversationUniqueId": CONVERSATION_ID}

    response = client.post("/completions", json=payload)

    assert response.status_code == 403


def test_unknown_model_returns_400(client):
    payload = {"messages": [{"role": "user", "content": "hi"}], "messageId": MESSAGE_ID, "models": ["gpt-9"]}

    response = client.post("/completions", json=payload)

    assert response.status_code == 400
    assert "gpt-9" in response.json()["detail"]
