"""测试 HTTP 接口。"""

import json
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from steering_core.api.server import create_app
from steering_core.api.service import SteeringService
from steering_core.domain.exceptions import ProviderError
from steering_core.domain.models import ProviderReply
from steering_core.infrastructure.auth import StaticTokenAuthenticator
from steering_core.infrastructure.storage.json_store import JsonSessionStore
from steering_core.providers import ADAPTERS
from steering_core.relay.dispatcher import RelayDispatcher
from steering_core.relay.streaming import StreamPresenter


class EchoAdapter:
    name = "openai"
    vendor = "OpenAI"

    def __init__(self):
        self.calls = []
        self.error = None
        self.failing = {}

    async def send(self, api_key, model, messages):
        return (await self.complete(api_key, model, messages)).text

    async def complete(self, api_key, model, messages):
        self.calls.append(model)
        if self.error is not None:
            raise self.error
        if model in self.failing:
            raise self.failing[model]
        return ProviderReply(text=f"{model}: {messages[-1].content}")


AUTH = {"Authorization": "Bearer token-1"}
START = {"provider": "openai", "apiKey": "sk-test-123456", "modelA": "gpt-4o", "modelB": "gpt-4o-mini"}


@pytest.fixture
def env():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        adapter = EchoAdapter()
        dispatcher = RelayDispatcher(store, provider_factory=lambda name: adapter if name in ADAPTERS else None)
        service = SteeringService(store, dispatcher, StreamPresenter(dispatcher, chunk_size=4, chunk_delay=0))
        app = create_app(service, StaticTokenAuthenticator({"token-1": "u1", "token-2": "u2"}))
        yield TestClient(app), store, adapter


def start(client):
    resp = client.post("/start-session", json=START, headers=AUTH)
    assert resp.status_code == 200
    return resp.json()


def test_requires_authentication(env):
    client, _, _ = env
    assert client.post("/start-session", json=START).status_code == 401
    resp = client.post("/ai-chat", json={"sessionId": "s", "messages": [], "modelType": "A"}, headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Unauthorized"


def test_start_session_and_chat(env):
    client, store, adapter = env
    data = start(client)
    assert data["config"]["isActive"] is True
    assert data["config"]["apiKey"] != START["apiKey"]
    session_id = data["session"]["id"]

    resp = client.post(
        "/ai-chat",
        json={"sessionId": session_id, "messages": [{"role": "user", "content": "hi"}], "modelType": "A"},
        headers=AUTH,
    )
    assert resp.status_code == 200
    assert resp.json() == {"response": "gpt-4o: hi", "model": "gpt-4o"}

    msgs = client.get(f"/sessions/{session_id}/messages", headers=AUTH).json()["messages"]
    assert [(m["modelType"], m["content"]) for m in msgs] == [("A", "gpt-4o: hi")]


def test_start_session_deactivates_previous(env):
    client, store, _ = env
    start(client)
    second = start(client)
    configs = store.list_configurations("u1")
    assert len(configs) == 2
    assert [c.id for c in configs if c.is_active] == [second["config"]["id"]]


def test_start_session_rejects_unknown_provider(env):
    client, store, _ = env
    resp = client.post("/start-session", json={**START, "provider": "unknown-vendor"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["code"] == "UNSUPPORTED_PROVIDER"
    assert store.list_configurations("u1") == []


def test_chat_without_configuration(env):
    client, _, _ = env
    resp = client.post("/ai-chat", json={"sessionId": "s-1", "messages": [], "modelType": "A"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["error"] == "No active AI configuration found"


def test_chat_invalid_model_type(env):
    client, _, _ = env
    session_id = start(client)["session"]["id"]
    resp = client.post("/ai-chat", json={"sessionId": session_id, "messages": [], "modelType": "user"}, headers=AUTH)
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_chat_provider_error_is_500(env):
    client, store, adapter = env
    session_id = start(client)["session"]["id"]
    adapter.error = ProviderError("OpenAI", "OpenAI API error: invalid api key")
    resp = client.post(
        "/ai-chat",
        json={"sessionId": session_id, "messages": [{"role": "user", "content": "hi"}], "modelType": "B"},
        headers=AUTH,
    )
    assert resp.status_code == 500
    assert resp.json()["error"] == "OpenAI API error: invalid api key"
    assert store.list_messages(session_id) == []


def test_pause_blocks_relay(env):
    client, store, adapter = env
    session_id = start(client)["session"]["id"]
    assert client.post(f"/sessions/{session_id}/pause", headers=AUTH).json()["session"]["isPaused"] is True
    resp = client.post(
        "/ai-chat",
        json={"sessionId": session_id, "messages": [{"role": "user", "content": "hi"}], "modelType": "A"},
        headers=AUTH,
    )
    assert resp.status_code == 409
    assert adapter.calls == []
    client.post(f"/sessions/{session_id}/resume", headers=AUTH)
    assert client.post(
        "/ai-chat",
        json={"sessionId": session_id, "messages": [{"role": "user", "content": "hi"}], "modelType": "A"},
        headers=AUTH,
    ).status_code == 200


def test_other_owner_cannot_use_session(env):
    client, _, _ = env
    session_id = start(client)["session"]["id"]
    assert client.get(f"/sessions/{session_id}/messages", headers={"Authorization": "Bearer token-2"}).status_code == 404


def test_stream_endpoint(env):
    client, _, _ = env
    session_id = start(client)["session"]["id"]
    resp = client.post(
        "/ai-chat/stream",
        json={"sessionId": session_id, "messages": [{"role": "user", "content": "hi"}], "modelType": "B"},
        headers=AUTH,
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = [
        json.loads(line[len("data: "):])
        for line in resp.text.splitlines()
        if line.startswith("data: ")
    ]
    assert events[0]["event"] == "typing"
    assert events[-1]["event"] == "complete"
    assert "".join(e["chunk"] for e in events if e["event"] == "chunk") == "gpt-4o-mini: hi"


def test_exchange_notes_usage_and_export(env):
    client, _, _ = env
    session_id = start(client)["session"]["id"]

    note = client.post(f"/sessions/{session_id}/notes", json={"note": "compare tone"}, headers=AUTH)
    assert note.json()["message"]["modelType"] == "system"

    result = client.post("/exchange", json={"sessionId": session_id, "message": "hi"}, headers=AUTH).json()
    assert result["A"] == {"response": "gpt-4o: hi", "model": "gpt-4o"}
    assert result["B"] == {"response": "gpt-4o-mini: hi", "model": "gpt-4o-mini"}
    assert result["turnCount"] == 1

    usage = client.get(f"/sessions/{session_id}/usage", headers=AUTH).json()["usage"]
    assert usage["requestCount"] == 2
    assert usage["perSlot"] == {"A": 1, "B": 1}

    exported = client.get(f"/sessions/{session_id}/export", params={"format": "json"}, headers=AUTH)
    assert exported.status_code == 200
    body = exported.json()
    assert sorted(m["model_type"] for m in body["messages"]) == ["A", "B", "system", "user"]

    fresh = start(client)["session"]["id"]
    imported = client.post(f"/sessions/{fresh}/import", json=body, headers=AUTH)
    assert imported.json() == {"imported": 4}
    restored = client.get(f"/sessions/{fresh}/messages", headers=AUTH).json()["messages"]
    assert [m["id"] for m in restored] == [m["id"] for m in body["messages"]]


def test_list_sessions_and_providers(env):
    client, _, _ = env
    first = start(client)["session"]["id"]
    second = start(client)["session"]["id"]
    sessions = client.get("/sessions", headers=AUTH).json()["sessions"]
    assert {s["id"] for s in sessions} == {first, second}
    providers = client.get("/providers").json()["providers"]
    assert providers[0]["id"] == "openai"
    assert client.put(f"/sessions/{second}/turn-count", json={"turnCount": 3}, headers=AUTH).json()["session"]["turnCount"] == 3


def test_exchange_with_one_failed_slot(env):
    client, store, adapter = env
    session_id = start(client)["session"]["id"]
    adapter.failing["gpt-4o-mini"] = ProviderError("OpenAI", "OpenAI API error: rate limited")

    result = client.post("/exchange", json={"sessionId": session_id, "message": "hi"}, headers=AUTH)

    assert result.status_code == 200
    body = result.json()
    assert body["A"] == {"response": "gpt-4o: hi", "model": "gpt-4o"}
    assert body["B"] == {"error": "OpenAI API error: rate limited", "code": "PROVIDER_ERROR"}
    assert body["turnCount"] == 0
    assert [m.model_type for m in store.list_messages(session_id)] == ["user", "A"]
    assert store.get_session(session_id).turn_count == 0


def test_start_session_rejects_non_ascii_key(env):
    client, store, adapter = env
    resp = client.post("/start-session", json={**START, "apiKey": "sk-‑abc123456"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_API_KEY"
    assert store.list_configurations("u1") == []


def test_search_and_delete_sessions(env):
    client, store, _ = env
    keep = start(client)["session"]["id"]
    drop = start(client)["session"]["id"]
    client.post(f"/sessions/{drop}/notes", json={"note": "temporary"}, headers=AUTH)

    found = client.get("/sessions", params={"q": drop[-8:].upper()}, headers=AUTH).json()["sessions"]
    assert [s["id"] for s in found] == [drop]

    resp = client.delete(f"/sessions/{drop}", headers=AUTH)
    assert resp.json() == {"deleted": drop}
    assert store.get_session(drop) is None
    assert [s["id"] for s in client.get("/sessions", headers=AUTH).json()["sessions"]] == [keep]
    assert client.delete(f"/sessions/{drop}", headers=AUTH).status_code == 404
    assert client.delete(f"/sessions/{keep}", headers={"Authorization": "Bearer token-2"}).status_code == 404
