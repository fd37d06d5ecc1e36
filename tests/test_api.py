"""
Test API
========

FastAPI endpoints through TestClient, with the Ollama wire mocked.
"""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import aiter_chunks, ndjson_lines
from api.api import create_app
from api.api_utils import sink_to_async_generator
from conversation.store import InMemoryConversationStore
from core.config import Settings, Timeouts
from providers.provider_client import ProviderClient

DOC_BODY = "# Doc\n\n## Step-by-Step Setup\n\n## Commands\n\n## Phase 1\n\n### Verification Checklist\n"


PULL_LINES = [
    b'{"status": "pulling manifest"}\n',
    b'{"status": "downloading", "completed": 5, "total": 10}\n',
    b'{"status": "success"}\n',
]


def ollama_handler(request):
    if request.url.path == "/api/tags":
        return httpx.Response(200, json={"models": [{"name": "llama3:8b"}, {"name": "qwen3:4b"}]})
    payload = json.loads(request.content)
    if request.url.path == "/api/pull":
        assert payload["model"] == "qwen3:4b"
        return httpx.Response(200, content=aiter_chunks(PULL_LINES))
    if payload["stream"]:
        return httpx.Response(200, content=aiter_chunks(ndjson_lines("Let's ", "plan.")))
    return httpx.Response(200, json={"message": {"content": DOC_BODY}, "done": True})


def sse_events(text):
    return [json.loads(line[5:].strip()) for line in text.splitlines() if line.startswith("data:")]


@pytest.fixture
def api(ollama_config):
    settings = Settings(provider=ollama_config, timeouts=Timeouts(stall=1.0, request=2.0))
    client = ProviderClient(timeouts=settings.timeouts, transport=httpx.MockTransport(ollama_handler))
    app = create_app(settings, InMemoryConversationStore(), client)
    return TestClient(app)


def test_health_reports_model(api):
    response = api.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["provider"] == "ollama"
    assert body["model_available"] is True


def test_chat_turn_streams_events(api):
    session = api.post("/sessions", json={}).json()

    response = api.post(f"/sessions/{session['id']}/messages", json={"content": "Build a habit tracker"})
    assert response.status_code == 200
    events = sse_events(response.text)
    assert [e["type"] for e in events] == ["content", "content", "done"]
    assert all(e["session_id"] == session["id"] for e in events)

    messages = api.get(f"/sessions/{session['id']}/messages").json()
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["content"] == "Let's plan."


def test_chat_validation_error_is_streamed(api):
    session = api.post("/sessions", json={"name": "Retry"}).json()
    response = api.post(f"/sessions/{session['id']}/messages", json={"content": "", "retry": True})
    events = sse_events(response.text)
    assert events[-1]["type"] == "error"
    assert events[-1]["code"] == "validation_failed"


def test_unknown_session_is_http_error(api):
    response = api.post("/sessions/missing/messages", json={"content": "hi"})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_cancel_without_active_stream(api):
    session = api.post("/sessions", json={}).json()
    response = api.post(f"/sessions/{session['id']}/cancel")
    assert response.json() == {"session_id": session["id"], "cancelled": False}


def test_readiness_endpoint(api):
    session = api.post("/sessions", json={}).json()
    api.post(f"/sessions/{session['id']}/messages", json={"content": "Build a habit tracker using SQLite and Tauri"})

    body = api.get(f"/sessions/{session['id']}/readiness").json()
    assert 0 < body["quality"]["score"] < 100
    assert len(body["coverage"]["must_have"]) == 5


def test_forge_empty_session_maps_to_400(api):
    session = api.post("/sessions", json={}).json()
    response = api.post(f"/sessions/{session['id']}/documents", json={})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "empty_conversation"
    assert error["action"] == "Send at least one message before generating documents"


def test_forge_refused_while_must_haves_missing(api):
    session = api.post("/sessions", json={}).json()
    api.post(f"/sessions/{session['id']}/messages", json={"content": "Build a habit tracker using SQLite and Tauri"})

    response = api.post(f"/sessions/{session['id']}/documents", json={})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "validation_failed"
    assert "Continue with force=true" in error["message"]
    assert api.get(f"/sessions/{session['id']}/documents").json() == []


def test_forge_generates_and_grades_documents(api):
    session = api.post("/sessions", json={}).json()
    api.post(f"/sessions/{session['id']}/messages", json={"content": "Build a habit tracker using SQLite and Tauri"})
    assert api.get(f"/sessions/{session['id']}/confidence").json() is None

    response = api.post(f"/sessions/{session['id']}/documents", json={"target": "cursor", "force": True})
    assert response.status_code == 200
    body = response.json()
    filenames = [d["filename"] for d in body["documents"]]
    assert filenames == [
        "SPEC.md", "CLAUDE.md", "PROMPTS.md", "README.md", "START_HERE.md",
        "CONVERSATION.md", "MODEL_HANDOFF.md",
    ]
    assert body["confidence"]["blocking_gaps"] == []
    assert 0 < body["confidence"]["score"] <= 100

    stored = api.get(f"/sessions/{session['id']}/documents").json()
    assert [d["filename"] for d in stored] == filenames
    assert api.get(f"/sessions/{session['id']}/confidence").json() == body["confidence"]

    generation = api.get(f"/sessions/{session['id']}/generation").json()
    assert generation["target"] == "cursor"
    assert generation["model"] == "llama3:8b"
    assert generation["quality"] == body["quality"]


def test_documents_become_stale_after_new_message(api):
    session = api.post("/sessions", json={}).json()
    stale_url = f"/sessions/{session['id']}/documents/stale"
    assert api.get(stale_url).json() == {"session_id": session["id"], "stale": False}

    api.post(f"/sessions/{session['id']}/messages", json={"content": "Build a habit tracker"})
    api.post(f"/sessions/{session['id']}/documents", json={"force": True})
    assert api.get(stale_url).json()["stale"] is False

    api.post(f"/sessions/{session['id']}/messages", json={"content": "Add reminders too"})
    assert api.get(stale_url).json()["stale"] is True


def test_list_models(api):
    body = api.get("/models").json()
    assert body == {"provider": "ollama", "models": ["llama3:8b", "qwen3:4b"]}


def test_pull_model_streams_progress(api):
    response = api.post("/models/pull", json={"model": "qwen3:4b"})
    assert response.status_code == 200
    events = sse_events(response.text)
    assert [e["status"] for e in events] == ["pulling manifest", "downloading", "success"]
    assert events[1]["completed"] == 5 and events[1]["total"] == 10


def test_cancel_pull_without_download(api):
    assert api.post("/models/pull/cancel").json() == {"cancelled": False}


def test_pull_model_unsupported_backend_is_streamed_error(openai_config):
    settings = Settings(provider=openai_config)
    client = ProviderClient(transport=httpx.MockTransport(ollama_handler))
    api = TestClient(create_app(settings, InMemoryConversationStore(), client))

    events = sse_events(api.post("/models/pull", json={}).text)
    assert events == [{
        "type": "error",
        "error": "Model download is not supported for the 'openai' backend",
        "code": "unsupported",
        "action": None,
    }]


async def test_unexpected_stream_failure_ends_with_error_payload():
    async def run(sink):
        sink({"type": "content", "content": "partial"})
        raise RuntimeError("boom")

    payloads = [json.loads(p) async for p in sink_to_async_generator(run)]

    assert payloads[0] == {"type": "content", "content": "partial"}
    assert payloads[-1]["type"] == "error"
    assert payloads[-1]["code"] == "internal_error"
    assert "boom" not in payloads[-1]["error"]
