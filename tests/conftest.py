"""
Shared test fixtures
====================

Scripted provider clients and httpx mock transports for the backend wire
formats. No test talks to a real model server.
"""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import json
from typing import Callable, List, Optional, Union

import httpx
import pytest

from core.config import Settings, Timeouts
from core.errors import RequestFailed
from core.schemas import ChatMessage, ProviderConfig, ProviderKind, StreamEvent
from conversation.store import InMemoryConversationStore

VALID_DOC = "# Title\n\n## Section\n\nBody text."


class ScriptedClient:
    """
    Stand-in for ProviderClient.

    ``responses`` is consumed one entry per generate() call; an entry may be a
    string, an exception instance (raised), or a callable(messages) -> str.
    """

    def __init__(self, responses: Optional[List[Union[str, Exception, Callable]]] = None, default: str = VALID_DOC):
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[dict] = []
        self.stream_chunks: List[str] = ["Hello", " there"]

    async def generate(self, config: ProviderConfig, messages: List[ChatMessage]) -> str:
        self.calls.append({"config": config, "messages": messages})
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(messages)
        return response

    async def stream_chat(self, config, messages, cancel_token=None):
        self.calls.append({"config": config, "messages": messages})
        for chunk in self.stream_chunks:
            yield StreamEvent.content_event(chunk)
        yield StreamEvent.done()


def ndjson_lines(*fragments: str, done: bool = True) -> List[bytes]:
    lines = [json.dumps({"message": {"role": "assistant", "content": f}, "done": False}).encode() + b"\n" for f in fragments]
    if done:
        lines.append(json.dumps({"message": {"role": "assistant", "content": ""}, "done": True}).encode() + b"\n")
    return lines


async def aiter_chunks(chunks: List[bytes]):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def ollama_config():
    return ProviderConfig(kind=ProviderKind.OLLAMA, base_url="http://localhost:11434", model="llama3:8b")


@pytest.fixture
def openai_config():
    return ProviderConfig(
        kind=ProviderKind.OPENAI,
        base_url="https://api.example.com/v1",
        model="gpt-4o-mini",
        api_key="sk-test-secret",
    )


@pytest.fixture
def anthropic_config():
    return ProviderConfig(
        kind=ProviderKind.ANTHROPIC,
        base_url="https://api.anthropic.com",
        model="claude-sonnet-4-5",
        api_key="ak-test-secret",
    )


@pytest.fixture
def fast_timeouts():
    return Timeouts(connect=1.0, stall=0.2, request=2.0)


@pytest.fixture
def settings(ollama_config):
    return Settings(provider=ollama_config, search_enabled=True, search_proactive=True)


@pytest.fixture
def scripted_client():
    return ScriptedClient()


def failing_response(status: int = 500) -> RequestFailed:
    return RequestFailed(f"backend returned {status}", status_code=status)


def mock_transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)
