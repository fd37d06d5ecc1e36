"""
Test Generation Orchestrator
============================

Document ordering, progress events, validation/retry policy and the
all-or-nothing persistence guarantee.
"""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import json

import httpx
import pytest

from conftest import VALID_DOC, ScriptedClient, failing_response
from core.config import Timeouts
from core.errors import ConfigError, EmptyConversation, ModelUnavailable, RequestFailed, ValidationFailed
from core.schemas import ForgeTarget, GenerateComplete, GenerateProgress, GenerateWarning
from core.transitions import TransitionValidator
from docgen.engine import format_previous_documents, is_valid_document
from docgen.orchestrator import GenerationOrchestrator
from docgen.prompts import NO_DOCUMENTS_YET, RETRY_SUFFIX
from providers.provider_client import ProviderClient

MODEL_DOCS = ["SPEC.md", "CLAUDE.md", "PROMPTS.md", "README.md", "START_HERE.md"]
ALL_DOCS = MODEL_DOCS + ["CONVERSATION.md", "MODEL_HANDOFF.md"]


async def planned_session(store):
    session = await store.create_session("Habit Tracker")
    await store.save_message(session.id, "user", "Build a habit tracker using SQLite and Tauri")
    await store.save_message(
        session.id, "assistant", "Which platforms do you target?",
        metadata={"search_query": "tauri vs electron comparison"},
    )
    return session


def orchestrator_for(store, client, ollama_config, **kwargs):
    return GenerationOrchestrator(store, client, ollama_config, **kwargs)


def test_is_valid_document():
    assert is_valid_document("# Title")
    assert is_valid_document("\n\n  ## Title")
    assert not is_valid_document("Sure! Here is the doc:\n# Title")
    assert not is_valid_document("")


def test_format_previous_documents():
    assert format_previous_documents([]) == NO_DOCUMENTS_YET
    assert format_previous_documents([("A.md", "# A"), ("B.md", "# B")]) == "## A.md\n\n# A\n\n---\n\n## B.md\n\n# B"


def test_transition_table():
    assert TransitionValidator.validate("ValidateDocumentState", "RetryDocumentState")
    assert not TransitionValidator.validate("RetryDocumentState", "RetryDocumentState")
    assert TransitionValidator.is_terminal_state("PersistState")
    with pytest.raises(ValueError):
        TransitionValidator.validate_or_raise("PreflightState", "PersistState")


async def test_empty_conversation_makes_no_provider_call(store, ollama_config):
    session = await store.create_session("Empty")
    await store.save_message(session.id, "system", "only a system note")
    client = ScriptedClient()
    events = []

    with pytest.raises(EmptyConversation):
        await orchestrator_for(store, client, ollama_config).generate_all(session.id, on_event=events.append)

    assert client.calls == []
    assert events == []
    assert await store.get_documents(session.id) == []


async def test_generates_documents_in_order_with_progress(store, ollama_config):
    session = await planned_session(store)
    client = ScriptedClient()
    events = []

    result = await orchestrator_for(store, client, ollama_config).generate_all(
        session.id, ForgeTarget.CLAUDE, on_event=events.append, force=True
    )

    assert [d.filename for d in result.documents] == ALL_DOCS
    assert [d.filename for d in await store.get_documents(session.id)] == ALL_DOCS
    assert result.warnings == []
    assert result.quality is not None and result.quality.score == 42

    progress = [e for e in events if isinstance(e, GenerateProgress)]
    assert [(p.current, p.total, p.filename) for p in progress] == [
        (i + 1, 7, name) for i, name in enumerate(ALL_DOCS)
    ]
    assert isinstance(events[-1], GenerateComplete)
    assert events[-1].count == 7

    assert len(client.calls) == 5
    assert all(call["config"].temperature == 0.4 for call in client.calls)
    first_prompt = client.calls[0]["messages"][1].content
    assert NO_DOCUMENTS_YET in first_prompt
    assert "User: Build a habit tracker" in first_prompt
    third_prompt = client.calls[2]["messages"][1].content
    assert "## SPEC.md" in third_prompt and "## CLAUDE.md" in third_prompt


async def test_synthetic_documents_content(store, ollama_config):
    session = await planned_session(store)
    result = await orchestrator_for(store, ScriptedClient(), ollama_config).generate_all(session.id, ForgeTarget.CODEX, force=True)
    by_name = {d.filename: d.content for d in result.documents}

    conversation = by_name["CONVERSATION.md"]
    assert conversation.startswith("# Habit Tracker - Planning Conversation")
    assert "*[Searched: tauri vs electron comparison]*" in conversation

    handoff = by_name["MODEL_HANDOFF.md"]
    assert handoff.startswith("# Model Handoff (codex)")
    assert "**OpenAI Codex**" in handoff
    assert "- Scope boundaries (what is out for v1)" in handoff
    assert "## Reliability Rules" in handoff


async def test_without_conversation_document(store, ollama_config):
    session = await planned_session(store)
    events = []
    result = await orchestrator_for(store, ScriptedClient(), ollama_config, include_conversation=False).generate_all(
        session.id, on_event=events.append, force=True
    )
    assert [d.filename for d in result.documents] == MODEL_DOCS + ["MODEL_HANDOFF.md"]
    assert {e.total for e in events if isinstance(e, GenerateProgress)} == {6}


async def test_failure_on_third_document_persists_nothing(store, ollama_config):
    session = await planned_session(store)
    await store.replace_documents(session.id, [("OLD.md", "# Old")])
    version = store.document_version(session.id)
    client = ScriptedClient([VALID_DOC, VALID_DOC, failing_response(500)])
    events = []

    with pytest.raises(RequestFailed):
        await orchestrator_for(store, client, ollama_config).generate_all(session.id, on_event=events.append, force=True)

    assert [d.filename for d in await store.get_documents(session.id)] == ["OLD.md"]
    assert store.document_version(session.id) == version
    assert not any(isinstance(e, GenerateComplete) for e in events)


async def test_invalid_output_retried_exactly_once(store, ollama_config):
    session = await planned_session(store)
    client = ScriptedClient(["Sure! Here is your spec.", "# Spec\n\n## Overview"])

    result = await orchestrator_for(store, client, ollama_config).generate_all(session.id, force=True)

    assert len(client.calls) == 6
    retry_call = client.calls[1]
    assert retry_call["config"].temperature == 0.3
    assert retry_call["messages"][1].content.endswith(RETRY_SUFFIX)
    assert result.documents[0].content == "# Spec\n\n## Overview"
    assert result.warnings == []


async def test_warn_policy_accepts_and_reports(store, ollama_config):
    session = await planned_session(store)
    client = ScriptedClient(["no heading", "still no heading"])
    events = []

    result = await orchestrator_for(store, client, ollama_config, validation_policy="warn").generate_all(
        session.id, on_event=events.append, force=True
    )

    assert len(client.calls) == 6, "exactly one retry, never more"
    assert result.documents[0].content == "still no heading"
    assert [w.filename for w in result.warnings] == ["SPEC.md"]
    assert [e.filename for e in events if isinstance(e, GenerateWarning)] == ["SPEC.md"]


async def test_tolerate_policy_accepts_silently(store, ollama_config):
    session = await planned_session(store)
    client = ScriptedClient(["no heading", "still no heading"])
    events = []

    result = await orchestrator_for(store, client, ollama_config, validation_policy="tolerate").generate_all(
        session.id, on_event=events.append, force=True
    )

    assert result.warnings == []
    assert not any(isinstance(e, GenerateWarning) for e in events)
    assert len(result.documents) == 7


async def test_strict_policy_aborts_without_persisting(store, ollama_config):
    session = await planned_session(store)
    client = ScriptedClient([VALID_DOC, "no heading", "still no heading"])

    with pytest.raises(ValidationFailed):
        await orchestrator_for(store, client, ollama_config, validation_policy="strict").generate_all(session.id, force=True)

    assert len(client.calls) == 3
    assert await store.get_documents(session.id) == []


def test_unknown_policy_rejected(store, ollama_config):
    with pytest.raises(ConfigError):
        orchestrator_for(store, ScriptedClient(), ollama_config, validation_policy="lenient")


async def test_end_to_end_over_ollama_wire(store, ollama_config):
    session = await planned_session(store)
    seen_temperatures = []

    def handler(request):
        payload = json.loads(request.content)
        seen_temperatures.append(payload["options"]["temperature"])
        assert payload["stream"] is False
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "# Doc\n\n## Commands"}, "done": True})

    client = ProviderClient(timeouts=Timeouts(request=2.0), transport=httpx.MockTransport(handler))
    result = await orchestrator_for(store, client, ollama_config).generate_all(session.id, force=True)

    assert len(result.documents) == 7
    assert seen_temperatures == [0.4] * 5


async def test_model_unavailable_propagates_unchanged(store, ollama_config):
    session = await planned_session(store)

    def handler(request):
        return httpx.Response(404, json={"error": "not found"})

    client = ProviderClient(transport=httpx.MockTransport(handler))
    with pytest.raises(ModelUnavailable):
        await orchestrator_for(store, client, ollama_config).generate_all(session.id, force=True)
    assert await store.get_documents(session.id) == []


# =============================================================================
# Readiness gate
# =============================================================================

async def ready_session(store):
    session = await store.create_session("Habit Tracker")
    await store.save_message(
        session.id, "user",
        "Build a habit tracker. The flow: the user opens one screen per day. "
        "Stack is Tauri, data lives in SQLite, and sync is out of scope for v1.",
    )
    return session


async def test_missing_must_haves_block_generation(store, ollama_config):
    session = await planned_session(store)
    client = ScriptedClient()
    events = []

    with pytest.raises(ValidationFailed) as exc_info:
        await orchestrator_for(store, client, ollama_config).generate_all(session.id, on_event=events.append)

    assert "Scope boundaries (what is out for v1)" in exc_info.value.message
    assert "force=true" in exc_info.value.message
    assert client.calls == []
    assert events == []
    assert await store.get_documents(session.id) == []


async def test_force_overrides_readiness_gate(store, ollama_config):
    session = await planned_session(store)
    result = await orchestrator_for(store, ScriptedClient(), ollama_config).generate_all(session.id, force=True)
    assert result.quality.missing_must_haves
    assert len(result.documents) == 7


async def test_ready_session_needs_no_force(store, ollama_config):
    session = await ready_session(store)
    result = await orchestrator_for(store, ScriptedClient(), ollama_config).generate_all(session.id)
    assert result.quality.missing_must_haves == []
    assert [d.filename for d in result.documents] == ALL_DOCS


# =============================================================================
# Generation metadata and staleness
# =============================================================================

async def test_generation_metadata_keeps_quality_and_confidence(store, ollama_config):
    session = await ready_session(store)
    orchestrator = orchestrator_for(store, ScriptedClient(), ollama_config)
    assert await orchestrator.get_confidence(session.id) is None

    result = await orchestrator.generate_all(session.id, ForgeTarget.CURSOR)

    metadata = await store.get_generation_metadata(session.id)
    assert metadata.target == ForgeTarget.CURSOR
    assert metadata.provider == "ollama"
    assert metadata.model == "llama3:8b"
    assert metadata.quality == result.quality
    assert metadata.confidence == result.confidence
    assert await orchestrator.get_confidence(session.id) == result.confidence


async def test_confidence_recomputed_without_metadata(store, ollama_config):
    session = await ready_session(store)
    await store.replace_documents(session.id, [("SPEC.md", "# Spec\n\n## Overview")])

    report = await orchestrator_for(store, ScriptedClient(), ollama_config).get_confidence(session.id)

    assert report is not None
    assert report.blocking_gaps
    assert report.score <= 89


async def test_documents_stale_after_new_message(store, ollama_config):
    session = await ready_session(store)
    orchestrator = orchestrator_for(store, ScriptedClient(), ollama_config)
    assert not await orchestrator.documents_stale(session.id), "no documents yet"

    await orchestrator.generate_all(session.id)
    assert not await orchestrator.documents_stale(session.id)

    await store.save_message(session.id, "user", "One more thing: add reminders.")
    assert await orchestrator.documents_stale(session.id)
