"""
Test Readiness and Confidence Analyzers
=======================================
"""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from core.schemas import CoverageStatus, GeneratedDocument, Message, QualityReport
from docgen.confidence import analyze_generation_confidence
from docgen.readiness import (
    MUST_HAVE_TOPICS,
    SHOULD_HAVE_TOPICS,
    analyze_plan_readiness,
    analyze_planning_coverage,
    coverage_by_topic,
)

FULL_PLAN = (
    "The problem: I need a habit tracker and the goal is daily streaks. "
    "Core flow: the user does a check-in step on one screen. "
    "Stack: Tauri with React, and why this matters is offline support. "
    "Data lives in SQLite tables with a simple schema. "
    "Scope for the MVP is v1 only; sync comes later. "
    "Error handling: retry writes. "
    "Trade-off: we chose SQLite over Postgres. "
    "Testing: unit test the streak logic. "
    "Security: no auth, privacy first. "
    "Performance: low memory and low latency."
)


def msg(content: str, role: str = "user", index: int = 0) -> Message:
    return Message(id=f"m{index}", session_id="s1", role=role, content=content)


def doc(filename: str, content: str) -> GeneratedDocument:
    return GeneratedDocument(id=filename, session_id="s1", filename=filename, content=content)


COMPLETE_PACK = [
    doc("START_HERE.md", "# Start Here\n## Step-by-Step Setup\nno open items"),
    doc("SPEC.md", "# Spec\n## Design"),
    doc("CLAUDE.md", "# Claude\n## Commands"),
    doc("PROMPTS.md", "# Prompts\n## Phase 1\n### Verification Checklist"),
    doc("README.md", "# Readme"),
    doc("MODEL_HANDOFF.md", "# Handoff"),
]


# =============================================================================
# Readiness
# =============================================================================

def test_empty_transcript_scores_zero():
    report = analyze_plan_readiness([])
    assert report.score == 0
    assert report.missing_must_haves == [topic for topic, _ in MUST_HAVE_TOPICS]
    assert report.missing_should_haves == [topic for topic, _ in SHOULD_HAVE_TOPICS]


def test_system_messages_are_ignored():
    report = analyze_plan_readiness([msg(FULL_PLAN, role="system")])
    assert report.score == 0


def test_full_coverage_scores_at_least_90():
    messages = [msg(FULL_PLAN, "user", 1), msg(FULL_PLAN, "assistant", 2)]
    report = analyze_plan_readiness(messages)
    assert report.score >= 90
    assert report.missing_must_haves == []

    coverage = analyze_planning_coverage(messages)
    for topic in coverage.must_have + coverage.should_have:
        assert topic.status == CoverageStatus.COVERED, f"{topic.topic} is {topic.status}"
        assert sorted(topic.evidence_message_ids) == ["m1", "m2"]
    assert coverage.summary.startswith("Planning coverage looks strong")


def test_habit_tracker_example():
    messages = [msg("Build a habit tracker using SQLite and Tauri", index=1)]
    report = analyze_plan_readiness(messages)

    assert report.missing_must_haves == [
        "Core user flow (step-by-step)",
        "Scope boundaries (what is out for v1)",
    ]
    assert len(report.missing_should_haves) == 5
    assert report.score == 100 - 14 * 2 - 6 * 5

    statuses = coverage_by_topic(analyze_planning_coverage(messages))
    assert statuses["Data model / persistence strategy"] == CoverageStatus.PARTIAL
    assert statuses["Tech stack with rationale"] == CoverageStatus.PARTIAL


def test_keyword_stuffed_single_message_is_only_partial():
    """Two keywords in one message are not enough evidence."""
    coverage = analyze_planning_coverage([msg("schema and table and storage", index=1)])
    data_topic = next(t for t in coverage.must_have if t.topic.startswith("Data model"))
    assert data_topic.status == CoverageStatus.PARTIAL
    assert data_topic.matched_keywords == ["schema", "table", "storage"]
    assert data_topic.evidence_message_ids == ["m1"]


def test_readiness_is_deterministic():
    messages = [msg("We need tests and a database", index=1), msg("The flow has one screen", index=2)]
    first = analyze_plan_readiness(messages)
    second = analyze_plan_readiness(list(messages))
    assert first == second


def test_keyword_matching_folds_ascii_case_only():
    stack = "Tech stack with rationale"
    ascii_upper = coverage_by_topic(analyze_planning_coverage([msg("Our STACK is settled")]))
    assert ascii_upper[stack] == CoverageStatus.PARTIAL

    # KELVIN SIGN lowercases to "k" under full Unicode folding
    kelvin = coverage_by_topic(analyze_planning_coverage([msg("Our STAC\u212a is settled")]))
    assert kelvin[stack] == CoverageStatus.MISSING


# =============================================================================
# Confidence
# =============================================================================

def test_complete_pack_scores_high():
    readiness = QualityReport(score=92, summary="good")
    report = analyze_generation_confidence(COMPLETE_PACK, readiness)
    assert report.blocking_gaps == []
    assert report.score >= 80
    assert report.summary.startswith("High confidence")
    assert [f.points for f in report.factors] == [30, 25, 20, 23]


def test_missing_document_caps_score_below_90():
    readiness = QualityReport(score=100)
    pack = [d for d in COMPLETE_PACK if d.filename != "MODEL_HANDOFF.md"]
    report = analyze_generation_confidence(pack, readiness)

    assert "Missing required document: MODEL_HANDOFF.md" in report.blocking_gaps
    assert report.score == 89
    assert report.summary == "Confidence limited by 1 blocking gap(s) in required output."


def test_missing_structural_marker_is_blocking():
    pack = [d for d in COMPLETE_PACK if d.filename != "CLAUDE.md"] + [doc("CLAUDE.md", "# Claude\nno commands")]
    report = analyze_generation_confidence(pack, QualityReport(score=100))
    assert "CLAUDE.md missing expected section marker '## Commands'" in report.blocking_gaps
    assert report.score < 90


def test_readiness_default_when_absent():
    report = analyze_generation_confidence(COMPLETE_PACK, None)
    readiness_factor = report.factors[-1]
    assert readiness_factor.points == 10
    assert "unavailable" in readiness_factor.detail


def test_tbd_density_tiers():
    dense = "# Spec\n## A\n" + "[TBD - not discussed during planning] " * 10
    pack = [d for d in COMPLETE_PACK if d.filename != "SPEC.md"] + [doc("SPEC.md", dense)]
    report = analyze_generation_confidence(pack, None)
    tbd_factor = next(f for f in report.factors if f.name == "Unresolved TBD density")
    assert tbd_factor.points == 0
    assert tbd_factor.detail == "10 TBD markers across core docs"


def test_no_documents_at_all():
    report = analyze_generation_confidence([], None)
    assert len(report.blocking_gaps) == 6
    assert report.score < 90
    # no core docs means density 1.0, so the TBD factor scores nothing
    assert report.factors[2].points == 0
