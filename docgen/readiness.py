"""
Planning Readiness
==================

Keyword-coverage heuristic over a transcript. Deterministic by design:
the same transcript always produces the same score.
"""

import string
from typing import Dict, List, Sequence, Tuple

from core.schemas import CoverageReport, CoverageStatus, CoverageTopic, Message, QualityReport

MUST_HAVE_PENALTY = 14
SHOULD_HAVE_PENALTY = 6

MUST_HAVE_TOPICS: List[Tuple[str, List[str]]] = [
    ("Problem statement / why this exists",
     ["problem", "goal", "why", "build", "need", "pain point"]),
    ("Core user flow (step-by-step)",
     ["flow", "workflow", "step", "screen", "journey", "user does"]),
    ("Tech stack with rationale",
     ["stack", "react", "rust", "database", "framework", "tauri", "why this"]),
    ("Data model / persistence strategy",
     ["data", "schema", "entity", "table", "persist", "storage", "sqlite"]),
    ("Scope boundaries (what is out for v1)",
     ["scope", "mvp", "v1", "out of scope", "not included", "later"]),
]

SHOULD_HAVE_TOPICS: List[Tuple[str, List[str]]] = [
    ("Error handling approach",
     ["error", "failure", "retry", "fallback", "recover"]),
    ("Design trade-offs / decisions",
     ["trade-off", "tradeoff", "decision", "chose", "alternative"]),
    ("Testing strategy",
     ["test", "verification", "qa", "integration test", "unit test"]),
    ("Security considerations",
     ["security", "auth", "permissions", "privacy", "threat"]),
    ("Performance requirements",
     ["performance", "latency", "throughput", "memory", "optimize"]),
]


def _topic_coverage(topic: str, keywords: Sequence[str], corpus: List[Tuple[str, str]]) -> CoverageTopic:
    matched: List[str] = []
    evidence: List[str] = []
    for keyword in keywords:
        hits = [message_id for message_id, text in corpus if keyword in text]
        if not hits:
            continue
        matched.append(keyword)
        for message_id in hits:
            if message_id not in evidence:
                evidence.append(message_id)

    if not matched:
        status = CoverageStatus.MISSING
    elif len(matched) >= 2 and len(evidence) >= 2:
        status = CoverageStatus.COVERED
    else:
        # one keyword-stuffed message is not enough evidence
        status = CoverageStatus.PARTIAL
    return CoverageTopic(topic=topic, status=status, matched_keywords=matched, evidence_message_ids=evidence)


# only A-Z are folded; other characters keep their code points
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def _corpus(messages: Sequence[Message]) -> List[Tuple[str, str]]:
    return [(m.id, m.content.translate(_ASCII_LOWER)) for m in messages if m.role != "system"]


def _summary(missing_must: int, missing_should: int) -> str:
    if missing_must == 0 and missing_should == 0:
        return "Planning coverage looks strong. You can forge with high confidence."
    if missing_must == 0:
        return f"Core planning coverage is good. {missing_should} optional topic(s) are still thin."
    return f"{missing_must} must-have topic(s) are missing. You can still forge, but expect [TBD] sections."


def analyze_planning_coverage(messages: Sequence[Message]) -> CoverageReport:
    """Per-topic status with the ids of the messages that mention each topic."""
    corpus = _corpus(messages)
    must = [_topic_coverage(t, k, corpus) for t, k in MUST_HAVE_TOPICS]
    should = [_topic_coverage(t, k, corpus) for t, k in SHOULD_HAVE_TOPICS]
    missing_must = sum(1 for t in must if t.status == CoverageStatus.MISSING)
    missing_should = sum(1 for t in should if t.status == CoverageStatus.MISSING)
    return CoverageReport(
        must_have=must,
        should_have=should,
        missing_must_haves=missing_must,
        missing_should_haves=missing_should,
        summary=_summary(missing_must, missing_should),
    )


def analyze_plan_readiness(messages: Sequence[Message]) -> QualityReport:
    """
    Score = 100 - 14 per missing must-have - 6 per missing should-have, clamped to 0..100.

    An empty transcript (or one with only system messages) scores 0.
    """
    coverage = analyze_planning_coverage(messages)
    missing_must = [t.topic for t in coverage.must_have if t.status == CoverageStatus.MISSING]
    missing_should = [t.topic for t in coverage.should_have if t.status == CoverageStatus.MISSING]

    score = 100 - MUST_HAVE_PENALTY * len(missing_must) - SHOULD_HAVE_PENALTY * len(missing_should)
    if not _corpus(messages):
        score = 0
    score = max(0, min(100, score))

    return QualityReport(
        score=score,
        missing_must_haves=missing_must,
        missing_should_haves=missing_should,
        summary=coverage.summary,
    )


def coverage_by_topic(report: CoverageReport) -> Dict[str, CoverageStatus]:
    return {t.topic: t.status for t in report.must_have + report.should_have}
