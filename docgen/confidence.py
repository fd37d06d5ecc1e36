"""
Generation Confidence
=====================

Grades a generated document set on four factors:

- Required document coverage (30 points)
- Document structure sanity (25 points)
- Unresolved ``[TBD`` density in the core documents (20 points)
- Planning readiness carry-over (25 points)

Any blocking gap caps the final score at 89.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from core.schemas import ConfidenceFactor, ConfidenceReport, GeneratedDocument, QualityReport

REQUIRED_DOCS = [
    "START_HERE.md",
    "SPEC.md",
    "CLAUDE.md",
    "PROMPTS.md",
    "README.md",
    "MODEL_HANDOFF.md",
]

HEADING_CHECKS: List[Tuple[str, List[str]]] = [
    ("SPEC.md", ["# ", "## "]),
    ("PROMPTS.md", ["## Phase", "### Verification Checklist"]),
    ("CLAUDE.md", ["# ", "## Commands"]),
    ("START_HERE.md", ["# ", "## Step-by-Step Setup"]),
]

TBD_DOCS = ["SPEC.md", "PROMPTS.md", "README.md"]
TBD_MARKER = "[TBD"

# (max density, points), first match wins
TBD_TIERS = [(0.0005, 20), (0.001, 15), (0.002, 10), (0.004, 5)]

READINESS_DEFAULT_POINTS = 10
BLOCKED_SCORE_CAP = 89


def _round(value: float) -> int:
    # half away from zero; builtin round() would send 0.5 to 0
    return int(value + 0.5)


def _linear_factor(name: str, max_points: int, passed: int, total: int, detail: str) -> ConfidenceFactor:
    points = _round(passed / total * max_points) if total else 0
    return ConfidenceFactor(name=name, max_points=max_points, points=points, detail=detail)


def _tbd_points(density: float) -> int:
    for limit, points in TBD_TIERS:
        if density <= limit:
            return points
    return 0


def analyze_generation_confidence(
    documents: Sequence[GeneratedDocument],
    readiness: Optional[QualityReport] = None,
) -> ConfidenceReport:
    by_name: Dict[str, GeneratedDocument] = {doc.filename: doc for doc in documents}
    factors: List[ConfidenceFactor] = []
    blocking_gaps: List[str] = []

    present = 0
    for name in REQUIRED_DOCS:
        if name in by_name:
            present += 1
        else:
            blocking_gaps.append(f"Missing required document: {name}")
    factors.append(_linear_factor(
        "Required document coverage", 30, present, len(REQUIRED_DOCS),
        f"{present} of {len(REQUIRED_DOCS)} required docs generated",
    ))

    passed = 0
    total_checks = 0
    for name, markers in HEADING_CHECKS:
        doc = by_name.get(name)
        if doc is None:
            continue
        for marker in markers:
            total_checks += 1
            if marker in doc.content:
                passed += 1
            else:
                blocking_gaps.append(f"{name} missing expected section marker '{marker}'")
    factors.append(_linear_factor(
        "Document structure sanity", 25, passed, max(total_checks, 1),
        f"{passed} of {total_checks} heading/marker checks passed",
    ))

    tbd_count = 0
    total_chars = 0
    for name in TBD_DOCS:
        doc = by_name.get(name)
        if doc is not None:
            tbd_count += doc.content.count(TBD_MARKER)
            total_chars += len(doc.content.encode("utf-8"))
    density = tbd_count / total_chars if total_chars else 1.0
    factors.append(ConfidenceFactor(
        name="Unresolved TBD density",
        max_points=20,
        points=_tbd_points(density),
        detail=f"{tbd_count} TBD markers across core docs",
    ))

    if readiness is not None:
        factors.append(ConfidenceFactor(
            name="Planning readiness carry-over",
            max_points=25,
            points=_round(readiness.score / 100 * 25),
            detail=f"Readiness score {readiness.score} carried into confidence",
        ))
    else:
        factors.append(ConfidenceFactor(
            name="Planning readiness carry-over",
            max_points=25,
            points=READINESS_DEFAULT_POINTS,
            detail="Readiness unavailable; partial default applied",
        ))

    total_points = sum(f.points for f in factors)
    max_points = sum(f.max_points for f in factors)
    score = _round(total_points / max_points * 100) if max_points else 0
    if blocking_gaps and score > BLOCKED_SCORE_CAP:
        score = BLOCKED_SCORE_CAP

    if blocking_gaps:
        summary = f"Confidence limited by {len(blocking_gaps)} blocking gap(s) in required output."
    elif score >= 85:
        summary = "High confidence: execution pack looks complete and internally consistent."
    elif score >= 70:
        summary = "Medium confidence: pack is usable, but some structure/detail gaps remain."
    else:
        summary = "Low confidence: pack likely needs more clarification before implementation."

    return ConfidenceReport(score=score, factors=factors, blocking_gaps=blocking_gaps, summary=summary)
