from .confidence import analyze_generation_confidence
from .engine import DocumentEngine, Transition, is_valid_document
from .orchestrator import GenerationOrchestrator, GenerationResult
from .readiness import analyze_plan_readiness, analyze_planning_coverage

__all__ = [
    "DocumentEngine",
    "GenerationOrchestrator",
    "GenerationResult",
    "Transition",
    "analyze_generation_confidence",
    "analyze_plan_readiness",
    "analyze_planning_coverage",
    "is_valid_document",
]
