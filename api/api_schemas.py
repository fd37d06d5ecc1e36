from pydantic import BaseModel, Field
from typing import List, Optional

from core.schemas import (
    ConfidenceReport,
    CoverageReport,
    ForgeTarget,
    GeneratedDocument,
    GenerateWarning,
    QualityReport,
)


class CreateSessionRequest(BaseModel):
    """Request to open a planning session"""
    name: Optional[str] = Field(None, description="Session name (defaults to the first message)")


class SendMessageRequest(BaseModel):
    """Request for the streamed chat endpoint"""
    content: str = Field(default="", description="User message")
    retry: bool = Field(default=False, description="Re-answer the last user message")


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool = Field(..., description="False when nothing was streaming")


class ReadinessResponse(BaseModel):
    """Planning readiness for a session"""
    quality: QualityReport
    coverage: CoverageReport


class ForgeRequest(BaseModel):
    """Request to generate the document pack"""
    target: Optional[ForgeTarget] = Field(None, description="Coding agent the handoff is written for")
    force: bool = Field(default=False, description="Forge even when must-have topics are missing")


class ForgeResponse(BaseModel):
    """Generated documents and their confidence grade"""
    documents: List[GeneratedDocument] = Field(default_factory=list)
    warnings: List[GenerateWarning] = Field(default_factory=list)
    quality: Optional[QualityReport] = None
    confidence: ConfidenceReport


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy, degraded or unhealthy")
    provider: str
    model: str
    reachable: bool
    model_available: bool


class StaleResponse(BaseModel):
    session_id: str
    stale: bool = Field(..., description="A message arrived after the documents were generated")


class ModelsResponse(BaseModel):
    provider: str
    models: List[str]


class PullModelRequest(BaseModel):
    """Request to download a model (local daemon only)"""
    model: Optional[str] = Field(None, min_length=1, description="Model name (defaults to the configured model)")


class PullCancelResponse(BaseModel):
    cancelled: bool = Field(..., description="False when no download was running")
