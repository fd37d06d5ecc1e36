"""
Shared Value Models
===================

Value types passed between the provider client, the document orchestrator
and the analyzers. All of them are built per call and carry no lifecycle.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

from core.errors import ConfigError, Unsupported


class Role(str, Enum):
    """Author of a chat message"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Role-tagged message sent to a backend. Order within a request matters."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: Role = Field(..., description="system, user or assistant")
    content: str = Field(..., description="Message text")

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role=Role.ASSISTANT, content=content)


class SearchResult(BaseModel):
    """Ranked web snippet returned by a SearchProvider"""
    title: str
    url: str
    snippet: str
    score: float = 0.0


class StreamEventType(str, Enum):
    CONTENT = "content"
    SEARCH_START = "search_start"
    SEARCH_RESULT = "search_result"
    ERROR = "error"
    DONE = "done"


class StreamEvent(BaseModel):
    """
    Tagged event emitted while a chat response streams.

    Only the payload matching ``type`` is set. A stream ends with exactly
    one ``done`` event, unless the call fails.
    """
    model_config = ConfigDict(use_enum_values=True)

    type: StreamEventType
    content: Optional[str] = None
    search_query: Optional[str] = None
    search_results: Optional[List[SearchResult]] = None
    error: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def content_event(cls, text: str, session_id: Optional[str] = None) -> "StreamEvent":
        return cls(type=StreamEventType.CONTENT, content=text, session_id=session_id)

    @classmethod
    def search_start(cls, query: str, session_id: Optional[str] = None) -> "StreamEvent":
        return cls(type=StreamEventType.SEARCH_START, search_query=query, session_id=session_id)

    @classmethod
    def search_result(cls, results: List[SearchResult], session_id: Optional[str] = None) -> "StreamEvent":
        return cls(type=StreamEventType.SEARCH_RESULT, search_results=results, session_id=session_id)

    @classmethod
    def error_event(cls, message: str, session_id: Optional[str] = None) -> "StreamEvent":
        return cls(type=StreamEventType.ERROR, error=message, session_id=session_id)

    @classmethod
    def done(cls, session_id: Optional[str] = None) -> "StreamEvent":
        return cls(type=StreamEventType.DONE, session_id=session_id)

    @property
    def is_terminal(self) -> bool:
        return self.type == StreamEventType.DONE.value


class ProviderKind(str, Enum):
    """Backend protocol families"""
    OLLAMA = "ollama"          # local daemon, newline-delimited JSON
    OPENAI = "openai"          # OpenAI-compatible, SSE framing
    ANTHROPIC = "anthropic"    # batch messages API, single JSON body


KEYED_PROVIDERS = {ProviderKind.OPENAI, ProviderKind.ANTHROPIC}


class ProviderConfig(BaseModel):
    """
    Connection settings for one backend.

    The API key is a SecretStr so it never shows up in repr() or logs.
    """
    model_config = ConfigDict(frozen=True)

    kind: ProviderKind = ProviderKind.OLLAMA
    base_url: str = "http://localhost:11434"
    model: str
    api_key: Optional[SecretStr] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: Optional[int] = Field(default=None, gt=0)

    @field_validator("base_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"base_url must use http or https (got '{parsed.scheme or value}')")
        if not parsed.netloc:
            raise ValueError("base_url is missing a host")
        return value.rstrip("/")

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model must not be empty")
        return value.strip()

    @model_validator(mode="wrap")
    @classmethod
    def _raise_forge_errors(cls, data: Any, handler):
        """Unknown kind -> Unsupported, any other invalid field -> ConfigError."""
        try:
            return handler(data)
        except ValidationError as e:
            errors = e.errors()
            if any(err["loc"][:1] == ("kind",) for err in errors):
                kind = data.get("kind") if isinstance(data, dict) else None
                raise Unsupported(f"Unknown provider kind '{kind}'") from None
            # input values are left out so a key can never leak into the message
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'provider'}: {err['msg']}" for err in errors
            )
            raise ConfigError(details) from None

    @property
    def requires_api_key(self) -> bool:
        return self.kind in KEYED_PROVIDERS

    def secret(self) -> Optional[str]:
        return self.api_key.get_secret_value() if self.api_key else None

    def with_temperature(self, temperature: float) -> "ProviderConfig":
        return self.model_copy(update={"temperature": temperature})


class ProbeResult(BaseModel):
    """Outcome of a connectivity check"""
    reachable: bool
    model_available: bool


class PullProgress(BaseModel):
    """Progress line from a model download"""
    status: str
    completed: Optional[int] = None
    total: Optional[int] = None


# =================================================================================================
# Conversation records (owned by the ConversationStore)
# =================================================================================================

class Session(BaseModel):
    id: str
    name: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Message(BaseModel):
    """Stored transcript message"""
    id: str
    session_id: str
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.now)


class GeneratedDocument(BaseModel):
    id: str
    session_id: str
    filename: str
    content: str
    created_at: datetime = Field(default_factory=datetime.now)


# =================================================================================================
# Analyzer reports
# =================================================================================================

class QualityReport(BaseModel):
    """Planning readiness derived from the transcript"""
    score: int = Field(..., ge=0, le=100)
    missing_must_haves: List[str] = Field(default_factory=list)
    missing_should_haves: List[str] = Field(default_factory=list)
    summary: str = ""


class CoverageStatus(str, Enum):
    MISSING = "missing"
    PARTIAL = "partial"
    COVERED = "covered"


class CoverageTopic(BaseModel):
    topic: str
    status: CoverageStatus
    matched_keywords: List[str] = Field(default_factory=list)
    evidence_message_ids: List[str] = Field(default_factory=list)


class CoverageReport(BaseModel):
    must_have: List[CoverageTopic]
    should_have: List[CoverageTopic]
    missing_must_haves: int
    missing_should_haves: int
    summary: str


class ConfidenceFactor(BaseModel):
    name: str
    max_points: int
    points: int
    detail: str


class ConfidenceReport(BaseModel):
    """Post-generation grade. Blocking gaps cap the score at 89."""
    score: int = Field(..., ge=0, le=100)
    factors: List[ConfidenceFactor] = Field(default_factory=list)
    blocking_gaps: List[str] = Field(default_factory=list)
    summary: str = ""


# =================================================================================================
# Generation events
# =================================================================================================

class ForgeTarget(str, Enum):
    """Coding agent the handoff pack is written for"""
    CLAUDE = "claude"
    CODEX = "codex"
    CURSOR = "cursor"
    GEMINI = "gemini"
    GENERIC = "generic"


class GenerateProgress(BaseModel):
    session_id: str
    current: int
    total: int
    filename: str


class GenerateWarning(BaseModel):
    session_id: str
    filename: str
    message: str


class GenerateComplete(BaseModel):
    session_id: str
    count: int


class GenerationMetadata(BaseModel):
    """What the last successful run was forged with, and how it graded"""
    session_id: str
    target: ForgeTarget
    provider: str
    model: str
    quality: Optional[QualityReport] = None
    confidence: Optional[ConfidenceReport] = None
    created_at: datetime = Field(default_factory=datetime.now)
