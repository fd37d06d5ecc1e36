"""
Async Generation Context
========================

Per-run state shared by the document generation states. Mutations that
touch the accumulated batch go through an asyncio.Lock.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from core.schemas import ForgeTarget, GeneratedDocument, GenerateWarning, Message, QualityReport, Session


class GenerationContext(BaseModel):
    """
    Async execution context for one generate_all() run.

    The batch in ``documents`` stays in memory until PersistState hands it
    to the store in a single call.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str = Field(..., description="Session being forged")
    target: ForgeTarget = Field(default=ForgeTarget.GENERIC, description="Handoff target")
    include_conversation: bool = Field(default=True, description="Emit CONVERSATION.md")
    validation_policy: str = Field(default="warn", description="tolerate, warn or strict")
    force: bool = Field(default=False, description="Forge even when must-have topics are missing")
    current_date: str = Field(default_factory=lambda: datetime.now().strftime("%Y-%m-%d"))

    # Loaded by PreflightState
    session: Optional[Session] = None
    messages: List[Message] = Field(default_factory=list)
    conversation_text: str = ""
    quality: Optional[QualityReport] = None

    # Per-document cursor
    document_index: int = 0
    current_prompt: str = ""
    current_output: str = ""
    attempts: int = 0

    # Accumulated batch as (filename, content)
    documents: List[Tuple[str, str]] = Field(default_factory=list)
    warnings: List[GenerateWarning] = Field(default_factory=list)
    progress_step: int = 0
    progress_total: int = 0

    # Set by PersistState
    persisted: List[GeneratedDocument] = Field(default_factory=list)

    # Timestamp & Metrics
    start_time: datetime = Field(default_factory=datetime.now)
    metrics: Dict[str, Any] = Field(default_factory=dict)

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    async def add_document(self, filename: str, content: str):
        async with self._lock:
            self.documents.append((filename, content))

    async def add_warning(self, warning: GenerateWarning):
        async with self._lock:
            self.warnings.append(warning)

    async def next_progress_step(self) -> int:
        async with self._lock:
            self.progress_step += 1
            return self.progress_step

    def previous_documents(self) -> List[Tuple[str, str]]:
        return list(self.documents)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable summary, used for debug logging."""
        return {
            "session_id": self.session_id,
            "target": ForgeTarget(self.target).value,
            "document_index": self.document_index,
            "attempts": self.attempts,
            "documents": [name for name, _ in self.documents],
            "warnings": len(self.warnings),
            "progress": f"{self.progress_step}/{self.progress_total}",
            "start_time": self.start_time.isoformat(),
            "metrics": self.metrics,
        }
