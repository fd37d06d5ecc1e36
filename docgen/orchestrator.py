"""
Generation Orchestrator
=======================

Public entry point for forging a session's document pack.

Usage:
    orchestrator = GenerationOrchestrator.from_settings(store, ProviderClient(), settings)
    result = await orchestrator.generate_all(session_id, ForgeTarget.CLAUDE, on_event=print)
"""

import logging
import time
from typing import List, Optional

from pydantic import BaseModel, Field

from core.config import Settings, VALIDATION_POLICIES
from core.context_async import GenerationContext
from core.errors import ConfigError
from core.schemas import (
    ConfidenceReport,
    ForgeTarget,
    GeneratedDocument,
    GenerateWarning,
    GenerationMetadata,
    ProviderConfig,
    QualityReport,
)
from conversation.store import ConversationStore
from docgen.confidence import analyze_generation_confidence
from docgen.engine import DocumentEngine, EventSink
from providers.provider_client import ProviderClient

logger = logging.getLogger(__name__)


class GenerationResult(BaseModel):
    """Persisted documents plus what was observed while forging them."""
    documents: List[GeneratedDocument] = Field(default_factory=list)
    warnings: List[GenerateWarning] = Field(default_factory=list)
    quality: Optional[QualityReport] = None
    confidence: Optional[ConfidenceReport] = None


class GenerationOrchestrator:
    """
    Produces the ordered document set for a session and persists it atomically.

    Args:
        store: Conversation store holding the transcript and documents
        client: Provider client used for the model calls
        config: Backend configuration; temperature is overridden per call
        include_conversation: Also emit CONVERSATION.md
        validation_policy: What happens when a retried draft is still invalid
            (``tolerate``, ``warn`` or ``strict``)
        target: Default handoff target when generate_all() is not given one
    """

    def __init__(
        self,
        store: ConversationStore,
        client: ProviderClient,
        config: ProviderConfig,
        include_conversation: bool = True,
        validation_policy: str = "warn",
        target: ForgeTarget = ForgeTarget.GENERIC,
    ):
        if validation_policy not in VALIDATION_POLICIES:
            raise ConfigError(f"validation_policy={validation_policy}")
        self.store = store
        self.client = client
        self.config = config
        self.include_conversation = include_conversation
        self.validation_policy = validation_policy
        self.target = target

    @classmethod
    def from_settings(cls, store: ConversationStore, client: ProviderClient, settings: Settings) -> "GenerationOrchestrator":
        return cls(
            store,
            client,
            settings.provider,
            include_conversation=settings.include_conversation,
            validation_policy=settings.validation_policy,
            target=settings.forge_target,
        )

    async def generate_all(
        self,
        session_id: str,
        target: Optional[ForgeTarget] = None,
        on_event: Optional[EventSink] = None,
        force: bool = False,
    ) -> GenerationResult:
        """
        Generate, validate and persist every document for a session.

        Events sent to ``on_event``: GenerateProgress before each document,
        GenerateWarning for drafts accepted under the warn policy, and one
        GenerateComplete after the batch is stored.

        Args:
            force: Forge even when the readiness check reports missing must-haves

        Raises:
            EmptyConversation: no user message in the session (no model call is made)
            ValidationFailed: must-haves missing without ``force`` (no model call is made),
                or strict policy and a draft stayed invalid
            ForgeError: any provider failure, unchanged; nothing is persisted
        """
        context = GenerationContext(
            session_id=session_id,
            target=ForgeTarget(target or self.target),
            include_conversation=self.include_conversation,
            validation_policy=self.validation_policy,
            force=force,
        )
        engine = DocumentEngine(self.store, self.client, self.config, on_event=on_event)

        started = time.perf_counter()
        logger.info(f"🔥 [Orchestrator] Forging session {session_id} for target {context.target.value}")
        try:
            await engine.dispatch(context)
        except Exception as e:
            logger.error(f"❌ [Orchestrator] Generation aborted for session {session_id}: {e}")
            logger.debug(f"   Context: {context.snapshot()}")
            raise

        documents = context.persisted
        confidence = analyze_generation_confidence(documents, context.quality)
        await self.store.upsert_generation_metadata(GenerationMetadata(
            session_id=session_id,
            target=context.target,
            provider=self.config.kind.value,
            model=self.config.model,
            quality=context.quality,
            confidence=confidence,
        ))
        logger.info(
            f"✅ [Orchestrator] {len(documents)} documents in {time.perf_counter() - started:.2f}s "
            f"({len(context.warnings)} warnings, confidence {confidence.score}/100)"
        )
        return GenerationResult(
            documents=documents,
            warnings=context.warnings,
            quality=context.quality,
            confidence=confidence,
        )

    async def get_confidence(self, session_id: str) -> Optional[ConfidenceReport]:
        """
        Confidence of the stored document set.

        Returns the report saved with the batch; when there is none, grades the
        stored documents against the saved quality report. None without documents.
        """
        documents = await self.store.get_documents(session_id)
        if not documents:
            return None
        metadata = await self.store.get_generation_metadata(session_id)
        if metadata is not None and metadata.confidence is not None:
            return metadata.confidence
        quality = metadata.quality if metadata is not None else None
        return analyze_generation_confidence(documents, quality)

    async def documents_stale(self, session_id: str) -> bool:
        """True when a message arrived after the stored documents were generated."""
        documents = await self.store.get_documents(session_id)
        messages = await self.store.get_messages(session_id)
        if not documents or not messages:
            return False
        generated_at = max(d.created_at for d in documents)
        return max(m.created_at for m in messages) > generated_at
