"""
Async Generation Engine
=======================

Finite state machine that forges one document pack:

    PreflightState -> GenerateDocumentState -> ValidateDocumentState
        -> [RetryDocumentState -> ValidateDocumentState] -> AcceptDocumentState
        -> ... (next document) ... -> SyntheticDocumentsState -> PersistState

Every transition is checked against core.transitions before it is taken.
Nothing reaches the store until PersistState, so a failure anywhere leaves
the previous document set untouched.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.context_async import GenerationContext
from core.errors import EmptyConversation, ValidationFailed
from core.schemas import (
    ChatMessage,
    GenerateComplete,
    GenerateProgress,
    GenerateWarning,
    ProviderConfig,
)
from core.transitions import TransitionValidator
from conversation.store import ConversationStore
from docgen.prompts import (
    CONVERSATION_FILENAME,
    DOCGEN_SYSTEM_PROMPT,
    DOCUMENT_PLAN,
    HANDOFF_FILENAME,
    NO_DOCUMENTS_YET,
    RETRY_SUFFIX,
    render_prompt,
)
from docgen.readiness import analyze_plan_readiness
from docgen.synthetic import (
    format_conversation_for_prompt,
    generate_conversation_md,
    generate_model_handoff_doc,
)
from providers.provider_client import ProviderClient

logger = logging.getLogger(__name__)

GENERATION_TEMPERATURE = 0.4
RETRY_TEMPERATURE = 0.3
MAX_RETRIES = 1

EventSink = Callable[[Any], None]


class Transition:
    """Transition object for state changes."""
    def __init__(self, to: str, reason: str = "", metadata: dict = None):
        self.to = to
        self.reason = reason
        self.metadata = metadata or {}


def is_valid_document(content: str) -> bool:
    """A document is valid Markdown when its first non-blank character is '#'."""
    return content.lstrip().startswith("#")


def format_previous_documents(documents: List[Tuple[str, str]]) -> str:
    if not documents:
        return NO_DOCUMENTS_YET
    return "\n\n---\n\n".join(f"## {name}\n\n{content}" for name, content in documents)


# =================================================================================================
# Base Class
# =================================================================================================

class GenerationState(ABC):
    """
    Base class for generation states.

    States are stateless: everything a run needs lives in GenerationContext,
    collaborators are reached through the engine.
    """
    __slots__ = ("engine", "logger")

    def __init__(self, engine: DocumentEngine):
        self.engine = engine
        self.logger = engine.logger

    @abstractmethod
    async def handle(self, context: GenerationContext) -> Optional[Transition]:
        """Return the next Transition, or None for a terminal state."""
        pass


# =================================================================================================
# States
# =================================================================================================

class PreflightState(GenerationState):
    """Loads the transcript. An empty conversation stops the run before any model call."""

    async def handle(self, context: GenerationContext):
        store = self.engine.store
        context.messages = await store.get_messages(context.session_id)

        if not any(m.role == "user" for m in context.messages):
            self.logger.warning(f"⚠️ [Preflight] Session {context.session_id} has no user messages")
            raise EmptyConversation()

        context.session = await store.get_session(context.session_id)
        context.conversation_text = format_conversation_for_prompt(context.messages)
        context.quality = analyze_plan_readiness(context.messages)
        if context.quality.missing_must_haves and not context.force:
            missing = ", ".join(context.quality.missing_must_haves)
            self.logger.warning(f"🚧 [Preflight] Readiness gate: missing must-haves ({missing})")
            raise ValidationFailed(
                f"Readiness check has missing must-haves: {missing}. Continue with force=true to forge anyway."
            )

        context.progress_total = len(DOCUMENT_PLAN) + (1 if context.include_conversation else 0) + 1

        self.logger.info(
            f"🧭 [Preflight] {len(context.messages)} messages, readiness {context.quality.score}/100, "
            f"{context.progress_total} documents planned"
        )
        return Transition(to="GenerateDocumentState", reason="Conversation loaded")


class GenerateDocumentState(GenerationState):
    """One model call for the current document in DOCUMENT_PLAN."""

    async def handle(self, context: GenerationContext):
        filename, template = DOCUMENT_PLAN[context.document_index]
        await self.engine.progress(context, filename)

        context.current_prompt = render_prompt(
            template,
            conversation=context.conversation_text,
            previous_docs=format_previous_documents(context.previous_documents()),
            current_date=context.current_date,
        )
        context.attempts = 0

        self.logger.info(f"📝 [Generate] {filename} ({context.document_index + 1}/{len(DOCUMENT_PLAN)})")
        context.current_output = await self.engine.call_model(
            context, context.current_prompt, GENERATION_TEMPERATURE
        )
        return Transition(to="ValidateDocumentState", reason="Draft generated", metadata={"filename": filename})


class ValidateDocumentState(GenerationState):
    """Checks the draft; after the single retry the validation policy decides."""

    async def handle(self, context: GenerationContext):
        filename = DOCUMENT_PLAN[context.document_index][0]

        if is_valid_document(context.current_output):
            self.logger.info(f"✅ [Validate] {filename} is valid")
            return Transition(to="AcceptDocumentState", reason="Validation passed")

        if context.attempts < MAX_RETRIES:
            self.logger.warning(f"⚠️ [Validate] {filename} does not start with a heading")
            return Transition(to="RetryDocumentState", reason="Validation failed", metadata={"filename": filename})

        message = f"{filename} still does not start with a '#' heading after retry"
        if context.validation_policy == "strict":
            self.logger.error(f"❌ [Validate] {message}")
            raise ValidationFailed(message)

        if context.validation_policy == "warn":
            self.logger.warning(f"⚠️ [Validate] {message}; accepting as-is")
            warning = GenerateWarning(session_id=context.session_id, filename=filename, message=message)
            await context.add_warning(warning)
            self.engine.emit(warning)
        else:
            self.logger.debug(f"[Validate] {message}; tolerated")

        return Transition(to="AcceptDocumentState", reason="Retry exhausted", metadata={"policy": context.validation_policy})


class RetryDocumentState(GenerationState):
    """Repeats the call once with an amended prompt and a lower temperature."""

    async def handle(self, context: GenerationContext):
        context.attempts += 1
        filename = DOCUMENT_PLAN[context.document_index][0]
        self.logger.warning(f"🔁 [Retry] {filename} attempt {context.attempts}/{MAX_RETRIES}")

        context.current_output = await self.engine.call_model(
            context, context.current_prompt + RETRY_SUFFIX, RETRY_TEMPERATURE
        )
        return Transition(to="ValidateDocumentState", reason="Retried", metadata={"attempt": context.attempts})


class AcceptDocumentState(GenerationState):
    """Adds the draft to the in-memory batch and moves to the next document."""

    async def handle(self, context: GenerationContext):
        filename = DOCUMENT_PLAN[context.document_index][0]
        await context.add_document(filename, context.current_output)
        context.current_output = ""
        context.document_index += 1

        if context.document_index < len(DOCUMENT_PLAN):
            return Transition(to="GenerateDocumentState", reason=f"{filename} accepted")
        return Transition(to="SyntheticDocumentsState", reason="All model documents accepted")


class SyntheticDocumentsState(GenerationState):
    """CONVERSATION.md (optional) and MODEL_HANDOFF.md, built from stored data."""

    async def handle(self, context: GenerationContext):
        if context.include_conversation:
            await self.engine.progress(context, CONVERSATION_FILENAME)
            await context.add_document(
                CONVERSATION_FILENAME,
                generate_conversation_md(context.session, context.messages),
            )

        await self.engine.progress(context, HANDOFF_FILENAME)
        await context.add_document(
            HANDOFF_FILENAME,
            generate_model_handoff_doc(context.session, context.target, context.quality),
        )
        return Transition(to="PersistState", reason="Synthetic documents built")


class PersistState(GenerationState):
    """Terminal state: one atomic replace_documents call for the whole batch."""

    async def handle(self, context: GenerationContext):
        stored = await self.engine.store.replace_documents(context.session_id, context.documents)
        context.persisted = stored
        self.logger.info(f"💾 [Persist] Stored {len(stored)} documents for session {context.session_id}")
        self.engine.emit(GenerateComplete(session_id=context.session_id, count=len(stored)))
        return None


# =================================================================================================
# Engine
# =================================================================================================

class DocumentEngine:
    """
    Runs the generation state machine for one provider configuration.

    Example:
        >>> engine = DocumentEngine(store, ProviderClient(), config, on_event=print)
        >>> context = GenerationContext(session_id=session.id)
        >>> await engine.dispatch(context)
    """

    STATE_CLASSES = (
        PreflightState,
        GenerateDocumentState,
        ValidateDocumentState,
        RetryDocumentState,
        AcceptDocumentState,
        SyntheticDocumentsState,
        PersistState,
    )

    def __init__(
        self,
        store: ConversationStore,
        client: ProviderClient,
        config: ProviderConfig,
        on_event: Optional[EventSink] = None,
        logger_: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.client = client
        self.config = config
        self.on_event = on_event
        self.logger = logger_ or logger
        self.states: Dict[str, GenerationState] = {cls.__name__: cls(self) for cls in self.STATE_CLASSES}
        self.initial_state_name = "PreflightState"

    def emit(self, event: Any):
        if self.on_event is not None:
            self.on_event(event)

    async def progress(self, context: GenerationContext, filename: str):
        step = await context.next_progress_step()
        self.emit(GenerateProgress(
            session_id=context.session_id,
            current=step,
            total=context.progress_total,
            filename=filename,
        ))

    async def call_model(self, context: GenerationContext, prompt: str, temperature: float) -> str:
        messages = [
            ChatMessage.system(render_prompt(DOCGEN_SYSTEM_PROMPT, "", "", context.current_date)),
            ChatMessage.user(prompt),
        ]
        context.metrics["model_calls"] = context.metrics.get("model_calls", 0) + 1
        return await self.client.generate(self.config.with_temperature(temperature), messages)

    async def dispatch(self, context: GenerationContext) -> GenerationContext:
        """
        Async state machine dispatch loop with transition validation.

        Errors raised by a state propagate unchanged.
        """
        current_state = self.states[self.initial_state_name]

        while current_state:
            state_name = type(current_state).__name__
            self.logger.debug(f"📍 [Engine] Current state: {state_name}")

            result = await current_state.handle(context)

            if result is None:
                self.logger.info(f"🏁 [Engine] Reached terminal state: {state_name}")
                break

            TransitionValidator.validate_or_raise(state_name, result.to)
            self.logger.debug(f"🔄 Transition: {state_name} -> {result.to} (reason: {result.reason})")
            if result.metadata:
                self.logger.debug(f"   Metadata: {result.metadata}")

            current_state = self.states[result.to]

        return context
