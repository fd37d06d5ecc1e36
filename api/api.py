"""
PlanForge API
=============

FastAPI surface over the generation core. Chat replies stream as
Server-Sent Events carrying StreamEvent JSON.

Run:
    python -m api.api
"""
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse
import logging

from api.api_schemas import (
    CancelResponse,
    CreateSessionRequest,
    ForgeRequest,
    ForgeResponse,
    HealthResponse,
    ModelsResponse,
    PullCancelResponse,
    PullModelRequest,
    ReadinessResponse,
    SendMessageRequest,
    StaleResponse,
)
from api.api_utils import sink_to_async_generator, status_for, to_json
from core.cancellation import CancellationRegistry
from core.config import Settings
from core.errors import Cancelled, ForgeError
from core.schemas import ConfidenceReport, GeneratedDocument, GenerationMetadata, Message, PullProgress, Session
from conversation.chat_service import ChatService
from conversation.search import SearchProvider
from conversation.store import ConversationStore, InMemoryConversationStore
from docgen.orchestrator import GenerationOrchestrator
from docgen.readiness import analyze_plan_readiness, analyze_planning_coverage
from providers.provider_client import ProviderClient

logger = logging.getLogger(__name__)

# one model download at a time per process
PULL_KEY = "model-pull"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ConversationStore] = None,
    client: Optional[ProviderClient] = None,
    search: Optional[SearchProvider] = None,
) -> FastAPI:
    """
    Build the application around one store, one provider client and one chat service.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        store: Conversation store (in-memory when omitted)
        client: Provider client (tests inject one with a MockTransport)
        search: Optional web search backend
    """
    settings = settings or Settings.from_env()
    store = store or InMemoryConversationStore()
    client = client or ProviderClient(timeouts=settings.timeouts)
    chat = ChatService(store, client, settings, search_provider=search)
    orchestrator = GenerationOrchestrator.from_settings(store, client, settings)
    pulls = CancellationRegistry()

    app = FastAPI(
        title="PlanForge API",
        description="Planning chat and document generation",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = store
    app.state.chat = chat
    app.state.orchestrator = orchestrator

    @app.exception_handler(ForgeError)
    async def forge_error_handler(request: Request, exc: ForgeError):
        logger.warning(f"⚠️ [API] {request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return JSONResponse(status_code=status_for(exc), content={"error": exc.to_response()})

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Probe the configured backend"""
        config = settings.provider
        probe = await client.probe(config)
        if probe.reachable and probe.model_available:
            status = "healthy"
        elif probe.reachable:
            status = "degraded"
        else:
            status = "unhealthy"
        return HealthResponse(
            status=status,
            provider=config.kind.value,
            model=config.model,
            reachable=probe.reachable,
            model_available=probe.model_available,
        )

    @app.post("/sessions", response_model=Session)
    async def create_session(request: CreateSessionRequest):
        return await store.create_session(request.name)

    @app.get("/sessions/{session_id}/messages", response_model=List[Message])
    async def get_messages(session_id: str):
        return await store.get_messages(session_id)

    @app.post("/sessions/{session_id}/messages")
    async def send_message(session_id: str, request: SendMessageRequest):
        """
        Stream one chat turn via Server-Sent Events.

        Each event's data is a StreamEvent JSON object; the turn ends with a
        ``done`` event, or an ``error`` event on failure.
        """
        # unknown session fails as a plain HTTP error before the stream opens
        await store.get_session(session_id)

        async def run(sink):
            await chat.send_message(session_id, request.content, sink, retry=request.retry)

        return EventSourceResponse(sink_to_async_generator(run))

    @app.post("/sessions/{session_id}/cancel", response_model=CancelResponse)
    async def cancel(session_id: str):
        return CancelResponse(session_id=session_id, cancelled=chat.cancel_response(session_id))

    @app.get("/sessions/{session_id}/readiness", response_model=ReadinessResponse)
    async def readiness(session_id: str):
        messages = await store.get_messages(session_id)
        return ReadinessResponse(
            quality=analyze_plan_readiness(messages),
            coverage=analyze_planning_coverage(messages),
        )

    @app.post("/sessions/{session_id}/documents", response_model=ForgeResponse)
    async def forge(session_id: str, request: ForgeRequest):
        """Generate the pack, persist it with its grade and return both"""
        events = []
        result = await orchestrator.generate_all(
            session_id, request.target, on_event=events.append, force=request.force
        )
        logger.debug(f"[API] Generation events: {[to_json(e) for e in events]}")
        return ForgeResponse(
            documents=result.documents,
            warnings=result.warnings,
            quality=result.quality,
            confidence=result.confidence,
        )

    @app.get("/sessions/{session_id}/documents", response_model=List[GeneratedDocument])
    async def get_documents(session_id: str):
        return await store.get_documents(session_id)

    @app.get("/sessions/{session_id}/documents/stale", response_model=StaleResponse)
    async def documents_stale(session_id: str):
        return StaleResponse(session_id=session_id, stale=await orchestrator.documents_stale(session_id))

    @app.get("/sessions/{session_id}/confidence", response_model=Optional[ConfidenceReport])
    async def confidence(session_id: str):
        """Grade of the stored documents; null before the first generation"""
        return await orchestrator.get_confidence(session_id)

    @app.get("/sessions/{session_id}/generation", response_model=Optional[GenerationMetadata])
    async def generation_metadata(session_id: str):
        return await store.get_generation_metadata(session_id)

    @app.get("/models", response_model=ModelsResponse)
    async def list_models():
        config = settings.provider
        return ModelsResponse(provider=config.kind.value, models=await client.list_models(config))

    @app.post("/models/pull")
    async def pull_model(request: PullModelRequest):
        """
        Download a model via Server-Sent Events.

        Each event's data is a PullProgress JSON object. A cancelled download
        ends with ``{"status": "cancelled"}``.
        """
        config = settings.provider
        if request.model:
            config = config.model_copy(update={"model": request.model.strip()})

        async def run(sink):
            token = pulls.register(PULL_KEY)
            try:
                async for progress in client.pull_model(config, token):
                    sink(progress)
            except Cancelled:
                logger.info(f"🛑 [API] Pull of {config.model} cancelled")
                sink(PullProgress(status="cancelled"))
            finally:
                pulls.release(PULL_KEY, token)

        return EventSourceResponse(sink_to_async_generator(run))

    @app.post("/models/pull/cancel", response_model=PullCancelResponse)
    async def cancel_pull():
        return PullCancelResponse(cancelled=pulls.cancel(PULL_KEY))

    return app


if __name__ == "__main__":
    import uvicorn
    from core.logging_setup import configure_logging

    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_file)

    print("\n" + "=" * 70)
    print("🚀 Starting PlanForge API...")
    print("=" * 70)
    print(f"\n🤖 Provider: {settings.provider.kind.value} ({settings.provider.model})")
    print(f"   Base URL: {settings.provider.base_url}")
    print("\n" + "=" * 70)

    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)
