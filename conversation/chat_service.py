"""
Chat Service
============

Coordinates one planning chat turn: store the user message, optionally run
a web search, stream the model reply through the event sink, then store the
reply. Owns the per-session cancellation registry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.cancellation import CancellationRegistry
from core.config import Settings
from core.errors import Cancelled, ForgeError, ValidationFailed
from core.schemas import ChatMessage, Message, SearchResult, StreamEvent, StreamEventType
from conversation.search import SearchProvider, build_search_context, should_search
from conversation.store import ConversationStore
from providers.provider_client import ProviderClient

logger = logging.getLogger(__name__)

MAX_MESSAGE_BYTES = 102_400
SESSION_NAME_CHARS = 60

CHAT_SYSTEM_PROMPT = """You are a senior engineer helping a user plan a software project before any code is written.
Ask focused questions, one topic at a time, until the plan covers: the problem and goals, the core user flow,
the tech stack and why, the data model, scope boundaries for v1, error handling, testing, security and performance.
Summarize decisions as they are made. Do not write the final documents yourself; they are generated later."""

EventSink = Callable[[StreamEvent], None]


@dataclass
class ChatTurnResult:
    """Outcome of one chat turn."""
    user_message: Message
    assistant_message: Optional[Message] = None
    cancelled: bool = False


class ChatService:
    """
    Streams chat replies for sessions held in a ConversationStore.

    Example:
        >>> service = ChatService(store, ProviderClient(), settings)
        >>> result = await service.send_message(session_id, "Build a habit tracker", print)
    """

    def __init__(
        self,
        store: ConversationStore,
        client: ProviderClient,
        settings: Settings,
        search_provider: Optional[SearchProvider] = None,
        system_prompt: str = CHAT_SYSTEM_PROMPT,
    ):
        self.store = store
        self.client = client
        self.settings = settings
        self.search_provider = search_provider
        self.system_prompt = system_prompt
        self.cancellations = CancellationRegistry()

    async def send_message(
        self,
        session_id: str,
        content: str,
        on_event: EventSink,
        retry: bool = False,
    ) -> ChatTurnResult:
        """
        Run one chat turn.

        Args:
            session_id: Target session
            content: User text (ignored when retry=True)
            on_event: Non-blocking sink receiving StreamEvents
            retry: Re-answer the last user message, replacing the last reply

        Returns:
            ChatTurnResult; ``cancelled`` is True when cancel_response() interrupted it

        Raises:
            ValidationFailed: message too long, or nothing to retry
            ForgeError: provider failures (an error event is emitted first)
        """
        if len(content.encode("utf-8")) > MAX_MESSAGE_BYTES:
            raise ValidationFailed("Message too long (max 100 KB).")

        if retry:
            user_message = await self._last_user_message(session_id)
            await self.store.delete_last_assistant_message(session_id)
        else:
            user_message = await self.store.save_message(session_id, "user", content)
            await self._auto_name(session_id, content)

        search_query, search_results = await self._maybe_search(session_id, user_message.content, on_event)
        history = await self.store.get_messages(session_id)
        messages = self._build_messages(history, search_query, search_results)

        token = self.cancellations.register(session_id)
        parts: List[str] = []
        try:
            async for event in self.client.stream_chat(self.settings.provider, messages, token):
                if event.type == StreamEventType.CONTENT.value and event.content:
                    parts.append(event.content)
                on_event(event.model_copy(update={"session_id": session_id}))
        except Cancelled:
            logger.info(f"🛑 [Chat] Session {session_id} reply cancelled after {len(parts)} chunks")
            return ChatTurnResult(user_message=user_message, cancelled=True)
        except ForgeError as e:
            logger.error(f"❌ [Chat] Session {session_id} failed: {e.message}")
            on_event(StreamEvent.error_event(e.message, session_id=session_id))
            raise
        finally:
            self.cancellations.release(session_id, token)

        metadata = None
        if search_query or search_results:
            metadata = {
                "search_query": search_query,
                "search_results": [r.model_dump() for r in search_results] if search_results else None,
            }
        assistant = await self.store.save_message(session_id, "assistant", "".join(parts), metadata)
        return ChatTurnResult(user_message=user_message, assistant_message=assistant)

    def cancel_response(self, session_id: str) -> bool:
        """Trip the active token for a session. Returns False when nothing is streaming."""
        return self.cancellations.cancel(session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _last_user_message(self, session_id: str) -> Message:
        for message in reversed(await self.store.get_messages(session_id)):
            if message.role == "user":
                return message
        raise ValidationFailed("No prior user message exists for retry in this session.")

    async def _auto_name(self, session_id: str, content: str) -> None:
        messages = await self.store.get_messages(session_id)
        if sum(1 for m in messages if m.role == "user") != 1:
            return
        name = content[:SESSION_NAME_CHARS].strip()
        if len(content) > SESSION_NAME_CHARS:
            name = f"{name.rstrip()}..."
        if name:
            await self.store.rename_session(session_id, name)

    async def _maybe_search(self, session_id: str, content: str, on_event: EventSink):
        if not (self.search_provider and self.settings.search_enabled and self.settings.search_proactive):
            return None, None
        query = should_search(content)
        if not query:
            return None, None

        on_event(StreamEvent.search_start(query, session_id=session_id))
        try:
            results = await self.search_provider.search(query)
        except Exception as e:
            logger.warning(f"⚠️ [Chat] Search failed (continuing without): {e}")
            return query, None
        on_event(StreamEvent.search_result(results, session_id=session_id))
        return query, results

    def _build_messages(
        self,
        history: List[Message],
        search_query: Optional[str],
        search_results: Optional[List[SearchResult]],
    ) -> List[ChatMessage]:
        messages = [ChatMessage.system(self.system_prompt)]
        if search_results:
            messages.append(ChatMessage.system(build_search_context(search_query or "", search_results)))
        for message in history:
            if message.role == "system":
                continue
            messages.append(ChatMessage(role=message.role, content=message.content))
        return messages
