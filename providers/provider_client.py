"""
Provider Client
===============

Single entry point for every backend kind. Callers pass the ProviderConfig
per call; the client picks the matching adapter.

Usage:
    client = ProviderClient()
    text = await client.generate(config, messages)

    async for event in client.stream_chat(config, messages, token):
        ...
"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Dict, List, Optional, Type

import httpx

from core.cancellation import CancellationToken
from core.config import Timeouts
from core.errors import ConnectionFailure, Unsupported
from core.schemas import ChatMessage, ProbeResult, ProviderConfig, ProviderKind, PullProgress, StreamEvent, StreamEventType
from providers.anthropic import AnthropicProvider
from providers.base import ProviderAdapter
from providers.ollama import OllamaProvider
from providers.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)

ADAPTERS: Dict[ProviderKind, Type[ProviderAdapter]] = {
    ProviderKind.OLLAMA: OllamaProvider,
    ProviderKind.OPENAI: OpenAICompatibleProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
}


class ProviderClient:
    """
    Adapter to standardize the backend interface used by the orchestrator
    and the chat service.
    """

    def __init__(
        self,
        timeouts: Optional[Timeouts] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connect_retries: int = 1,
        retry_delay: float = 0.5,
    ):
        """
        Args:
            timeouts: Connect/stall/request limits shared by all adapters
            transport: Optional httpx transport (tests inject a MockTransport)
            connect_retries: Extra attempts for generate() after a ConnectionFailure
            retry_delay: Seconds to wait between those attempts
        """
        self.timeouts = timeouts or Timeouts()
        self.transport = transport
        self.connect_retries = connect_retries
        self.retry_delay = retry_delay
        self._adapters: Dict[ProviderKind, ProviderAdapter] = {}

    def adapter(self, config: ProviderConfig) -> ProviderAdapter:
        kind = config.kind
        if kind not in self._adapters:
            adapter_cls = ADAPTERS.get(kind)
            if adapter_cls is None:
                raise Unsupported(f"No adapter registered for provider kind '{kind.value}'")
            self._adapters[kind] = adapter_cls(timeouts=self.timeouts, transport=self.transport)
        return self._adapters[kind]

    async def probe(self, config: ProviderConfig) -> ProbeResult:
        result = await self.adapter(config).probe(config)
        logger.info(
            f"🩺 [ProviderClient] {config.kind.value} reachable={result.reachable} "
            f"model_available={result.model_available} ({config.model})"
        )
        return result

    async def list_models(self, config: ProviderConfig) -> List[str]:
        return await self.adapter(config).list_models(config)

    async def generate(self, config: ProviderConfig, messages: List[ChatMessage]) -> str:
        """
        Non-streaming generation.

        Connection failures are retried ``connect_retries`` times; every other
        error propagates unchanged.
        """
        adapter = self.adapter(config)
        attempt = 0
        while True:
            try:
                return await adapter.generate(config, messages)
            except ConnectionFailure as e:
                if attempt >= self.connect_retries:
                    raise
                attempt += 1
                logger.warning(f"⚠️ [ProviderClient] {e.message}. Retry {attempt}/{self.connect_retries}")
                await asyncio.sleep(self.retry_delay)

    def stream_chat(
        self,
        config: ProviderConfig,
        messages: List[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        return self.adapter(config).stream_chat(config, messages, cancel_token)

    def pull_model(
        self,
        config: ProviderConfig,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[PullProgress]:
        return self.adapter(config).pull_model(config, cancel_token)


async def collect_stream(events: AsyncIterable[StreamEvent]) -> str:
    """Concatenate content events into the full response text."""
    parts = []
    async for event in events:
        if event.type == StreamEventType.CONTENT.value and event.content:
            parts.append(event.content)
    return "".join(parts)
