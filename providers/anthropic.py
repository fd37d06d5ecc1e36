"""
Anthropic Messages Provider
===========================

Batch backend: one JSON request, one JSON response, no streaming. Behind
the streaming surface it produces a single content event and a done event.
"""

import logging
from typing import AsyncIterator, Dict, List, Optional

from core.cancellation import CancellationToken
from core.errors import Cancelled, RequestFailed
from core.schemas import ChatMessage, ProviderConfig, ProviderKind, Role, StreamEvent
from providers.base import ProviderAdapter, raise_for_status, transport_errors

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(ProviderAdapter):
    """Adapter for the ``/v1/messages`` API."""

    kind = ProviderKind.ANTHROPIC

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if config.api_key:
            headers["x-api-key"] = config.secret()
        return headers

    def _payload(self, config: ProviderConfig, messages: List[ChatMessage]) -> dict:
        # system prompts travel in their own field, not in the message list
        system = "\n\n".join(m.content for m in messages if m.role == Role.SYSTEM.value)
        payload = {
            "model": config.model,
            "max_tokens": config.max_output_tokens or DEFAULT_MAX_TOKENS,
            "temperature": min(config.temperature, 1.0),
            "messages": [
                {"role": m.role, "content": m.content}
                for m in messages
                if m.role != Role.SYSTEM.value
            ],
        }
        if system:
            payload["system"] = system
        return payload

    async def list_models(self, config: ProviderConfig) -> List[str]:
        async with transport_errors(config):
            async with self._client(self._probe_timeout()) as client:
                response = await client.get(f"{config.base_url}/v1/models", headers=self.headers(config))
                await raise_for_status(response, config)
                try:
                    data = response.json()
                except ValueError as e:
                    raise RequestFailed(f"Failed to parse model list: {e}") from e
        return [m.get("id", "") for m in data.get("data", [])]

    @staticmethod
    def matches_model(model: str, available: List[str]) -> bool:
        # aliases such as "claude-sonnet-4-5" resolve to dated ids
        return any(name == model or name.startswith(f"{model}-") for name in available)

    async def generate(self, config: ProviderConfig, messages: List[ChatMessage]) -> str:
        async with transport_errors(config):
            async with self._client(self._request_timeout()) as client:
                response = await client.post(
                    f"{config.base_url}/v1/messages",
                    json=self._payload(config, messages),
                    headers=self.headers(config),
                )
                await raise_for_status(response, config)
                try:
                    data = response.json()
                    blocks = data["content"]
                except (ValueError, KeyError, TypeError) as e:
                    raise RequestFailed(f"Failed to parse messages response: {e}") from e
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")

    async def stream_chat(
        self,
        config: ProviderConfig,
        messages: List[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            text = await self.generate(config, messages)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
        except Cancelled:
            logger.info("🛑 [Anthropic] Request cancelled")
            yield StreamEvent.done()
            raise
        if text:
            yield StreamEvent.content_event(text)
        yield StreamEvent.done()
