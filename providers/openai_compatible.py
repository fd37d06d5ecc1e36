"""
OpenAI-Compatible Provider
==========================

Async implementation for any endpoint speaking the chat completions
protocol (OpenAI, OpenRouter, vLLM, LM Studio, ...). Streaming uses
server-sent events: ``data: {...}`` lines ending with ``data: [DONE]``.
"""

import json
import logging
from typing import AsyncIterator, Dict, List, Optional, Set

from core.cancellation import CancellationToken
from core.errors import Cancelled, RequestFailed
from core.schemas import ChatMessage, ProviderConfig, ProviderKind, StreamEvent
from providers.base import ProviderAdapter, raise_for_status, read_lines, transport_errors

logger = logging.getLogger(__name__)

SSE_DONE = "[DONE]"


def parse_sse_line(line: str) -> Optional[str]:
    """
    Extract the payload of an SSE ``data:`` line.

    Comments (``:keepalive``), other fields (``event:``, ``id:``) and blank
    separators return None and never reach the response.
    """
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload


class OpenAICompatibleProvider(ProviderAdapter):
    """
    Chat completions over HTTP.

    Supports:
    - Non-streaming completion
    - SSE streaming with per-choice finish tracking
    - Bearer authentication when an API key is configured
    """

    kind = ProviderKind.OPENAI

    def headers(self, config: ProviderConfig) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.secret()}"
        return headers

    def _payload(self, config: ProviderConfig, messages: List[ChatMessage], stream: bool) -> dict:
        payload = {
            "model": config.model,
            "messages": [m.model_dump() for m in messages],
            "temperature": config.temperature,
            "stream": stream,
        }
        if config.max_output_tokens:
            payload["max_tokens"] = config.max_output_tokens
        return payload

    async def list_models(self, config: ProviderConfig) -> List[str]:
        async with transport_errors(config):
            async with self._client(self._probe_timeout()) as client:
                response = await client.get(f"{config.base_url}/models", headers=self.headers(config))
                await raise_for_status(response, config)
                try:
                    data = response.json()
                except ValueError as e:
                    raise RequestFailed(f"Failed to parse model list: {e}") from e
        return [m.get("id", "") for m in data.get("data", [])]

    async def generate(self, config: ProviderConfig, messages: List[ChatMessage]) -> str:
        async with transport_errors(config):
            async with self._client(self._request_timeout()) as client:
                response = await client.post(
                    f"{config.base_url}/chat/completions",
                    json=self._payload(config, messages, stream=False),
                    headers=self.headers(config),
                )
                await raise_for_status(response, config)
                try:
                    data = response.json()
                    return data["choices"][0]["message"]["content"] or ""
                except (ValueError, KeyError, IndexError, TypeError) as e:
                    raise RequestFailed(f"Failed to parse completion response: {e}") from e

    async def stream_chat(
        self,
        config: ProviderConfig,
        messages: List[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        finished: Set[int] = set()
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            async with transport_errors(config):
                async with self._client(self._stream_timeout()) as client:
                    async with client.stream(
                        "POST",
                        f"{config.base_url}/chat/completions",
                        json=self._payload(config, messages, stream=True),
                        headers=self.headers(config),
                    ) as response:
                        await raise_for_status(response, config)
                        async for line in read_lines(response, cancel_token, self.timeouts.stall):
                            payload = parse_sse_line(line)
                            if payload is None:
                                continue
                            if payload.strip() == SSE_DONE:
                                break
                            for fragment in self._deltas(payload, finished):
                                yield StreamEvent.content_event(fragment)
        except Cancelled:
            logger.info("🛑 [OpenAI] Stream cancelled")
            yield StreamEvent.done()
            raise
        yield StreamEvent.done()

    @staticmethod
    def _deltas(payload: str, finished: Set[int]) -> List[str]:
        """Content fragments for the primary choice; finished choices contribute nothing more."""
        try:
            data = json.loads(payload)
        except ValueError:
            logger.debug(f"⚠️ [OpenAI] Skipping unparsable event: {payload[:80]}")
            return []
        if not isinstance(data, dict):
            return []
        if "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RequestFailed(message or "stream reported an error")

        choices = data.get("choices")
        if not isinstance(choices, list):
            return []

        fragments = []
        for choice in choices:
            if not isinstance(choice, dict):
                continue
            index = choice.get("index", 0)
            if index in finished:
                continue
            delta = choice.get("delta")
            content = delta.get("content") if isinstance(delta, dict) else None
            if index == 0 and isinstance(content, str) and content:
                fragments.append(content)
            if choice.get("finish_reason") is not None:
                finished.add(index)
        return fragments
