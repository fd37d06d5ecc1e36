"""
Ollama Provider
===============

Local daemon backend. Streaming bodies are newline-delimited JSON objects,
each carrying a content fragment and a ``done`` flag.
"""

import json
import logging
from typing import AsyncIterator, List, Optional

from core.cancellation import CancellationToken
from core.errors import Cancelled, RequestFailed
from core.schemas import ChatMessage, ProviderConfig, ProviderKind, PullProgress, StreamEvent
from providers.base import ProviderAdapter, raise_for_status, read_lines, transport_errors

logger = logging.getLogger(__name__)


class OllamaProvider(ProviderAdapter):
    """Adapter for a local Ollama daemon (``/api/tags``, ``/api/chat``, ``/api/pull``)."""

    kind = ProviderKind.OLLAMA

    def _payload(self, config: ProviderConfig, messages: List[ChatMessage], stream: bool) -> dict:
        options = {"temperature": config.temperature}
        if config.max_output_tokens:
            options["num_predict"] = config.max_output_tokens
        return {
            "model": config.model,
            "messages": [m.model_dump() for m in messages],
            "stream": stream,
            "options": options,
        }

    async def list_models(self, config: ProviderConfig) -> List[str]:
        async with transport_errors(config):
            async with self._client(self._probe_timeout()) as client:
                response = await client.get(f"{config.base_url}/api/tags")
                await raise_for_status(response, config)
                try:
                    data = response.json()
                except ValueError as e:
                    raise RequestFailed(f"Failed to parse Ollama response: {e}") from e
        return [m.get("name", "") for m in data.get("models", [])]

    async def generate(self, config: ProviderConfig, messages: List[ChatMessage]) -> str:
        async with transport_errors(config):
            async with self._client(self._request_timeout()) as client:
                response = await client.post(
                    f"{config.base_url}/api/chat",
                    json=self._payload(config, messages, stream=False),
                    headers=self.headers(config),
                )
                await raise_for_status(response, config)
                try:
                    data = response.json()
                    return data["message"]["content"]
                except (ValueError, KeyError, TypeError) as e:
                    raise RequestFailed(f"Failed to parse Ollama response: {e}") from e

    async def stream_chat(
        self,
        config: ProviderConfig,
        messages: List[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            async with transport_errors(config):
                async with self._client(self._stream_timeout()) as client:
                    async with client.stream(
                        "POST",
                        f"{config.base_url}/api/chat",
                        json=self._payload(config, messages, stream=True),
                        headers=self.headers(config),
                    ) as response:
                        await raise_for_status(response, config)
                        async for line in read_lines(response, cancel_token, self.timeouts.stall):
                            fragment, done = parse_ndjson_line(line)
                            if fragment:
                                yield StreamEvent.content_event(fragment)
                            if done:
                                break
        except Cancelled:
            logger.info("🛑 [Ollama] Stream cancelled")
            yield StreamEvent.done()
            raise
        yield StreamEvent.done()

    async def pull_model(
        self,
        config: ProviderConfig,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[PullProgress]:
        logger.info(f"⬇️ [Ollama] Pulling model {config.model}")
        async with transport_errors(config):
            async with self._client(self._stream_timeout()) as client:
                async with client.stream(
                    "POST",
                    f"{config.base_url}/api/pull",
                    json={"model": config.model, "stream": True},
                    headers=self.headers(config),
                ) as response:
                    await raise_for_status(response, config)
                    async for line in read_lines(response, cancel_token, self.timeouts.stall):
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except ValueError:
                            continue
                        if "error" in data:
                            raise RequestFailed(str(data["error"]))
                        yield PullProgress(
                            status=data.get("status", ""),
                            completed=data.get("completed"),
                            total=data.get("total"),
                        )


def parse_ndjson_line(line: str):
    """
    Decode one streamed chat line.

    Returns:
        (content fragment or "", done flag). Blank or unparsable lines give ("", False).

    Raises:
        RequestFailed: the daemon reported an error mid-stream
    """
    line = line.strip()
    if not line:
        return "", False
    try:
        data = json.loads(line)
    except ValueError:
        logger.debug(f"⚠️ [Ollama] Skipping unparsable line: {line[:80]}")
        return "", False
    if not isinstance(data, dict):
        return "", False
    if "error" in data:
        raise RequestFailed(str(data["error"]))
    message = data.get("message")
    content = ""
    if isinstance(message, dict):
        content = message.get("content") or ""
    return content, bool(data.get("done"))
