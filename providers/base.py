"""
Provider Adapter Base
=====================

Common surface for every backend protocol plus the helpers adapters compose:
line buffering across network reads, cancellable/stall-bounded reading, and
HTTP/transport error mapping onto the ForgeError taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import httpx

from core.cancellation import CancellationToken
from core.config import Timeouts
from core.errors import (
    Cancelled,
    ConnectionFailure,
    ForgeError,
    ModelUnavailable,
    RequestFailed,
    StreamInterrupted,
    Unsupported,
    redact,
)
from core.schemas import ChatMessage, ProbeResult, ProviderConfig, ProviderKind, PullProgress, StreamEvent

logger = logging.getLogger(__name__)


class LineBuffer:
    """
    Reassembles newline-terminated lines from arbitrarily split byte chunks.

    Bytes are held until a newline arrives, so a read may end anywhere,
    including inside a multi-byte UTF-8 character.
    """

    __slots__ = ("_pending",)

    def __init__(self):
        self._pending = bytearray()

    def feed(self, chunk: bytes) -> List[str]:
        self._pending.extend(chunk)
        lines = []
        while True:
            newline = self._pending.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._pending[:newline])
            del self._pending[:newline + 1]
            lines.append(raw.decode("utf-8", errors="replace").rstrip("\r"))
        return lines

    def flush(self) -> Optional[str]:
        """Return the unterminated tail, if any, and reset."""
        if not self._pending:
            return None
        raw = bytes(self._pending)
        self._pending.clear()
        return raw.decode("utf-8", errors="replace").rstrip("\r")


async def read_chunks(
    response: httpx.Response,
    cancel_token: Optional[CancellationToken],
    stall_timeout: float,
) -> AsyncIterator[bytes]:
    """
    Yield body chunks, checking the token before every read.

    Raises:
        Cancelled: token tripped
        StreamInterrupted: no chunk arrived within stall_timeout
    """
    chunks = response.aiter_bytes().__aiter__()
    while True:
        if cancel_token is not None and cancel_token.is_cancelled:
            raise Cancelled()
        try:
            chunk = await asyncio.wait_for(chunks.__anext__(), timeout=stall_timeout)
        except StopAsyncIteration:
            return
        except asyncio.TimeoutError:
            raise StreamInterrupted(f"No data received for {stall_timeout:g}s; stream stalled")
        if chunk:
            yield chunk


async def read_lines(
    response: httpx.Response,
    cancel_token: Optional[CancellationToken],
    stall_timeout: float,
) -> AsyncIterator[str]:
    """Complete lines from a streaming body, then the unterminated tail."""
    buffer = LineBuffer()
    async for chunk in read_chunks(response, cancel_token, stall_timeout):
        for line in buffer.feed(chunk):
            yield line
    tail = buffer.flush()
    if tail is not None:
        yield tail


async def raise_for_status(response: httpx.Response, config: ProviderConfig) -> None:
    """Map a non-2xx response: 404 -> ModelUnavailable, anything else -> RequestFailed."""
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="replace")
    if response.status_code == 404:
        raise ModelUnavailable(config.model, config.kind.value)
    message = f"{config.kind.value} returned {response.status_code}: {body[:500]}"
    raise RequestFailed(redact(message, config.secret()), status_code=response.status_code)


@asynccontextmanager
async def transport_errors(config: ProviderConfig):
    """Translate httpx exceptions into the error taxonomy, keeping keys out of messages."""
    secret = config.secret()
    try:
        yield
    except ForgeError:
        raise
    except (httpx.ConnectError, httpx.ConnectTimeout) as e:
        raise ConnectionFailure(config.base_url, redact(str(e) or type(e).__name__, secret)) from e
    except (httpx.ReadTimeout, httpx.ReadError, httpx.RemoteProtocolError) as e:
        raise StreamInterrupted(f"Response stream interrupted: {redact(str(e) or type(e).__name__, secret)}") from e
    except httpx.HTTPError as e:
        raise RequestFailed(redact(str(e) or type(e).__name__, secret)) from e


class ProviderAdapter(ABC):
    """
    One backend protocol behind the shared capability surface.

    Each call opens its own httpx.AsyncClient; nothing is shared between calls
    except the injected transport (used by tests).
    """

    kind: ProviderKind

    def __init__(
        self,
        timeouts: Optional[Timeouts] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeouts = timeouts or Timeouts()
        self.transport = transport

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    def _probe_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeouts.connect)

    def _request_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeouts.request, connect=self.timeouts.connect)

    def _stream_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.timeouts.connect,
            read=self.timeouts.stall,
            write=self.timeouts.connect,
            pool=self.timeouts.connect,
        )

    def headers(self, config: ProviderConfig) -> dict:
        return {"Content-Type": "application/json"}

    # ------------------------------------------------------------------
    # Capability surface
    # ------------------------------------------------------------------
    @abstractmethod
    async def list_models(self, config: ProviderConfig) -> List[str]:
        """Model names the backend reports."""

    async def probe(self, config: ProviderConfig) -> ProbeResult:
        """
        Check connectivity and model availability.

        Never raises for transport problems; an unreachable backend is
        reported as ``reachable=False``.
        """
        try:
            models = await self.list_models(config)
        except (ConnectionFailure, StreamInterrupted) as e:
            logger.info(f"🔌 [{self.kind.value}] Probe failed: {e}")
            return ProbeResult(reachable=False, model_available=False)
        except RequestFailed as e:
            logger.info(f"🔌 [{self.kind.value}] Probe got an error response: {e}")
            return ProbeResult(reachable=(e.status_code or 500) < 500, model_available=False)
        except ModelUnavailable:
            return ProbeResult(reachable=True, model_available=False)
        return ProbeResult(reachable=True, model_available=self.matches_model(config.model, models))

    @staticmethod
    def matches_model(model: str, available: List[str]) -> bool:
        family = model.split(":")[0]
        return any(name == model or name.startswith(f"{family}:") for name in available)

    @abstractmethod
    async def generate(self, config: ProviderConfig, messages: List[ChatMessage]) -> str:
        """Non-streaming completion; returns the full text."""

    @abstractmethod
    def stream_chat(
        self,
        config: ProviderConfig,
        messages: List[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion as StreamEvents.

        Yields content events and exactly one done event. When the token is
        tripped the done event is still yielded, then Cancelled is raised.
        """

    async def pull_model(
        self,
        config: ProviderConfig,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[PullProgress]:
        raise Unsupported(f"Model download is not supported for the '{self.kind.value}' backend")
        yield  # pragma: no cover
