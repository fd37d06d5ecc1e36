"""
Cancellation
============

A cancellation token is the only state shared between the task that streams
a response and the task that asks it to stop. Tokens are keyed by session in
a registry owned by whoever coordinates sessions (see ChatService).
"""

import logging
import threading
from typing import Dict, Optional

from core.errors import Cancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe one-way flag."""

    __slots__ = ("_event",)

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled()


class CancellationRegistry:
    """
    Active tokens keyed by session id.

    Example:
        >>> registry = CancellationRegistry()
        >>> token = registry.register("s1")
        >>> registry.cancel("s1")
        True
        >>> token.is_cancelled
        True
    """

    def __init__(self):
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, session_id: str) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            previous = self._tokens.get(session_id)
            if previous is not None:
                # a new turn supersedes a stream still in flight
                previous.cancel()
            self._tokens[session_id] = token
        return token

    def cancel(self, session_id: str) -> bool:
        with self._lock:
            token = self._tokens.get(session_id)
        if token is None:
            return False
        token.cancel()
        logger.info(f"🛑 [Cancel] Session {session_id} cancellation requested")
        return True

    def release(self, session_id: str, token: Optional[CancellationToken] = None) -> None:
        with self._lock:
            current = self._tokens.get(session_id)
            if current is not None and (token is None or current is token):
                del self._tokens[session_id]

    def active(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._tokens
