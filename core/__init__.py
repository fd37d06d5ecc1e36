from .cancellation import CancellationRegistry, CancellationToken
from .config import Settings, Timeouts
from .errors import (
    Cancelled,
    ConfigError,
    ConnectionFailure,
    EmptyConversation,
    ForgeError,
    ModelUnavailable,
    RequestFailed,
    StreamInterrupted,
    Unsupported,
    ValidationFailed,
)
from .schemas import ChatMessage, ProviderConfig, ProviderKind, StreamEvent

__all__ = [
    "CancellationRegistry",
    "CancellationToken",
    "Settings",
    "Timeouts",
    "ForgeError",
    "ConnectionFailure",
    "ModelUnavailable",
    "RequestFailed",
    "StreamInterrupted",
    "Cancelled",
    "EmptyConversation",
    "ValidationFailed",
    "Unsupported",
    "ConfigError",
    "ChatMessage",
    "ProviderConfig",
    "ProviderKind",
    "StreamEvent",
]
