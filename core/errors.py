"""
Error Taxonomy
==============

Every failure surfaced by the generation core is a ForgeError carrying a
stable code, a readable message and, where there is one, a remediation hint.
"""

from typing import Any, Dict, Optional


def redact(text: str, secret: Optional[str]) -> str:
    """Strip a credential from text before it reaches logs or callers."""
    if not secret or not text:
        return text
    return text.replace(secret, "***")


class ForgeError(Exception):
    """Base class for generation core errors."""

    code = "forge_error"
    recoverable = False
    is_failure = True

    def __init__(self, message: str, action: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.action = action

    def to_response(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "action": self.action,
        }


class ConnectionFailure(ForgeError):
    """Backend could not be reached at the transport level."""

    code = "connection_failure"

    def __init__(self, url: str, message: str):
        super().__init__(
            f"Cannot connect to {url}: {message}",
            action=f"Start the model server at {url} and retry",
        )
        self.url = url


class ModelUnavailable(ForgeError):
    """Backend is reachable but does not serve the requested model."""

    code = "model_unavailable"

    def __init__(self, model: str, kind: str = "ollama"):
        if kind == "ollama":
            message = f"Model '{model}' not found. Run: ollama pull {model}"
            action = f"ollama pull {model}"
        else:
            message = f"Model '{model}' is not available on this backend"
            action = f"Check that model '{model}' is enabled for this API key"
        super().__init__(message, action=action)
        self.model = model
        self.kind = kind


class RequestFailed(ForgeError):
    """Backend answered with a non-2xx, non-404 status."""

    code = "request_failed"
    recoverable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(f"LLM request failed: {message}")
        self.status_code = status_code


class StreamInterrupted(ForgeError):
    """Stream stalled or broke off before it finished."""

    code = "stream_interrupted"
    recoverable = True

    def __init__(self, message: str = "Response stream interrupted"):
        super().__init__(message)


class Cancelled(ForgeError):
    """Caller asked to stop. Reported as an outcome, not a failure."""

    code = "cancelled"
    recoverable = True
    is_failure = False

    def __init__(self, message: str = "Response cancelled"):
        super().__init__(message)


class EmptyConversation(ForgeError):
    code = "empty_conversation"

    def __init__(self, message: str = "Cannot generate documents from an empty conversation"):
        super().__init__(message, action="Send at least one message before generating documents")


class ValidationFailed(ForgeError):
    code = "validation_failed"

    def __init__(self, message: str):
        super().__init__(f"Invalid request: {message}", action="Review the request and try again")


class Unsupported(ForgeError):
    """Unknown provider kind, or a capability the kind does not offer."""

    code = "unsupported"

    def __init__(self, message: str):
        super().__init__(message)


class ConfigError(ForgeError):
    code = "config_error"

    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}", action="Fix the configuration value and retry")


class NotFound(ForgeError):
    """Referenced session or resource does not exist."""

    code = "not_found"

    def __init__(self, message: str):
        super().__init__(message, action="Check the session id and retry")
