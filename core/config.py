"""
Configuration
=============

Settings are read from the environment (and a local .env file, if present).
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from core.errors import ConfigError, Unsupported
from core.schemas import ForgeTarget, ProviderConfig, ProviderKind

DEFAULT_BASE_URLS = {
    ProviderKind.OLLAMA: "http://localhost:11434",
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com",
}

DEFAULT_MODELS = {
    ProviderKind.OLLAMA: "qwen3-coder:30b-a3b-instruct-q4_K_M",
    ProviderKind.OPENAI: "gpt-4o-mini",
    ProviderKind.ANTHROPIC: "claude-sonnet-4-5",
}

FALLBACK_KEY_VARS = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
}

VALIDATION_POLICIES = ("tolerate", "warn", "strict")


class Timeouts(BaseModel):
    connect: float = Field(default=5.0, gt=0)
    stall: float = Field(default=60.0, gt=0)     # max wait for one stream read
    request: float = Field(default=300.0, gt=0)  # non-streaming calls


class Settings(BaseModel):
    """Runtime settings for the generation core."""
    provider: ProviderConfig
    timeouts: Timeouts = Field(default_factory=Timeouts)
    search_enabled: bool = True
    search_proactive: bool = True
    include_conversation: bool = True
    validation_policy: str = "warn"
    forge_target: ForgeTarget = ForgeTarget.GENERIC
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from PLANFORGE_* environment variables.

        Raises:
            Unsupported: unknown provider kind
            ConfigError: any other invalid value
        """
        load_dotenv(env_file)

        kind_name = os.getenv("PLANFORGE_PROVIDER", ProviderKind.OLLAMA.value).strip().lower()
        try:
            kind = ProviderKind(kind_name)
        except ValueError:
            raise Unsupported(f"Unknown provider kind '{kind_name}'")

        api_key = os.getenv("PLANFORGE_API_KEY")
        if not api_key and kind in FALLBACK_KEY_VARS:
            api_key = os.getenv(FALLBACK_KEY_VARS[kind])

        policy = os.getenv("PLANFORGE_VALIDATION_POLICY", "warn").strip().lower()
        if policy not in VALIDATION_POLICIES:
            raise ConfigError(f"validation_policy={policy} (expected one of {', '.join(VALIDATION_POLICIES)})")

        try:
            max_tokens = os.getenv("PLANFORGE_MAX_TOKENS")
            provider = ProviderConfig(
                kind=kind,
                base_url=os.getenv("PLANFORGE_BASE_URL", DEFAULT_BASE_URLS[kind]),
                model=os.getenv("PLANFORGE_MODEL", DEFAULT_MODELS[kind]),
                api_key=api_key or None,
                temperature=float(os.getenv("PLANFORGE_TEMPERATURE", "0.7")),
                max_output_tokens=int(max_tokens) if max_tokens else None,
            )
            return cls(
                provider=provider,
                timeouts=Timeouts(
                    connect=float(os.getenv("PLANFORGE_CONNECT_TIMEOUT", "5")),
                    stall=float(os.getenv("PLANFORGE_STALL_TIMEOUT", "60")),
                    request=float(os.getenv("PLANFORGE_REQUEST_TIMEOUT", "300")),
                ),
                search_enabled=_env_flag("PLANFORGE_SEARCH_ENABLED", True),
                search_proactive=_env_flag("PLANFORGE_SEARCH_PROACTIVE", True),
                include_conversation=_env_flag("PLANFORGE_INCLUDE_CONVERSATION", True),
                validation_policy=policy,
                forge_target=ForgeTarget(os.getenv("PLANFORGE_TARGET", "generic").strip().lower()),
                log_level=os.getenv("PLANFORGE_LOG_LEVEL", "INFO").upper(),
                log_file=os.getenv("PLANFORGE_LOG_FILE") or None,
            )
        except (ValidationError, ValueError) as e:
            raise ConfigError(str(e)) from e


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
