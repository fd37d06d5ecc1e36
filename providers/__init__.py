"""
LLM Providers
"""
from .anthropic import AnthropicProvider
from .base import LineBuffer, ProviderAdapter
from .ollama import OllamaProvider
from .openai_compatible import OpenAICompatibleProvider
from .provider_client import ProviderClient, collect_stream

__all__ = [
    'ProviderClient',
    'ProviderAdapter',
    'OllamaProvider',
    'OpenAICompatibleProvider',
    'AnthropicProvider',
    'LineBuffer',
    'collect_stream',
]
