"""Provider adapters: canonical requests in, canonical responses and events out."""

from .base import JSON_RESPONSE_INSTRUCTION, ProviderAdapter, ProviderRequest
from .openai import OpenAIAdapter
from .anthropic import AnthropicAdapter, ephemeral
from .gemini import GeminiAdapter

__all__ = [
    "ProviderAdapter",
    "ProviderRequest",
    "JSON_RESPONSE_INSTRUCTION",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "ephemeral",
]
