"""Gemini adapter.

Gemini is reached through its OpenAI-compatible endpoint, so this is the
OpenAI adapter with a different default base URL and token parameter.
"""

from __future__ import annotations

from typing import Any, Optional

from llm_gateway.adapters.openai import OpenAIAdapter
from llm_gateway.providers import Provider

__all__ = ["GeminiAdapter", "DEFAULT_GEMINI_BASE_URL"]

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GeminiAdapter(OpenAIAdapter):
    provider = Provider.GEMINI

    def __init__(self, *, base_url: Optional[str] = DEFAULT_GEMINI_BASE_URL, **kwargs: Any) -> None:
        super().__init__(base_url=base_url, **kwargs)

    def _requires_max_completion_tokens(self, model: str) -> bool:
        return False
