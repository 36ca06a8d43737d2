"""Supported LLM vendors."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class Provider(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"

    @property
    def env_var(self) -> str:
        """Environment variable holding the platform key for this provider."""
        return ENV_VARS[self]


# platform keys for the ``internal`` credential strategy
ENV_VARS: Final[dict[Provider, str]] = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.GEMINI: "GEMINI_API_KEY",
}

__all__ = ["Provider", "ENV_VARS"]
