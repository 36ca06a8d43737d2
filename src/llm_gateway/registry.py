"""Model descriptor lookup."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional, Protocol

from llm_gateway.errors import UnknownModel
from llm_gateway.providers import Provider
from llm_gateway.types.model import Capabilities, CredentialMode, ModelDescriptor

__all__ = ["ModelRegistry", "StaticModelRegistry", "DEFAULT_MODELS", "DEFAULT_ALIASES"]

logger = logging.getLogger(__name__)

# caller's own key first, platform key otherwise
_USER_THEN_PLATFORM = (CredentialMode.VAULT, CredentialMode.INTERNAL)

_CHAT = Capabilities(tools=True, vision=True, structured_output=True)
_REASONING = Capabilities(tools=True, vision=True, structured_output=True, reasoning=True)

DEFAULT_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        model_id="gpt-4o-mini",
        provider=Provider.OPENAI,
        context_tokens=128_000,
        max_completion_tokens=16_384,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=_CHAT,
        platform_context_tokens=64_000,
    ),
    ModelDescriptor(
        model_id="gpt-4o-mini-search-preview",
        provider=Provider.OPENAI,
        context_tokens=128_000,
        max_completion_tokens=16_384,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=Capabilities(web_search=True, structured_output=True),
    ),
    ModelDescriptor(
        model_id="gpt-4.1",
        provider=Provider.OPENAI,
        context_tokens=1_047_576,
        max_completion_tokens=32_768,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=_CHAT,
        platform_context_tokens=128_000,
    ),
    ModelDescriptor(
        model_id="o4-mini",
        provider=Provider.OPENAI,
        context_tokens=200_000,
        max_completion_tokens=100_000,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=_REASONING,
        platform_context_tokens=64_000,
        platform_completion_tokens=8_192,
    ),
    ModelDescriptor(
        model_id="claude-sonnet-4",
        alias="claude-sonnet-4-20250514",
        provider=Provider.ANTHROPIC,
        context_tokens=200_000,
        max_completion_tokens=64_000,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=_REASONING,
        platform_context_tokens=64_000,
    ),
    ModelDescriptor(
        model_id="claude-3-5-haiku",
        alias="claude-3-5-haiku-latest",
        provider=Provider.ANTHROPIC,
        context_tokens=200_000,
        max_completion_tokens=8_192,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=_CHAT,
        platform_context_tokens=64_000,
    ),
    ModelDescriptor(
        model_id="gemini-2.5-flash",
        provider=Provider.GEMINI,
        context_tokens=1_048_576,
        max_completion_tokens=65_536,
        credential_mode=_USER_THEN_PLATFORM,
        capabilities=_REASONING,
        platform_context_tokens=128_000,
    ),
)

DEFAULT_ALIASES: dict[str, str] = {
    "claude-sonnet-4-20250514": "claude-sonnet-4",
    "claude-3-5-haiku-latest": "claude-3-5-haiku",
}


class ModelRegistry(Protocol):
    def get_model_descriptor(self, model_id: str) -> ModelDescriptor:
        ...


class StaticModelRegistry:
    """In-memory registry; ids may also be looked up through aliases."""

    def __init__(
        self,
        models: Optional[Iterable[ModelDescriptor]] = None,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> None:
        if aliases is None:
            aliases = DEFAULT_ALIASES if models is None else {}
        self._models: dict[str, ModelDescriptor] = {}
        self._aliases: dict[str, str] = dict(aliases)
        for descriptor in DEFAULT_MODELS if models is None else models:
            self.register(descriptor)

    def register(self, descriptor: ModelDescriptor, *aliases: str) -> None:
        if descriptor.model_id in self._models:
            logger.debug("Replacing descriptor for %s", descriptor.model_id)
        self._models[descriptor.model_id] = descriptor
        for alias in aliases:
            self._aliases[alias] = descriptor.model_id

    def get_model_descriptor(self, model_id: str) -> ModelDescriptor:
        key = self._aliases.get(model_id, model_id)
        try:
            return self._models[key]
        except KeyError:
            raise UnknownModel(f"Unknown model: {model_id!r}") from None

    def __contains__(self, model_id: object) -> bool:
        return isinstance(model_id, str) and self._aliases.get(model_id, model_id) in self._models

    def model_ids(self) -> list[str]:
        return sorted(self._models)
