"""Model descriptors as resolved from the model registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

from llm_gateway.providers import Provider

if TYPE_CHECKING:
    from llm_gateway.credentials import Credentials

__all__ = ["Capabilities", "CredentialMode", "ModelDescriptor", "DEFAULT_MAX_TOKENS"]

# completion ceiling applied to platform-keyed calls when a model declares none
DEFAULT_MAX_TOKENS = 2048


class CredentialMode(StrEnum):
    NONE = "none"
    INTERNAL = "internal"
    VAULT = "vault"
    BEDROCK_VAULT = "bedrock_vault"
    VERTEXAI_VAULT = "vertexai_vault"


@dataclass(frozen=True, slots=True)
class Capabilities:
    tools: bool = False
    vision: bool = False
    reasoning: bool = False
    image_gen: bool = False
    web_search: bool = False
    structured_output: bool = False


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """Immutable description of one model.

    ``context_tokens`` / ``max_completion_tokens`` are the full limits, used
    when the caller supplies their own key. Calls running on a platform key are
    held to ``platform_context_tokens`` / ``platform_completion_tokens``.
    """

    model_id: str
    provider: Provider
    context_tokens: int
    max_completion_tokens: int
    credential_mode: Union[CredentialMode, Sequence[CredentialMode], "Credentials"] = CredentialMode.INTERNAL
    base_url: Optional[str] = None
    capabilities: Capabilities = field(default_factory=Capabilities)
    # provider-specific settings, e.g. vault key names for cloud credentials
    settings: dict[str, Any] = field(default_factory=dict)
    platform_context_tokens: Optional[int] = None
    platform_completion_tokens: Optional[int] = None
    # name sent upstream when it differs from model_id
    alias: Optional[str] = None

    @property
    def api_model_name(self) -> str:
        return self.alias or self.model_id

    def credential_modes(self) -> list[Any]:
        mode = self.credential_mode
        if mode is None:
            return [CredentialMode.NONE]
        if isinstance(mode, (str, CredentialMode)):
            return [CredentialMode(mode)]
        if isinstance(mode, Sequence):
            return [CredentialMode(m) if isinstance(m, str) else m for m in mode] or [CredentialMode.NONE]
        # literal Credentials object
        return [mode]

    def allowed_context_tokens(self, user_key: bool) -> int:
        if user_key or self.platform_context_tokens is None:
            return self.context_tokens
        return min(self.platform_context_tokens, self.context_tokens)

    def allowed_completion_tokens(self, user_key: bool) -> int:
        if user_key:
            return self.max_completion_tokens
        if self.platform_completion_tokens is not None:
            return min(self.platform_completion_tokens, self.max_completion_tokens)
        return min(DEFAULT_MAX_TOKENS, self.max_completion_tokens)
