from __future__ import annotations

__all__ = [
    "GatewayError",
    "AccessDenied",
    "UnknownModel",
    "UnsupportedProvider",
    "CredentialMissing",
    "UnsupportedCapability",
    "TokenBudgetExceeded",
    "UpstreamProviderError",
    "StreamInterrupted",
    "StreamOverflow",
]


class GatewayError(RuntimeError):
    """Base class for every error raised by llm-gateway."""


class AccessDenied(GatewayError):
    """Raised when the authorizer refuses an action for a candidate."""

    def __init__(self, candidate_id: str, action: str, resource_id: str) -> None:
        super().__init__(f"Access denied: {candidate_id} may not {action} {resource_id}")
        self.candidate_id = candidate_id
        self.action = action
        self.resource_id = resource_id


class UnknownModel(GatewayError):
    """Raised when the model registry has no descriptor for a model id."""


class UnsupportedProvider(GatewayError):
    """Raised when no adapter is registered for a provider."""


class CredentialMissing(GatewayError):
    """Raised when every credential strategy for a model yielded nothing."""

    def __init__(self, model_id: str, modes: list[str]) -> None:
        super().__init__(
            f"No credentials available for model {model_id!r} (tried: {', '.join(modes) or 'none'})"
        )
        self.model_id = model_id
        self.modes = modes


class UnsupportedCapability(GatewayError):
    """Raised before any I/O when a request needs a capability the model lacks."""

    def __init__(self, model_id: str, capability: str) -> None:
        super().__init__(f"Model {model_id!r} does not support {capability}")
        self.model_id = model_id
        self.capability = capability


class TokenBudgetExceeded(GatewayError):
    """Raised before any I/O when prompt plus reserved output cannot fit the context."""

    def __init__(
        self,
        message: str,
        *,
        allowed_tokens: int,
        prompt_tokens: int,
        completion_tokens: int,
        is_user_supplied: bool,
    ) -> None:
        super().__init__(message)
        self.allowed_tokens = allowed_tokens
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.is_user_supplied = is_user_supplied


class UpstreamProviderError(GatewayError):
    """Opaque passthrough of a provider failure.

    Attributes:
        code: HTTP status code or a short classification string.
        message: Human readable summary.
        original_exc: The underlying SDK exception (also set as ``__cause__``).
    """

    def __init__(
        self,
        code: int | str,
        message: str,
        original_exc: BaseException | None = None,
    ) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.original_exc = original_exc
        if original_exc is not None:
            self.__cause__ = original_exc


class StreamInterrupted(GatewayError):
    """Informational: the model stopped for a reason other than a normal stop.

    Content already delivered stays valid.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"Stream interrupted: {reason}")
        self.reason = reason


class StreamOverflow(GatewayError):
    """The consumer fell behind and the bounded stream buffer overflowed."""

    def __init__(self, capacity: int) -> None:
        super().__init__(f"Stream buffer overflow (capacity={capacity})")
        self.capacity = capacity
