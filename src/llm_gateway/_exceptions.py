"""
Translate noisy provider tracebacks into a unified `UpstreamProviderError`,
while preserving the original exception for full tracebacks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Final, Optional, Type

import anthropic
import openai

from llm_gateway.errors import GatewayError, UpstreamProviderError

__all__: tuple[str, ...] = ("wrap_provider_error",)

_logger = logging.getLogger("llm_gateway.exceptions")

STATUS_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.APIStatusError,
    anthropic.APIStatusError,
)

TIMEOUT_ERRORS: Final[tuple[Type[BaseException], ...]] = (
    openai.APITimeoutError,
    anthropic.APITimeoutError,
    asyncio.TimeoutError,
    TimeoutError,
)

CONN_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.APIConnectionError,
    anthropic.APIConnectionError,
    ConnectionError,
)

RATE_LIMIT_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.RateLimitError,
    anthropic.RateLimitError,
)

API_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.APIError,
    anthropic.APIError,
)


def wrap_provider_error(
    exc: BaseException,
    provider: str,
    logger: Optional[logging.Logger] = None,
) -> GatewayError:
    """Wrap an SDK exception in UpstreamProviderError with a concise message.

    Gateway errors pass through untouched so budget/capability failures keep
    their type.
    """
    if isinstance(exc, GatewayError):
        return exc

    log = logger or _logger

    # timeouts subclass the connection errors in both SDKs, check them first
    if isinstance(exc, RATE_LIMIT_ERRORS):
        code: int | str = 429
        msg = "Rate-limit exceeded - please retry later"
    elif isinstance(exc, TIMEOUT_ERRORS):
        code = "timeout"
        msg = "Request to the LLM provider timed out"
    elif isinstance(exc, CONN_ERRORS):
        code = "connection"
        msg = "Connection problem - unable to reach the LLM provider"
    elif isinstance(exc, STATUS_ERRORS):
        code = getattr(exc, "status_code", "api_error")
        msg = "Provider rejected the request"
    elif isinstance(exc, API_ERRORS):
        code = "api_error"
        msg = "Provider reported an internal error"
    else:
        code = exc.__class__.__name__
        msg = "Unexpected provider failure"

    log.warning("Wrapping %s exception (%s): %s", provider, code, exc)
    return UpstreamProviderError(code, f"{provider}: {msg}: {exc}", exc)
