"""
Token budgeting for conversation history.

The context window is built greedily from the most recent message backwards:
recency wins over completeness, and everything older than the first message
that does not fit is discarded. The system message is always kept, first.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, Union

from llm_gateway.errors import TokenBudgetExceeded
from llm_gateway.tokens import count_message_tokens
from llm_gateway.types.chat import Message, Role, is_system_message, merge_system_messages
from llm_gateway.types.model import ModelDescriptor

__all__ = [
    "build_context_window",
    "safe_max_tokens",
    "check_tokens_limit",
    "budget_error",
]

logger = logging.getLogger(__name__)

TokenCounter = Callable[[Message], int]


def budget_error(
    allowed_tokens: int,
    prompt_tokens: int,
    completion_tokens: int,
    is_user_supplied: bool,
) -> TokenBudgetExceeded:
    """Build the caller-facing error; the advice depends on who owns the key."""
    total = prompt_tokens + completion_tokens
    if is_user_supplied:
        message = (
            f"This model's maximum context length is {allowed_tokens} tokens "
            "(the sum of the prompt and the maximum output tokens). However, you "
            f"requested approx {total} tokens ({prompt_tokens} in the prompt, "
            f"{completion_tokens} in the output). Please reduce the length of "
            "either the input prompt or the maximum output tokens."
        )
    else:
        message = (
            f"Input exceeds max tokens limit of {allowed_tokens}. "
            "Please add your API key to unlock full length."
        )
    return TokenBudgetExceeded(
        message,
        allowed_tokens=allowed_tokens,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        is_user_supplied=is_user_supplied,
    )


def build_context_window(
    system_prompt: Union[str, Message, None],
    messages: Sequence[Message],
    max_input_tokens: Optional[int],
    max_output_tokens: int,
    context_tokens: int,
    *,
    count: TokenCounter = count_message_tokens,
    is_user_supplied: bool = False,
) -> list[Message]:
    """
    Select the most recent messages that fit the model's context window.

    Args:
        system_prompt: System prompt text or message; never dropped.
        messages: Chronological history. System messages in it are merged
            after ``system_prompt`` into the single leading system message.
        max_input_tokens: Caller ceiling for the prompt; None means no ceiling.
        max_output_tokens: Tokens reserved for the completion.
        context_tokens: The model's total context size.
        count: Token counter for one message.
        is_user_supplied: Whether the credentials belong to the caller; only
            changes the wording of the error.

    Returns:
        The system message (if any) followed by the kept messages in their
        original order.

    Raises:
        TokenBudgetExceeded: The system message plus the most recent message
            cannot fit next to the reserved output tokens.
    """
    input_budget = context_tokens if max_input_tokens is None else min(max_input_tokens, context_tokens)
    overflow = input_budget + max_output_tokens - context_tokens
    if overflow > 0:
        input_budget -= overflow

    prompt: list[Message] = []
    if isinstance(system_prompt, Message):
        prompt.append(system_prompt)
    elif system_prompt:
        prompt.append(Message(Role.SYSTEM, system_prompt))
    system = merge_system_messages(prompt + [m for m in messages if is_system_message(m)])

    system_tokens = count(system) if system is not None else 0
    remaining = input_budget - system_tokens

    history = [m for m in messages if not is_system_message(m)]

    if remaining < 0:
        latest = count(history[-1]) if history else 0
        raise budget_error(context_tokens, system_tokens + latest, max_output_tokens, is_user_supplied)

    kept: list[Message] = []
    used = 0
    for msg in reversed(history):
        tokens = count(msg)
        if used + tokens > remaining:
            break
        used += tokens
        kept.append(msg)
    kept.reverse()

    if history and not kept:
        raise budget_error(
            context_tokens, system_tokens + count(history[-1]), max_output_tokens, is_user_supplied
        )

    dropped = len(history) - len(kept)
    if dropped:
        logger.debug("Context window dropped %d oldest message(s) (%d tokens kept)", dropped, used)

    return ([system] if system is not None else []) + kept


def safe_max_tokens(
    requested: Optional[int],
    descriptor: ModelDescriptor,
    is_user_supplied: bool,
) -> int:
    """Clamp requested output tokens to what the model allows for this key."""
    allowed = descriptor.allowed_completion_tokens(is_user_supplied)
    if not requested or requested <= 0:
        return allowed
    return min(requested, allowed)


def check_tokens_limit(
    prompt_tokens: int,
    completion_tokens: int,
    descriptor: ModelDescriptor,
    is_user_supplied: bool,
) -> None:
    """Raise TokenBudgetExceeded when prompt plus completion exceed the allowed context."""
    allowed = descriptor.allowed_context_tokens(is_user_supplied)
    if prompt_tokens + completion_tokens > allowed:
        raise budget_error(allowed, prompt_tokens, completion_tokens, is_user_supplied)
