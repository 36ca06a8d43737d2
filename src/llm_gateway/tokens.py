"""Provider-agnostic approximate token counting."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Union

import tiktoken

from llm_gateway.types.chat import (
    ContentBlock,
    ImageBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = ["count_tokens", "count_message_tokens"]

_ENCODING_NAME = "o200k_base"

# flat estimate for an attached image; the real cost depends on resolution
IMAGE_TOKENS = 85


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(_ENCODING_NAME)


def _count_text(text: str) -> int:
    if not text:
        return 0
    return len(_encoding().encode(text, disallowed_special=()))


def _block_text(block: ContentBlock) -> str:
    if isinstance(block, (TextBlock, ThinkingBlock)):
        return block.text
    if isinstance(block, ToolUseBlock):
        return f"{block.name}{block.arguments_json}"
    if isinstance(block, ToolResultBlock):
        return block.content
    return ""


def count_tokens(content: Union[str, Iterable[ContentBlock], None]) -> int:
    """Approximate token count of plain text or an ordered list of blocks."""
    if content is None:
        return 0
    if isinstance(content, str):
        return _count_text(content)
    total = 0
    for block in content:
        if isinstance(block, ImageBlock):
            total += IMAGE_TOKENS
        else:
            total += _count_text(_block_text(block))
    return total


def count_message_tokens(msg: Message) -> int:
    """Tokens of a whole message: its content plus stringified tool-call arguments."""
    total = count_tokens(msg.content)
    for call in msg.tool_calls:
        total += _count_text(call.name) + _count_text(call.arguments_json)
    return total
