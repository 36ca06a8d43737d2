from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from llm_gateway.types.chat import Message, TextBlock, ThinkingBlock
from llm_gateway.types.tool import ToolCall
from llm_gateway.types.usage import UsageRecord

__all__ = ["ChatResponse", "InvalidResponseFormat", "parse_json_response"]

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class InvalidResponseFormat:
    """Returned, not raised, when structured output fails to parse."""
    error: str
    raw_text: str
    details: Optional[str] = None


def parse_json_response(text: str) -> Union[Any, InvalidResponseFormat]:
    """Parse model output as JSON, tolerating a surrounding markdown fence."""
    candidate = text.strip()
    match = _FENCE.match(candidate)
    if match:
        candidate = match.group(1)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        return InvalidResponseFormat(
            error="Model response is not valid JSON",
            raw_text=text,
            details=f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
        )


@dataclass
class ChatResponse:
    """Unified response object for all providers."""

    content: str
    finish_reason: str = "stop"
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: list[UsageRecord] = field(default_factory=list)
    thinking: str = ""
    raw: Any = None
    # parsed JSON (or InvalidResponseFormat) when JSON output was requested
    structured: Any = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def is_invalid_format(self) -> bool:
        return isinstance(self.structured, InvalidResponseFormat)

    def assistant_message(self) -> Message:
        """Canonical assistant turn to append to the history for the next call."""
        blocks: list[Any] = []
        if self.thinking:
            blocks.append(ThinkingBlock(self.thinking))
        if self.content:
            blocks.append(TextBlock(self.content))
        if len(blocks) == 1 and isinstance(blocks[0], TextBlock):
            return Message.assistant(self.content, self.tool_calls)
        return Message.assistant(blocks, self.tool_calls)
