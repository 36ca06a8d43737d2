"""Canonical message and request types."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Iterable, Literal, Optional, Union

from llm_gateway.types.tool import ToolCall, ToolChoice, ToolDefinition

__all__ = [
    "Role",
    "TextBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ThinkingBlock",
    "ImageBlock",
    "ContentBlock",
    "Message",
    "WebSearchOptions",
    "ChatRequest",
    "is_system_message",
    "merge_system_messages",
]


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    id: str
    name: str
    arguments_json: str = "{}"
    type: Literal["tool_use"] = "tool_use"


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    tool_call_id: str
    content: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"


@dataclass(frozen=True, slots=True)
class ThinkingBlock:
    text: str
    signature: str | None = None
    type: Literal["thinking"] = "thinking"


@dataclass(frozen=True, slots=True)
class ImageBlock:
    """An image given either inline (``data``) or by ``url``."""
    mime_type: str
    data: bytes | None = None
    url: str | None = None
    type: Literal["image"] = "image"

    def base64_data(self) -> str:
        return base64.b64encode(self.data or b"").decode("ascii")

    def data_url(self) -> str:
        if self.url:
            return self.url
        return f"data:{self.mime_type};base64,{self.base64_data()}"


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock, ImageBlock]


@dataclass(frozen=True, slots=True)
class Message:
    """One conversation turn. Ordering of messages is significant."""
    role: Role
    content: str | tuple[ContentBlock, ...] = ""
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        # accept plain strings / lists from callers
        object.__setattr__(self, "role", Role(self.role))
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if isinstance(self.tool_calls, list):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(Role.SYSTEM, text)

    @classmethod
    def user(cls, content: str | list[ContentBlock]) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(
        cls,
        content: str | list[ContentBlock] = "",
        tool_calls: Optional[list[ToolCall]] = None,
    ) -> "Message":
        return cls(Role.ASSISTANT, content, tuple(tool_calls or ()))

    @classmethod
    def tool(cls, tool_call_id: str, content: str, *, is_error: bool = False) -> "Message":
        return cls(Role.TOOL, (ToolResultBlock(tool_call_id, content, is_error),))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        if isinstance(self.content, str):
            return (TextBlock(self.content),) if self.content else ()
        return self.content

    def text(self) -> str:
        """Concatenated text of the message, ignoring non-text blocks."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def is_empty(self) -> bool:
        return not self.tool_calls and not any(
            not isinstance(b, TextBlock) or b.text.strip() for b in self.blocks
        )

    @property
    def tool_call_ids(self) -> set[str]:
        """Ids of every call this turn makes, as tool_calls or tool_use blocks."""
        ids = {c.id for c in self.tool_calls}
        ids.update(b.id for b in self.blocks if isinstance(b, ToolUseBlock))
        return ids

    def with_content(self, content: str | tuple[ContentBlock, ...]) -> "Message":
        return replace(self, content=content)


def is_system_message(msg: Message) -> bool:
    return msg.role is Role.SYSTEM


def merge_system_messages(messages: Iterable[Message]) -> Optional[Message]:
    """Fold every non-empty system message into one, texts joined by blank lines."""
    systems = [m for m in messages if is_system_message(m) and not m.is_empty()]
    if not systems:
        return None
    if len(systems) == 1:
        return systems[0]
    return Message(Role.SYSTEM, "\n\n".join(m.text() for m in systems))


@dataclass(frozen=True, slots=True)
class WebSearchOptions:
    context_size: Literal["low", "medium", "high"] = "medium"


@dataclass(slots=True)
class ChatRequest:
    """Caller-facing canonical request."""

    model_id: str
    messages: list[Message]
    tools: Optional[list[ToolDefinition]] = None
    tool_choice: Optional[ToolChoice] = None
    max_output_tokens: Optional[int] = None
    max_input_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    stop_sequences: Optional[list[str]] = None
    response_format: Optional[Literal["json"]] = None
    files: list[ImageBlock] = field(default_factory=list)
    reasoning_effort: Optional[str] = None
    web_search: Optional[WebSearchOptions] = None
    # per-call timeout in seconds; None uses the provider default
    timeout: Optional[float] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def split_system(self) -> tuple[Optional[Message], list[Message]]:
        """Return the merged system message and every non-system message."""
        system = merge_system_messages(self.messages)
        others = [m for m in self.messages if not is_system_message(m)]
        return system, others
