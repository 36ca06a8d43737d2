"""Canonical streaming events.

A stream yields zero or more ``content`` / ``thinking`` / ``toolInfo``
events (plus at most one ``interrupted``) followed by exactly one terminal
event, ``end`` or ``error``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Union

from llm_gateway.types.tool import ToolCall
from llm_gateway.types.usage import UsageRecord

__all__ = [
    "ContentEvent",
    "ThinkingEvent",
    "ToolInfoEvent",
    "InterruptedEvent",
    "EndEvent",
    "ErrorEvent",
    "StreamEvent",
]


@dataclass(frozen=True, slots=True)
class ContentEvent:
    text: str
    name: ClassVar[str] = "content"
    is_terminal: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class ThinkingEvent:
    text: str
    name: ClassVar[str] = "thinking"
    is_terminal: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class ToolInfoEvent:
    calls: list[ToolCall]
    name: ClassVar[str] = "toolInfo"
    is_terminal: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class InterruptedEvent:
    reason: str
    name: ClassVar[str] = "interrupted"
    is_terminal: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class EndEvent:
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: list[UsageRecord] = field(default_factory=list)
    finish_reason: str = "stop"
    name: ClassVar[str] = "end"
    is_terminal: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    error: BaseException
    name: ClassVar[str] = "error"
    is_terminal: ClassVar[bool] = True


StreamEvent = Union[ContentEvent, ThinkingEvent, ToolInfoEvent, InterruptedEvent, EndEvent, ErrorEvent]
