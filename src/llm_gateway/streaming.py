"""
Provider-neutral stream normalization.

Adapters reduce every raw SDK chunk to a ``StreamDelta``; ``StreamNormalizer``
turns deltas into canonical events and ``EventStream`` hands them to the
consumer through a bounded buffer.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

from llm_gateway.config import OverflowPolicy
from llm_gateway.errors import StreamInterrupted, StreamOverflow
from llm_gateway.types.stream import (
    ContentEvent,
    EndEvent,
    ErrorEvent,
    InterruptedEvent,
    StreamEvent,
    ThinkingEvent,
    ToolInfoEvent,
)
from llm_gateway.types.tool import ToolCall
from llm_gateway.types.usage import UsageRecord

__all__ = [
    "ToolCallDelta",
    "StreamDelta",
    "StreamState",
    "StreamNormalizer",
    "EventStream",
    "canonical_finish_reason",
    "NORMAL_FINISH_REASONS",
]

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolCallDelta:
    """One fragment of a tool call; every field except ``index`` may be missing."""
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass(slots=True)
class StreamDelta:
    content: Optional[str] = None
    thinking: Optional[str] = None
    tool_calls: list[ToolCallDelta] = field(default_factory=list)
    finish_reason: Optional[str] = None
    # raw provider usage fields reported by this chunk, if any
    usage: Optional[Mapping[str, Any]] = None


_FINISH_REASONS: dict[str, str] = {
    # openai / gemini-compatible
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    "content_filter": "content_filter",
    # anthropic
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
    "refusal": "content_filter",
    # gemini native
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
}

# anything else, tool_calls included, ends with an InterruptedEvent
NORMAL_FINISH_REASONS = frozenset({"stop"})


def canonical_finish_reason(raw: Optional[str]) -> str:
    """Map a provider finish reason to a canonical one; unknown values pass through."""
    if not raw:
        return "stop"
    return _FINISH_REASONS.get(raw, raw)


class StreamState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_ACCUMULATING = "tool_accumulating"
    INTERRUPTED = "interrupted"
    ENDED = "ended"
    ERRORED = "errored"


@dataclass(slots=True)
class _ToolAccumulator:
    id: str = ""
    name: str = ""
    arguments: str = ""


UsageBuilder = Callable[[Mapping[str, Any]], list[UsageRecord]]


class StreamNormalizer:
    """
    State machine turning ``StreamDelta`` objects into canonical events.

    ``feed`` is called once per delta, then exactly one of ``finish`` (the
    provider closed the stream) or ``fail`` (transport error). Every call
    returns the events to emit, in order; once a terminal event has been
    produced every further call returns an empty list.

    Args:
        usage_builder: Converts the merged provider usage mapping (empty when
            the provider reported none) into usage records for the ``end``
            event.
    """

    def __init__(self, usage_builder: Optional[UsageBuilder] = None) -> None:
        self.state = StreamState.IDLE
        self._tools: dict[int, _ToolAccumulator] = {}
        self._usage: dict[str, Any] = {}
        self._finish_reason: Optional[str] = None
        self._usage_builder = usage_builder

    @property
    def done(self) -> bool:
        return self.state in (StreamState.ENDED, StreamState.ERRORED)

    def feed(self, delta: StreamDelta) -> list[StreamEvent]:
        if self.done:
            return []
        if self.state is StreamState.IDLE:
            self.state = StreamState.STREAMING

        events: list[StreamEvent] = []
        if delta.thinking:
            events.append(ThinkingEvent(delta.thinking))
        if delta.content:
            events.append(ContentEvent(delta.content))

        for fragment in delta.tool_calls:
            acc = self._tools.setdefault(fragment.index, _ToolAccumulator())
            if fragment.id:
                acc.id += fragment.id
            if fragment.name:
                acc.name += fragment.name
            if fragment.arguments:
                acc.arguments += fragment.arguments
            self.state = StreamState.TOOL_ACCUMULATING

        if delta.usage:
            for key, value in delta.usage.items():
                if value is not None:
                    self._usage[key] = value

        if delta.finish_reason:
            self._finish_reason = delta.finish_reason
        return events

    def tool_calls(self) -> list[ToolCall]:
        """Assemble accumulated tool calls in index order."""
        calls: list[ToolCall] = []
        for index in sorted(self._tools):
            acc = self._tools[index]
            arguments = acc.arguments if acc.arguments.strip() else "{}"
            call = ToolCall(id=acc.id, name=acc.name, arguments_json=arguments)
            try:
                json.loads(arguments)
            except json.JSONDecodeError as exc:
                call.error = f"invalid tool arguments: {exc.msg}"
                logger.warning("Tool call %r (%s) has unparseable arguments", acc.name, acc.id)
            calls.append(call)
        return calls

    def finish(self, finish_reason: Optional[str] = None) -> list[StreamEvent]:
        if self.done:
            return []
        reason = canonical_finish_reason(finish_reason or self._finish_reason)
        calls = self.tool_calls()

        events: list[StreamEvent] = []
        if calls:
            events.append(ToolInfoEvent(calls))
        if reason not in NORMAL_FINISH_REASONS:
            self.state = StreamState.INTERRUPTED
            events.append(InterruptedEvent(reason))

        usage: list[UsageRecord] = []
        if self._usage_builder is not None:
            usage = self._usage_builder(self._usage)
        events.append(EndEvent(tool_calls=calls, usage=usage, finish_reason=reason))
        self.state = StreamState.ENDED
        return events

    def fail(self, error: BaseException) -> list[StreamEvent]:
        if self.done:
            return []
        self.state = StreamState.ERRORED
        return [ErrorEvent(error)]


class EventStream:
    """
    Bounded single-producer single-consumer stream of canonical events.

    A background task pulls events from ``source`` into a buffer of
    ``capacity`` non-terminal events; the terminal event always fits. When the
    buffer is full, ``OverflowPolicy.BLOCK`` suspends the producer (and with
    it the upstream read) while ``OverflowPolicy.DROP`` aborts the upstream and
    terminates the stream with an ``ErrorEvent(StreamOverflow)``.

    Use as an async iterator, preferably inside ``async with`` so the upstream
    call is aborted as soon as the consumer stops reading.
    """

    def __init__(
        self,
        source: AsyncIterator[StreamEvent],
        *,
        capacity: int = 256,
        policy: OverflowPolicy = OverflowPolicy.BLOCK,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._source = source
        self._on_close = on_close
        self.capacity = capacity
        self.policy = OverflowPolicy(policy)
        self._buffer: deque[StreamEvent] = deque()
        self._cond = asyncio.Condition()
        self._task: Optional[asyncio.Task[None]] = None
        self._terminal_queued = False
        self._finished = False
        self._closed = False

    # -- producer ---------------------------------------------------------

    def _ensure_started(self) -> None:
        if self._task is None and not self._closed:
            self._task = asyncio.get_running_loop().create_task(self._pump())

    async def _pump(self) -> None:
        try:
            async for event in self._source:
                if event.is_terminal:
                    await self._put_terminal(event)
                    return
                if not await self._put(event):
                    return
            # source ended without a terminal event
            await self._put_terminal(EndEvent())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Stream producer failed: %s", exc)
            await self._put_terminal(ErrorEvent(exc))
        finally:
            await self._release()

    async def _put(self, event: StreamEvent) -> bool:
        async with self._cond:
            if len(self._buffer) >= self.capacity:
                if self.policy is OverflowPolicy.DROP:
                    logger.warning("Stream buffer full (%d events), aborting upstream", self.capacity)
                    self._buffer.append(ErrorEvent(StreamOverflow(self.capacity)))
                    self._terminal_queued = True
                    self._cond.notify_all()
                    return False
                await self._cond.wait_for(lambda: len(self._buffer) < self.capacity or self._closed)
            if self._closed:
                return False
            self._buffer.append(event)
            self._cond.notify_all()
            return True

    async def _put_terminal(self, event: StreamEvent) -> None:
        async with self._cond:
            if not self._terminal_queued:
                self._buffer.append(event)
                self._terminal_queued = True
            self._cond.notify_all()

    async def _release(self) -> None:
        """Close the source and run ``on_close`` exactly once."""
        on_close, self._on_close = self._on_close, None
        aclose = getattr(self._source, "aclose", None)
        try:
            if aclose is not None:
                await aclose()
            if on_close is not None:
                await on_close()
        except Exception as exc:
            logger.debug("Error while closing upstream stream: %s", exc)

    # -- consumer ---------------------------------------------------------

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._finished or self._closed:
            raise StopAsyncIteration
        self._ensure_started()
        async with self._cond:
            await self._cond.wait_for(lambda: bool(self._buffer) or self._closed)
            if not self._buffer:
                raise StopAsyncIteration
            event = self._buffer.popleft()
            self._cond.notify_all()
        if event.is_terminal:
            self._finished = True
        return event

    async def __aenter__(self) -> "EventStream":
        self._ensure_started()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the stream and abort the upstream call; safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            await asyncio.wait([self._task])
        # the producer may have been cancelled before it ever ran
        await self._release()
        async with self._cond:
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    async def collect(self) -> list[StreamEvent]:
        """Drain the stream into a list, terminal event included."""
        events: list[StreamEvent] = []
        async with self:
            async for event in self:
                events.append(event)
        return events

    async def text(self, *, strict: bool = False) -> str:
        """
        Drain the stream and return the concatenated content.

        Raises the error carried by an ``error`` event. With ``strict=True``
        an ``interrupted`` event raises ``StreamInterrupted`` as well.
        """
        parts: list[str] = []
        for event in await self.collect():
            if isinstance(event, ContentEvent):
                parts.append(event.text)
            elif isinstance(event, InterruptedEvent) and strict:
                raise StreamInterrupted(event.reason)
            elif isinstance(event, ErrorEvent):
                raise event.error
        return "".join(parts)
