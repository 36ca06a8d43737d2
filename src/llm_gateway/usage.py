"""
Usage normalization and metering.

Providers report usage in different shapes; ``normalize_usage`` maps all of
them onto ``UsageRecord``. ``UsageReporter`` hands records to an external
metering sink without ever failing the caller's request.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Mapping, Optional, Protocol, Union

from llm_gateway.access import AccessCandidate
from llm_gateway.types.usage import KeySource, UsageRecord

__all__ = [
    "UsageContext",
    "normalize_usage",
    "usage_fields",
    "search_tool_cost",
    "SEARCH_TOOL_COSTS",
    "MeteringSink",
    "UsageReporter",
]

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UsageContext:
    """Attribution stamped onto every record."""
    key_source: KeySource = KeySource.PLATFORM
    agent_id: Optional[str] = None
    team_id: Optional[str] = None
    source_id: Optional[str] = None

    @classmethod
    def for_call(
        cls, candidate: AccessCandidate, *, user_key: bool, source_id: Optional[str] = None
    ) -> "UsageContext":
        return cls(
            key_source=KeySource.USER if user_key else KeySource.PLATFORM,
            agent_id=candidate.agent_id,
            team_id=candidate.team_id,
            source_id=source_id,
        )


def usage_fields(usage: Any) -> dict[str, Any]:
    """Plain dict view of an SDK usage object or mapping."""
    if usage is None:
        return {}
    if isinstance(usage, Mapping):
        return dict(usage)
    if hasattr(usage, "model_dump"):
        return usage.model_dump(exclude_none=True)
    return {k: v for k, v in vars(usage).items() if not k.startswith("_")}


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _detail(fields: Mapping[str, Any], section: str, key: str) -> int:
    details = fields.get(section)
    if details is None:
        return 0
    return _int(usage_fields(details).get(key))


def _from_openai(f: Mapping[str, Any]) -> dict[str, int]:
    # prompt_tokens already includes the cached part
    cached = _detail(f, "prompt_tokens_details", "cached_tokens")
    return {
        "input_tokens": max(_int(f.get("prompt_tokens")) - cached, 0),
        "output_tokens": _int(f.get("completion_tokens")),
        "cached_read_tokens": cached,
        "reasoning_tokens": _detail(f, "completion_tokens_details", "reasoning_tokens"),
    }


def _from_anthropic(f: Mapping[str, Any]) -> dict[str, int]:
    return {
        "input_tokens": _int(f.get("input_tokens")),
        "output_tokens": _int(f.get("output_tokens")),
        "cached_read_tokens": _int(f.get("cache_read_input_tokens")),
        "cached_write_tokens": _int(f.get("cache_creation_input_tokens")),
    }


def _from_bedrock(f: Mapping[str, Any]) -> dict[str, int]:
    return {
        "input_tokens": _int(f.get("inputTokens")),
        "output_tokens": _int(f.get("outputTokens")),
        "cached_read_tokens": _int(f.get("cacheReadInputTokenCount") or f.get("cacheReadInputTokens")),
        "cached_write_tokens": _int(f.get("cacheWriteInputTokenCount") or f.get("cacheWriteInputTokens")),
    }


def _from_gemini(f: Mapping[str, Any]) -> dict[str, int]:
    cached = _int(f.get("cachedContentTokenCount"))
    return {
        "input_tokens": max(_int(f.get("promptTokenCount")) - cached, 0),
        "output_tokens": _int(f.get("candidatesTokenCount")),
        "cached_read_tokens": cached,
        "reasoning_tokens": _int(f.get("thoughtsTokenCount")),
    }


def normalize_usage(provider_usage: Any, context: Optional[UsageContext] = None) -> UsageRecord:
    """
    Map provider usage onto a ``UsageRecord``.

    Accepts a ``UsageRecord`` (returned with the context applied, so applying
    this twice changes nothing), an OpenAI, Anthropic, Bedrock or Gemini
    shaped mapping, or an SDK pydantic usage object.
    """
    ctx = context or UsageContext()
    if isinstance(provider_usage, UsageRecord):
        if context is None:
            return provider_usage
        return replace(
            provider_usage,
            key_source=ctx.key_source,
            agent_id=ctx.agent_id,
            team_id=ctx.team_id,
            source_id=ctx.source_id,
        )

    f = usage_fields(provider_usage)
    if "prompt_tokens" in f or "completion_tokens" in f:
        tokens = _from_openai(f)
    elif "inputTokens" in f or "outputTokens" in f:
        tokens = _from_bedrock(f)
    elif "promptTokenCount" in f or "candidatesTokenCount" in f:
        tokens = _from_gemini(f)
    else:
        tokens = _from_anthropic(f)

    cost = f.get("cost")
    return UsageRecord(
        **tokens,
        cost=float(cost) if cost is not None else None,
        key_source=ctx.key_source,
        agent_id=ctx.agent_id,
        team_id=ctx.team_id,
        source_id=ctx.source_id,
    )


# USD per search call, keyed by model family then search context size
SEARCH_TOOL_COSTS: dict[str, dict[str, float]] = {
    "gpt-4.1": {"low": 0.030, "medium": 0.035, "high": 0.050},
    "gpt-4o": {"low": 0.030, "medium": 0.035, "high": 0.050},
    "gpt-4o-search": {"low": 0.030, "medium": 0.035, "high": 0.050},
    "gpt-4.1-mini": {"low": 0.025, "medium": 0.0275, "high": 0.030},
    "gpt-4o-mini": {"low": 0.025, "medium": 0.0275, "high": 0.030},
    "gpt-4o-mini-search": {"low": 0.025, "medium": 0.0275, "high": 0.030},
}


def search_tool_cost(model_name: str, context_size: str = "medium") -> Optional[float]:
    """Flat cost of one web-search call, or None for unpriced models."""
    # longest prefix wins so "gpt-4o-mini-..." is not priced as "gpt-4o"
    for family in sorted(SEARCH_TOOL_COSTS, key=len, reverse=True):
        if model_name.startswith(family):
            return SEARCH_TOOL_COSTS[family].get(context_size)
    return None


class MeteringSink(Protocol):
    def emit(self, record: UsageRecord) -> Union[None, Awaitable[None]]:
        ...


class UsageReporter:
    """Fire-and-forget delivery of usage records to a metering sink."""

    def __init__(self, sink: Optional[MeteringSink] = None, *, logger: Optional[logging.Logger] = None) -> None:
        self.sink = sink
        self.logger = logger or _logger
        self._pending: set[asyncio.Task[None]] = set()

    def report(self, records: list[UsageRecord]) -> None:
        """Emit every record; sink failures are logged, never raised."""
        if self.sink is None:
            return
        for record in records:
            try:
                result = self.sink.emit(record)
            except Exception as exc:
                self.logger.warning("Metering sink rejected usage record: %s", exc)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._await_emit(result))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _await_emit(self, result: Awaitable[None]) -> None:
        try:
            await result
        except Exception as exc:
            self.logger.warning("Metering sink failed: %s", exc)

    async def drain(self) -> None:
        """Wait for in-flight async emits; mostly useful at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*self._pending)
