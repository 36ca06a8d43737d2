"""Test doubles: fake SDK clients, streams, secret store and metering sink."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Optional

from openai.types.chat import ChatCompletion

from llm_gateway.types.chat import Message


def word_count(msg: Message) -> int:
    """Deterministic token counter: one token per whitespace-separated word."""
    total = len(msg.text().split())
    for call in msg.tool_calls:
        total += 1 + len(call.arguments_json.split())
    return total


# =============================================================================
# Test Doubles
# =============================================================================


class FakeStream:
    """Async iterator over canned chunks that records whether it was closed."""

    def __init__(self, chunks: list[Any], *, fail_after: Optional[int] = None, error: Optional[BaseException] = None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.error = error or ConnectionError("connection reset")
        self.closed = False
        self.delivered = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        if self.fail_after is not None and self.delivered >= self.fail_after:
            raise self.error
        if self.delivered >= len(self.chunks):
            raise StopAsyncIteration
        chunk = self.chunks[self.delivered]
        self.delivered += 1
        return chunk

    async def close(self) -> None:
        self.closed = True


class _Completions:
    def __init__(self, owner: "FakeOpenAIClient"):
        self.owner = owner

    async def create(self, **kwargs: Any) -> Any:
        self.owner.calls.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        if kwargs.get("stream"):
            return self.owner.stream
        return self.owner.response


@dataclass
class FakeOpenAIClient:
    """Stands in for AsyncOpenAI: ``chat.completions.create`` and ``with_options``."""

    response: Any = None
    stream: Any = None
    error: Optional[BaseException] = None
    calls: list[dict[str, Any]] = field(default_factory=list)
    options: list[dict[str, Any]] = field(default_factory=list)
    closed: bool = False

    def __post_init__(self) -> None:
        self.chat = SimpleNamespace(completions=_Completions(self))

    def with_options(self, **options: Any) -> "FakeOpenAIClient":
        self.options.append(options)
        return self

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeSecretStore:
    secrets: dict[str, str] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def get_secret(self, candidate: Any, key: str) -> Optional[str]:
        self.calls.append(key)
        return self.secrets.get(key)


@dataclass
class RecordingSink:
    records: list[Any] = field(default_factory=list)

    def emit(self, record: Any) -> None:
        self.records.append(record)


# =============================================================================
# Chunk builders
# =============================================================================


def content_chunk(text: str, finish_reason: Optional[str] = None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=text, tool_calls=None), finish_reason=finish_reason)],
        usage=None,
    )


def tool_chunk(index: int, *, id: Optional[str] = None, name: Optional[str] = None, arguments: Optional[str] = None) -> SimpleNamespace:
    call = SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[call]), finish_reason=None)],
        usage=None,
    )


def finish_chunk(reason: str) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=None), finish_reason=reason)],
        usage=None,
    )


def usage_chunk(prompt_tokens: int, completion_tokens: int, cached: int = 0) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[],
        usage={
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "prompt_tokens_details": {"cached_tokens": cached},
        },
    )



def chat_completion(message: dict, finish_reason: str = "stop", usage: Optional[dict] = None) -> ChatCompletion:
    payload = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "finish_reason": finish_reason, "message": {"role": "assistant", **message}}],
    }
    if usage is not None:
        payload["usage"] = usage
    return ChatCompletion.model_validate(payload)
