"""Base class for provider adapters."""
from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, ClassVar, Optional, Self, Sequence

from llm_gateway._exceptions import wrap_provider_error
from llm_gateway.credentials import ApiKey, Credentials, NoCredentials
from llm_gateway.errors import CredentialMissing, UnsupportedCapability
from llm_gateway.providers import Provider
from llm_gateway.response import ChatResponse
from llm_gateway.streaming import StreamDelta, StreamNormalizer, UsageBuilder
from llm_gateway.types.chat import (
    ChatRequest,
    ImageBlock,
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
)
from llm_gateway.types.model import ModelDescriptor
from llm_gateway.types.stream import StreamEvent
from llm_gateway.types.tool import ToolResult
from llm_gateway.usage import UsageContext

__all__ = [
    "ProviderAdapter",
    "ProviderRequest",
    "JSON_RESPONSE_INSTRUCTION",
    "VALID_IMAGE_MIME_TYPES",
]

JSON_RESPONSE_INSTRUCTION = (
    "\nAll responses should be in valid JSON format, compacted without newlines, "
    "indentations, or additional JSON syntax markers."
)

VALID_IMAGE_MIME_TYPES = frozenset(
    {"image/png", "image/jpeg", "image/jpg", "image/webp", "image/gif"}
)

# the SDKs refuse to build a client without a key; real keys are set per call
_PLACEHOLDER_KEY = "not-set"


@dataclass(slots=True)
class ProviderRequest:
    """A provider-shaped request, ready to be sent.

    Attributes:
        body: Keyword arguments for the SDK call.
        options: Per-call client options (api_key, base_url, timeout).
        prefill: Text the adapter put in the model's mouth; it is prepended to
            the response so callers see the complete output.
    """
    body: dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)
    model_id: str = ""
    prefill: str = ""


class ProviderAdapter(ABC):
    """
    Translate canonical requests to one vendor's wire format and back.

    Subclasses implement the pure transforms plus the three SDK touch points
    (``_build_client``, ``_invoke``, ``_create_stream``). The SDK client is
    created lazily, once, and shared; per-call credentials are applied with
    the SDK's ``with_options``.
    """

    provider: ClassVar[Provider]

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        max_retries: int = 0,
        base_url: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_url = base_url
        self.logger = logger or logging.getLogger(__name__)
        self.name = name if name is not None else self.__class__.__name__
        self._client: Any = None

    # Alternate constructor
    @classmethod
    def from_client(
        cls,
        client: Any,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> Self:
        """Build an adapter around an already-configured SDK client."""
        self = cls(logger=logger, name=name)
        self._client = client
        return self

    # -- client -----------------------------------------------------------

    @abstractmethod
    def _build_client(self, api_key: str) -> Any:
        ...

    @property
    def client(self) -> Any:
        if self._client is None:
            self._log("Creating SDK client", logging.DEBUG)
            self._client = self._build_client(_PLACEHOLDER_KEY)
        return self._client

    def client_for(self, request: ProviderRequest) -> Any:
        if not request.options:
            return self.client
        return self.client.with_options(**request.options)

    def client_options(
        self,
        descriptor: ModelDescriptor,
        credentials: Credentials,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if isinstance(credentials, ApiKey):
            options["api_key"] = credentials.key
        elif not isinstance(credentials, NoCredentials):
            raise CredentialMissing(
                descriptor.model_id,
                [f"{type(credentials).__name__} is not supported by {self.provider}"],
            )
        if descriptor.base_url:
            options["base_url"] = descriptor.base_url
        if timeout is not None:
            options["timeout"] = timeout
        return options

    # -- pure transforms --------------------------------------------------

    def check_capabilities(self, request: ChatRequest, descriptor: ModelDescriptor) -> None:
        """Raise UnsupportedCapability for anything the model cannot do."""
        caps = descriptor.capabilities
        model_id = descriptor.model_id
        if request.tools and not caps.tools:
            raise UnsupportedCapability(model_id, "tools")
        images = list(request.files)
        for msg in request.messages:
            images.extend(b for b in msg.blocks if isinstance(b, ImageBlock))
        if images and not caps.vision:
            raise UnsupportedCapability(model_id, "vision")
        for image in images:
            if image.mime_type not in VALID_IMAGE_MIME_TYPES:
                raise UnsupportedCapability(model_id, f"image type {image.mime_type}")
        if request.response_format == "json" and not caps.structured_output:
            raise UnsupportedCapability(model_id, "structured output")
        if request.reasoning_effort and not caps.reasoning:
            raise UnsupportedCapability(model_id, "reasoning")
        if request.web_search and not caps.web_search:
            raise UnsupportedCapability(model_id, "web search")

    @staticmethod
    def attach_files(messages: Sequence[Message], files: Sequence[ImageBlock]) -> list[Message]:
        """Append request-level files to the last user turn."""
        result = list(messages)
        if not files:
            return result
        for i in range(len(result) - 1, -1, -1):
            if result[i].role is Role.USER:
                msg = result[i]
                result[i] = msg.with_content(tuple(msg.blocks) + tuple(files))
                return result
        result.append(Message(Role.USER, tuple(files)))
        return result

    @staticmethod
    def system_text(system: Optional[Message], json_mode: bool) -> str:
        text = system.text() if system is not None else ""
        if json_mode:
            text += JSON_RESPONSE_INSTRUCTION
        return text

    @abstractmethod
    def adapt_request(
        self,
        request: ChatRequest,
        descriptor: ModelDescriptor,
        credentials: Credentials,
    ) -> ProviderRequest:
        """Build the provider request; raises UnsupportedCapability before any I/O."""

    @abstractmethod
    def adapt_response(
        self,
        raw: Any,
        request: Optional[ProviderRequest] = None,
        context: Optional[UsageContext] = None,
    ) -> ChatResponse:
        ...

    @abstractmethod
    def transform_tool_result_turn(
        self, prior_assistant: Message, results: Sequence[ToolResult]
    ) -> list[dict[str, Any]]:
        """Provider messages continuing a conversation after tools ran."""

    def repair_history(self, messages: Sequence[Message]) -> list[Message]:
        """Make the history acceptable to the provider."""
        return self.demote_orphan_tool_results(messages)

    def demote_orphan_tool_results(self, messages: Sequence[Message]) -> list[Message]:
        """
        Turn tool results that answer no call of the preceding assistant turn
        into plain user text; providers reject them as tool results.
        """
        pending: set[str] = set()
        repaired: list[Message] = []
        for msg in messages:
            if msg.role is Role.ASSISTANT:
                pending = msg.tool_call_ids
                repaired.append(msg)
                continue
            if not any(isinstance(b, ToolResultBlock) for b in msg.blocks):
                pending = set()
                repaired.append(msg)
                continue

            valid: list[Any] = []
            other: list[Any] = []
            for block in msg.blocks:
                if isinstance(block, ToolResultBlock) and block.tool_call_id not in pending:
                    self._log(f"Tool result {block.tool_call_id!r} has no matching call", logging.WARNING)
                    other.append(TextBlock(f"[tool result {block.tool_call_id}] {block.content}"))
                elif isinstance(block, ToolResultBlock):
                    valid.append(block)
                else:
                    other.append(block)
            if not other:
                repaired.append(msg)
            elif msg.role is Role.TOOL:
                if valid:
                    repaired.append(replace(msg, content=tuple(valid)))
                repaired.append(Message(Role.USER, tuple(other)))
            else:
                repaired.append(msg.with_content(tuple(valid + other)))
        return repaired

    # -- I/O --------------------------------------------------------------

    @abstractmethod
    async def _invoke(self, client: Any, request: ProviderRequest) -> Any:
        ...

    @abstractmethod
    async def _create_stream(self, client: Any, request: ProviderRequest) -> Any:
        ...

    @abstractmethod
    def iter_deltas(self, handle: Any) -> AsyncIterator[StreamDelta]:
        """Reduce raw stream chunks to StreamDelta objects."""

    async def invoke(self, request: ProviderRequest) -> Any:
        """Non-streaming call; provider failures become UpstreamProviderError."""
        self._log(f"Sending request to {self.provider} model {request.model_id} (Stream: False)")
        try:
            return await self._invoke(self.client_for(request), request)
        except Exception as exc:
            raise wrap_provider_error(exc, str(self.provider), self.logger) from exc

    async def create_stream(self, request: ProviderRequest) -> Any:
        self._log(f"Sending request to {self.provider} model {request.model_id} (Stream: True)")
        try:
            return await self._create_stream(self.client_for(request), request)
        except Exception as exc:
            raise wrap_provider_error(exc, str(self.provider), self.logger) from exc

    async def normalize_stream(
        self,
        handle: Any,
        request: Optional[ProviderRequest] = None,
        usage_builder: Optional[UsageBuilder] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Canonical events for one upstream stream; closes the stream when done."""
        normalizer = StreamNormalizer(usage_builder)
        try:
            if request is not None and request.prefill:
                for event in normalizer.feed(StreamDelta(content=request.prefill)):
                    yield event
            try:
                async for delta in self.iter_deltas(handle):
                    for event in normalizer.feed(delta):
                        yield event
            except Exception as exc:
                for event in normalizer.fail(wrap_provider_error(exc, str(self.provider), self.logger)):
                    yield event
                return
            for event in normalizer.finish():
                yield event
        finally:
            await self.close_stream(handle)

    async def close_stream(self, handle: Any) -> None:
        close = getattr(handle, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    # --- lifecycle ---------------------------------------------------------
    async def aclose(self) -> None:
        """Close the SDK client if one was created. Safe to call multiple times."""
        client, self._client = self._client, None
        close = getattr(client, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
