"""
The gateway: one entry point for chat and streaming calls to any provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence, Union

from llm_gateway.access import AccessCandidate, AllowAll, Authorizer, guard
from llm_gateway.adapters.base import ProviderAdapter, ProviderRequest
from llm_gateway.config import GatewayConfig
from llm_gateway.context_window import TokenCounter, build_context_window, safe_max_tokens
from llm_gateway.credentials import CredentialResolver, Credentials, SecretStore
from llm_gateway.factory import AdapterRegistry, default_adapters
from llm_gateway.params import ChatMessage, build_request, merge_params
from llm_gateway.registry import ModelRegistry, StaticModelRegistry
from llm_gateway.response import ChatResponse, parse_json_response
from llm_gateway.streaming import EventStream
from llm_gateway.tokens import count_message_tokens
from llm_gateway.types.chat import ChatRequest, Message
from llm_gateway.types.model import ModelDescriptor
from llm_gateway.types.stream import EndEvent, StreamEvent
from llm_gateway.types.tool import ToolResult
from llm_gateway.types.usage import UsageRecord
from llm_gateway.usage import MeteringSink, UsageContext, UsageReporter, normalize_usage, search_tool_cost

__all__ = ["Gateway", "ANONYMOUS"]

ANONYMOUS = AccessCandidate.user("anonymous")


@dataclass(slots=True)
class _PreparedCall:
    request: ChatRequest
    descriptor: ModelDescriptor
    credentials: Credentials
    adapter: ProviderAdapter
    provider_request: ProviderRequest
    context: UsageContext


class Gateway:
    """
    Provider-agnostic chat gateway.

    Every call runs the same pipeline: access check, model lookup, credential
    resolution, output-token clamping, context-window fitting, adapter
    selection, the provider call and usage reporting. Nothing is retried;
    failures reach the caller unchanged.
    """

    def __init__(
        self,
        *,
        config: Optional[GatewayConfig] = None,
        registry: Optional[ModelRegistry] = None,
        resolver: Optional[CredentialResolver] = None,
        secret_store: Optional[SecretStore] = None,
        authorizer: Optional[Authorizer] = None,
        metering_sink: Optional[MeteringSink] = None,
        adapters: Optional[AdapterRegistry] = None,
        token_counter: TokenCounter = count_message_tokens,
        default_params: Optional[dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__
        self.registry = registry or StaticModelRegistry()
        self.resolver = resolver or CredentialResolver(
            self.config.provider_keys,
            secret_store,
            secret_timeout=self.config.secret_timeout,
        )
        self.authorizer = authorizer or AllowAll()
        self.usage_reporter = UsageReporter(metering_sink)
        self.adapters = adapters or default_adapters(self.config)
        self.token_counter = token_counter
        self.default_params = default_params or {}

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **kwargs: Any) -> "Gateway":
        """Gateway configured from ``.env`` / environment variables."""
        return cls(config=GatewayConfig.from_env(dotenv_path), **kwargs)

    # --- requests ----------------------------------------------------------

    def request(
        self,
        model_id: str,
        messages: Iterable[Union[Message, ChatMessage]],
        params: Optional[dict[str, Any]] = None,
    ) -> ChatRequest:
        """Build a ChatRequest from message dicts, applying the gateway's default params."""
        return build_request(model_id, messages, merge_params(self.default_params, params))

    async def _prepare(
        self, request: ChatRequest, candidate: AccessCandidate, action: str
    ) -> _PreparedCall:
        await guard(self.authorizer, candidate, action, request.model_id)
        descriptor = self.registry.get_model_descriptor(request.model_id)
        credentials = await self.resolver.resolve(candidate, descriptor)
        user_key = credentials.is_user_supplied

        max_output_tokens = safe_max_tokens(request.max_output_tokens, descriptor, user_key)
        system, history = request.split_system()
        window = build_context_window(
            system,
            history,
            request.max_input_tokens,
            max_output_tokens,
            descriptor.allowed_context_tokens(user_key),
            count=self.token_counter,
            is_user_supplied=user_key,
        )
        fitted = replace(request, messages=window, max_output_tokens=max_output_tokens)

        adapter = self.adapters.get(descriptor.provider)
        provider_request = adapter.adapt_request(fitted, descriptor, credentials)
        context = UsageContext.for_call(candidate, user_key=user_key, source_id=f"llm:{descriptor.model_id}")
        return _PreparedCall(fitted, descriptor, credentials, adapter, provider_request, context)

    def _tool_usage(self, call: _PreparedCall) -> list[UsageRecord]:
        """Flat-priced tool usage (web search) for one call."""
        web_search = call.request.web_search
        if not web_search:
            return []
        cost = search_tool_cost(call.descriptor.api_model_name, web_search.context_size)
        if cost is None:
            return []
        return [normalize_usage({"cost": cost}, replace(call.context, source_id="tool:web_search"))]

    # --- public API --------------------------------------------------------

    async def chat(
        self,
        request: ChatRequest,
        *,
        candidate: AccessCandidate = ANONYMOUS,
    ) -> ChatResponse:
        """
        Send a request and return the complete response.

        Raises:
            AccessDenied, UnknownModel, CredentialMissing, TokenBudgetExceeded,
            UnsupportedCapability: before any network I/O.
            UpstreamProviderError: the provider call failed.
        """
        call = await self._prepare(request, candidate, "chat")
        raw = await call.adapter.invoke(call.provider_request)
        response = call.adapter.adapt_response(raw, call.provider_request, call.context)
        response.usage.extend(self._tool_usage(call))
        self.usage_reporter.report(response.usage)

        if request.response_format == "json":
            response.structured = parse_json_response(response.content)
            if response.is_invalid_format:
                self._log(f"Structured output from {request.model_id} is not valid JSON", logging.WARNING)
        return response

    async def stream(
        self,
        request: ChatRequest,
        *,
        candidate: AccessCandidate = ANONYMOUS,
    ) -> EventStream:
        """
        Start a streaming call and return its event stream.

        Pre-flight failures and a failure to open the upstream stream are
        raised here; anything after that arrives as a terminal ``error`` event.
        """
        call = await self._prepare(request, candidate, "stream")
        handle = await call.adapter.create_stream(call.provider_request)
        return EventStream(
            self._stream_events(call, handle),
            capacity=self.config.stream_buffer_size,
            policy=self.config.overflow_policy,
            on_close=lambda: call.adapter.close_stream(handle),
        )

    async def _stream_events(self, call: _PreparedCall, handle: Any) -> AsyncIterator[StreamEvent]:
        def build_usage(fields: Mapping[str, Any]) -> list[UsageRecord]:
            records = [normalize_usage(fields, call.context)] if fields else []
            return records + self._tool_usage(call)

        events = call.adapter.normalize_stream(handle, call.provider_request, build_usage)
        try:
            async for event in events:
                if isinstance(event, EndEvent):
                    self.usage_reporter.report(event.usage)
                yield event
        finally:
            await events.aclose()

    def tool_result_turn(
        self, model_id: str, prior_assistant: Message, results: Sequence[ToolResult]
    ) -> list[dict[str, Any]]:
        """Provider messages that continue the conversation after tools ran."""
        descriptor = self.registry.get_model_descriptor(model_id)
        return self.adapters.get(descriptor.provider).transform_tool_result_turn(prior_assistant, results)

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")

    # --- lifecycle ---------------------------------------------------------
    async def aclose(self) -> None:
        """
        Close underlying async HTTP clients and wait for pending usage reports.
        Safe to call multiple times.
        """
        await self.usage_reporter.drain()
        for adapter in self.adapters.adapters():
            await adapter.aclose()

    async def __aenter__(self) -> "Gateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
