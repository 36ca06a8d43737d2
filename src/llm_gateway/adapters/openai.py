"""OpenAI Chat Completions adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional, Sequence

from openai import AsyncOpenAI

from llm_gateway.adapters.base import ProviderAdapter, ProviderRequest
from llm_gateway.credentials import Credentials
from llm_gateway.providers import Provider
from llm_gateway.response import ChatResponse
from llm_gateway.streaming import StreamDelta, ToolCallDelta, canonical_finish_reason
from llm_gateway.types.chat import (
    ChatRequest,
    ImageBlock,
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from llm_gateway.types.model import ModelDescriptor
from llm_gateway.types.tool import ToolCall, ToolChoice, ToolDefinition, ToolResult
from llm_gateway.usage import UsageContext, normalize_usage, usage_fields

__all__ = ["OpenAIAdapter"]


def _tool_call_dict(call: ToolCall) -> dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {"name": call.name, "arguments": call.arguments_json or "{}"},
    }


def _tool_call_from(raw_id: Optional[str], name: Optional[str], arguments: Any) -> ToolCall:
    if isinstance(arguments, dict):
        arguments = json.dumps(arguments)
    arguments = arguments if isinstance(arguments, str) and arguments.strip() else "{}"
    call = ToolCall(id=raw_id or "", name=name or "", arguments_json=arguments)
    try:
        json.loads(arguments)
    except json.JSONDecodeError as exc:
        call.error = f"invalid tool arguments: {exc.msg}"
    return call


class OpenAIAdapter(ProviderAdapter):
    """Adapter for the OpenAI Chat Completions API (and compatible endpoints)."""

    provider = Provider.OPENAI

    def _build_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

    # -- request ----------------------------------------------------------

    def build_messages(self, messages: Sequence[Message]) -> list[dict[str, Any]]:
        """Convert canonical messages to OpenAI's expected format."""
        openai_messages: list[dict[str, Any]] = []

        for msg in messages:
            results = [b for b in msg.blocks if isinstance(b, ToolResultBlock)]
            if msg.role is Role.TOOL or results:
                # each tool result is its own message, keyed by tool_call_id
                for block in results:
                    openai_messages.append(
                        {"role": "tool", "tool_call_id": block.tool_call_id, "content": block.content}
                    )
                if msg.role is Role.TOOL:
                    continue

            openai_msg: dict[str, Any] = {"role": str(msg.role)}
            openai_msg["content"] = self._content(msg)

            tool_calls = list(msg.tool_calls) + [
                ToolCall(b.id, b.name, b.arguments_json) for b in msg.blocks if isinstance(b, ToolUseBlock)
            ]
            if tool_calls and msg.role is Role.ASSISTANT:
                openai_msg["tool_calls"] = [_tool_call_dict(c) for c in tool_calls]
                # content should be null when tool_calls is present and there is no text
                if not openai_msg["content"]:
                    openai_msg["content"] = None

            if results and openai_msg["content"] in ("", None) and not openai_msg.get("tool_calls"):
                continue
            openai_messages.append(openai_msg)

        return openai_messages

    def _content(self, msg: Message) -> Any:
        if isinstance(msg.content, str):
            return msg.content
        if not any(isinstance(b, ImageBlock) for b in msg.blocks):
            return msg.text()
        parts: list[dict[str, Any]] = []
        for block in msg.blocks:
            if isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append({"type": "image_url", "image_url": {"url": block.data_url()}})
        return parts

    def build_tools(self, tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.json_schema(),
                },
            }
            for t in tools
        ]

    def build_tool_choice(self, choice: ToolChoice) -> Any:
        if isinstance(choice, dict):
            return {"type": "function", "function": {"name": choice["name"]}}
        return choice

    def _requires_max_completion_tokens(self, model: str) -> bool:
        """Check if model requires max_completion_tokens instead of max_tokens."""
        newer_models = ("gpt-5", "o1", "o3", "o4")
        return any(model.startswith(prefix) for prefix in newer_models)

    def build_params(self, request: ChatRequest, model: str) -> dict[str, Any]:
        """Convert canonical request settings to OpenAI API parameters."""
        params: dict[str, Any] = {}
        if request.max_output_tokens is not None:
            key = "max_completion_tokens" if self._requires_max_completion_tokens(model) else "max_tokens"
            params[key] = request.max_output_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.top_p is not None:
            params["top_p"] = request.top_p
        if request.top_k is not None:
            self._log("top_k is not supported, ignoring", logging.DEBUG)
        if request.stop_sequences:
            params["stop"] = list(request.stop_sequences)
        if request.tools:
            params["tools"] = self.build_tools(request.tools)
            if request.tool_choice is not None:
                params["tool_choice"] = self.build_tool_choice(request.tool_choice)
        if request.response_format == "json":
            params["response_format"] = {"type": "json_object"}
        if request.reasoning_effort:
            params["reasoning_effort"] = request.reasoning_effort
        if request.web_search:
            params["web_search_options"] = {"search_context_size": request.web_search.context_size}

        for k, v in request.extra.items():
            params.setdefault(k, v)
        return params

    def adapt_request(
        self,
        request: ChatRequest,
        descriptor: ModelDescriptor,
        credentials: Credentials,
    ) -> ProviderRequest:
        self.check_capabilities(request, descriptor)
        system, history = request.split_system()
        history = self.repair_history(self.attach_files(history, request.files))

        json_mode = request.response_format == "json"
        messages: list[dict[str, Any]] = []
        system_text = self.system_text(system, json_mode)
        if system_text:
            messages.append({"role": "system", "content": system_text})
        messages.extend(self.build_messages(history))

        model = descriptor.api_model_name
        body = {"model": model, "messages": messages, **self.build_params(request, model)}
        return ProviderRequest(
            body=body,
            options=self.client_options(descriptor, credentials, request.timeout),
            model_id=descriptor.model_id,
        )

    def transform_tool_result_turn(
        self, prior_assistant: Message, results: Sequence[ToolResult]
    ) -> list[dict[str, Any]]:
        """The assistant turn with its tool_calls followed by one tool message per result."""
        known = prior_assistant.tool_call_ids
        messages = self.build_messages([prior_assistant])
        for result in results:
            if result.id not in known:
                self._log(f"Dropping result for unknown tool call {result.id!r}", logging.WARNING)
                continue
            messages.append(
                {"role": "tool", "tool_call_id": result.id, "content": result.content_text()}
            )
        return messages

    # -- response ---------------------------------------------------------

    def adapt_response(
        self,
        raw: Any,
        request: Optional[ProviderRequest] = None,
        context: Optional[UsageContext] = None,
    ) -> ChatResponse:
        """Convert an OpenAI ChatCompletion to a ChatResponse."""
        content = ""
        thinking = ""
        finish_reason = "stop"
        tool_calls: list[ToolCall] = []

        choices = getattr(raw, "choices", None) or []
        if choices and choices[0].message:
            choice = choices[0]
            message = choice.message
            content = message.content or ""
            thinking = getattr(message, "reasoning_content", None) or ""
            finish_reason = canonical_finish_reason(choice.finish_reason)
            for tc in message.tool_calls or []:
                function = getattr(tc, "function", None)
                if function is None:
                    continue
                call = _tool_call_from(tc.id, function.name, function.arguments)
                if not call.is_valid:
                    self._log(f"Bad JSON in tool call {call.name!r}", logging.WARNING)
                tool_calls.append(call)

        usage = getattr(raw, "usage", None)
        records = [normalize_usage(usage, context)] if usage is not None else []
        return ChatResponse(
            content=content,
            finish_reason=finish_reason,
            tool_calls=tool_calls,
            usage=records,
            thinking=thinking,
            raw=raw,
        )

    # -- I/O --------------------------------------------------------------

    async def _invoke(self, client: AsyncOpenAI, request: ProviderRequest) -> Any:
        return await client.chat.completions.create(**request.body)

    async def _create_stream(self, client: AsyncOpenAI, request: ProviderRequest) -> Any:
        return await client.chat.completions.create(
            **request.body,
            stream=True,
            stream_options={"include_usage": True},
        )

    async def iter_deltas(self, handle: Any) -> AsyncIterator[StreamDelta]:
        async for chunk in handle:
            usage = getattr(chunk, "usage", None)
            delta = StreamDelta(usage=usage_fields(usage) if usage is not None else None)
            choices = getattr(chunk, "choices", None) or []
            if choices:
                choice = choices[0]
                raw_delta = getattr(choice, "delta", None)
                if raw_delta is not None:
                    delta.content = getattr(raw_delta, "content", None)
                    delta.thinking = getattr(raw_delta, "reasoning_content", None)
                    for position, tc in enumerate(getattr(raw_delta, "tool_calls", None) or []):
                        function = getattr(tc, "function", None)
                        index = getattr(tc, "index", None)
                        delta.tool_calls.append(
                            ToolCallDelta(
                                index=position if index is None else index,
                                id=getattr(tc, "id", None),
                                name=getattr(function, "name", None),
                                arguments=getattr(function, "arguments", None),
                            )
                        )
                delta.finish_reason = getattr(choice, "finish_reason", None)
            yield delta
