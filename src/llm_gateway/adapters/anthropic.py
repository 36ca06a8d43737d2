"""Anthropic Messages API adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional, Sequence

from anthropic import AsyncAnthropic

from llm_gateway.adapters.base import ProviderAdapter, ProviderRequest
from llm_gateway.credentials import Credentials
from llm_gateway.providers import Provider
from llm_gateway.response import ChatResponse
from llm_gateway.streaming import StreamDelta, ToolCallDelta, canonical_finish_reason
from llm_gateway.types.chat import (
    ChatRequest,
    ContentBlock,
    ImageBlock,
    Message,
    Role,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from llm_gateway.types.model import DEFAULT_MAX_TOKENS, ModelDescriptor
from llm_gateway.types.tool import ToolCall, ToolChoice, ToolDefinition, ToolResult
from llm_gateway.usage import UsageContext, normalize_usage, usage_fields

__all__ = ["AnthropicAdapter", "ephemeral"]

# filler turn for histories that do not start with the user
CONTINUE_TEXT = "continue"
# Anthropic rejects empty text content
EMPTY_PLACEHOLDER = "..."
JSON_PREFILL = "{"

THINKING_BUDGETS = {"low": 1024, "medium": 4096, "high": 16384}
MIN_THINKING_BUDGET = 1024


def ephemeral(text: str) -> dict[str, Any]:
    """Return a text block marked for Anthropic's 5-minute *ephemeral* prompt cache."""
    return {
        "type": "text",
        "text": text,
        "cache_control": {"type": "ephemeral"},
    }


def _tool_input(call: ToolCall) -> dict[str, Any]:
    try:
        return call.arguments()
    except json.JSONDecodeError:
        return {}


def _merge(first: Message, second: Message) -> Message:
    if isinstance(first.content, str) and isinstance(second.content, str):
        content: Any = f"{first.content}\n{second.content}"
    else:
        blocks = first.blocks + second.blocks
        # tool results lead the user turn
        results = tuple(b for b in blocks if isinstance(b, ToolResultBlock))
        content = results + tuple(b for b in blocks if not isinstance(b, ToolResultBlock))
    return Message(first.role, content, first.tool_calls + second.tool_calls)


class AnthropicAdapter(ProviderAdapter):
    """Adapter for the Anthropic Messages API."""

    provider = Provider.ANTHROPIC

    def __init__(self, *, cache_system_prompt: bool = False, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.cache_system_prompt = cache_system_prompt

    def _build_client(self, api_key: str) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

    # -- history ----------------------------------------------------------

    def repair_history(self, messages: Sequence[Message]) -> list[Message]:
        """
        Enforce Anthropic's turn rules.

        A leading tool-result turn (its tool_use was trimmed away) is dropped,
        orphaned tool results become text, tool turns become user turns, empty
        content is replaced by a placeholder, consecutive same-role turns are
        merged and a filler user turn is inserted when the history starts with
        the assistant.
        """
        history = list(messages)
        while history and any(isinstance(b, ToolResultBlock) for b in history[0].blocks):
            self._log("Dropping leading tool result turn", logging.DEBUG)
            history.pop(0)

        repaired: list[Message] = []
        for msg in self.demote_orphan_tool_results(history):
            if msg.role is Role.TOOL:
                msg = Message(Role.USER, msg.blocks)
            if msg.is_empty():
                msg = msg.with_content(EMPTY_PLACEHOLDER)
            if repaired and repaired[-1].role is msg.role:
                repaired[-1] = _merge(repaired[-1], msg)
            else:
                repaired.append(msg)

        if repaired and repaired[0].role is not Role.USER:
            repaired.insert(0, Message.user(CONTINUE_TEXT))
        return repaired

    # -- request ----------------------------------------------------------

    def _block(self, block: ContentBlock) -> Optional[dict[str, Any]]:
        if isinstance(block, TextBlock):
            return {"type": "text", "text": block.text} if block.text else None
        if isinstance(block, ImageBlock):
            if block.url and block.data is None:
                return {"type": "image", "source": {"type": "url", "url": block.url}}
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": block.mime_type, "data": block.base64_data()},
            }
        if isinstance(block, ThinkingBlock):
            # unsigned thinking cannot be replayed
            if not block.signature:
                return None
            return {"type": "thinking", "thinking": block.text, "signature": block.signature}
        if isinstance(block, ToolUseBlock):
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": _tool_input(ToolCall(block.id, block.name, block.arguments_json)),
            }
        if isinstance(block, ToolResultBlock):
            result: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": block.tool_call_id,
                "content": block.content,
            }
            if block.is_error:
                result["is_error"] = True
            return result
        return None

    def build_messages(self, messages: Sequence[Message]) -> list[dict[str, Any]]:
        """Convert repaired canonical messages to Anthropic's format."""
        anthropic_messages: list[dict[str, Any]] = []
        for msg in messages:
            role = "assistant" if msg.role is Role.ASSISTANT else "user"
            if isinstance(msg.content, str) and not msg.tool_calls:
                anthropic_messages.append({"role": role, "content": msg.content or EMPTY_PLACEHOLDER})
                continue
            blocks = [b for b in (self._block(block) for block in msg.blocks) if b is not None]
            blocks.extend(
                {"type": "tool_use", "id": c.id, "name": c.name, "input": _tool_input(c)}
                for c in msg.tool_calls
            )
            if not blocks:
                blocks = [{"type": "text", "text": EMPTY_PLACEHOLDER}]
            anthropic_messages.append({"role": role, "content": blocks})
        return anthropic_messages

    def build_tools(self, tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.json_schema()}
            for t in tools
        ]

    def build_tool_choice(self, choice: ToolChoice) -> dict[str, Any]:
        if isinstance(choice, dict):
            return {"type": "tool", "name": choice["name"]}
        return {"type": {"required": "any"}.get(choice, choice)}

    def build_params(self, request: ChatRequest) -> dict[str, Any]:
        max_tokens = request.max_output_tokens or DEFAULT_MAX_TOKENS
        params: dict[str, Any] = {"max_tokens": max_tokens}
        thinking = self._thinking(request.reasoning_effort, max_tokens)
        if thinking:
            params["thinking"] = thinking
            if request.temperature is not None or request.top_p is not None or request.top_k is not None:
                self._log("Sampling parameters are not allowed with thinking, ignoring", logging.DEBUG)
        else:
            if request.temperature is not None:
                params["temperature"] = request.temperature
            if request.top_p is not None:
                params["top_p"] = request.top_p
            if request.top_k is not None:
                params["top_k"] = request.top_k
        if request.stop_sequences:
            params["stop_sequences"] = list(request.stop_sequences)
        if request.tools:
            params["tools"] = self.build_tools(request.tools)
            if request.tool_choice is not None:
                params["tool_choice"] = self.build_tool_choice(request.tool_choice)

        for k, v in request.extra.items():
            params.setdefault(k, v)
        return params

    def _thinking(self, effort: Optional[str], max_tokens: int) -> Optional[dict[str, Any]]:
        if not effort:
            return None
        if max_tokens <= MIN_THINKING_BUDGET:
            self._log(f"max_tokens={max_tokens} leaves no room for thinking, disabled", logging.WARNING)
            return None
        budget = min(THINKING_BUDGETS.get(effort, THINKING_BUDGETS["medium"]), max_tokens - 1)
        return {"type": "enabled", "budget_tokens": budget}

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
        params = self.build_params(request)
        messages = self.build_messages(history)

        prefill = ""
        # prefill is not allowed together with extended thinking
        if json_mode and "thinking" not in params and (not messages or messages[-1]["role"] == "user"):
            prefill = JSON_PREFILL
            messages.append({"role": "assistant", "content": prefill})

        body: dict[str, Any] = {"model": descriptor.api_model_name, "messages": messages, **params}
        system_text = self.system_text(system, json_mode)
        if system_text:
            body["system"] = [ephemeral(system_text)] if self.cache_system_prompt else system_text
        return ProviderRequest(
            body=body,
            options=self.client_options(descriptor, credentials, request.timeout),
            model_id=descriptor.model_id,
            prefill=prefill,
        )

    def transform_tool_result_turn(
        self, prior_assistant: Message, results: Sequence[ToolResult]
    ) -> list[dict[str, Any]]:
        """The assistant tool_use turn followed by a single user turn carrying every result."""
        known = prior_assistant.tool_call_ids
        blocks: list[dict[str, Any]] = []
        for result in results:
            if result.id not in known:
                self._log(f"Dropping result for unknown tool call {result.id!r}", logging.WARNING)
                continue
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": result.id,
                "content": result.content_text(),
            }
            if result.is_error:
                block["is_error"] = True
            blocks.append(block)
        messages = self.build_messages([prior_assistant])
        if blocks:
            messages.append({"role": "user", "content": blocks})
        return messages

    # -- response ---------------------------------------------------------

    def adapt_response(
        self,
        raw: Any,
        request: Optional[ProviderRequest] = None,
        context: Optional[UsageContext] = None,
    ) -> ChatResponse:
        """Convert an Anthropic Message to a ChatResponse."""
        text_parts: list[str] = []
        thinking_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in getattr(raw, "content", None) or []:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "thinking":
                thinking_parts.append(block.thinking)
            elif block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments_json=json.dumps(arguments)))

        content = "".join(text_parts)
        if request is not None and request.prefill:
            content = request.prefill + content

        usage = getattr(raw, "usage", None)
        return ChatResponse(
            content=content,
            finish_reason=canonical_finish_reason(getattr(raw, "stop_reason", None)),
            tool_calls=tool_calls,
            usage=[normalize_usage(usage, context)] if usage is not None else [],
            thinking="".join(thinking_parts),
            raw=raw,
        )

    # -- I/O --------------------------------------------------------------

    async def _invoke(self, client: AsyncAnthropic, request: ProviderRequest) -> Any:
        return await client.messages.create(**request.body)

    async def _create_stream(self, client: AsyncAnthropic, request: ProviderRequest) -> Any:
        return await client.messages.create(**request.body, stream=True)

    async def iter_deltas(self, handle: Any) -> AsyncIterator[StreamDelta]:
        async for event in handle:
            kind = getattr(event, "type", None)
            if kind == "message_start":
                yield StreamDelta(usage=usage_fields(event.message.usage))
            elif kind == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    yield StreamDelta(tool_calls=[ToolCallDelta(event.index, id=block.id, name=block.name)])
            elif kind == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield StreamDelta(content=delta.text)
                elif delta.type == "thinking_delta":
                    yield StreamDelta(thinking=delta.thinking)
                elif delta.type == "input_json_delta":
                    yield StreamDelta(tool_calls=[ToolCallDelta(event.index, arguments=delta.partial_json)])
            elif kind == "message_delta":
                usage = getattr(event, "usage", None)
                yield StreamDelta(
                    finish_reason=event.delta.stop_reason,
                    usage=usage_fields(usage) if usage is not None else None,
                )
