"""
Request normalization for llm-gateway.

Public API
- Callers may build a `ChatRequest` directly, or pass OpenAI-style message
  dicts and a params dict to `build_request`.

Contract
- Standard keys work across providers and map onto `ChatRequest` fields:
  temperature: float
  max_tokens | max_output_tokens: int
  max_input_tokens: int
  top_p: float
  top_k: int
  stop | stop_sequences: str | list[str]
  tools: list[ToolDefinition | OpenAI function tool dict]
  tool_choice: "auto" | "none" | "required" | {"name": ...}
  response_format: "json" | {"type": "json_object"}
  files: list[ImageBlock]
  reasoning_effort: "low" | "medium" | "high"
  web_search: WebSearchOptions | {"context_size": ...}
  timeout: float

- Provider specific keys go under `extra` and pass through to the provider
  request unchanged.
  Examples:
    extra.frequency_penalty: float
    extra.seed: int
    extra.logit_bias: dict

Unknown top-level keys are moved into extra.
Unknown extra keys are forwarded as-is.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Iterable, Mapping, Union

from llm_gateway.types.chat import (
    ChatRequest,
    ContentBlock,
    ImageBlock,
    Message,
    Role,
    TextBlock,
    WebSearchOptions,
)
from llm_gateway.types.tool import ToolCall, ToolDefinition

__all__ = [
    "ChatMessage",
    "STANDARD_KEYS",
    "normalize_params",
    "merge_params",
    "message_from_dict",
    "tool_from_dict",
    "build_request",
]

# Type alias for OpenAI-style chat messages
ChatMessage = dict[str, Any]

# caller key -> ChatRequest field
STANDARD_KEYS: dict[str, str] = {
    "temperature": "temperature",
    "max_tokens": "max_output_tokens",
    "max_output_tokens": "max_output_tokens",
    "max_input_tokens": "max_input_tokens",
    "top_p": "top_p",
    "top_k": "top_k",
    "stop": "stop_sequences",
    "stop_sequences": "stop_sequences",
    "tools": "tools",
    "tool_choice": "tool_choice",
    "response_format": "response_format",
    "files": "files",
    "reasoning_effort": "reasoning_effort",
    "web_search": "web_search",
    "timeout": "timeout",
}


def _response_format(value: Any) -> Any:
    if value is None or value == "json":
        return value
    if isinstance(value, Mapping):
        kind = value.get("type")
        if kind in ("json_object", "json_schema", "json"):
            return "json"
        if kind == "text":
            return None
    raise ValueError(f"Unsupported response_format: {value!r}")


def _stop(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


def normalize_params(params: dict | None) -> dict:
    """
    Normalize a user-supplied params dict to a single internal shape.

    Returns a dict keyed by `ChatRequest` field names plus an `extra` dict.
    Rules:
      - Keys not in STANDARD_KEYS are moved into extra
      - If the caller already passed an `extra` dict it is merged last
      - None values are kept so adapters can decide to drop them
      - `stop` strings become one-element lists, OpenAI `response_format`
        dicts collapse to "json"

    Example
    -------
    >>> normalize_params({
    ...   "temperature": 0.2,
    ...   "max_tokens": 4000,
    ...   "seed": 7,
    ...   "extra": {"logit_bias": {}}
    ... })
    {'temperature': 0.2, 'max_output_tokens': 4000,
     'extra': {'seed': 7, 'logit_bias': {}}}
    """
    if params is None:
        return {"extra": {}}
    if not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")

    std: dict = {}
    extra: dict = {}

    user_extra = params.get("extra") or {}
    if user_extra and not isinstance(user_extra, dict):
        raise TypeError("params['extra'] must be a dict")

    for key, value in params.items():
        if key == "extra":
            continue
        if key in STANDARD_KEYS:
            std[STANDARD_KEYS[key]] = value
        else:
            extra[key] = value

    if "stop_sequences" in std:
        std["stop_sequences"] = _stop(std["stop_sequences"])
    if "response_format" in std:
        std["response_format"] = _response_format(std["response_format"])
    if isinstance(std.get("web_search"), Mapping):
        std["web_search"] = WebSearchOptions(**std["web_search"])
    if std.get("tools") is not None:
        std["tools"] = [tool_from_dict(t) for t in std["tools"]]

    std["extra"] = {**extra, **user_extra}
    return std


def merge_params(defaults: dict | None, overrides: dict | None) -> dict:
    """
    Shallow-merge gateway defaults with per-call overrides, then normalize.

    Rules:
      - Top-level keys are overwritten by overrides
      - `extra` is merged with overrides winning per key
    """
    base: dict = dict(defaults or {})
    if overrides:
        base_extra = dict(base.get("extra") or {})
        over_extra = dict(overrides.get("extra") or {})

        for k, v in overrides.items():
            if k != "extra":
                base[k] = v

        base["extra"] = {**base_extra, **over_extra}

    return normalize_params(base)


def tool_from_dict(tool: Union[ToolDefinition, Mapping[str, Any]]) -> ToolDefinition:
    """Accept a ToolDefinition, an OpenAI function tool or a bare function dict."""
    if isinstance(tool, ToolDefinition):
        return tool
    func = tool.get("function", tool)
    schema = func.get("parameters") or {}
    return ToolDefinition(
        name=func["name"],
        description=func.get("description", ""),
        parameters=dict(schema.get("properties") or {}),
        required=tuple(schema.get("required") or ()),
    )


def _image_from_url(url: str) -> ImageBlock:
    if url.startswith("data:"):
        header, _, payload = url.partition(",")
        mime_type = header[5:].split(";")[0] or "image/png"
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("image data URL is not valid base64") from exc
        return ImageBlock(mime_type, data=data)
    ext = url.split("?")[0].rsplit(".", 1)[-1].lower()
    if ext == "jpg":
        ext = "jpeg"
    mime_type = f"image/{ext}" if ext in ("png", "jpeg", "webp", "gif") else "image/png"
    return ImageBlock(mime_type, url=url)


def _content_from_parts(parts: Iterable[Any]) -> tuple[ContentBlock, ...]:
    blocks: list[ContentBlock] = []
    for part in parts:
        if not isinstance(part, Mapping):
            blocks.append(part)
            continue
        kind = part.get("type")
        if kind == "text":
            blocks.append(TextBlock(part.get("text", "")))
        elif kind == "image_url":
            image = part.get("image_url")
            url = image.get("url") if isinstance(image, Mapping) else image
            blocks.append(_image_from_url(url))
        else:
            raise ValueError(f"Unsupported content part type: {kind!r}")
    return tuple(blocks)


def message_from_dict(msg: Union[Message, ChatMessage]) -> Message:
    """Convert an OpenAI-style message dict into a canonical Message."""
    if isinstance(msg, Message):
        return msg

    role = Role(msg["role"])
    content = msg.get("content")
    if role is Role.TOOL:
        text = content if isinstance(content, str) else "" if content is None else str(content)
        return Message.tool(msg.get("tool_call_id", ""), text)

    if content is None:
        content = ""
    elif not isinstance(content, str):
        content = _content_from_parts(content)

    tool_calls = tuple(
        ToolCall(
            id=tc.get("id", ""),
            name=tc["function"]["name"],
            arguments_json=tc["function"].get("arguments") or "{}",
        )
        for tc in msg.get("tool_calls") or ()
    )
    return Message(role, content, tool_calls)


def build_request(
    model_id: str,
    messages: Iterable[Union[Message, ChatMessage]],
    params: dict | None = None,
) -> ChatRequest:
    """Build a ChatRequest from message dicts (or Messages) and a params dict."""
    normalized = normalize_params(params)
    return ChatRequest(
        model_id=model_id,
        messages=[message_from_dict(m) for m in messages],
        **{k: v for k, v in normalized.items() if v is not None or k == "extra"},
    )
