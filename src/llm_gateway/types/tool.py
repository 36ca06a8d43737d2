"""
Provider-neutral dataclasses for client-side tool use.

They are intentionally minimal: everything provider-specific lives in adapters.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Union

__all__ = ["ToolDefinition", "ToolChoice", "ToolCall", "ToolResult"]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A caller-supplied function the model may call.

    ``parameters`` is the JSON-schema ``properties`` mapping; adapters wrap it
    into the provider's declaration shape.
    """
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def json_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": dict(self.parameters),
            "required": list(self.required),
        }


# "auto" | "none" | "required" | {"name": "<tool name>"}
ToolChoice = Union[Literal["auto", "none", "required"], dict[str, str]]


@dataclass(slots=True)
class ToolCall:
    """A model-agnostic request emitted by the LLM to call a local tool.

    ``arguments_json`` is kept as text: while streaming it is accumulated in
    arrival order and only parsed once the call is complete.
    """
    id: str
    name: str
    arguments_json: str = "{}"
    error: str | None = None  # set when the arguments never became valid JSON

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def arguments(self) -> dict[str, Any]:
        """Parse the arguments; raises ``json.JSONDecodeError`` for invalid calls."""
        if not self.arguments_json.strip():
            return {}
        value = json.loads(self.arguments_json)
        return value if isinstance(value, dict) else {"value": value}


@dataclass(slots=True)
class ToolResult:
    """Payload to send back to the LLM after the tool finished running."""
    id: str                     # must match the ToolCall id
    content: str | dict[str, Any] | list[Any]
    name: str = ""
    is_error: bool = False

    def content_text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content, ensure_ascii=False)
