from .chat import (
    ChatRequest,
    ContentBlock,
    ImageBlock,
    Message,
    Role,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    WebSearchOptions,
    is_system_message,
    merge_system_messages,
)
from .model import Capabilities, CredentialMode, ModelDescriptor
from .stream import (
    ContentEvent,
    EndEvent,
    ErrorEvent,
    InterruptedEvent,
    StreamEvent,
    ThinkingEvent,
    ToolInfoEvent,
)
from .tool import ToolCall, ToolChoice, ToolDefinition, ToolResult
from .usage import KeySource, UsageRecord

__all__ = [
    "ChatRequest",
    "ContentBlock",
    "ImageBlock",
    "Message",
    "Role",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "WebSearchOptions",
    "is_system_message",
    "merge_system_messages",
    "Capabilities",
    "CredentialMode",
    "ModelDescriptor",
    "ContentEvent",
    "EndEvent",
    "ErrorEvent",
    "InterruptedEvent",
    "StreamEvent",
    "ThinkingEvent",
    "ToolInfoEvent",
    "ToolCall",
    "ToolChoice",
    "ToolDefinition",
    "ToolResult",
    "KeySource",
    "UsageRecord",
]
