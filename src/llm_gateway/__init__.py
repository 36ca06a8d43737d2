"""
LLM Gateway - one canonical interface in front of multiple LLM providers.
"""

import logging

from .access import AccessCandidate, AllowAll, Authorizer
from .adapters import AnthropicAdapter, GeminiAdapter, OpenAIAdapter, ProviderAdapter, ephemeral
from .client import Gateway
from .config import GatewayConfig, OverflowPolicy, ProviderKeys
from .context_window import build_context_window
from .credentials import ApiKey, AwsKeys, CredentialResolver, JsonBlob, NoCredentials, SecretStore
from .errors import (
    AccessDenied,
    CredentialMissing,
    GatewayError,
    StreamInterrupted,
    StreamOverflow,
    TokenBudgetExceeded,
    UnknownModel,
    UnsupportedCapability,
    UnsupportedProvider,
    UpstreamProviderError,
)
from .factory import AdapterRegistry, create_adapter
from .params import ChatMessage, build_request
from .providers import Provider
from .registry import StaticModelRegistry
from .response import ChatResponse, InvalidResponseFormat
from .streaming import EventStream
from .tokens import count_tokens
from .types import (
    Capabilities,
    ChatRequest,
    CredentialMode,
    ImageBlock,
    Message,
    ModelDescriptor,
    ToolCall,
    ToolDefinition,
    ToolResult,
    UsageRecord,
)
from .usage import MeteringSink, normalize_usage

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Gateway",
    "GatewayConfig",
    "OverflowPolicy",
    "ProviderKeys",
    "AccessCandidate",
    "AllowAll",
    "Authorizer",
    "ProviderAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "AdapterRegistry",
    "create_adapter",
    "ephemeral",
    "build_context_window",
    "CredentialResolver",
    "SecretStore",
    "NoCredentials",
    "ApiKey",
    "AwsKeys",
    "JsonBlob",
    "GatewayError",
    "AccessDenied",
    "CredentialMissing",
    "StreamInterrupted",
    "StreamOverflow",
    "TokenBudgetExceeded",
    "UnknownModel",
    "UnsupportedCapability",
    "UnsupportedProvider",
    "UpstreamProviderError",
    "ChatMessage",
    "build_request",
    "Provider",
    "StaticModelRegistry",
    "ChatResponse",
    "InvalidResponseFormat",
    "EventStream",
    "count_tokens",
    "Capabilities",
    "ChatRequest",
    "CredentialMode",
    "ImageBlock",
    "Message",
    "ModelDescriptor",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "UsageRecord",
    "MeteringSink",
    "normalize_usage",
]
