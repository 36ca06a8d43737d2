"""
Gateway configuration.

Everything the gateway reads from the environment is read here, once, into
explicit objects that are passed to the components that need them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Mapping, Optional

from dotenv import load_dotenv

from llm_gateway.providers import Provider

__all__ = ["OverflowPolicy", "ProviderKeys", "GatewayConfig"]


class OverflowPolicy(StrEnum):
    """What a stream does when its consumer falls behind."""
    BLOCK = "block"  # suspend the producer until the consumer catches up
    DROP = "drop"    # abort the upstream call and end with an error event


@dataclass(frozen=True)
class ProviderKeys:
    """Process-level default API keys, one per provider."""

    keys: Mapping[Provider, str] = field(default_factory=dict)

    def get(self, provider: Provider) -> Optional[str]:
        return self.keys.get(Provider(provider)) or None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProviderKeys":
        env = os.environ if environ is None else environ
        return cls({p: env[p.env_var] for p in Provider if env.get(p.env_var)})


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    return float(raw) if raw else default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class GatewayConfig:
    """
    Runtime settings for the gateway.

    Attributes:
        provider_keys: Default keys for the ``internal`` credential strategy.
        timeouts: Per-provider request timeout in seconds.
        default_timeout: Timeout for providers missing from ``timeouts``.
        max_retries: Retries performed by the provider SDKs. The gateway
            itself never retries; this stays 0 unless explicitly raised.
        stream_buffer_size: Capacity of the event buffer of each stream.
        overflow_policy: Behaviour when a stream buffer is full.
        secret_timeout: Seconds to wait for the secret store before treating
            the lookup as "no credential".
    """

    provider_keys: ProviderKeys = field(default_factory=ProviderKeys)
    timeouts: Mapping[Provider, float] = field(default_factory=dict)
    default_timeout: float = 60.0
    max_retries: int = 0
    stream_buffer_size: int = 256
    overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK
    secret_timeout: float = 2.0

    def timeout_for(self, provider: Provider) -> float:
        return self.timeouts.get(Provider(provider), self.default_timeout)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "GatewayConfig":
        """Load ``.env`` (if present) and build a config from ``LLM_GATEWAY_*`` variables."""
        load_dotenv(dotenv_path)
        env = os.environ
        timeouts = {
            p: float(env[f"LLM_GATEWAY_{p.name}_TIMEOUT"])
            for p in Provider
            if env.get(f"LLM_GATEWAY_{p.name}_TIMEOUT")
        }
        return cls(
            provider_keys=ProviderKeys.from_env(env),
            timeouts=timeouts,
            default_timeout=_env_float(env, "LLM_GATEWAY_TIMEOUT", 60.0),
            max_retries=_env_int(env, "LLM_GATEWAY_MAX_RETRIES", 0),
            stream_buffer_size=_env_int(env, "LLM_GATEWAY_STREAM_BUFFER", 256),
            overflow_policy=OverflowPolicy(env.get("LLM_GATEWAY_OVERFLOW_POLICY", "block")),
            secret_timeout=_env_float(env, "LLM_GATEWAY_SECRET_TIMEOUT", 2.0),
        )
