from __future__ import annotations

import logging
from typing import Optional, Type

from llm_gateway.adapters import AnthropicAdapter, GeminiAdapter, OpenAIAdapter, ProviderAdapter
from llm_gateway.config import GatewayConfig
from llm_gateway.errors import UnsupportedProvider
from llm_gateway.providers import Provider

__all__ = ["AdapterRegistry", "create_adapter", "default_adapters"]

# map Provider enum to its adapter implementation
_ADAPTER_CLASSES: dict[Provider, Type[ProviderAdapter]] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.GEMINI: GeminiAdapter,
}


def create_adapter(
    provider: Provider,
    *,
    config: Optional[GatewayConfig] = None,
    logger: logging.Logger | None = None,
) -> ProviderAdapter:
    """
    Factory for creating any supported adapter.

    Args:
        provider: Which provider to use (OPENAI, ANTHROPIC, GEMINI).
        config: Supplies the provider timeout and SDK retry count.
        logger: Optional custom logger.
    """
    try:
        adapter_cls = _ADAPTER_CLASSES[Provider(provider)]
    except (KeyError, ValueError) as exc:
        raise UnsupportedProvider(f"Unsupported provider: {provider}") from exc

    cfg = config or GatewayConfig()
    return adapter_cls(
        timeout=cfg.timeout_for(provider),
        max_retries=cfg.max_retries,
        logger=logger,
    )


class AdapterRegistry:
    """Provider -> adapter instance, filled once at startup."""

    def __init__(self) -> None:
        self._adapters: dict[Provider, ProviderAdapter] = {}

    def register(self, provider: Provider, adapter: ProviderAdapter) -> None:
        self._adapters[Provider(provider)] = adapter

    def get(self, provider: Provider) -> ProviderAdapter:
        try:
            return self._adapters[Provider(provider)]
        except (KeyError, ValueError):
            raise UnsupportedProvider(f"No adapter registered for provider {provider!r}") from None

    def __contains__(self, provider: object) -> bool:
        return provider in self._adapters

    def adapters(self) -> list[ProviderAdapter]:
        return list(self._adapters.values())


def default_adapters(
    config: Optional[GatewayConfig] = None, logger: logging.Logger | None = None
) -> AdapterRegistry:
    """Registry with one adapter per built-in provider."""
    registry = AdapterRegistry()
    for provider in _ADAPTER_CLASSES:
        registry.register(provider, create_adapter(provider, config=config, logger=logger))
    return registry
