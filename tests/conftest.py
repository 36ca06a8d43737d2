"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from llm_gateway.config import GatewayConfig, ProviderKeys
from llm_gateway.providers import Provider


@pytest.fixture(autouse=True)
def block_dotenv(monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests."""
    monkeypatch.setattr("llm_gateway.config.load_dotenv", lambda *_args, **_kwargs: False)


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(provider_keys=ProviderKeys({Provider.OPENAI: "sk-platform"}))
