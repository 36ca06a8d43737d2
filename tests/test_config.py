"""Tests for configuration, the model registry and the adapter factory."""

import pytest

from llm_gateway import Gateway
from llm_gateway.adapters import AnthropicAdapter, GeminiAdapter, OpenAIAdapter
from llm_gateway.config import GatewayConfig, OverflowPolicy, ProviderKeys
from llm_gateway.errors import UnknownModel, UnsupportedProvider
from llm_gateway.factory import AdapterRegistry, create_adapter, default_adapters
from llm_gateway.providers import Provider
from llm_gateway.registry import StaticModelRegistry
from llm_gateway.types.model import Capabilities, CredentialMode, ModelDescriptor


class TestGatewayConfig:
    def test_defaults(self):
        config = GatewayConfig()

        assert config.max_retries == 0
        assert config.stream_buffer_size == 256
        assert config.overflow_policy is OverflowPolicy.BLOCK
        assert config.timeout_for(Provider.OPENAI) == 60.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.setenv("LLM_GATEWAY_TIMEOUT", "30")
        monkeypatch.setenv("LLM_GATEWAY_ANTHROPIC_TIMEOUT", "90")
        monkeypatch.setenv("LLM_GATEWAY_STREAM_BUFFER", "8")
        monkeypatch.setenv("LLM_GATEWAY_OVERFLOW_POLICY", "drop")

        config = GatewayConfig.from_env()

        assert config.provider_keys.get(Provider.OPENAI) == "sk-env"
        assert config.provider_keys.get(Provider.ANTHROPIC) is None
        assert config.timeout_for(Provider.OPENAI) == 30.0
        assert config.timeout_for(Provider.ANTHROPIC) == 90.0
        assert config.stream_buffer_size == 8
        assert config.overflow_policy is OverflowPolicy.DROP

    def test_invalid_overflow_policy(self, monkeypatch):
        monkeypatch.setenv("LLM_GATEWAY_OVERFLOW_POLICY", "spill")
        with pytest.raises(ValueError):
            GatewayConfig.from_env()

    def test_provider_keys_from_mapping(self):
        keys = ProviderKeys.from_env({"GEMINI_API_KEY": "g", "OPENAI_API_KEY": ""})
        assert keys.get(Provider.GEMINI) == "g"
        assert keys.get(Provider.OPENAI) is None


class TestStaticModelRegistry:
    def test_default_models(self):
        registry = StaticModelRegistry()

        assert "gpt-4o-mini" in registry
        descriptor = registry.get_model_descriptor("claude-sonnet-4-20250514")
        assert descriptor.model_id == "claude-sonnet-4"
        assert descriptor.api_model_name == "claude-sonnet-4-20250514"
        assert descriptor.credential_modes() == [CredentialMode.VAULT, CredentialMode.INTERNAL]

    def test_unknown_model(self):
        with pytest.raises(UnknownModel):
            StaticModelRegistry().get_model_descriptor("gpt-0")
        assert "gpt-0" not in StaticModelRegistry()

    def test_custom_models_and_aliases(self):
        custom = ModelDescriptor(
            model_id="local-llama",
            provider=Provider.OPENAI,
            context_tokens=8192,
            max_completion_tokens=1024,
            credential_mode=CredentialMode.NONE,
            base_url="http://localhost:8000/v1",
            capabilities=Capabilities(tools=True),
        )
        registry = StaticModelRegistry([])
        registry.register(custom, "llama")

        assert registry.model_ids() == ["local-llama"]
        assert registry.get_model_descriptor("llama") is custom
        assert "gpt-4o-mini" not in registry

    def test_platform_limits(self):
        descriptor = StaticModelRegistry().get_model_descriptor("o4-mini")

        assert descriptor.allowed_context_tokens(False) == 64_000
        assert descriptor.allowed_context_tokens(True) == 200_000
        assert descriptor.allowed_completion_tokens(False) == 8_192
        assert descriptor.allowed_completion_tokens(True) == 100_000


class TestAdapterFactory:
    def test_create_adapter(self):
        config = GatewayConfig(timeouts={Provider.ANTHROPIC: 15.0}, max_retries=2)

        adapter = create_adapter(Provider.ANTHROPIC, config=config)

        assert isinstance(adapter, AnthropicAdapter)
        assert adapter.timeout == 15.0
        assert adapter.max_retries == 2

    def test_create_adapter_from_string(self):
        assert isinstance(create_adapter("gemini"), GeminiAdapter)

    def test_unsupported_provider(self):
        with pytest.raises(UnsupportedProvider):
            create_adapter("cohere")

    def test_default_adapters(self):
        registry = default_adapters()

        assert isinstance(registry.get(Provider.OPENAI), OpenAIAdapter)
        assert Provider.ANTHROPIC in registry
        assert len(registry.adapters()) == 3

    def test_missing_adapter(self):
        with pytest.raises(UnsupportedProvider):
            AdapterRegistry().get(Provider.OPENAI)

    def test_gateway_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

        gateway = Gateway.from_env()

        assert gateway.config.provider_keys.get(Provider.OPENAI) == "sk-env"
        assert isinstance(gateway.adapters.get(Provider.GEMINI), GeminiAdapter)
