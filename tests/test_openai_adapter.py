"""Tests for the OpenAI and Gemini adapters."""

import pytest

from helpers import FakeOpenAIClient, FakeStream, chat_completion, content_chunk, finish_chunk, tool_chunk, usage_chunk
from llm_gateway.adapters import JSON_RESPONSE_INSTRUCTION, GeminiAdapter, OpenAIAdapter
from llm_gateway.adapters.gemini import DEFAULT_GEMINI_BASE_URL
from llm_gateway.credentials import ApiKey, AwsKeys, NoCredentials
from llm_gateway.errors import CredentialMissing, UnsupportedCapability, UpstreamProviderError
from llm_gateway.params import build_request
from llm_gateway.registry import StaticModelRegistry
from llm_gateway.types.chat import ImageBlock, Message, TextBlock, ToolUseBlock
from llm_gateway.types.stream import ContentEvent, EndEvent, ErrorEvent, InterruptedEvent, ToolInfoEvent
from llm_gateway.types.tool import ToolCall, ToolDefinition, ToolResult
from llm_gateway.usage import UsageContext, normalize_usage

REGISTRY = StaticModelRegistry()
KEY = ApiKey("sk-test")


class TestOpenAIRequest:
    """Canonical request -> Chat Completions body."""

    @pytest.fixture
    def adapter(self):
        return OpenAIAdapter()

    def test_basic_body(self, adapter):
        request = build_request(
            "gpt-4o-mini", [{"role": "user", "content": "Hello"}], {"temperature": 0.7, "max_tokens": 100}
        )

        result = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY)

        assert result.body["model"] == "gpt-4o-mini"
        assert result.body["messages"] == [{"role": "user", "content": "Hello"}]
        assert result.body["temperature"] == 0.7
        assert result.body["max_tokens"] == 100
        assert "stream" not in result.body
        assert result.options == {"api_key": "sk-test"}
        assert result.prefill == ""

    def test_system_message_first(self, adapter):
        request = build_request(
            "gpt-4o-mini",
            [
                {"role": "user", "content": "Hello"},
                {"role": "system", "content": "You are helpful"},
                {"role": "assistant", "content": "Hi!"},
            ],
        )

        messages = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY).body["messages"]

        assert [m["role"] for m in messages] == ["system", "user", "assistant"]
        assert messages[0]["content"] == "You are helpful"

    def test_reasoning_models_use_max_completion_tokens(self, adapter):
        request = build_request(
            "o4-mini", [{"role": "user", "content": "x"}], {"max_tokens": 10, "reasoning_effort": "low"}
        )

        body = adapter.adapt_request(request, REGISTRY.get_model_descriptor("o4-mini"), KEY).body

        assert body["max_completion_tokens"] == 10
        assert "max_tokens" not in body
        assert body["reasoning_effort"] == "low"

    def test_json_mode(self, adapter):
        request = build_request(
            "gpt-4o-mini",
            [{"role": "system", "content": "Extract"}, {"role": "user", "content": "x"}],
            {"response_format": {"type": "json_object"}},
        )

        body = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY).body

        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["content"] == "Extract" + JSON_RESPONSE_INSTRUCTION

    def test_extra_params_pass_through(self, adapter):
        request = build_request("gpt-4o-mini", [{"role": "user", "content": "x"}], {"seed": 7})
        body = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY).body
        assert body["seed"] == 7

    def test_tools_and_tool_history(self, adapter):
        tool = ToolDefinition("calc", "Add numbers", {"a": {"type": "number"}}, ("a",))
        request = build_request(
            "gpt-4o-mini",
            [
                {"role": "user", "content": "Calculate 2+2"},
                {
                    "role": "assistant",
                    "tool_calls": [
                        {"id": "call_1", "type": "function", "function": {"name": "calc", "arguments": '{"a": 2}'}}
                    ],
                },
                {"role": "tool", "tool_call_id": "call_1", "content": "4"},
            ],
            {"tools": [tool], "tool_choice": {"name": "calc"}},
        )

        body = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY).body

        assert body["tools"][0]["function"]["parameters"] == {
            "type": "object",
            "properties": {"a": {"type": "number"}},
            "required": ["a"],
        }
        assert body["tool_choice"] == {"type": "function", "function": {"name": "calc"}}
        assistant, tool_msg = body["messages"][1], body["messages"][2]
        assert assistant["content"] is None
        assert assistant["tool_calls"][0]["id"] == "call_1"
        assert tool_msg == {"role": "tool", "tool_call_id": "call_1", "content": "4"}

    def test_orphan_tool_result_becomes_text(self, adapter):
        request = build_request(
            "gpt-4o-mini",
            [{"role": "user", "content": "hi"}, {"role": "tool", "tool_call_id": "call_9", "content": "42"}],
        )

        messages = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY).body["messages"]

        assert all(m["role"] != "tool" for m in messages)
        assert "42" in messages[-1]["content"]

    def test_request_files_attach_to_last_user_turn(self, adapter):
        request = build_request(
            "gpt-4o-mini",
            [{"role": "user", "content": "Describe"}],
            {"files": [ImageBlock("image/png", data=b"img")]},
        )

        content = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY).body["messages"][0]["content"]

        assert content[0] == {"type": "text", "text": "Describe"}
        assert content[1]["type"] == "image_url"
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")

    def test_web_search_options(self, adapter):
        request = build_request(
            "gpt-4o-mini-search-preview", [{"role": "user", "content": "news"}], {"web_search": {"context_size": "low"}}
        )
        body = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini-search-preview"), KEY).body
        assert body["web_search_options"] == {"search_context_size": "low"}

    def test_per_call_timeout_and_no_credentials(self, adapter):
        request = build_request("gpt-4o-mini", [{"role": "user", "content": "x"}], {"timeout": 5.0})
        result = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), NoCredentials())
        assert result.options == {"timeout": 5.0}


class TestCapabilities:
    """Capability mismatches fail before any I/O."""

    def test_tools_unsupported(self):
        request = build_request(
            "gpt-4o-mini-search-preview", [{"role": "user", "content": "x"}], {"tools": [ToolDefinition("f")]}
        )
        with pytest.raises(UnsupportedCapability) as excinfo:
            OpenAIAdapter().adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini-search-preview"), KEY)
        assert excinfo.value.capability == "tools"

    def test_vision_unsupported(self):
        request = build_request(
            "gpt-4o-mini-search-preview",
            [Message.user([ImageBlock("image/png", data=b"x")])],
        )
        with pytest.raises(UnsupportedCapability):
            OpenAIAdapter().adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini-search-preview"), KEY)

    def test_invalid_image_type(self):
        request = build_request("gpt-4o-mini", [Message.user([ImageBlock("image/tiff", data=b"x")])])
        with pytest.raises(UnsupportedCapability):
            OpenAIAdapter().adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY)

    def test_web_search_unsupported(self):
        request = build_request("gpt-4o-mini", [{"role": "user", "content": "x"}], {"web_search": {}})
        with pytest.raises(UnsupportedCapability):
            OpenAIAdapter().adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), KEY)

    def test_cloud_credentials_rejected(self):
        request = build_request("gpt-4o-mini", [{"role": "user", "content": "x"}])
        with pytest.raises(CredentialMissing):
            OpenAIAdapter().adapt_request(request, REGISTRY.get_model_descriptor("gpt-4o-mini"), AwsKeys("a", "b"))


class TestOpenAIResponse:
    """ChatCompletion -> ChatResponse."""

    def test_text_response_with_usage(self):
        raw = chat_completion(
            {"content": "Hello!"},
            usage={
                "prompt_tokens": 100,
                "completion_tokens": 20,
                "total_tokens": 120,
                "prompt_tokens_details": {"cached_tokens": 40},
            },
        )
        context = UsageContext(agent_id="agent-1", source_id="llm:gpt-4o-mini")

        response = OpenAIAdapter().adapt_response(raw, context=context)

        assert response.content == "Hello!"
        assert response.finish_reason == "stop"
        assert not response.has_tool_calls
        record = response.usage[0]
        assert (record.input_tokens, record.output_tokens, record.cached_read_tokens) == (60, 20, 40)
        assert record.agent_id == "agent-1"
        assert record.source_id == "llm:gpt-4o-mini"

    def test_invalid_tool_call_arguments_are_flagged(self):
        raw = chat_completion(
            {
                "content": None,
                "tool_calls": [
                    {"id": "id1", "type": "function", "function": {"name": "test", "arguments": "{not valid json"}}
                ],
            },
            finish_reason="tool_calls",
        )

        response = OpenAIAdapter().adapt_response(raw)

        assert response.finish_reason == "tool_calls"
        assert response.usage == []
        call = response.tool_calls[0]
        assert (call.id, call.name) == ("id1", "test")
        assert not call.is_valid

    def test_tool_call_id_round_trip(self):
        raw = chat_completion(
            {
                "content": None,
                "tool_calls": [
                    {"id": "call_abc", "type": "function", "function": {"name": "calc", "arguments": '{"a": 1}'}}
                ],
            },
            finish_reason="tool_calls",
        )
        adapter = OpenAIAdapter()
        assistant = adapter.adapt_response(raw).assistant_message()

        messages = adapter.transform_tool_result_turn(
            assistant, [ToolResult("call_abc", {"sum": 1}), ToolResult("unknown", "x")]
        )

        assert messages[0]["tool_calls"][0]["id"] == "call_abc"
        assert messages[1:] == [{"role": "tool", "tool_call_id": "call_abc", "content": '{"sum": 1}'}]

    def test_tool_result_turn_for_tool_use_blocks(self):
        assistant = Message.assistant([TextBlock("calling"), ToolUseBlock("t1", "lookup", "{}")])

        messages = OpenAIAdapter().transform_tool_result_turn(assistant, [ToolResult("t1", "ok")])

        assert messages[0]["content"] == "calling"
        assert messages[0]["tool_calls"][0]["id"] == "t1"
        assert messages[1:] == [{"role": "tool", "tool_call_id": "t1", "content": "ok"}]


class TestOpenAIStreaming:
    """Raw chunks -> canonical events."""

    @pytest.mark.asyncio
    async def test_stream_with_tool_call_and_usage(self):
        stream = FakeStream(
            [
                content_chunk("Let me check. "),
                tool_chunk(0, id="call_1", name="get_weather"),
                tool_chunk(0, arguments='{"city": '),
                tool_chunk(0, arguments='"Paris"}'),
                finish_chunk("tool_calls"),
                usage_chunk(12, 8),
            ]
        )
        adapter = OpenAIAdapter()
        builder = lambda fields: [normalize_usage(fields)]

        events = [e async for e in adapter.normalize_stream(stream, usage_builder=builder)]

        assert events[0] == ContentEvent("Let me check. ")
        assert isinstance(events[1], ToolInfoEvent)
        assert events[2] == InterruptedEvent("tool_calls")
        end = events[-1]
        assert isinstance(end, EndEvent)
        assert end.tool_calls[0].arguments() == {"city": "Paris"}
        assert end.usage[0].input_tokens == 12
        assert end.usage[0].output_tokens == 8
        assert stream.closed

    @pytest.mark.asyncio
    async def test_transport_error_becomes_error_event(self):
        stream = FakeStream([content_chunk("Hel"), content_chunk("lo")], fail_after=2)

        events = [e async for e in OpenAIAdapter().normalize_stream(stream)]

        assert events[:2] == [ContentEvent("Hel"), ContentEvent("lo")]
        assert isinstance(events[2], ErrorEvent)
        assert isinstance(events[2].error, UpstreamProviderError)
        assert events[2].error.code == "connection"
        assert len(events) == 3
        assert stream.closed

    @pytest.mark.asyncio
    async def test_create_stream_requests_usage(self):
        client = FakeOpenAIClient(stream=FakeStream([]))
        adapter = OpenAIAdapter.from_client(client)
        request = adapter.adapt_request(
            build_request("gpt-4o-mini", [{"role": "user", "content": "x"}]),
            REGISTRY.get_model_descriptor("gpt-4o-mini"),
            KEY,
        )

        handle = await adapter.create_stream(request)

        assert handle is client.stream
        assert client.calls[0]["stream"] is True
        assert client.calls[0]["stream_options"] == {"include_usage": True}
        assert client.options == [{"api_key": "sk-test"}]

    @pytest.mark.asyncio
    async def test_invoke_wraps_provider_errors(self):
        adapter = OpenAIAdapter.from_client(FakeOpenAIClient(error=ConnectionError("refused")))
        request = adapter.adapt_request(
            build_request("gpt-4o-mini", [{"role": "user", "content": "x"}]),
            REGISTRY.get_model_descriptor("gpt-4o-mini"),
            KEY,
        )

        with pytest.raises(UpstreamProviderError) as excinfo:
            await adapter.invoke(request)

        assert excinfo.value.code == "connection"
        assert isinstance(excinfo.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self):
        client = FakeOpenAIClient()
        adapter = OpenAIAdapter.from_client(client)
        await adapter.aclose()
        await adapter.aclose()
        assert client.closed


class TestGeminiAdapter:
    def test_defaults(self):
        adapter = GeminiAdapter()
        assert adapter.base_url == DEFAULT_GEMINI_BASE_URL

        request = build_request("gemini-2.5-flash", [{"role": "user", "content": "x"}], {"max_tokens": 10})
        body = adapter.adapt_request(request, REGISTRY.get_model_descriptor("gemini-2.5-flash"), KEY).body

        assert body["max_tokens"] == 10
        assert body["model"] == "gemini-2.5-flash"
