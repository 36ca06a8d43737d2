"""Test suite for parameter normalization and request building."""

import base64

import pytest

from llm_gateway.params import build_request, merge_params, message_from_dict, normalize_params
from llm_gateway.types.chat import ImageBlock, Role, TextBlock, ToolResultBlock, WebSearchOptions
from llm_gateway.types.tool import ToolDefinition


class TestParamsNormalization:
    """Test parameter normalization functionality."""

    def test_basic_params_normalization(self):
        """Standard keys map onto request fields."""
        params = normalize_params({"temperature": 0.7, "max_tokens": 100, "top_p": 0.9, "top_k": 40})

        assert params["temperature"] == 0.7
        assert params["max_output_tokens"] == 100
        assert params["top_p"] == 0.9
        assert params["top_k"] == 40
        assert params["extra"] == {}

    def test_extra_params_handling(self):
        """Unknown keys are moved into extra."""
        params = normalize_params({"temperature": 0.7, "seed": 7, "verbosity": "low"})

        assert params["temperature"] == 0.7
        assert params["extra"] == {"seed": 7, "verbosity": "low"}
        assert "seed" not in params

    def test_existing_extra_dict_merge(self):
        """Explicit extra is merged after moved keys."""
        params = normalize_params(
            {"frequency_penalty": 0.5, "extra": {"verbosity": "high", "frequency_penalty": 0.1}}
        )

        assert params["extra"] == {"frequency_penalty": 0.1, "verbosity": "high"}

    def test_none_values_are_kept(self):
        params = normalize_params({"temperature": 0.7, "max_tokens": None})

        assert params["max_output_tokens"] is None
        assert normalize_params(None) == {"extra": {}}

    def test_stop_string_becomes_list(self):
        assert normalize_params({"stop": "END"})["stop_sequences"] == ["END"]
        assert normalize_params({"stop_sequences": ("a", "b")})["stop_sequences"] == ["a", "b"]

    def test_response_format(self):
        assert normalize_params({"response_format": "json"})["response_format"] == "json"
        assert normalize_params({"response_format": {"type": "json_object"}})["response_format"] == "json"
        schema = {"type": "json_schema", "json_schema": {"name": "s", "schema": {"type": "object"}}}
        assert normalize_params({"response_format": schema})["response_format"] == "json"
        assert normalize_params({"response_format": {"type": "text"}})["response_format"] is None

    def test_unsupported_response_format(self):
        with pytest.raises(ValueError):
            normalize_params({"response_format": "yaml"})

    def test_tool_parameters(self):
        """OpenAI function tools become ToolDefinitions."""
        tools = [
            {
                "type": "function",
                "function": {
                    "name": "lookup",
                    "description": "Find a thing",
                    "parameters": {
                        "type": "object",
                        "properties": {"q": {"type": "string"}},
                        "required": ["q"],
                    },
                },
            }
        ]
        params = normalize_params({"tools": tools, "tool_choice": "required", "parallel_tool_calls": True})

        assert params["tools"] == [
            ToolDefinition("lookup", "Find a thing", {"q": {"type": "string"}}, ("q",))
        ]
        assert params["tool_choice"] == "required"
        assert params["extra"]["parallel_tool_calls"] is True

    def test_web_search_dict(self):
        params = normalize_params({"web_search": {"context_size": "high"}})
        assert params["web_search"] == WebSearchOptions("high")

    def test_edge_case_values(self):
        """Zero values survive normalization."""
        params = normalize_params({"temperature": 0.0, "max_tokens": 0, "tools": [], "stop": []})

        assert params["temperature"] == 0.0
        assert params["max_output_tokens"] == 0
        assert params["tools"] == []
        assert params["stop_sequences"] == []

    def test_invalid_params_type(self):
        with pytest.raises(TypeError):
            normalize_params([("temperature", 1)])


class TestMergeParams:
    """Defaults merged with per-call overrides."""

    def test_overrides_win(self):
        params = merge_params(
            {"temperature": 0.2, "max_tokens": 500, "extra": {"seed": 1, "user": "a"}},
            {"temperature": 0.9, "extra": {"seed": 2}},
        )

        assert params["temperature"] == 0.9
        assert params["max_output_tokens"] == 500
        assert params["extra"] == {"seed": 2, "user": "a"}

    def test_no_overrides(self):
        assert merge_params({"top_p": 0.5}, None) == {"top_p": 0.5, "extra": {}}


class TestMessages:
    """OpenAI-style message dicts to canonical messages."""

    def test_text_message(self):
        msg = message_from_dict({"role": "user", "content": "Hello"})
        assert msg.role is Role.USER
        assert msg.text() == "Hello"

    def test_tool_call_round_trip(self):
        assistant = message_from_dict(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {"id": "call_1", "type": "function", "function": {"name": "calc", "arguments": '{"a": 2}'}}
                ],
            }
        )
        tool = message_from_dict({"role": "tool", "tool_call_id": "call_1", "content": "4"})

        assert assistant.tool_calls[0].id == "call_1"
        assert assistant.tool_calls[0].arguments() == {"a": 2}
        assert tool.role is Role.TOOL
        assert tool.blocks == (ToolResultBlock("call_1", "4"),)

    def test_image_parts(self):
        payload = base64.b64encode(b"\x89PNG").decode()
        msg = message_from_dict(
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "What is this?"},
                    {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{payload}"}},
                    {"type": "image_url", "image_url": {"url": "https://example.com/cat.JPG"}},
                ],
            }
        )

        text, inline, remote = msg.blocks
        assert text == TextBlock("What is this?")
        assert inline == ImageBlock("image/png", data=b"\x89PNG")
        assert remote == ImageBlock("image/jpeg", url="https://example.com/cat.JPG")

    def test_invalid_data_url(self):
        with pytest.raises(ValueError):
            message_from_dict(
                {"role": "user", "content": [{"type": "image_url", "image_url": {"url": "data:image/png;base64,@@"}}]}
            )

    def test_unknown_part_type(self):
        with pytest.raises(ValueError):
            message_from_dict({"role": "user", "content": [{"type": "audio", "data": "x"}]})


class TestBuildRequest:
    def test_build_request(self):
        request = build_request(
            "gpt-4o-mini",
            [{"role": "system", "content": "Be brief"}, {"role": "user", "content": "Hi"}],
            {"max_tokens": 50, "seed": 3},
        )

        assert request.model_id == "gpt-4o-mini"
        assert request.max_output_tokens == 50
        assert request.temperature is None
        assert request.extra == {"seed": 3}
        system, others = request.split_system()
        assert system.text() == "Be brief"
        assert [m.role for m in others] == [Role.USER]

    def test_split_system_joins_every_system_message(self):
        request = build_request(
            "gpt-4o-mini",
            [
                {"role": "system", "content": "Be brief"},
                {"role": "user", "content": "Hi"},
                {"role": "system", "content": "Answer in French"},
            ],
        )

        system, others = request.split_system()
        assert system.role is Role.SYSTEM
        assert system.text() == "Be brief\n\nAnswer in French"
        assert [m.text() for m in others] == ["Hi"]
