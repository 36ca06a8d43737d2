from __future__ import annotations

import argparse
import asyncio
import logging

from llm_gateway import Gateway, Message, ToolCall, ToolDefinition

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

WEATHER_TOOL = ToolDefinition(
    name="get_weather",
    description="Get the current weather in a given location",
    parameters={
        "location": {"type": "string", "description": "City and state, e.g. San Francisco, CA"},
        "unit": {"type": "string", "enum": ["celsius", "fahrenheit"]},
    },
    required=("location",),
)


def run_local_tool(call: ToolCall) -> str:
    """Stub implementation of get_weather."""
    # imagine we call a real weather API here
    return "15 °C, mostly cloudy"


async def single_tool_roundtrip(model_id: str) -> None:
    """
    Run a single tool-calling roundtrip with the given model.

    1) Send user prompt
    2) Let model emit a tool call
    3) Execute stub tool, append the assistant turn and the results
    4) Ask model to finish using tool result
    """
    async with Gateway.from_env() as gateway:
        request = gateway.request(
            model_id,
            [{"role": "user", "content": "What's the weather in San Francisco?"}],
            {"tools": [WEATHER_TOOL]},
        )

        first = await gateway.chat(request)
        if not first.has_tool_calls:
            logger.warning("Model answered directly: %s", first.content)
            return

        request.messages.append(first.assistant_message())
        for call in first.tool_calls:
            if not call.is_valid:
                request.messages.append(Message.tool(call.id, call.error, is_error=True))
                continue
            request.messages.append(Message.tool(call.id, run_local_tool(call)))

        second = await gateway.chat(request)
        logger.info("%s says: %s", model_id, second.content)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--model", default="claude-3-5-haiku")
    args = parser.parse_args()

    asyncio.run(single_tool_roundtrip(args.model))
