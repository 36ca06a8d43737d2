"""Same conversation against every built-in provider through one gateway."""

import asyncio
import logging

from llm_gateway import AccessCandidate, Gateway

logging.basicConfig(level=logging.INFO)

MODELS = ["gpt-4o-mini", "claude-3-5-haiku", "gemini-2.5-flash"]


async def main() -> None:
    candidate = AccessCandidate.agent("example-agent")
    messages = [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "What is the capital of Italy?"},
    ]

    async with Gateway.from_env(default_params={"temperature": 0.7}) as gateway:
        for model_id in MODELS:
            request = gateway.request(model_id, messages, {"max_tokens": 150})
            response = await gateway.chat(request, candidate=candidate)
            print(f"{model_id}: {response.content}")
            for record in response.usage:
                print(f"  usage: in={record.input_tokens} out={record.output_tokens} ({record.key_source})")


if __name__ == "__main__":
    asyncio.run(main())
