"""Stream a reply and print events as they arrive.

Execute with: OPENAI_API_KEY=sk-... python examples/streaming.py --model gpt-4o-mini
"""

import argparse
import asyncio

from llm_gateway import Gateway
from llm_gateway.types import ContentEvent, EndEvent, ErrorEvent, InterruptedEvent, ThinkingEvent


async def stream_story(model_id: str, max_tokens: int) -> None:
    async with Gateway.from_env() as gateway:
        request = gateway.request(
            model_id,
            [{"role": "user", "content": "Tell me a short story about a lighthouse keeper."}],
            {"max_tokens": max_tokens},
        )
        async with await gateway.stream(request) as events:
            async for event in events:
                if isinstance(event, ThinkingEvent):
                    print(f"[thinking] {event.text}", end="", flush=True)
                elif isinstance(event, ContentEvent):
                    print(event.text, end="", flush=True)
                elif isinstance(event, InterruptedEvent):
                    print(f"\n[interrupted: {event.reason}]")
                elif isinstance(event, EndEvent):
                    print(f"\n[done: {event.finish_reason}, usage={event.usage}]")
                elif isinstance(event, ErrorEvent):
                    print(f"\n[error: {event.error}]")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--max-tokens", type=int, default=300)
    args = parser.parse_args()

    asyncio.run(stream_story(args.model, args.max_tokens))
