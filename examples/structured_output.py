"""
Structured JSON output: solve an equation step by step and get a parsed dict back.
"""

from __future__ import annotations

import asyncio
import json
import logging

from llm_gateway import Gateway

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def solve(equation: str, model_id: str = "gpt-4o-mini") -> None:
    async with Gateway.from_env() as gateway:
        request = gateway.request(
            model_id,
            [
                {
                    "role": "system",
                    "content": (
                        "You are a mathematical assistant. Reply with an object holding "
                        '"steps" (a list of {"explanation", "output"}) and "final_answer".'
                    ),
                },
                {"role": "user", "content": f"Solve this equation step by step: {equation}"},
            ],
            {"response_format": "json", "max_tokens": 800},
        )
        response = await gateway.chat(request)

        if response.is_invalid_format:
            logger.error("Model returned invalid JSON: %s", response.structured.details)
            logger.error(response.structured.raw_text)
            return

        logger.info(json.dumps(response.structured, indent=2))


if __name__ == "__main__":
    asyncio.run(solve("8x + 7 = -23"))
    # Anthropic gets JSON mode through an assistant prefill
    asyncio.run(solve("3x - 4 = 11", "claude-3-5-haiku"))
