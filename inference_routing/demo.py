"""
Demo script showing basic usage of the Inference Routing layer.

    python -m inference_routing.demo
"""

import asyncio
import sys

from .models import ConversationMessage, RoutingRequest
from .utils import setup_logging, get_logger, ConfigManager, BackendError
from .core import CentralRouter


async def run() -> None:
    """Route a few sample requests and stream one reply."""
    config = ConfigManager().load_config()
    config.logging_config.enable_file = False
    setup_logging(config.logging_config)
    logger = get_logger(__name__)

    logger.info("Inference Routing Demo Starting")

    requests = [
        RoutingRequest(messages=[ConversationMessage.user("What's the weather today?")]),
        RoutingRequest(
            messages=[ConversationMessage.user("Fix this bug in my react code: the api query returns undefined")],
            system_prompt="You are a concise coding assistant.",
        ),
        RoutingRequest(
            messages=[ConversationMessage.user("Set up a cron trigger that posts my reminders every morning")],
            user_credit_balance=0,
        ),
    ]

    async with CentralRouter(config) as router:
        for i, request in enumerate(requests, 1):
            result = await router.execute(request)
            print(f"\nRequest {i}: {request.messages[-1].content}")
            print(f"Intent: {result.intent.value}  Backend: {result.backend_used.value}  Model: {result.model_identifier}")
            print(f"Credits: {result.credit_cost}  Latency: {result.latency_ms}ms")
            print(f"Reply: {result.reply_text}")
            print("-" * 50)

        print("\nStreaming from the local backend:")
        try:
            usage = await router.stream_call(
                [ConversationMessage.user("Say hello in one sentence.")],
                lambda chunk: print(chunk, end="", flush=True),
            )
            print(f"\n[{usage.tokens_in} tokens in, {usage.tokens_out} tokens out]")
        except BackendError as e:
            print(f"\nStreaming unavailable: {e}")

    logger.info("Demo completed")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    sys.exit(main())
