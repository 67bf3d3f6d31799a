"""Interactive chat against any supported provider.

Demonstrates:
- Listing models with ModelCatalog and checking a local server
- Streaming replies through a Conversation, printing fragments as they arrive
- Optional OpenTelemetry tracing (needs ``opentelemetry-sdk``)

Usage:
    uv run examples/chat_example.py --provider ollama --model llama2
    uv run --env-file=.env examples/chat_example.py --provider openrouter --list
    uv run --env-file=.env examples/chat_example.py --provider mistral --model mistral-small --trace
"""

import argparse
import asyncio
import logging

from polychat.catalog import ModelCatalog
from polychat.conversation import Conversation
from polychat.errors import ChatError
from polychat.events import CompletionEvent, TextDeltaEvent
from polychat.logging_config import configure_logging
from polychat.message import Provider
from polychat.provider import ProviderRouter
from polychat.settings import EnvCredentialStore, Settings


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from polychat.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


async def list_models(catalog: ModelCatalog, provider: Provider):
    try:
        models = await catalog.list_models(provider)
    except ChatError as e:
        raise SystemExit(f"Could not list {provider.value} models: {e}")
    for model in models:
        print(f"{model.id:40} {model.display_name}")


async def reply(conversation: Conversation, prompt: str):
    printed = 0
    async for event in conversation.iter(prompt):
        if isinstance(event, TextDeltaEvent):
            print(event.fragment, end="", flush=True)
            printed = len(event.text)
        elif isinstance(event, CompletionEvent) and not event.result.ok:
            suffix = "\n" if printed else ""
            print(f"{suffix}[{event.result.kind.value}] {event.result.error}")
    print("\n")


async def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--provider", choices=[p.value for p in Provider], default="ollama")
    parser.add_argument("--model", default="llama2")
    parser.add_argument("--system", default="")
    parser.add_argument("--list", action="store_true", help="list models and exit")
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.debug else logging.WARNING, log_file=None)
    if args.trace:
        setup_tracing("polychat-example")

    provider = Provider(args.provider)
    router = ProviderRouter(Settings.from_env())
    credentials = EnvCredentialStore()
    catalog = ModelCatalog(router, credentials)

    if args.list:
        await list_models(catalog, provider)
        return
    if not await catalog.check_connection(provider):
        raise SystemExit(f"{provider.value} is not reachable at {router.resolve(provider).base_url}")

    conversation = Conversation(
        provider, args.model,
        router=router, credentials=credentials, system_prompt=args.system,
    )

    print(f"Chatting with {args.model} on {provider.value}.\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break
        if not user_input.strip():
            continue

        await reply(conversation, user_input)


if __name__ == "__main__":
    asyncio.run(main())
