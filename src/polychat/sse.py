"""Server-Sent Events adapter for re-emitting normalised events to a UI."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import asdict

from polychat.events import CompletionEvent, StreamEvent


def _completion_payload(event: CompletionEvent) -> dict:
    result = event.result
    return {
        "text": result.text,
        "ok": result.ok,
        "error": result.kind.value if result.kind is not None else None,
        "detail": str(result.error) if result.error is not None else None,
    }


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings.

    Whatever provider produced the stream, the browser sees the same
    ``TextDeltaEvent``/``CompletionEvent`` frames.
    """
    async for event in event_stream:
        event_type = type(event).__name__
        if isinstance(event, CompletionEvent):
            data = json.dumps(_completion_payload(event))
        else:
            data = json.dumps(asdict(event))
        yield f"event: {event_type}\ndata: {data}\n\n"
    yield "event: done\ndata: {}\n\n"
