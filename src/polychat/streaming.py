"""Frame decoders that normalise provider streams into delta events.

Every provider's chunked response is fed through a :class:`FrameDecoder`
and comes out as a list of :class:`DeltaEvent` objects.  Two wire
framings are supported:

- ``NDJSON``: one JSON object per line (Ollama ``/api/generate``).
- ``SSE``: ``data: {json}`` lines carrying OpenAI-style chat deltas
  (Mistral, OpenRouter, LM Studio).

Chunk boundaries are arbitrary, so both variants buffer an incomplete
trailing line until the next chunk (or :meth:`FrameDecoder.flush`)
completes it.  A frame that fails to parse is logged and skipped.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from polychat.errors import DecodeError

logger = logging.getLogger(__name__)

SSE_DATA_FIELD = "data:"
SSE_DONE = "[DONE]"


class DecoderVariant(Enum):
    NDJSON = "ndjson"
    SSE = "sse"


@dataclass(frozen=True)
class DeltaEvent:
    """One normalised frame: a text fragment and whether it ends the stream."""

    text_fragment: str
    is_final: bool = False


class FrameDecoder(ABC):
    """Line-buffering base shared by both framings.

    Subclasses implement :meth:`decode_frame` for a single complete line.
    Empty non-final fragments are dropped here, for every variant, so
    the caller never renders a spurious empty delta.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[DeltaEvent]:
        """Decode every complete line in *chunk*, keeping any partial tail."""
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def flush(self) -> list[DeltaEvent]:
        """Decode whatever is left once the transport has closed."""
        rest, self._buffer = self._buffer, ""
        if not rest.strip():
            return []
        return self._decode_lines([rest])

    @property
    def pending(self) -> str:
        return self._buffer

    def _decode_lines(self, lines: list[str]) -> list[DeltaEvent]:
        events: list[DeltaEvent] = []
        for line in lines:
            line = line.rstrip("\r")
            try:
                event = self.decode_frame(line)
            except DecodeError as e:
                logger.warning(f"Skipping malformed frame ({e.reason}): {e.frame!r}")
                continue
            if event is None:
                continue
            if not event.text_fragment and not event.is_final:
                continue
            events.append(event)
        return events

    @abstractmethod
    def decode_frame(self, line: str) -> DeltaEvent | None:
        """Turn one complete line into an event, or ``None`` if it has no payload.

        Raises:
            DecodeError: If the line carries a payload that cannot be parsed.
        """
        ...


def _load_object(frame: str, payload: str) -> dict:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(frame, str(e)) from e
    if not isinstance(data, dict):
        raise DecodeError(frame, "expected a JSON object")
    return data


class NDJSONDecoder(FrameDecoder):
    """Newline-delimited generate records: ``{model, created_at, response, done}``."""

    def decode_frame(self, line: str) -> DeltaEvent | None:
        if not line.strip():
            return None
        data = _load_object(line, line)
        if "error" in data:
            raise DecodeError(line, f"provider reported an error: {data['error']}")
        text = data.get("response") or ""
        if not isinstance(text, str):
            raise DecodeError(line, "'response' is not a string")
        return DeltaEvent(text_fragment=text, is_final=bool(data.get("done", False)))


class SSEDecoder(FrameDecoder):
    """Server-sent events wrapping chat-completion deltas.

    Only ``data:`` lines carry payload; comments (``:``), ``event:`` and
    ``id:`` fields and blank separators are ignored.  A frame is final
    when ``choices[0].finish_reason`` is one of *stop_reasons*, or when
    the OpenAI-style ``[DONE]`` terminator arrives.

    Args:
        stop_reasons: ``finish_reason`` values that end the stream.
    """

    def __init__(self, stop_reasons: frozenset[str] = frozenset({"stop"})):
        super().__init__()
        self.stop_reasons = stop_reasons

    def decode_frame(self, line: str) -> DeltaEvent | None:
        if not line.startswith(SSE_DATA_FIELD):
            return None
        payload = line[len(SSE_DATA_FIELD):]
        if payload.startswith(" "):
            payload = payload[1:]
        if payload.strip() == SSE_DONE:
            return DeltaEvent(text_fragment="", is_final=True)

        data = _load_object(line, payload)
        choices = data.get("choices")
        if not choices:
            # usage-only trailer frames have an empty choices list
            return None
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise DecodeError(line, "'choices' is not a list of objects")
        choice = choices[0]
        delta = choice.get("delta")
        text = (delta.get("content") if isinstance(delta, dict) else None) or ""
        if not isinstance(text, str):
            raise DecodeError(line, "'delta.content' is not a string")
        return DeltaEvent(
            text_fragment=text,
            is_final=choice.get("finish_reason") in self.stop_reasons,
        )


def make_decoder(variant: DecoderVariant) -> FrameDecoder:
    """Return a fresh decoder for *variant*. Decoders hold per-stream state."""
    if variant is DecoderVariant.NDJSON:
        return NDJSONDecoder()
    if variant is DecoderVariant.SSE:
        return SSEDecoder()
    raise ValueError(f"Unknown decoder variant: {variant!r}")


class TextAccumulator:
    """Appends delta fragments in arrival order and tracks completion."""

    def __init__(self) -> None:
        self._text = ""
        self.fragments = 0
        self.finished = False

    def feed(self, event: DeltaEvent) -> str:
        if event.text_fragment:
            self._text += event.text_fragment
            self.fragments += 1
        if event.is_final:
            self.finished = True
        return self.text

    @property
    def text(self) -> str:
        return self._text
