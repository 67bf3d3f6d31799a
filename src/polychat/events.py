"""Events yielded by a completion session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class TextDeltaEvent(StreamEvent):
    """A visible fragment plus the running text after appending it."""

    fragment: str = ""
    text: str = ""


@dataclass
class CompletionEvent(StreamEvent):
    """Final event, always the last event yielded.

    ``result`` is the settled :class:`~polychat.session.CompletionResult`.
    """

    result: Any = None
