"""Error taxonomy for completion sessions.

Only :class:`DecodeError` is recovered locally (inside a frame decoder).
Every other error is terminal for the session that raised it and is
surfaced to the caller as a failed :class:`~polychat.session.CompletionResult`.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    MISSING_CREDENTIAL = "missing_credential"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    UPSTREAM_HTTP = "upstream_http"
    TRANSPORT = "transport"
    DECODE = "decode"
    CANCELLED = "cancelled"


class ChatError(Exception):
    """Base for all polychat errors."""

    kind: ErrorKind


class MissingCredential(ChatError):
    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, provider: str, key: str):
        super().__init__(f"No credential stored under '{key}' for {provider}")
        self.provider = provider
        self.key = key


class UnsupportedProvider(ChatError):
    kind = ErrorKind.UNSUPPORTED_PROVIDER

    def __init__(self, value: object):
        super().__init__(f"Unsupported provider: {value!r}")
        self.value = value


class UpstreamHTTPError(ChatError):
    """The provider answered with a non-2xx status (or an unusable body)."""

    kind = ErrorKind.UPSTREAM_HTTP

    def __init__(self, status: int, body: str = ""):
        super().__init__(f"API error: {status}")
        self.status = status
        self.body = body


class TransportError(ChatError):
    """Network-level failure while sending or reading a response."""

    kind = ErrorKind.TRANSPORT


class DecodeError(ChatError):
    """A single frame could not be parsed. Never leaves the decoder."""

    kind = ErrorKind.DECODE

    def __init__(self, frame: str, reason: str = ""):
        super().__init__(f"Failed to parse frame: {reason}")
        self.frame = frame
        self.reason = reason


class Cancelled(ChatError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Completion cancelled"):
        super().__init__(message)


class ConversationBusy(ChatError):
    """A submission arrived while a previous stream was still open."""

    def __init__(self):
        super().__init__("A completion is already in flight for this conversation")
