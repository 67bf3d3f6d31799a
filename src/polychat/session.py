import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum

import httpx

from polychat.errors import (
    Cancelled,
    ChatError,
    ErrorKind,
    TransportError,
    UpstreamHTTPError,
)
from polychat.events import CompletionEvent, StreamEvent, TextDeltaEvent
from polychat.instrumentation import (
    completion_span,
    record_error,
    record_stream_stats,
)
from polychat.message import GenerationRequest
from polychat.provider import ProviderConfig, lookup_credential
from polychat.settings import CredentialStore
from polychat.streaming import DeltaEvent, TextAccumulator, make_decoder
from polychat.transport import TransportReader

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    SETTLED = "settled"


@dataclass(frozen=True)
class CompletionResult:
    """Settled outcome of a session.

    On failure ``text`` holds whatever had been accumulated before the
    fault, and ``error`` says what went wrong.
    """

    text: str
    error: ChatError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None


class CancelToken:
    """Lets a caller stop a running session from outside its task."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class CompletionSession:
    """One request/response exchange with a provider.

    Moves through ``IDLE -> SENDING -> STREAMING -> SETTLED``. Deltas are
    yielded strictly in arrival order, and a failed session still exposes
    the text it accumulated before the failure.

    Callers must not start a second session for the same conversation
    while this one is ``SENDING`` or ``STREAMING``;
    :class:`~polychat.conversation.Conversation` enforces that.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.

    Args:
        config: Resolved provider configuration.
        request: The generation request to send.
        credentials: Store consulted when the provider needs a key.
        client: HTTP client to use. When omitted the session opens and
            closes its own ``httpx.AsyncClient``.
        cancel_token: Optional token that stops the stream early.
        timeout: Timeout for a session-owned client; ``None`` disables it.
    """

    def __init__(
        self,
        config: ProviderConfig,
        request: GenerationRequest,
        *,
        credentials: CredentialStore,
        client: httpx.AsyncClient | None = None,
        cancel_token: CancelToken | None = None,
        timeout: float | None = None,
    ):
        self.config = config
        self.request = request
        self.credentials = credentials
        self.client = client
        self.cancel_token = cancel_token
        self.timeout = timeout
        self.state = SessionState.IDLE
        self._accumulator = TextAccumulator()
        self._result: CompletionResult | None = None

    @property
    def text(self) -> str:
        """Text accumulated so far."""
        return self._accumulator.text

    @property
    def result(self) -> CompletionResult:
        if self._result is None:
            raise RuntimeError(f"Session has not settled (state={self.state.value})")
        return self._result

    async def run(
        self, on_delta: Callable[[str], None] | None = None
    ) -> CompletionResult:
        """Run the exchange to completion.

        Args:
            on_delta: Called with the running text after every fragment.
        """
        async for event in self.iter():
            if isinstance(event, TextDeltaEvent) and on_delta is not None:
                on_delta(event.text)
        return self.result

    async def iter(self) -> AsyncIterator[StreamEvent]:
        """Yield a ``TextDeltaEvent`` per fragment, then one ``CompletionEvent``."""
        if self.state is not SessionState.IDLE:
            raise RuntimeError("CompletionSession is single-use")
        self.state = SessionState.SENDING
        provider = self.config.provider.value

        async with completion_span(provider, self.request.model_id) as span:
            try:
                credential = lookup_credential(self.config, self.credentials)
                if self.cancel_token is not None and self.cancel_token.cancelled:
                    raise Cancelled()
                async with AsyncExitStack() as stack:
                    client = self.client
                    if client is None:
                        client = await stack.enter_async_context(
                            httpx.AsyncClient(timeout=self.timeout)
                        )
                    response = await self._send(stack, client, credential)
                    if self.request.stream:
                        async for event in self._stream(response):
                            yield event
                    else:
                        event = await self._read_whole(response)
                        if event is not None:
                            yield event
            except ChatError as e:
                self._settle(e)
                record_error(span, e)
            except (asyncio.CancelledError, GeneratorExit):
                self._settle(Cancelled("Completion task was cancelled"))
                raise
            else:
                self._settle(None)
            record_stream_stats(
                span, self._accumulator.fragments, len(self._accumulator.text)
            )
        yield CompletionEvent(result=self._result)

    async def _send(
        self,
        stack: AsyncExitStack,
        client: httpx.AsyncClient,
        credential: str | None,
    ) -> httpx.Response:
        body = self.config.build_request_body(self.request)
        logger.debug(f"POST {self.config.url} ({self.config.provider.value})")
        try:
            response = await stack.enter_async_context(
                client.stream(
                    "POST",
                    self.config.url,
                    content=body,
                    headers=self.config.headers(credential),
                )
            )
            if not response.is_success:
                detail = (await response.aread()).decode("utf-8", errors="replace")
                raise UpstreamHTTPError(response.status_code, detail)
        except httpx.RequestError as e:
            raise TransportError(str(e)) from e
        return response

    async def _stream(self, response: httpx.Response) -> AsyncIterator[TextDeltaEvent]:
        self.state = SessionState.STREAMING
        reader = TransportReader(response)
        decoder = make_decoder(self.config.decoder_variant)
        acc = self._accumulator

        # Every event decoded from the chunk that carried the final frame
        # is applied; no further chunks are read after it.
        while not acc.finished:
            chunk = await self._next_chunk(reader)
            events = decoder.feed(chunk) if chunk is not None else decoder.flush()
            for event in events:
                acc.feed(event)
                if event.text_fragment:
                    yield TextDeltaEvent(fragment=event.text_fragment, text=acc.text)
            if chunk is None:
                break

    async def _next_chunk(self, reader: TransportReader) -> str | None:
        token = self.cancel_token
        if token is None:
            return await reader.read()
        if token.cancelled:
            await reader.aclose()
            raise Cancelled()

        read = asyncio.ensure_future(reader.read())
        stop = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not read.done():
                read.cancel()
                await asyncio.gather(read, return_exceptions=True)
        if not read.cancelled():
            # A chunk that arrived alongside the cancel is still delivered;
            # the cancel is honoured on the next read.
            return read.result()
        await reader.aclose()
        raise Cancelled()

    async def _read_whole(self, response: httpx.Response) -> TextDeltaEvent | None:
        try:
            raw = await response.aread()
        except (httpx.RequestError, httpx.StreamError) as e:
            raise TransportError(str(e)) from e
        body = raw.decode("utf-8", errors="replace")
        try:
            text = self.config.extract_content(json.loads(body))
        except (json.JSONDecodeError, AttributeError, IndexError, TypeError):
            logger.error(f"Unusable response body from {self.config.provider.value}")
            raise UpstreamHTTPError(response.status_code, body) from None
        self._accumulator.feed(DeltaEvent(text_fragment=text, is_final=True))
        if not text:
            return None
        return TextDeltaEvent(fragment=text, text=text)

    def _settle(self, error: ChatError | None) -> None:
        if self._result is not None:
            return
        self._result = CompletionResult(text=self._accumulator.text, error=error)
        self.state = SessionState.SETTLED
        provider = self.config.provider.value
        if error is None:
            logger.info(
                f"{provider} completion settled: "
                f"{self._accumulator.fragments} fragments, {len(self.text)} chars"
            )
        else:
            logger.error(
                f"{provider} completion failed ({error.kind.value}): {error}; "
                f"kept {len(self.text)} chars of partial text"
            )
