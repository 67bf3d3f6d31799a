"""Pull-based text reader over a streaming HTTP response body."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

from polychat.errors import TransportError

logger = logging.getLogger(__name__)


class TransportReader:
    """Lazily yields UTF-8 decoded text chunks from a response body.

    ``read()`` returns ``None`` once the transport closes. The reader is
    single-use: a new request needs a new reader. Network faults surface
    as :class:`~polychat.errors.TransportError`.

    Args:
        response: A streaming ``httpx.Response`` whose body has not been read.
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self._chunks: AsyncIterator[str] | None = None
        self._done = False
        self._iterated = False

    async def read(self) -> str | None:
        if self._done:
            return None
        if self._chunks is None:
            # aiter_text decodes incrementally, so a multi-byte character
            # split across two network reads is never garbled.
            self._chunks = self._response.aiter_text()
        try:
            while True:
                chunk = await self._chunks.__anext__()
                if chunk:
                    return chunk
        except StopAsyncIteration:
            self._done = True
            return None
        except (httpx.RequestError, httpx.StreamError) as e:
            self._done = True
            logger.error(f"Transport failed while reading response: {e}")
            raise TransportError(str(e)) from e

    def __aiter__(self) -> AsyncIterator[str]:
        if self._iterated or self._chunks is not None:
            raise RuntimeError("TransportReader cannot be restarted")
        self._iterated = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while (chunk := await self.read()) is not None:
            yield chunk

    @property
    def closed(self) -> bool:
        return self._done

    async def aclose(self) -> None:
        self._done = True
        await self._response.aclose()
