import json

import httpx
import pytest

from polychat.message import GenerationRequest, Message, MessageRole
from polychat.provider import ProviderRouter
from polychat.settings import (
    MISTRAL_API_KEY,
    OPENROUTER_API_KEY,
    DictCredentialStore,
    Settings,
)


# ---------------------------------------------------------------------------
# Wire-format builders
# ---------------------------------------------------------------------------

def ndjson_record(response: str, done: bool = False, model: str = "llama2") -> str:
    """One Ollama generate record, newline-terminated."""
    return json.dumps({
        "model": model,
        "created_at": "2024-01-01T00:00:00Z",
        "response": response,
        "done": done,
    }) + "\n"


def sse_frame(content: str | None, finish_reason: str | None = None) -> str:
    """One chat-completion delta as an SSE ``data:`` event."""
    payload = {
        "choices": [{
            "index": 0,
            "delta": {"content": content},
            "finish_reason": finish_reason,
        }]
    }
    return f"data: {json.dumps(payload)}\n\n"


# ---------------------------------------------------------------------------
# Mock HTTP transport
# ---------------------------------------------------------------------------

class ChunkedBody(httpx.AsyncByteStream):
    """Response body that yields the given chunks one at a time.

    If *error* is set it is raised after the last chunk, simulating a
    connection that drops mid-stream.
    """

    def __init__(self, chunks: list[str | bytes], error: Exception | None = None):
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.error = error
        self.reads = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


class MockServer:
    """Queue of canned responses served through ``httpx.MockTransport``.

    Every request is recorded in ``requests`` so tests can assert on
    the call count, URL, headers and JSON body.
    """

    def __init__(self):
        self.responses: list[httpx.Response | Exception] = []
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def stream(
        self,
        chunks: list[str | bytes],
        status: int = 200,
        error: Exception | None = None,
    ) -> ChunkedBody:
        body = ChunkedBody(chunks, error=error)
        self.responses.append(httpx.Response(status, stream=body))
        return body

    def json(self, data, status: int = 200) -> None:
        self.responses.append(httpx.Response(status, json=data))

    def text(self, text: str, status: int = 200) -> None:
        self.responses.append(httpx.Response(status, text=text))

    def fail(self, error: Exception) -> None:
        self.responses.append(error)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def sent_json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def server():
    return MockServer()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def router(settings):
    return ProviderRouter(settings)


@pytest.fixture
def credentials():
    return DictCredentialStore({
        MISTRAL_API_KEY: "mk-test",
        OPENROUTER_API_KEY: "or-test",
    })


@pytest.fixture
def make_request():
    """Factory fixture for generation requests."""
    def _make(
        prompt="Hello",
        system=None,
        model_id="test-model",
        temperature=0.7,
        max_tokens=None,
        stream=True,
    ):
        messages = []
        if system:
            messages.append(Message(role=MessageRole.SYSTEM, content=system))
        messages.append(Message(role=MessageRole.USER, content=prompt))
        return GenerationRequest(
            model_id=model_id,
            messages=tuple(messages),
            temperature=temperature,
            max_tokens=max_tokens,
            stream=stream,
        )
    return _make
