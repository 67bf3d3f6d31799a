import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

import httpx

from polychat.errors import ConversationBusy
from polychat.events import CompletionEvent, StreamEvent, TextDeltaEvent
from polychat.message import (
    DraftMessage,
    GenerationRequest,
    Message,
    MessageRole,
    NewMessage,
    Provider,
)
from polychat.provider import ProviderRouter
from polychat.session import CancelToken, CompletionResult, CompletionSession
from polychat.settings import CredentialStore, EnvCredentialStore
from polychat.store import InMemoryMessageStore, MessageStore

logger = logging.getLogger(__name__)


class Conversation:
    """A chat with one provider/model and its stored history.

    Each ``send()`` appends the user turn, streams the reply through a
    :class:`CompletionSession` and appends the finalized assistant turn.
    Only one completion may be in flight at a time; a second submission
    raises :class:`~polychat.errors.ConversationBusy`.

    Stateful across ``send()`` calls: the store and parameters persist.

    Args:
        provider: Which backend to talk to.
        model_id: Model identifier understood by that backend.
        router: Provider router, or one built with default settings.
        credentials: Credential store, or the process environment.
        store: Message store, or a fresh in-memory store.
        client: Shared HTTP client; sessions open their own when omitted.
        temperature: Sampling temperature in ``[0, 2]``.
        max_tokens: Upper bound on generated tokens, if any.
        system_prompt: Prepended as a system turn when non-empty.
        stream: Whether to request a streamed response.
    """

    def __init__(
        self,
        provider: Provider,
        model_id: str,
        router: ProviderRouter | None = None,
        credentials: CredentialStore | None = None,
        store: MessageStore | None = None,
        client: httpx.AsyncClient | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        system_prompt: str = "",
        stream: bool = True,
    ):
        self.provider = Provider(provider)
        self.model_id = model_id
        self.router = router or ProviderRouter()
        self.credentials = credentials or EnvCredentialStore()
        self.store = store if store is not None else InMemoryMessageStore()
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.stream = stream
        self.draft: DraftMessage | None = None
        self.cancel_token: CancelToken | None = None

    @property
    def busy(self) -> bool:
        return self.draft is not None

    def build_request(self, prompt: str) -> GenerationRequest:
        """System prompt, then stored history, then *prompt*."""
        messages: list[Message] = []
        if self.system_prompt:
            messages.append(Message(role=MessageRole.SYSTEM, content=self.system_prompt))
        messages.extend(
            Message(role=m.role, content=m.content)
            for m in self.store.list_all()
            if m.role is not MessageRole.SYSTEM
        )
        messages.append(Message(role=MessageRole.USER, content=prompt))
        return GenerationRequest(
            model_id=self.model_id,
            messages=tuple(messages),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=self.stream,
        )

    async def send(
        self, prompt: str, on_delta: Callable[[str], None] | None = None
    ) -> CompletionResult:
        """Submit *prompt* and wait for the settled result."""
        result: CompletionResult | None = None
        async for event in self.iter(prompt):
            if isinstance(event, TextDeltaEvent) and on_delta is not None:
                on_delta(event.text)
            elif isinstance(event, CompletionEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without emitting CompletionEvent")
        return result

    async def iter(self, prompt: str) -> AsyncIterator[StreamEvent]:
        """Streaming entry point. Yields the session's events."""
        if self.busy:
            raise ConversationBusy()

        config = self.router.resolve(self.provider)
        request = self.build_request(prompt)
        self.draft = DraftMessage(model_id=self.model_id, provider=self.provider)
        self.cancel_token = CancelToken()
        try:
            self.store.append(NewMessage(
                role=MessageRole.USER, content=prompt,
                model_id=self.model_id, provider=self.provider,
            ))
            session = CompletionSession(
                config, request,
                credentials=self.credentials,
                client=self.client,
                cancel_token=self.cancel_token,
                timeout=self.router.settings.request_timeout,
            )
            async with aclosing(session.iter()) as events:
                async for event in events:
                    if isinstance(event, TextDeltaEvent):
                        self.draft.content = event.text
                    elif isinstance(event, CompletionEvent) and event.result.ok:
                        self.draft.content = event.result.text
                        self.store.append(self.draft.freeze())
                    yield event
        finally:
            self.draft = None
            self.cancel_token = None

    def cancel(self) -> None:
        """Stop the in-flight completion, keeping its partial text."""
        if self.cancel_token is not None:
            logger.info("Cancelling in-flight completion")
            self.cancel_token.cancel()

    def clear(self) -> None:
        self.store.clear()
