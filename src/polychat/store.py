"""Message store boundary and the volatile in-memory reference store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from pydantic import TypeAdapter

from polychat.message import ChatMessage, ModelParams, NewMessage, NewModelParams

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    """What the core needs from message storage: append, read back, clear."""

    def append(self, message: NewMessage) -> ChatMessage: ...

    def list_all(self) -> list[ChatMessage]: ...

    def clear(self) -> None: ...


_history_adapter = TypeAdapter(list[ChatMessage])


class InMemoryMessageStore:
    """Messages and per-model parameters held in dicts.

    Ids come from one counter shared by messages and parameter records,
    start at 1 and only ever increase (``clear()`` does not reset them).
    """

    def __init__(self) -> None:
        self._messages: dict[int, ChatMessage] = {}
        self._model_params: dict[str, ModelParams] = {}
        self._current_id = 1

    def _next_id(self) -> int:
        current = self._current_id
        self._current_id += 1
        return current

    def append(self, message: NewMessage) -> ChatMessage:
        stored = ChatMessage(
            **message.model_dump(),
            id=self._next_id(),
            timestamp=datetime.now(timezone.utc),
        )
        self._messages[stored.id] = stored
        return stored

    def list_all(self) -> list[ChatMessage]:
        return list(self._messages.values())

    def clear(self) -> None:
        self._messages.clear()

    def get_model_params(self, model_id: str) -> ModelParams | None:
        return self._model_params.get(model_id)

    def set_model_params(self, params: NewModelParams) -> ModelParams:
        stored = ModelParams(
            id=self._next_id(),
            model_id=params.model_id,
            provider=params.provider,
            temperature=1.0 if params.temperature is None else params.temperature,
            max_tokens=params.max_tokens,
            system_prompt=params.system_prompt,
            parameters=params.parameters,
        )
        self._model_params[params.model_id] = stored
        return stored

    def snapshot(self) -> str:
        """Serialise the message history to JSON."""
        return _history_adapter.dump_json(self.list_all()).decode("utf-8")

    def restore(self, data: str) -> list[ChatMessage]:
        """Replace the history with a :meth:`snapshot`, keeping stored ids.

        The id counter moves past the highest restored id so later
        appends stay monotonic.
        """
        messages = _history_adapter.validate_json(data)
        self._messages = {m.id: m for m in messages}
        if messages:
            self._current_id = max(self._current_id, max(m.id for m in messages) + 1)
        logger.info(f"Restored {len(messages)} messages from history")
        return messages
