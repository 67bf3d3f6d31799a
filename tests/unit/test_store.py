import pytest
from pydantic import ValidationError

from polychat.message import MessageRole, NewMessage, NewModelParams, Provider
from polychat.store import InMemoryMessageStore


def user(content: str) -> NewMessage:
    return NewMessage(
        role=MessageRole.USER, content=content,
        model_id="llama2", provider=Provider.OLLAMA,
    )


def test_append_assigns_increasing_ids_and_timestamps():
    store = InMemoryMessageStore()
    first = store.append(user("a"))
    second = store.append(user("b"))

    assert (first.id, second.id) == (1, 2)
    assert first.timestamp <= second.timestamp
    assert [m.content for m in store.list_all()] == ["a", "b"]


def test_stored_messages_are_frozen():
    stored = InMemoryMessageStore().append(user("a"))
    with pytest.raises(ValidationError):
        stored.content = "changed"


def test_clear_empties_but_ids_keep_increasing():
    store = InMemoryMessageStore()
    store.append(user("a"))
    store.clear()

    assert store.list_all() == []
    assert store.append(user("b")).id == 2


def test_model_params_default_temperature():
    store = InMemoryMessageStore()
    params = store.set_model_params(
        NewModelParams(model_id="mistral-small", provider=Provider.MISTRAL)
    )
    assert params.temperature == 1.0
    assert params.max_tokens is None
    assert store.get_model_params("mistral-small") == params


def test_model_params_share_id_counter_with_messages():
    store = InMemoryMessageStore()
    store.append(user("a"))
    params = store.set_model_params(NewModelParams(
        model_id="llama2", provider=Provider.OLLAMA,
        temperature=0.2, system_prompt="terse",
    ))
    assert params.id == 2
    assert store.append(user("b")).id == 3


def test_unknown_model_params():
    assert InMemoryMessageStore().get_model_params("nope") is None


def test_snapshot_restore_round_trip():
    source = InMemoryMessageStore()
    source.append(user("hello"))
    source.append(NewMessage(
        role=MessageRole.ASSISTANT, content="hi there",
        model_id="llama2", provider=Provider.OLLAMA,
    ))
    saved = source.snapshot()

    target = InMemoryMessageStore()
    restored = target.restore(saved)

    assert [m.content for m in restored] == ["hello", "hi there"]
    assert restored[1].role is MessageRole.ASSISTANT
    assert restored[1].provider is Provider.OLLAMA
    assert target.append(user("next")).id == 3


def test_snapshot_uses_wire_values():
    store = InMemoryMessageStore()
    store.append(user("x"))
    saved = store.snapshot()
    assert '"role":"user"' in saved
    assert '"provider":"ollama"' in saved
