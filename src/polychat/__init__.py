"""Multi-provider LLM chat client with normalised streaming."""

from polychat.catalog import ModelCatalog
from polychat.conversation import Conversation
from polychat.errors import (
    Cancelled,
    ChatError,
    ConversationBusy,
    DecodeError,
    ErrorKind,
    MissingCredential,
    TransportError,
    UnsupportedProvider,
    UpstreamHTTPError,
)
from polychat.events import CompletionEvent, StreamEvent, TextDeltaEvent
from polychat.instrumentation import instrument, uninstrument
from polychat.message import (
    ChatMessage,
    GenerationRequest,
    Message,
    MessageRole,
    ModelDescriptor,
    Provider,
)
from polychat.provider import ProviderConfig, ProviderRouter
from polychat.session import (
    CancelToken,
    CompletionResult,
    CompletionSession,
    SessionState,
)
from polychat.settings import DictCredentialStore, EnvCredentialStore, Settings
from polychat.store import InMemoryMessageStore, MessageStore
from polychat.streaming import DecoderVariant, DeltaEvent, make_decoder

__all__ = [
    "Cancelled",
    "CancelToken",
    "ChatError",
    "ChatMessage",
    "CompletionEvent",
    "CompletionResult",
    "CompletionSession",
    "Conversation",
    "ConversationBusy",
    "DecodeError",
    "DecoderVariant",
    "DeltaEvent",
    "DictCredentialStore",
    "EnvCredentialStore",
    "ErrorKind",
    "GenerationRequest",
    "InMemoryMessageStore",
    "Message",
    "MessageRole",
    "MessageStore",
    "MissingCredential",
    "ModelCatalog",
    "ModelDescriptor",
    "Provider",
    "ProviderConfig",
    "ProviderRouter",
    "SessionState",
    "Settings",
    "StreamEvent",
    "TextDeltaEvent",
    "TransportError",
    "UnsupportedProvider",
    "UpstreamHTTPError",
    "instrument",
    "make_decoder",
    "uninstrument",
]
