from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class Provider(Enum):
    OLLAMA = "ollama"
    LMSTUDIO = "lmstudio"
    MISTRAL = "mistral"
    OPENROUTER = "openrouter"


class Message(BaseModel):
    """One turn of a prompt as sent to a provider."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class GenerationRequest(BaseModel):
    """A single submission. Frozen so nothing can change it once sent."""

    model_config = ConfigDict(frozen=True)

    model_id: str
    messages: tuple[Message, ...]
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    stream: bool = True

    def system_prompt(self) -> str | None:
        for m in self.messages:
            if m.role is MessageRole.SYSTEM:
                return m.content
        return None

    def last_prompt(self) -> str:
        return self.messages[-1].content if self.messages else ""


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    provider: Provider


class NewMessage(BaseModel):
    """A message before the store assigns it an id and timestamp."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    model_id: str
    provider: Provider

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @field_serializer('provider')
    def serialize_provider(self, provider: Provider, _info) -> str:
        return provider.value


class ChatMessage(NewMessage):
    """A finalized message owned by the message store."""

    id: int
    timestamp: datetime


class DraftMessage(BaseModel):
    """The assistant reply while it is still streaming.

    ``content`` grows as deltas arrive; call :meth:`freeze` once the
    stream has settled to get the immutable :class:`NewMessage`.
    """

    role: MessageRole = MessageRole.ASSISTANT
    content: str = ""
    model_id: str
    provider: Provider

    def freeze(self) -> NewMessage:
        return NewMessage(
            role=self.role,
            content=self.content,
            model_id=self.model_id,
            provider=self.provider,
        )


class ModelParams(BaseModel):
    id: int
    model_id: str
    provider: Provider
    temperature: float = 1.0
    max_tokens: int | None = None
    system_prompt: str | None = None
    parameters: dict[str, Any] | None = None


class NewModelParams(BaseModel):
    model_id: str
    provider: Provider
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = None
    system_prompt: str | None = None
    parameters: dict[str, Any] | None = None
