"""Connection settings and credential lookup.

Host URLs are plain configuration values threaded into the
:class:`~polychat.provider.ProviderRouter`; nothing here is global.
"""

from __future__ import annotations

import os
from typing import Protocol

from pydantic import BaseModel, field_validator

MISTRAL_API_KEY = "MISTRAL_API_KEY"
OPENROUTER_API_KEY = "OPENROUTER_API_KEY"


class Settings(BaseModel):
    ollama_host: str = "http://localhost:11434"
    lmstudio_host: str = "http://localhost:1234"
    mistral_base_url: str = "https://api.mistral.ai/v1"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    request_timeout: float = 600.0

    @field_validator(
        "ollama_host", "lmstudio_host", "mistral_base_url", "openrouter_base_url"
    )
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        env = {
            "ollama_host": os.getenv("OLLAMA_HOST"),
            "lmstudio_host": os.getenv("LM_STUDIO_HOST"),
            "mistral_base_url": os.getenv("MISTRAL_BASE_URL"),
            "openrouter_base_url": os.getenv("OPENROUTER_BASE_URL"),
            "request_timeout": os.getenv("POLYCHAT_REQUEST_TIMEOUT"),
        }
        return cls(**{k: v for k, v in env.items() if v})


class CredentialStore(Protocol):
    def get(self, key: str) -> str | None: ...


class EnvCredentialStore:
    """Reads credentials from the process environment."""

    def get(self, key: str) -> str | None:
        return os.getenv(key) or None


class DictCredentialStore:
    """Key-value credential store backed by a plain dict.

    Stands in for the browser's settings storage: values are set from a
    settings form and read back before each request.
    """

    def __init__(self, values: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key) or None

    def set(self, key: str, value: str) -> None:
        if value:
            self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)
