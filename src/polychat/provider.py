import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

from polychat.errors import MissingCredential, UnsupportedProvider
from polychat.message import GenerationRequest, Provider
from polychat.settings import (
    MISTRAL_API_KEY,
    OPENROUTER_API_KEY,
    CredentialStore,
    Settings,
)
from polychat.streaming import DecoderVariant

logger = logging.getLogger(__name__)


def build_generate_body(request: GenerationRequest) -> bytes:
    """Ollama ``/api/generate`` body: the last turn as ``prompt``."""
    options: dict = {"temperature": request.temperature}
    if request.max_tokens is not None:
        options["num_predict"] = request.max_tokens
    body = {
        "model": request.model_id,
        "prompt": request.last_prompt(),
        "options": options,
        "stream": request.stream,
    }
    system = request.system_prompt()
    if system:
        body["system"] = system
    return json.dumps(body).encode("utf-8")


def build_chat_body(request: GenerationRequest) -> bytes:
    """OpenAI-style ``/chat/completions`` body."""
    body = {
        "model": request.model_id,
        "messages": [m.model_dump() for m in request.messages],
        "temperature": request.temperature,
        "stream": request.stream,
    }
    if request.max_tokens is not None:
        body["max_tokens"] = request.max_tokens
    return json.dumps(body).encode("utf-8")


def _as_text(value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"expected text content, got {type(value).__name__}")
    return value


def generate_content(data: dict) -> str:
    return _as_text(data.get("response"))


def chat_content(data: dict) -> str:
    choices = data.get("choices") or [{}]
    message = choices[0].get("message") or {}
    return _as_text(message.get("content"))


@dataclass(frozen=True)
class ProviderConfig:
    """Everything a completion session needs to talk to one provider.

    Args:
        provider: The provider this record was resolved for.
        base_url: Root URL, without a trailing slash.
        endpoint: Path appended to ``base_url`` for completions.
        decoder_variant: Wire framing of the streamed response.
        build_request_body: Serialises a request into the provider's JSON.
        extract_content: Pulls the reply text out of a one-shot response.
        credential_key: Credential store key, or ``None`` when no
            credential is needed.
    """

    provider: Provider
    base_url: str
    endpoint: str
    decoder_variant: DecoderVariant
    build_request_body: Callable[[GenerationRequest], bytes]
    extract_content: Callable[[dict], str]
    credential_key: str | None = None

    @property
    def requires_stored_credential(self) -> bool:
        return self.credential_key is not None

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    def headers(self, credential: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        return headers


class ProviderRouter:
    """Maps a provider identifier to its :class:`ProviderConfig`.

    Host URLs come from *settings* rather than module state, so two
    routers with different settings can coexist.

    Args:
        settings: Connection settings, or the defaults.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def resolve(self, provider: Provider | str) -> ProviderConfig:
        """Return the config for *provider*.

        Accepts the enum or its string value, since the identifier may
        come from untrusted input such as a form field.

        Raises:
            UnsupportedProvider: If *provider* is not a known provider.
        """
        try:
            provider = Provider(provider)
        except ValueError:
            raise UnsupportedProvider(provider) from None

        s = self.settings
        if provider is Provider.OLLAMA:
            return ProviderConfig(
                provider=provider,
                base_url=s.ollama_host,
                endpoint="/api/generate",
                decoder_variant=DecoderVariant.NDJSON,
                build_request_body=build_generate_body,
                extract_content=generate_content,
            )
        if provider is Provider.LMSTUDIO:
            return ProviderConfig(
                provider=provider,
                base_url=f"{s.lmstudio_host}/v1",
                endpoint="/chat/completions",
                decoder_variant=DecoderVariant.SSE,
                build_request_body=build_chat_body,
                extract_content=chat_content,
            )
        if provider is Provider.MISTRAL:
            return ProviderConfig(
                provider=provider,
                base_url=s.mistral_base_url,
                endpoint="/chat/completions",
                decoder_variant=DecoderVariant.SSE,
                build_request_body=build_chat_body,
                extract_content=chat_content,
                credential_key=MISTRAL_API_KEY,
            )
        if provider is Provider.OPENROUTER:
            return ProviderConfig(
                provider=provider,
                base_url=s.openrouter_base_url,
                endpoint="/chat/completions",
                decoder_variant=DecoderVariant.SSE,
                build_request_body=build_chat_body,
                extract_content=chat_content,
                credential_key=OPENROUTER_API_KEY,
            )
        raise UnsupportedProvider(provider)


def lookup_credential(
    config: ProviderConfig, credentials: CredentialStore
) -> str | None:
    """Fetch the credential *config* requires.

    Raises:
        MissingCredential: If one is required and the store has none.
    """
    if not config.requires_stored_credential:
        return None
    credential = credentials.get(config.credential_key)
    if not credential:
        logger.warning(f"No {config.credential_key} stored for {config.provider.value}")
        raise MissingCredential(config.provider.value, config.credential_key)
    return credential
