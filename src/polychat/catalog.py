"""Model listing and local-server connection checks."""

import logging

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from polychat.errors import TransportError, UpstreamHTTPError
from polychat.message import ModelDescriptor, Provider
from polychat.provider import ProviderRouter, lookup_credential
from polychat.settings import CredentialStore, EnvCredentialStore

logger = logging.getLogger(__name__)

MISTRAL_MODELS = {
    "mistral-tiny": "Mistral Tiny",
    "mistral-small": "Mistral Small",
    "mistral-medium": "Mistral Medium",
}

# Friendlier names for remote model ids
MODEL_NAMES = {
    **MISTRAL_MODELS,
    "openai/gpt-3.5-turbo": "GPT-3.5 Turbo",
    "anthropic/claude-2": "Claude 2",
    "google/palm-2-chat-bison": "PaLM 2 Bison",
}


class ModelCatalog:
    """Lists the models each provider offers.

    Mistral's list is static. OpenRouter and LM Studio are queried
    through their OpenAI-compatible ``/models`` endpoint, Ollama through
    ``/api/tags``.

    Args:
        router: Router whose settings supply the base URLs.
        credentials: Credential store for providers that need a key.
        client: HTTP client used for Ollama and as the transport of the
            OpenAI clients; a fresh one is opened per call when omitted.
    """

    def __init__(
        self,
        router: ProviderRouter | None = None,
        credentials: CredentialStore | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.router = router or ProviderRouter()
        self.credentials = credentials or EnvCredentialStore()
        self.client = client

    async def list_models(self, provider: Provider | str) -> list[ModelDescriptor]:
        """Return the models for *provider*.

        Raises:
            UnsupportedProvider: If *provider* is unknown.
            MissingCredential: If a cloud provider has no stored key.
            UpstreamHTTPError: If the provider rejects the listing call.
            TransportError: If the provider cannot be reached.
        """
        config = self.router.resolve(provider)
        provider = config.provider

        if provider is Provider.MISTRAL:
            return [
                ModelDescriptor(id=model_id, display_name=name, provider=provider)
                for model_id, name in MISTRAL_MODELS.items()
            ]
        if provider is Provider.OLLAMA:
            response = await self._get(f"{config.base_url}/api/tags")
            try:
                return [
                    ModelDescriptor(id=m["name"], display_name=m["name"], provider=provider)
                    for m in response.json().get("models", [])
                ]
            except (ValueError, KeyError, TypeError, AttributeError):
                logger.error(f"Unexpected model listing from {provider.value}")
                raise UpstreamHTTPError(response.status_code, response.text) from None

        api_key = lookup_credential(config, self.credentials) or "DUMMY"
        client = AsyncOpenAI(
            base_url=config.base_url,
            api_key=api_key,
            http_client=self.client,
            max_retries=0,
        )
        try:
            page = await client.models.list()
        except APIStatusError as e:
            raise UpstreamHTTPError(e.status_code, str(e)) from e
        except APIConnectionError as e:
            raise TransportError(str(e)) from e
        finally:
            # an injected http_client belongs to the caller
            if self.client is None:
                await client.close()
        return [
            ModelDescriptor(
                id=m.id,
                display_name=MODEL_NAMES.get(m.id) or getattr(m, "name", None) or m.id,
                provider=provider,
            )
            for m in page.data
        ]

    async def check_connection(self, provider: Provider | str) -> bool:
        """Return whether a local provider's server answers.

        Cloud providers are always reported as reachable; their failures
        surface on the first request instead.
        """
        config = self.router.resolve(provider)
        if config.provider is Provider.OLLAMA:
            url = f"{config.base_url}/api/tags"
        elif config.provider is Provider.LMSTUDIO:
            url = f"{config.base_url}/models"
        else:
            return True
        try:
            await self._get_json(url)
        except (TransportError, UpstreamHTTPError) as e:
            logger.warning(f"Failed to connect to {config.provider.value}: {e}")
            return False
        logger.info(f"Successfully connected to {config.provider.value}")
        return True

    async def _get(self, url: str) -> httpx.Response:
        try:
            if self.client is not None:
                response = await self.client.get(url)
            else:
                async with httpx.AsyncClient(
                    timeout=self.router.settings.request_timeout
                ) as client:
                    response = await client.get(url)
        except httpx.RequestError as e:
            raise TransportError(str(e)) from e
        if not response.is_success:
            raise UpstreamHTTPError(response.status_code, response.text)
        return response

    async def _get_json(self, url: str) -> dict:
        response = await self._get(url)
        try:
            return response.json()
        except ValueError:
            raise UpstreamHTTPError(response.status_code, response.text) from None
