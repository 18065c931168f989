"""Embedding provider adapters for semantic search.

Three interchangeable remote providers turn a text into a vector. Each one
is a small class that implements ``EmbeddingProvider.embed``. The active
provider is chosen once per search session by ``resolve_provider_config``,
which honors a stored preference and otherwise falls back to the fixed
priority OpenAI > Gemini > Hugging Face.

Adapters never retry. Any non-2xx status, transport failure or malformed
body becomes a ``ProviderError`` for the caller to handle.

Example:
    >>> provider_config = resolve_provider_config(get_semantic_config())
    >>> async with httpx.AsyncClient() as client:
    ...     provider = create_provider(provider_config, client)
    ...     vector = await provider.embed("nix garbage collection")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel

from moment_search.tools.youtube.errors import ConfigurationError, ProviderError
from moment_search.tools.youtube.semantic.config import (
    SemanticSearchConfig,
    get_semantic_config,
)

logger = logging.getLogger(__name__)


class ProviderId(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    HUGGINGFACE = "huggingface"
    GEMINI = "gemini"


# Fallback order when no preference is stored.
PROVIDER_PRIORITY: tuple[ProviderId, ...] = (
    ProviderId.OPENAI,
    ProviderId.GEMINI,
    ProviderId.HUGGINGFACE,
)


class EmbeddingProviderConfig(BaseModel):
    """A resolved provider and the API key to call it with."""

    provider_id: ProviderId
    api_key: str


def resolve_provider_config(
    config: SemanticSearchConfig,
) -> EmbeddingProviderConfig:
    """Pick the embedding provider to use from configured credentials.

    Args:
        config: Configuration holding provider keys and the preference.

    Returns:
        The preferred provider if its key is configured, else the first
        configured provider in PROVIDER_PRIORITY.

    Raises:
        ConfigurationError: If no provider key is configured.
    """
    keys = config.provider_keys

    preferred = config.preferred_embedding_provider
    if preferred and keys.get(preferred):
        return EmbeddingProviderConfig(
            provider_id=ProviderId(preferred), api_key=str(keys[preferred])
        )
    if preferred:
        logger.warning(
            f"Preferred embedding provider {preferred} has no API key, "
            "falling back to priority order"
        )

    for provider_id in PROVIDER_PRIORITY:
        api_key = keys.get(provider_id.value)
        if api_key:
            return EmbeddingProviderConfig(provider_id=provider_id, api_key=api_key)

    raise ConfigurationError(
        "No embedding API key configured. Set one of MOMENT_SEARCH_OPENAI_API_KEY, "
        "MOMENT_SEARCH_GEMINI_API_KEY or MOMENT_SEARCH_HUGGINGFACE_API_KEY."
    )


def _as_vector(value: Any, provider: str, status: int) -> list[float]:
    if not isinstance(value, list) or not value:
        raise ProviderError(status, "Malformed response: no embedding vector", provider)
    try:
        return [float(x) for x in value]
    except (TypeError, ValueError) as e:
        raise ProviderError(
            status, "Malformed response: non-numeric embedding", provider
        ) from e


class EmbeddingProvider(ABC):
    """Turns text into an embedding vector through a remote API.

    Attributes:
        api_key: Provider API key.
        client: Shared HTTP client.
        config: Endpoint and model configuration.
    """

    provider_id: ClassVar[ProviderId]

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        config: SemanticSearchConfig | None = None,
    ) -> None:
        self.api_key = api_key
        self.client = client
        self.config = config or get_semantic_config()

    @property
    def name(self) -> str:
        return self.provider_id.value

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Args:
            text: Chunk or query text.

        Returns:
            The embedding vector.

        Raises:
            ProviderError: On a failed request or malformed response.
        """
        try:
            response = await self._request(text)
        except httpx.HTTPError as e:
            raise ProviderError(None, str(e) or type(e).__name__, self.name) from e

        if not response.is_success:
            raise ProviderError(
                response.status_code,
                response.text or response.reason_phrase,
                self.name,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                response.status_code, "Malformed response: invalid JSON", self.name
            ) from e

        try:
            raw = self._extract(data)
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                response.status_code,
                f"Malformed response: missing {e}",
                self.name,
            ) from e
        return _as_vector(raw, self.name, response.status_code)

    @abstractmethod
    async def _request(self, text: str) -> httpx.Response:
        """Send the provider-specific embedding request."""

    @abstractmethod
    def _extract(self, data: Any) -> Any:
        """Pull the raw vector out of the provider-specific response."""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings API: vector at data[0].embedding."""

    provider_id = ProviderId.OPENAI

    async def _request(self, text: str) -> httpx.Response:
        return await self.client.post(
            self.config.openai_embedding_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.config.openai_embedding_model, "input": text},
            timeout=self.config.http_timeout_seconds,
        )

    def _extract(self, data: Any) -> Any:
        return data["data"][0]["embedding"]


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Hugging Face Inference API: the body is the vector itself.

    Feature-extraction models may answer with a one-row batch, which is
    unwrapped.
    """

    provider_id = ProviderId.HUGGINGFACE

    async def _request(self, text: str) -> httpx.Response:
        return await self.client.post(
            self.config.huggingface_embedding_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"inputs": text, "options": {"wait_for_model": True}},
            timeout=self.config.http_timeout_seconds,
        )

    def _extract(self, data: Any) -> Any:
        if isinstance(data, list) and len(data) == 1 and isinstance(data[0], list):
            return data[0]
        return data


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Google AI embedContent API: vector at embedding.values."""

    provider_id = ProviderId.GEMINI

    async def _request(self, text: str) -> httpx.Response:
        return await self.client.post(
            self.config.gemini_embedding_url,
            params={"key": self.api_key},
            json={
                "model": self.config.gemini_embedding_model,
                "content": {"parts": [{"text": text}]},
            },
            timeout=self.config.http_timeout_seconds,
        )

    def _extract(self, data: Any) -> Any:
        return data["embedding"]["values"]


PROVIDERS: dict[ProviderId, type[EmbeddingProvider]] = {
    ProviderId.OPENAI: OpenAIEmbeddingProvider,
    ProviderId.HUGGINGFACE: HuggingFaceEmbeddingProvider,
    ProviderId.GEMINI: GeminiEmbeddingProvider,
}


def create_provider(
    provider_config: EmbeddingProviderConfig,
    client: httpx.AsyncClient,
    config: SemanticSearchConfig | None = None,
) -> EmbeddingProvider:
    """Create the provider adapter for a resolved configuration."""
    provider_cls = PROVIDERS[provider_config.provider_id]
    return provider_cls(provider_config.api_key, client, config)


async def embed(
    text: str,
    provider_id: ProviderId | str,
    api_key: str,
    client: httpx.AsyncClient | None = None,
) -> list[float]:
    """Embed one text with an explicitly chosen provider.

    Args:
        text: Text to embed.
        provider_id: Provider to call.
        api_key: API key for that provider.
        client: HTTP client to reuse. A temporary one is created if omitted.

    Returns:
        The embedding vector.

    Raises:
        ProviderError: On a failed request or malformed response.
    """
    provider_config = EmbeddingProviderConfig(
        provider_id=ProviderId(provider_id), api_key=api_key
    )
    if client is not None:
        return await create_provider(provider_config, client).embed(text)

    async with httpx.AsyncClient() as temp_client:
        return await create_provider(provider_config, temp_client).embed(text)
