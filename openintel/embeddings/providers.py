"""
Embedding provider strategies.

Each remote provider speaks its own request/response shape over HTTPS;
:class:`CustomProvider` wraps a caller-supplied function.  None of them
retry: a failed call raises :class:`~openintel.errors.ProviderError` once
and the caller decides whether to absorb it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import requests

from ..errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 1024
DEFAULT_TIMEOUT = 60.0
_CONNECT_TIMEOUT = 10


class EmbedMode(str, Enum):
    """Whether the text is being indexed or used as a search query."""

    DOCUMENT = "document"
    QUERY = "query"


class ProviderKind(str, Enum):
    VOYAGE = "voyage"
    OPENAI = "openai"
    COHERE = "cohere"
    CUSTOM = "custom"


EmbedFn = Callable[[list[str], str], Sequence[Sequence[float]]]


@dataclass
class EmbeddingConfig:
    """
    How to turn text into vectors.

    Attributes
    ----------
    provider:
        One of :class:`ProviderKind` (or its string value).
    api_key:
        Bearer token for remote providers.
    api_url:
        Full endpoint URL override; each provider has its own default.
    model:
        Model name override; each provider has its own default.
    dimensions:
        Vector length for the whole store.  ``None`` uses the native size
        of the provider's model (1024 for a custom function).
    timeout:
        Read timeout in seconds for remote calls.
    embed_fn:
        ``embed_fn(texts, mode)`` for ``provider="custom"``.
    """

    provider: ProviderKind | str
    api_key: str = ""
    api_url: Optional[str] = None
    model: Optional[str] = None
    dimensions: Optional[int] = None
    timeout: float = DEFAULT_TIMEOUT
    embed_fn: Optional[EmbedFn] = None


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------

class EmbeddingProvider(ABC):

    kind: ProviderKind
    dimensions: int = DEFAULT_DIMENSIONS

    @abstractmethod
    def embed(self, texts: list[str], mode: EmbedMode) -> list[list[float]]:
        """Return one vector per text, in input order."""


class HTTPEmbeddingProvider(EmbeddingProvider):
    """JSON-over-HTTPS provider with bearer authentication."""

    default_url: str = ""
    default_model: str = ""
    # Native output size per model; unknown models get fallback_dimensions.
    model_dimensions: dict[str, int] = {}
    fallback_dimensions: int = DEFAULT_DIMENSIONS

    def __init__(self, api_key: str, api_url: Optional[str] = None,
                 model: Optional[str] = None,
                 dimensions: Optional[int] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.url = api_url or self.default_url
        self.model = model or self.default_model
        self.dimensions = int(dimensions) if dimensions else self.model_dimensions.get(
            self.model, self.fallback_dimensions)
        self.timeout = timeout

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    @abstractmethod
    def _payload(self, texts: list[str], mode: EmbedMode) -> dict:
        """Request body for *texts*."""

    @abstractmethod
    def _parse(self, data: Any) -> list[list[float]]:
        """Extract the vectors from a decoded response body."""

    def embed(self, texts: list[str], mode: EmbedMode) -> list[list[float]]:
        name = self.kind.value
        logger.debug("[%s] Embedding %d text(s) with %s (%s)",
                     name, len(texts), self.model, mode.value)
        try:
            response = requests.post(
                self.url,
                headers=self._headers(),
                json=self._payload(texts, mode),
                timeout=(_CONNECT_TIMEOUT, self.timeout),
            )
        except requests.exceptions.RequestException as exc:
            raise ProviderError(f"{name} embedding request failed: {exc}") from exc

        if not response.ok:
            raise ProviderError(
                f"{name} embedding API {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )
        try:
            return self._parse(response.json())
        except (ValueError, KeyError, TypeError, IndexError) as exc:
            raise ProviderError(f"{name} returned a malformed response: {exc}") from exc


# ---------------------------------------------------------------------------
# Remote providers
# ---------------------------------------------------------------------------

class VoyageProvider(HTTPEmbeddingProvider):
    kind = ProviderKind.VOYAGE
    default_url = "https://api.voyageai.com/v1/embeddings"
    default_model = "voyage-3-lite"
    model_dimensions = {
        "voyage-4-lite": 512,
        "voyage-3-lite": 512,
        "voyage-3": 1024,
        "voyage-3-large": 1536,
        "voyage-large-2": 1536,
        "voyage-code-3": 1024,
    }
    fallback_dimensions = 512

    def _payload(self, texts: list[str], mode: EmbedMode) -> dict:
        return {"model": self.model, "input": texts, "input_type": mode.value}

    def _parse(self, data: Any) -> list[list[float]]:
        return [item["embedding"] for item in data["data"]]


class OpenAIProvider(HTTPEmbeddingProvider):
    """OpenAI embeddings.  The API has no query/document distinction."""

    kind = ProviderKind.OPENAI
    default_url = "https://api.openai.com/v1/embeddings"
    default_model = "text-embedding-3-small"
    model_dimensions = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    fallback_dimensions = 1536

    def _payload(self, texts: list[str], mode: EmbedMode) -> dict:
        payload: dict = {"model": self.model, "input": texts}
        # Only the v3 models accept a target dimensionality.
        if self.model.startswith("text-embedding-3"):
            payload["dimensions"] = self.dimensions
        return payload

    def _parse(self, data: Any) -> list[list[float]]:
        items = sorted(data["data"], key=lambda d: d.get("index", 0))
        return [item["embedding"] for item in items]


class CohereProvider(HTTPEmbeddingProvider):
    kind = ProviderKind.COHERE
    default_url = "https://api.cohere.ai/v1/embed"
    default_model = "embed-english-v3.0"
    model_dimensions = {
        "embed-english-v3.0": 1024,
        "embed-multilingual-v3.0": 1024,
        "embed-english-light-v3.0": 384,
        "embed-multilingual-light-v3.0": 384,
    }
    fallback_dimensions = 1024

    def _payload(self, texts: list[str], mode: EmbedMode) -> dict:
        input_type = "search_query" if mode is EmbedMode.QUERY else "search_document"
        return {"model": self.model, "texts": texts, "input_type": input_type}

    def _parse(self, data: Any) -> list[list[float]]:
        return list(data["embeddings"])


# ---------------------------------------------------------------------------
# Caller-supplied function
# ---------------------------------------------------------------------------

class CustomProvider(EmbeddingProvider):
    """Delegates to ``embed_fn(texts, mode)`` where *mode* is the string value."""

    kind = ProviderKind.CUSTOM

    def __init__(self, embed_fn: EmbedFn, dimensions: Optional[int] = None):
        self.embed_fn = embed_fn
        self.dimensions = int(dimensions) if dimensions else DEFAULT_DIMENSIONS

    def embed(self, texts: list[str], mode: EmbedMode) -> list[list[float]]:
        try:
            vectors = self.embed_fn(list(texts), mode.value)
        except Exception as exc:
            raise ProviderError(f"custom embed function failed: {exc}") from exc
        try:
            return [list(v) for v in vectors]
        except TypeError as exc:
            raise ProviderError(f"custom embed function returned malformed vectors: {exc}") from exc


_REMOTE = {
    ProviderKind.VOYAGE: VoyageProvider,
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.COHERE: CohereProvider,
}


def build_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Instantiate the strategy named by *config*."""
    try:
        kind = ProviderKind(str(getattr(config.provider, "value", config.provider)).lower())
    except ValueError:
        allowed = ", ".join(k.value for k in ProviderKind)
        raise ConfigurationError(
            f"Unknown embedding provider: {config.provider}. Use one of: {allowed}."
        ) from None

    if kind is ProviderKind.CUSTOM:
        if config.embed_fn is None:
            raise ConfigurationError("provider 'custom' requires embed_fn")
        return CustomProvider(config.embed_fn, config.dimensions)

    if not config.api_key:
        logger.warning("No API key configured for embedding provider '%s'", kind.value)
    return _REMOTE[kind](
        api_key=config.api_key,
        api_url=config.api_url,
        model=config.model,
        dimensions=config.dimensions,
        timeout=config.timeout,
    )
