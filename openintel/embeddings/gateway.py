"""
Embedding Gateway: the single ``embed(texts, mode)`` entry point.

The provider strategy is chosen once, when the gateway is built from an
:class:`EmbeddingConfig`, and never changes for the life of the store.
An unconfigured gateway is valid: it reports ``configured == False`` and
raises :class:`ConfigurationError` if asked to embed.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..errors import ConfigurationError, ProviderError
from .providers import (
    DEFAULT_DIMENSIONS,
    EmbeddingConfig,
    EmbeddingProvider,
    EmbedMode,
    build_provider,
)

logger = logging.getLogger(__name__)


class EmbeddingGateway:
    """
    Turns text into vectors through the configured provider.

    Parameters
    ----------
    config:
        Provider settings, or ``None`` for a store without embeddings.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None) -> None:
        self._config = config
        self._provider: Optional[EmbeddingProvider] = (
            build_provider(config) if config is not None else None
        )

    @property
    def configured(self) -> bool:
        return self._provider is not None

    @property
    def dimensions(self) -> int:
        """Configured vector length, else the provider model's native size."""
        if self._provider is None:
            return DEFAULT_DIMENSIONS
        return self._provider.dimensions

    @property
    def provider_name(self) -> Optional[str]:
        return self._provider.kind.value if self._provider else None

    def embed(
        self,
        texts: Sequence[str],
        mode: EmbedMode | str = EmbedMode.DOCUMENT,
    ) -> list[list[float]]:
        """
        Embed *texts*, returning one vector per text in the same order.

        Parameters
        ----------
        mode:
            ``"document"`` when indexing, ``"query"`` when searching.  Some
            providers produce different vectors for the two.

        Raises
        ------
        ConfigurationError
            No provider is configured.
        ProviderError
            The call failed or returned the wrong number of vectors.
        """
        if self._provider is None:
            raise ConfigurationError("No embedding provider configured")
        mode = EmbedMode(mode)
        batch = list(texts)
        if not batch:
            return []

        vectors = self._provider.embed(batch, mode)
        try:
            result = [[float(x) for x in vec] for vec in vectors]
        except (TypeError, ValueError) as exc:
            raise ProviderError(
                f"{self._provider.kind.value} returned a malformed embedding: {exc}"
            ) from exc
        if len(result) != len(batch):
            raise ProviderError(
                f"{self._provider.kind.value} returned {len(result)} vectors "
                f"for {len(batch)} texts"
            )
        return result
