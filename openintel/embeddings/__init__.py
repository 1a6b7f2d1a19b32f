"""
Embedding Gateway and provider strategies.
"""

from .gateway import EmbeddingGateway
from .providers import (
    CohereProvider,
    CustomProvider,
    EmbeddingConfig,
    EmbeddingProvider,
    EmbedMode,
    OpenAIProvider,
    ProviderKind,
    VoyageProvider,
    build_provider,
)

__all__ = [
    "CohereProvider",
    "CustomProvider",
    "EmbeddingConfig",
    "EmbeddingGateway",
    "EmbeddingProvider",
    "EmbedMode",
    "OpenAIProvider",
    "ProviderKind",
    "VoyageProvider",
    "build_provider",
]
