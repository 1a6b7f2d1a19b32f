"""
openintel: structured intelligence knowledge base.

Public API for library usage::

    from openintel import OpenIntel

    with OpenIntel("openintel.db") as intel:
        entry_id = intel.add("market", {"title": "AAPL beats estimates"})
        results = intel.search("AAPL")
"""

from .config import Config
from .embeddings import EmbeddingConfig, EmbedMode, ProviderKind
from .errors import (
    CapabilityError,
    ConfigurationError,
    NotFoundError,
    OpenIntelError,
    ProviderError,
    StoreCorruptionError,
    TradeStateError,
    ValidationError,
)
from .models import IntelEntry, Trade, TradeDirection, TradeOutcome
from .store import OpenIntel

__version__ = "0.1.0"

__all__ = [
    "CapabilityError",
    "Config",
    "ConfigurationError",
    "EmbedMode",
    "EmbeddingConfig",
    "IntelEntry",
    "NotFoundError",
    "OpenIntel",
    "OpenIntelError",
    "ProviderError",
    "ProviderKind",
    "StoreCorruptionError",
    "Trade",
    "TradeDirection",
    "TradeOutcome",
    "TradeStateError",
    "ValidationError",
]
