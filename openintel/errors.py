"""
Error taxonomy for OpenIntel.

Validation and configuration errors always reach the caller.  Provider
errors reach the caller only from :meth:`OpenIntel.semantic`; ingestion,
reindex batches and the semantic leg of hybrid search log and absorb them.
"""

from __future__ import annotations

from typing import Optional


class OpenIntelError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(OpenIntelError):
    """A required field is missing or has an invalid value."""


class ConfigurationError(OpenIntelError):
    """An operation needs an embedding provider or vector index that is not configured."""


class CapabilityError(ConfigurationError):
    """The vector index (or the provider feeding it) is unavailable for this call."""


class ProviderError(OpenIntelError):
    """The embedding call failed.

    ``status`` and ``body`` are set when the remote service answered with a
    non-success HTTP status; both are ``None`` for network failures,
    malformed responses and errors raised by a custom embed function.
    """

    def __init__(self, message: str, status: Optional[int] = None,
                 body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class NotFoundError(OpenIntelError):
    """The requested record does not exist."""


class TradeStateError(OpenIntelError):
    """The trade is not in a state that allows the requested transition."""


class StoreCorruptionError(OpenIntelError):
    """A stored JSON column could not be decoded."""
