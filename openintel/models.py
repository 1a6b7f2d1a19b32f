"""
Record types shared by the storage, vector and retrieval layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TradeDirection(str, Enum):
    LONG = "long"
    SHORT = "short"
    YES = "yes"
    NO = "no"


class TradeOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    SCRATCH = "scratch"


@dataclass
class IntelEntry:
    """
    A stored intelligence record.

    Attributes
    ----------
    id:
        Store-assigned identity, strictly increasing and never reused.
    category:
        Free-form classification (``market``, ``newsletter``, ...).
    tags:
        Ordered list of tags; duplicates are kept as given.
    metadata:
        Arbitrary JSON-serialisable mapping.
    created_at:
        ISO-8601 UTC timestamp with microseconds, set on insert.
    similarity:
        ``1 / (1 + distance)``; only set by semantic search.
    hybrid_score:
        Fused keyword + semantic score; only set by hybrid search.
    """

    id: int
    category: str
    title: str
    body: Optional[str] = None
    source: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    confidence: float = 0.5
    actionable: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    expires_at: Optional[str] = None
    similarity: Optional[float] = None
    hybrid_score: Optional[float] = None

    @property
    def embedding_text(self) -> str:
        """Text that gets embedded for this entry."""
        return compose_embedding_text(self.title, self.body)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "category": self.category,
            "title": self.title,
            "body": self.body,
            "source": self.source,
            "tags": list(self.tags),
            "confidence": self.confidence,
            "actionable": self.actionable,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }
        if self.similarity is not None:
            data["similarity"] = self.similarity
        if self.hybrid_score is not None:
            data["hybrid_score"] = self.hybrid_score
        return data


@dataclass
class Trade:
    """A journaled trade.  ``outcome`` is ``None`` while the trade is open."""

    id: int
    ticker: str
    direction: TradeDirection
    contracts: int
    entry_price: float
    series_ticker: Optional[str] = None
    exit_price: Optional[float] = None
    thesis: Optional[str] = None
    outcome: Optional[TradeOutcome] = None
    pnl_cents: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    placed_at: str = ""
    resolved_at: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.outcome is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ticker": self.ticker,
            "series_ticker": self.series_ticker,
            "direction": self.direction.value,
            "contracts": self.contracts,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "thesis": self.thesis,
            "outcome": self.outcome.value if self.outcome else None,
            "pnl_cents": self.pnl_cents,
            "metadata": dict(self.metadata),
            "placed_at": self.placed_at,
            "resolved_at": self.resolved_at,
        }


def compose_embedding_text(title: str, body: Optional[str]) -> str:
    """Join title and body the way both ingestion and reindex embed them."""
    return f"{title}. {body or ''}".strip()
