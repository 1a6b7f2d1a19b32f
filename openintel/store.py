"""
OpenIntel: structured intelligence knowledge base with keyword, semantic
and hybrid search, plus a trade journal, in one SQLite file.

Usage::

    from openintel import OpenIntel, EmbeddingConfig

    with OpenIntel("intel.db", embedding=EmbeddingConfig("voyage", api_key=key)) as intel:
        intel.add("market", {"title": "Fed holds rates", "tags": ["fed"]})
        hits = intel.think("interest rate decision", limit=5)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from .config import Config
from .embeddings import EmbeddingConfig, EmbeddingGateway
from .ingest import IngestionPipeline
from .models import IntelEntry, Trade, TradeOutcome
from .retrieval import RetrievalEngine
from .storage import (
    ALL_CATEGORIES,
    EntryStore,
    TradeJournal,
    connect,
    format_timestamp,
    init_schema,
)
from .vector import VectorIndex, open_vector_index
from .vector.index import BACKEND_AUTO

logger = logging.getLogger(__name__)

SUMMARY_TOP_TAGS = 20


class OpenIntel:
    """
    One open store handle: a single SQLite connection and everything built on it.

    Operations run to completion one at a time; the handle does no locking
    of its own, so callers sharing it across threads must serialise access.

    Parameters
    ----------
    db_path:
        SQLite database file (created if absent), or ``":memory:"``.
    embedding:
        Embedding provider settings; ``None`` disables embeddings.
    vec_backend:
        ``"auto"``, ``"sqlite-vec"``, ``"flat"`` or ``"none"``; see
        :func:`~openintel.vector.open_vector_index`.
    vec_extension_path:
        Explicit path to a compiled sqlite-vec library.
    """

    def __init__(
        self,
        db_path: str = "openintel.db",
        embedding: Optional[EmbeddingConfig] = None,
        vec_backend: str = BACKEND_AUTO,
        vec_extension_path: Optional[str] = None,
    ) -> None:
        self.db_path = db_path
        self.gateway = EmbeddingGateway(embedding)
        self._conn = connect(db_path)
        try:
            init_schema(self._conn)
            self.vector_index: Optional[VectorIndex] = open_vector_index(
                self._conn, self.gateway.dimensions, vec_backend, vec_extension_path,
            )
        except Exception:
            self._conn.close()
            raise

        self.entries = EntryStore(self._conn)
        self.journal = TradeJournal(self._conn)
        self._ingest = IngestionPipeline(self.entries, self.gateway, self.vector_index)
        self._retrieval = RetrievalEngine(self.entries, self.gateway, self.vector_index)
        logger.debug(
            "Opened %s (embeddings: %s, vectors: %s)",
            db_path,
            self.gateway.provider_name or "off",
            self.vector_index.backend if self.vector_index else "off",
        )

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "OpenIntel":
        """Open the store described by *config* (default: :meth:`Config.load`)."""
        cfg = config or Config.load()
        return cls(
            db_path=cfg.DB_PATH,
            embedding=cfg.embedding_config(),
            vec_backend=cfg.VEC_BACKEND,
            vec_extension_path=cfg.VEC_EXTENSION_PATH or None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def vec_enabled(self) -> bool:
        return self.vector_index is not None

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "OpenIntel":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Intel
    # ------------------------------------------------------------------

    def add(self, category: str, fields: Mapping[str, Any]) -> int:
        """Store an entry (``title`` required) and embed it if possible."""
        return self._ingest.add(category, fields)

    def query(
        self,
        category: str = ALL_CATEGORIES,
        limit: int = 20,
        since: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> list[IntelEntry]:
        return self.entries.list_by_category(category, limit=limit, since=since, tag=tag)

    def search(self, text: str, limit: int = 10) -> list[IntelEntry]:
        return self._retrieval.search(text, limit)

    def semantic(self, query: str, limit: int = 10) -> list[IntelEntry]:
        return self._retrieval.semantic(query, limit)

    def think(self, query: str, limit: int = 10) -> list[IntelEntry]:
        return self._retrieval.think(query, limit)

    def reindex(self, progress: bool = False) -> dict:
        return self._retrieval.reindex(progress=progress)

    def export(
        self,
        since: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[IntelEntry]:
        return self.entries.export(since=since, category=category)

    def tags(self, category: Optional[str] = None) -> list[dict]:
        return self.entries.tags(category)

    def stats(self) -> dict:
        """
        Overview of the store.

        Returns
        -------
        dict
            Keys: ``total``, ``vectored``, ``actionable``, ``vec_enabled``,
            ``categories``, ``trades``.
        """
        entry_stats = self.entries.stats()
        return {
            "total": entry_stats["total"],
            "vectored": self.vector_index.count() if self.vector_index else 0,
            "actionable": entry_stats["actionable"],
            "vec_enabled": self.vec_enabled,
            "categories": entry_stats["categories"],
            "trades": self.journal.summary(),
        }

    def summarize(self, hours: int = 24) -> dict:
        """Digest of the entries created in the last *hours*."""
        now = datetime.now(timezone.utc)
        since = now - timedelta(hours=hours)
        entries = self.entries.export(since=format_timestamp(since))

        by_category: dict[str, list[str]] = {}
        tag_counts: dict[str, int] = {}
        for entry in entries:
            by_category.setdefault(entry.category, []).append(entry.title)
            for tag in entry.tags:
                tag_counts[tag] = tag_counts.get(tag, 0) + 1

        categories = [
            {"category": cat, "count": len(titles), "titles": titles}
            for cat, titles in by_category.items()
        ]
        categories.sort(key=lambda c: c["count"], reverse=True)
        top_tags = sorted(tag_counts.items(), key=lambda kv: kv[1], reverse=True)
        actionable = sorted(
            (e for e in entries if e.actionable),
            key=lambda e: e.confidence,
            reverse=True,
        )
        return {
            "generated_at": format_timestamp(now),
            "period_start": format_timestamp(since),
            "period_end": format_timestamp(now),
            "total_entries": len(entries),
            "by_category": categories,
            "top_tags": [{"tag": t, "count": c} for t, c in top_tags[:SUMMARY_TOP_TAGS]],
            "actionable_items": [
                {"id": e.id, "category": e.category, "title": e.title,
                 "confidence": e.confidence}
                for e in actionable
            ],
        }

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    def add_trade(self, fields: Mapping[str, Any]) -> int:
        return self.journal.add(fields)

    def resolve_trade(
        self,
        trade_id: int,
        outcome: str | TradeOutcome,
        pnl_cents: int,
        exit_price: Optional[float] = None,
    ) -> None:
        self.journal.resolve(trade_id, outcome, pnl_cents, exit_price)

    def trades(
        self,
        limit: int = 20,
        since: Optional[str] = None,
        resolved: Optional[bool] = None,
    ) -> list[Trade]:
        return self.journal.list_trades(limit=limit, since=since, resolved=resolved)

    def get_trade(self, trade_id: int) -> Optional[Trade]:
        return self.journal.get(trade_id)
