"""
Retrieval Engine: keyword, semantic and hybrid search plus reindexing.

Keyword search needs nothing but the Entry Store and always works.
Semantic search and reindex need both an embedding provider and a vector
index.  Hybrid search uses the semantic leg when it can and silently drops
it when it cannot, so it degrades to keyword ranking instead of failing.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Optional

from tqdm import tqdm

from .embeddings import EmbeddingGateway, EmbedMode
from .errors import CapabilityError, ConfigurationError, OpenIntelError, ProviderError
from .models import IntelEntry
from .storage import EntryStore
from .vector import VectorIndex

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REINDEX_BATCH_SIZE = 128
SEMANTIC_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3
POOL_FACTOR = 2


def distance_to_similarity(distance: float) -> float:
    """Map a non-negative distance to ``(0, 1]``; smaller distance, higher score."""
    return 1.0 / (1.0 + distance)


def fuse_scores(
    keyword_ids: list[int],
    semantic_scores: dict[int, float],
) -> list[tuple[int, float]]:
    """
    Combine the two candidate pools into one ranking.

    Each id scores ``0.7 * semantic + 0.3`` if it matched the keyword pool,
    or ``0.7 * semantic`` alone; an id absent from the semantic pool has a
    semantic score of 0.  The sort is stable over the union order (keyword
    ids first, then semantic-only ids), which settles ties.

    Returns
    -------
    list[tuple[int, float]]
        ``(id, score)`` pairs, best first.
    """
    keyword_set = set(keyword_ids)
    union: list[int] = list(dict.fromkeys(keyword_ids))
    union.extend(i for i in semantic_scores if i not in keyword_set)

    scored = []
    for entry_id in union:
        keyword = KEYWORD_WEIGHT if entry_id in keyword_set else 0.0
        scored.append(
            (entry_id, SEMANTIC_WEIGHT * semantic_scores.get(entry_id, 0.0) + keyword)
        )
    scored.sort(key=lambda s: s[1], reverse=True)
    return scored


class RetrievalEngine:
    """
    Read paths over the store, plus vector backfill.

    Parameters
    ----------
    entries:
        The Entry Store.
    gateway:
        Embedding Gateway; may be unconfigured.
    index:
        Vector index handle, or ``None`` when vectors are unavailable.
    """

    def __init__(
        self,
        entries: EntryStore,
        gateway: EmbeddingGateway,
        index: Optional[VectorIndex],
    ) -> None:
        self._entries = entries
        self._gateway = gateway
        self._index = index

    @property
    def semantic_available(self) -> bool:
        return self._gateway.configured and self._index is not None

    # ------------------------------------------------------------------
    # Keyword
    # ------------------------------------------------------------------

    def search(self, text: str, limit: int = 10) -> list[IntelEntry]:
        """Case-sensitive substring search over title, body and source."""
        return self._entries.search_substring(text, limit)

    # ------------------------------------------------------------------
    # Semantic
    # ------------------------------------------------------------------

    def _nearest_scores(self, query: str, limit: int) -> dict[int, float]:
        [query_vec] = self._gateway.embed([query], EmbedMode.QUERY)
        if len(query_vec) != self._index.dimensions:
            raise ProviderError(
                f"query embedding has {len(query_vec)} dimensions, "
                f"index expects {self._index.dimensions}"
            )
        return {
            entry_id: distance_to_similarity(distance)
            for entry_id, distance in self._index.nearest(query_vec, limit)
        }

    def semantic(self, query: str, limit: int = 10) -> list[IntelEntry]:
        """
        Vector similarity search.

        Each result carries ``similarity = 1 / (1 + distance)`` and results
        are ordered by it, best first.

        Raises
        ------
        CapabilityError
            No embedding provider, or no vector index.
        ProviderError
            Embedding the query failed.
        """
        if not self._gateway.configured:
            raise CapabilityError("No embedding provider configured")
        if self._index is None:
            raise CapabilityError("Vector index unavailable; semantic search disabled")

        t0 = time.perf_counter()
        scores = self._nearest_scores(query, limit)
        if not scores:
            return []

        rank = {entry_id: pos for pos, entry_id in enumerate(scores)}
        results = self._entries.get_by_ids(scores)
        for entry in results:
            entry.similarity = scores[entry.id]
        results.sort(key=lambda e: (-e.similarity, rank[e.id]))
        elapsed = (time.perf_counter() - t0) * 1000
        logger.info("Semantic search returned %d results in %.1fms", len(results), elapsed)
        return results

    # ------------------------------------------------------------------
    # Hybrid
    # ------------------------------------------------------------------

    def think(self, query: str, limit: int = 10) -> list[IntelEntry]:
        """
        Hybrid search: keyword pool and semantic pool fused by fixed weights.

        Both pools are over-fetched at ``2 * limit``.  Any failure in the
        semantic leg is logged and that pool is treated as empty.  Each
        result carries ``hybrid_score``.
        """
        t0 = time.perf_counter()
        pool_size = limit * POOL_FACTOR
        keyword_ids = self._entries.search_title_body(query, pool_size)

        semantic_scores: dict[int, float] = {}
        if self.semantic_available:
            try:
                semantic_scores = self._nearest_scores(query, pool_size)
            except (OpenIntelError, sqlite3.Error) as exc:
                logger.warning("Semantic leg of hybrid search failed, using keywords only: %s",
                               exc)

        ranked = fuse_scores(keyword_ids, semantic_scores)[:limit]
        if not ranked:
            return []

        score_map = dict(ranked)
        rank = {entry_id: pos for pos, (entry_id, _) in enumerate(ranked)}
        results = self._entries.get_by_ids(score_map)
        for entry in results:
            entry.hybrid_score = score_map[entry.id]
        results.sort(key=lambda e: (-e.hybrid_score, rank[e.id]))
        elapsed = (time.perf_counter() - t0) * 1000
        logger.info(
            "Hybrid search returned %d results (%d keyword, %d semantic candidates) in %.1fms",
            len(results), len(keyword_ids), len(semantic_scores), elapsed,
        )
        return results

    # ------------------------------------------------------------------
    # Reindex
    # ------------------------------------------------------------------

    def reindex(self, progress: bool = False) -> dict:
        """
        Embed every entry that has no vector yet.

        Works in batches of 128: one gateway call and one transaction per
        batch.  A batch that fails is skipped, its entries stay unembedded,
        and the next batch proceeds.

        Parameters
        ----------
        progress:
            Show a tqdm progress bar on stderr.

        Returns
        -------
        dict
            ``{"embedded": int, "total": int}``; ``embedded < total`` means
            some batches failed.

        Raises
        ------
        ConfigurationError
            No embedding provider.
        CapabilityError
            No vector index.
        """
        if not self._gateway.configured:
            raise ConfigurationError("No embedding provider configured")
        if self._index is None:
            raise CapabilityError("Vector index unavailable; cannot reindex")

        missing = self._index.missing_embeddings()
        if not missing:
            return {"embedded": 0, "total": 0}

        embedded = 0
        batches = range(0, len(missing), REINDEX_BATCH_SIZE)
        bar = tqdm(
            batches,
            desc="Embedding entries",
            unit="batch",
            total=(len(missing) + REINDEX_BATCH_SIZE - 1) // REINDEX_BATCH_SIZE,
            disable=not progress,
        )
        for start in bar:
            batch = missing[start:start + REINDEX_BATCH_SIZE]
            texts = [entry.embedding_text for entry in batch]
            try:
                vectors = self._gateway.embed(texts, EmbedMode.DOCUMENT)
                embedded += self._index.upsert_many(
                    (entry.id, vec) for entry, vec in zip(batch, vectors)
                )
            except (OpenIntelError, ValueError, sqlite3.Error) as exc:
                logger.warning("Skipping reindex batch starting at #%d (%d entries): %s",
                               batch[0].id, len(batch), exc)
                continue
            bar.set_postfix({"embedded": embedded})

        logger.info("Reindex embedded %d of %d entries", embedded, len(missing))
        return {"embedded": embedded, "total": len(missing)}
