"""
Ingestion Pipeline: durable write first, best-effort embedding second.

The entry insert and the vector upsert are separate transactions:
an embedding failure leaves the entry stored without a vector
(``reindex`` can backfill it later) and is never reported to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .embeddings import EmbeddingGateway, EmbedMode
from .errors import OpenIntelError
from .models import compose_embedding_text
from .storage import EntryStore
from .vector import VectorIndex

logger = logging.getLogger(__name__)


class IngestionPipeline:
    def __init__(
        self,
        entries: EntryStore,
        gateway: EmbeddingGateway,
        index: Optional[VectorIndex],
    ) -> None:
        self._entries = entries
        self._gateway = gateway
        self._index = index

    def add(self, category: str, fields: Mapping[str, Any]) -> int:
        """
        Persist an entry and try to embed it.

        Returns
        -------
        int
            The new entry id.

        Raises
        ------
        ValidationError
            From the Entry Store; nothing is written.
        """
        entry_id = self._entries.create(category, fields)
        if self._gateway.configured and self._index is not None:
            self._embed(entry_id, fields)
        return entry_id

    def _embed(self, entry_id: int, fields: Mapping[str, Any]) -> None:
        text = compose_embedding_text(fields["title"], fields.get("body"))
        try:
            [vector] = self._gateway.embed([text], EmbedMode.DOCUMENT)
        except OpenIntelError as exc:
            logger.warning("Embedding failed for intel #%d, stored without vector: %s",
                           entry_id, exc)
            return
        self._index.upsert(entry_id, vector)
