"""
Vector Index: side table mapping intel ids to fixed-dimension embeddings.

Two backends share the :class:`VectorIndex` interface:

* :class:`SqliteVecIndex`: a ``vec0`` virtual table from the sqlite-vec
  extension, queried with its ``MATCH`` nearest-neighbour operator.
* :class:`FlatVectorIndex`: a plain table of float32 blobs searched with
  exact L2 distance in numpy.  Zero-config, no extension loading.

Both report L2 distances, ascending.  The index never decides whether an
entry exists: rows without a vector are normal, and every lookup joins back
to the ``intel`` table.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

import numpy as np
import sqlite_vec

from ..errors import ConfigurationError
from ..models import IntelEntry
from ..storage.entry_store import row_to_entry
from . import codec

logger = logging.getLogger(__name__)

BACKEND_AUTO = "auto"
BACKEND_SQLITE_VEC = "sqlite-vec"
BACKEND_FLAT = "flat"
BACKEND_NONE = "none"
BACKENDS = (BACKEND_AUTO, BACKEND_SQLITE_VEC, BACKEND_FLAT, BACKEND_NONE)

_DECLARED_DIMS = re.compile(r"float\[(\d+)\]")


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class VectorIndex(ABC):
    """
    Common behaviour of both vector backends.

    Parameters
    ----------
    conn:
        The store's connection; the ``intel`` table must already exist.
    dimensions:
        Length every stored and queried vector must have.
    """

    backend: str = ""
    table: str = ""

    def __init__(self, conn: sqlite3.Connection, dimensions: int) -> None:
        if dimensions <= 0:
            raise ConfigurationError(f"vector dimensions must be positive, got {dimensions}")
        self._conn = conn
        self.dimensions = dimensions

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _create_table(self) -> None:
        """Create the backing table if it does not exist."""

    @abstractmethod
    def _write(self, entry_id: int, blob: bytes) -> None:
        """Insert or replace one row (no commit)."""

    @abstractmethod
    def nearest(self, query_vector: Sequence[float], limit: int) -> list[tuple[int, float]]:
        """Return up to *limit* ``(entry_id, distance)`` pairs, closest first."""

    @abstractmethod
    def stored_dimension(self) -> Optional[int]:
        """Dimension of an arbitrary stored vector, or ``None`` when empty."""

    # ------------------------------------------------------------------
    # Shared API
    # ------------------------------------------------------------------

    def _encode(self, vector: Sequence[float]) -> bytes:
        if len(vector) != self.dimensions:
            raise ValueError(
                f"vector has {len(vector)} dimensions, index expects {self.dimensions}"
            )
        return codec.pack(vector)

    def upsert(self, entry_id: int, vector: Sequence[float]) -> bool:
        """
        Store the vector for *entry_id*, replacing any previous one.

        Returns ``False`` (and logs) instead of raising when the vector has
        the wrong length or the write fails.
        """
        try:
            blob = self._encode(vector)
            with self._conn:
                self._write(entry_id, blob)
        except (ValueError, sqlite3.Error) as exc:
            logger.warning("Vector upsert for intel #%d failed: %s", entry_id, exc)
            return False
        logger.debug("Stored %d-dim vector for intel #%d", self.dimensions, entry_id)
        return True

    def upsert_many(self, items: Iterable[tuple[int, Sequence[float]]]) -> int:
        """
        Store several vectors in one transaction.

        Either every row lands or none does; the error is re-raised for the
        caller to handle.

        Returns
        -------
        int
            Number of vectors written.
        """
        encoded = [(entry_id, self._encode(vec)) for entry_id, vec in items]
        with self._conn:
            for entry_id, blob in encoded:
                self._write(entry_id, blob)
        return len(encoded)

    def _stale_clause(self) -> tuple[str, tuple]:
        """SQL condition on alias ``v`` for stored rows that need re-embedding."""
        return "", ()

    def missing_embeddings(self) -> list[IntelEntry]:
        """Entries with no usable vector row, oldest first."""
        stale, params = self._stale_clause()
        rows = self._conn.execute(
            f"SELECT i.* FROM intel i "
            f"LEFT JOIN {self.table} v ON i.id = v.intel_id "
            f"WHERE v.intel_id IS NULL{stale} ORDER BY i.id ASC",
            params,
        ).fetchall()
        return [row_to_entry(r) for r in rows]

    def count(self) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]


# ---------------------------------------------------------------------------
# sqlite-vec backend
# ---------------------------------------------------------------------------

class SqliteVecIndex(VectorIndex):
    """``vec0`` virtual table provided by the sqlite-vec extension."""

    backend = BACKEND_SQLITE_VEC
    table = "intel_vec"

    @classmethod
    def open(
        cls,
        conn: sqlite3.Connection,
        dimensions: int,
        extension_path: Optional[str] = None,
    ) -> "SqliteVecIndex":
        """
        Load the extension into *conn* and create the virtual table.

        *extension_path* points at a compiled ``vec0`` library; when omitted
        the copy bundled with the ``sqlite-vec`` package is used.  Raises
        whatever the load or ``CREATE`` raised.
        """
        conn.enable_load_extension(True)
        try:
            if extension_path:
                conn.load_extension(extension_path)
            else:
                sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)
        index = cls(conn, dimensions)
        index._create_table()
        return index

    def _create_table(self) -> None:
        row = self._conn.execute(
            "SELECT sql FROM sqlite_master WHERE name = ?", (self.table,)
        ).fetchone()
        declared = _DECLARED_DIMS.search(row[0]) if row and row[0] else None
        if declared and int(declared.group(1)) != self.dimensions:
            # vec0 column width is fixed at CREATE time.
            logger.warning(
                "Vector table %s holds %s-dim vectors but the embedding configuration "
                "uses %d; recreating it empty. Run `openintel reindex` to re-embed "
                "all entries.",
                self.table, declared.group(1), self.dimensions,
            )
            self._conn.execute(f"DROP TABLE {self.table}")
        self._conn.execute(
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {self.table} USING vec0("
            f"intel_id INTEGER PRIMARY KEY, embedding float[{self.dimensions}])"
        )
        self._conn.commit()

    def _write(self, entry_id: int, blob: bytes) -> None:
        # vec0 rejects INSERT OR REPLACE on an existing primary key.
        self._conn.execute(f"DELETE FROM {self.table} WHERE intel_id = ?", (entry_id,))
        self._conn.execute(
            f"INSERT INTO {self.table} (intel_id, embedding) VALUES (?, ?)",
            (entry_id, blob),
        )

    def nearest(self, query_vector: Sequence[float], limit: int) -> list[tuple[int, float]]:
        if limit <= 0:
            return []
        rows = self._conn.execute(
            f"SELECT intel_id, distance FROM {self.table} "
            f"WHERE embedding MATCH ? AND k = ? ORDER BY distance",
            (self._encode(query_vector), limit),
        ).fetchall()
        return [(int(r[0]), float(r[1])) for r in rows]

    def stored_dimension(self) -> Optional[int]:
        row = self._conn.execute(
            f"SELECT vec_length(embedding) FROM {self.table} LIMIT 1"
        ).fetchone()
        return int(row[0]) if row else None


# ---------------------------------------------------------------------------
# Flat (numpy) backend
# ---------------------------------------------------------------------------

class FlatVectorIndex(VectorIndex):
    """Plain SQLite table with brute-force L2 search in numpy."""

    backend = BACKEND_FLAT
    table = "intel_vec_flat"

    @classmethod
    def open(cls, conn: sqlite3.Connection, dimensions: int) -> "FlatVectorIndex":
        index = cls(conn, dimensions)
        index._create_table()
        return index

    def _create_table(self) -> None:
        self._conn.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table} ("
            f"intel_id  INTEGER PRIMARY KEY REFERENCES intel(id) ON DELETE CASCADE, "
            f"embedding BLOB NOT NULL)"
        )
        self._conn.commit()

    def _stale_clause(self) -> tuple[str, tuple]:
        return " OR length(v.embedding) != ?", (self.dimensions * codec.FLOAT32_LE.itemsize,)

    def _write(self, entry_id: int, blob: bytes) -> None:
        self._conn.execute(
            f"INSERT OR REPLACE INTO {self.table} (intel_id, embedding) VALUES (?, ?)",
            (entry_id, blob),
        )

    def nearest(self, query_vector: Sequence[float], limit: int) -> list[tuple[int, float]]:
        if limit <= 0:
            return []
        query = codec.unpack(self._encode(query_vector))
        rows = self._conn.execute(
            f"SELECT intel_id, embedding FROM {self.table}"
        ).fetchall()

        ids: list[int] = []
        vectors: list[np.ndarray] = []
        for entry_id, blob in rows:
            vec = codec.unpack(blob)
            if vec.size != self.dimensions:
                logger.debug("Skipping intel #%d: stored vector has %d dims", entry_id, vec.size)
                continue
            ids.append(int(entry_id))
            vectors.append(vec)
        if not vectors:
            return []

        matrix = np.stack(vectors).astype(np.float64)
        distances = np.linalg.norm(matrix - query.astype(np.float64), axis=1)
        order = np.argsort(distances, kind="stable")[:limit]
        return [(ids[i], float(distances[i])) for i in order]

    def stored_dimension(self) -> Optional[int]:
        row = self._conn.execute(
            f"SELECT length(embedding) FROM {self.table} LIMIT 1"
        ).fetchone()
        return int(row[0]) // codec.FLOAT32_LE.itemsize if row else None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def open_vector_index(
    conn: sqlite3.Connection,
    dimensions: int,
    backend: str = BACKEND_AUTO,
    extension_path: Optional[str] = None,
) -> Optional[VectorIndex]:
    """
    Open the configured vector backend once, at store start-up.

    Parameters
    ----------
    backend:
        ``"auto"`` tries sqlite-vec and yields ``None`` if it cannot be
        loaded; ``"sqlite-vec"`` does the same but logs the failure as a
        warning; ``"flat"`` always opens the numpy backend; ``"none"``
        disables vectors.

    Returns
    -------
    VectorIndex or None
        ``None`` means semantic search and reindex are unavailable for the
        lifetime of this connection.
    """
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unknown vector backend '{backend}'. Use one of: {', '.join(BACKENDS)}"
        )
    if backend == BACKEND_NONE:
        return None

    index: Optional[VectorIndex]
    if backend == BACKEND_FLAT:
        index = FlatVectorIndex.open(conn, dimensions)
    else:
        try:
            index = SqliteVecIndex.open(conn, dimensions, extension_path)
        except (AttributeError, sqlite3.Error) as exc:
            # AttributeError: interpreter built without extension loading.
            level = logging.WARNING if backend == BACKEND_SQLITE_VEC else logging.INFO
            logger.log(level, "sqlite-vec unavailable, keyword search only: %s", exc)
            return None

    stored = index.stored_dimension()
    if stored is not None and stored != dimensions:
        logger.warning(
            "Stored vectors have dimension %d but the embedding configuration "
            "uses %d; they are ignored by search. Run `openintel reindex` to "
            "re-embed them.",
            stored, dimensions,
        )
    logger.debug("Vector index ready (%s, %d dims)", index.backend, dimensions)
    return index
