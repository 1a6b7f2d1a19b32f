"""
Unit tests for openintel.vector — the float32 codec, the flat numpy
backend, the sqlite-vec backend (skipped when the extension cannot be
loaded) and the backend factory.
"""

from __future__ import annotations

import logging
import struct

import pytest


@pytest.fixture
def conn():
    from openintel.storage import connect, init_schema
    c = connect(":memory:")
    init_schema(c)
    yield c
    c.close()


def _add(conn, title="t"):
    from openintel.storage import EntryStore
    return EntryStore(conn).create("market", {"title": title})


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

class TestCodec:

    def test_little_endian_float32_layout(self):
        from openintel.vector import codec
        assert codec.pack([1.0, -2.5]) == struct.pack("<2f", 1.0, -2.5)

    def test_unpack(self):
        from openintel.vector import codec
        assert codec.unpack(struct.pack("<3f", 0.5, 1.5, 2.5)).tolist() == [0.5, 1.5, 2.5]

    def test_unaligned_blob_rejected(self):
        from openintel.vector import codec
        with pytest.raises(ValueError):
            codec.unpack(b"\x00\x01\x02")


# ---------------------------------------------------------------------------
# Flat backend
# ---------------------------------------------------------------------------

class TestFlatVectorIndex:

    @pytest.fixture
    def index(self, conn):
        from openintel.vector import FlatVectorIndex
        return FlatVectorIndex.open(conn, 3)

    def test_nearest_orders_by_distance(self, conn, index):
        a, b, c = _add(conn), _add(conn), _add(conn)
        index.upsert(a, [1.0, 0.0, 0.0])
        index.upsert(b, [0.0, 1.0, 0.0])
        index.upsert(c, [0.9, 0.1, 0.0])
        hits = index.nearest([1.0, 0.0, 0.0], 2)
        assert [h[0] for h in hits] == [a, c]
        assert hits[0][1] == pytest.approx(0.0)
        assert hits[0][1] <= hits[1][1]

    def test_upsert_replaces(self, conn, index):
        a = _add(conn)
        index.upsert(a, [1.0, 0.0, 0.0])
        index.upsert(a, [0.0, 0.0, 1.0])
        assert index.count() == 1
        [(entry_id, distance)] = index.nearest([0.0, 0.0, 1.0], 5)
        assert entry_id == a
        assert distance == pytest.approx(0.0)

    def test_wrong_dimension_upsert_returns_false(self, conn, index, caplog):
        a = _add(conn)
        with caplog.at_level(logging.WARNING, logger="openintel.vector.index"):
            assert index.upsert(a, [1.0, 2.0]) is False
        assert index.count() == 0
        assert "failed" in caplog.text

    def test_query_dimension_mismatch_raises(self, index):
        with pytest.raises(ValueError):
            index.nearest([1.0], 3)

    def test_empty_index(self, index):
        assert index.nearest([1.0, 0.0, 0.0], 3) == []
        assert index.stored_dimension() is None

    def test_missing_embeddings(self, conn, index):
        a, b, c = _add(conn), _add(conn), _add(conn)
        index.upsert(b, [1.0, 0.0, 0.0])
        assert [e.id for e in index.missing_embeddings()] == [a, c]

    def test_wrong_length_rows_count_as_missing(self, conn):
        from openintel.vector import FlatVectorIndex
        a, b = _add(conn), _add(conn)
        FlatVectorIndex.open(conn, 2).upsert_many([(a, [1.0, 0.0]), (b, [0.0, 1.0])])
        wider = FlatVectorIndex.open(conn, 3)
        assert [e.id for e in wider.missing_embeddings()] == [a, b]
        wider.upsert(a, [1.0, 0.0, 0.0])
        assert [e.id for e in wider.missing_embeddings()] == [b]

    def test_upsert_many_is_atomic(self, conn, index):
        a, b = _add(conn), _add(conn)
        with pytest.raises(ValueError):
            index.upsert_many([(a, [1.0, 0.0, 0.0]), (b, [1.0])])
        assert index.count() == 0
        assert index.upsert_many([(a, [1.0, 0.0, 0.0]), (b, [0.0, 1.0, 0.0])]) == 2
        assert index.stored_dimension() == 3

    def test_non_positive_dimensions(self, conn):
        from openintel.errors import ConfigurationError
        from openintel.vector import FlatVectorIndex
        with pytest.raises(ConfigurationError):
            FlatVectorIndex(conn, 0)


# ---------------------------------------------------------------------------
# sqlite-vec backend
# ---------------------------------------------------------------------------

class TestSqliteVecIndex:

    @pytest.fixture
    def index(self, conn):
        pytest.importorskip("sqlite_vec")
        from openintel.vector import open_vector_index
        index = open_vector_index(conn, 3, backend="sqlite-vec")
        if index is None:
            pytest.skip("sqlite-vec extension cannot be loaded here")
        return index

    def test_nearest_and_replace(self, conn, index):
        a, b = _add(conn), _add(conn)
        assert index.upsert(a, [1.0, 0.0, 0.0])
        assert index.upsert(b, [0.0, 1.0, 0.0])
        assert index.upsert(b, [0.0, 0.0, 1.0])
        assert index.count() == 2
        hits = index.nearest([0.0, 0.0, 1.0], 2)
        assert hits[0][0] == b
        assert hits[0][1] == pytest.approx(0.0)
        assert index.stored_dimension() == 3

    def test_missing_embeddings(self, conn, index):
        a, b = _add(conn), _add(conn)
        index.upsert(a, [1.0, 0.0, 0.0])
        assert [e.id for e in index.missing_embeddings()] == [b]

    def test_dimension_change_recreates_table(self, conn, index, caplog):
        from openintel.vector import open_vector_index
        a = _add(conn)
        index.upsert(a, [1.0, 0.0, 0.0])
        with caplog.at_level(logging.WARNING, logger="openintel.vector.index"):
            wider = open_vector_index(conn, 4, backend="sqlite-vec")
        assert "reindex" in caplog.text
        assert wider.count() == 0
        assert [e.id for e in wider.missing_embeddings()] == [a]
        assert wider.upsert(a, [0.0, 0.0, 0.0, 1.0])
        assert wider.nearest([0.0, 0.0, 0.0, 1.0], 1)[0][0] == a


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

class TestOpenVectorIndex:

    def test_none_backend(self, conn):
        from openintel.vector import open_vector_index
        assert open_vector_index(conn, 3, backend="none") is None

    def test_flat_backend(self, conn):
        from openintel.vector import FlatVectorIndex, open_vector_index
        assert isinstance(open_vector_index(conn, 3, backend="flat"), FlatVectorIndex)

    def test_unknown_backend(self, conn):
        from openintel.errors import ConfigurationError
        from openintel.vector import open_vector_index
        with pytest.raises(ConfigurationError):
            open_vector_index(conn, 3, backend="faiss")

    def test_unloadable_extension_disables_vectors(self, conn, caplog):
        from openintel.vector import open_vector_index
        with caplog.at_level(logging.WARNING, logger="openintel.vector.index"):
            index = open_vector_index(
                conn, 3, backend="sqlite-vec", extension_path="/nonexistent/vec0",
            )
        assert index is None
        assert "unavailable" in caplog.text

    def test_dimension_mismatch_warns(self, conn, caplog):
        from openintel.vector import open_vector_index
        first = open_vector_index(conn, 3, backend="flat")
        first.upsert(_add(conn), [1.0, 0.0, 0.0])
        with caplog.at_level(logging.WARNING, logger="openintel.vector.index"):
            open_vector_index(conn, 4, backend="flat")
        assert "dimension 3" in caplog.text
        assert "reindex" in caplog.text
