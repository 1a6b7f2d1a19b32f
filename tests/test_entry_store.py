"""
Unit tests for openintel.storage.entry_store — validation, listing order,
tag filtering, substring search and aggregates.
"""

from __future__ import annotations

import pytest


@pytest.fixture
def store():
    from openintel.storage import EntryStore, connect, init_schema
    conn = connect(":memory:")
    init_schema(conn)
    yield EntryStore(conn)
    conn.close()


# ---------------------------------------------------------------------------
# create / validation
# ---------------------------------------------------------------------------

class TestCreate:

    def test_defaults(self, store):
        entry_id = store.create("market", {"title": "Oil spikes"})
        [entry] = store.get_by_ids([entry_id])
        assert entry.category == "market"
        assert entry.body is None
        assert entry.source is None
        assert entry.tags == []
        assert entry.metadata == {}
        assert entry.confidence == 0.5
        assert entry.actionable is False
        assert entry.created_at.endswith("Z")

    def test_ids_strictly_increase(self, store):
        ids = [store.create("market", {"title": f"t{i}"}) for i in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    @pytest.mark.parametrize("fields", [{}, {"title": ""}, {"title": "   "}])
    def test_missing_title_rejected(self, store, fields):
        from openintel.errors import ValidationError
        with pytest.raises(ValidationError):
            store.create("market", fields)
        assert store.stats()["total"] == 0

    def test_missing_category_rejected(self, store):
        from openintel.errors import ValidationError
        with pytest.raises(ValidationError):
            store.create("", {"title": "x"})

    def test_bad_tags_rejected(self, store):
        from openintel.errors import ValidationError
        with pytest.raises(ValidationError):
            store.create("market", {"title": "x", "tags": "fed"})
        with pytest.raises(ValidationError):
            store.create("market", {"title": "x", "tags": ["fed", 3]})

    def test_bad_confidence_rejected(self, store):
        from openintel.errors import ValidationError
        with pytest.raises(ValidationError):
            store.create("market", {"title": "x", "confidence": "high"})

    def test_empty_optional_text_stored_as_none(self, store):
        entry_id = store.create("market", {"title": "x", "body": "", "source": ""})
        [entry] = store.get_by_ids([entry_id])
        assert entry.body is None
        assert entry.source is None

    def test_structured_fields_round_trip(self, store):
        metadata = {"price": 101.5, "nested": {"a": [1, 2]}, "flag": True}
        entry_id = store.create("market", {
            "title": "x", "tags": ["fed", "rates", "fed"], "metadata": metadata,
            "actionable": True, "confidence": 0.9,
        })
        [entry] = store.get_by_ids([entry_id])
        assert entry.tags == ["fed", "rates", "fed"]
        assert entry.metadata == metadata
        assert entry.actionable is True
        assert entry.confidence == 0.9


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestListing:

    def test_category_filter_and_order(self, store):
        a = store.create("market", {"title": "a"})
        store.create("newsletter", {"title": "b"})
        c = store.create("market", {"title": "c"})
        assert [e.id for e in store.list_by_category("market")] == [c, a]
        assert len(store.list_by_category("all")) == 3
        assert len(store.list_by_category(None)) == 3

    def test_limit(self, store):
        for i in range(5):
            store.create("market", {"title": f"t{i}"})
        assert len(store.list_by_category("all", limit=2)) == 2

    def test_since_filter(self, store):
        store.create("market", {"title": "a"})
        assert store.list_by_category("all", since="2999-01-01") == []
        assert len(store.list_by_category("all", since="2000-01-01")) == 1

    def test_tag_filter_is_exact_membership(self, store):
        fed = store.create("market", {"title": "a", "tags": ["fed"]})
        store.create("market", {"title": "b", "tags": ["ed", "energy"]})
        assert [e.id for e in store.list_by_category("all", tag="fed")] == [fed]
        # "ed" is a substring of "fed" but only the second entry carries it
        assert len(store.list_by_category("all", tag="ed")) == 1

    def test_corrupt_json_reported(self, store):
        from openintel.errors import StoreCorruptionError
        entry_id = store.create("market", {"title": "a"})
        store._conn.execute("UPDATE intel SET tags = 'not json' WHERE id = ?", (entry_id,))
        with pytest.raises(StoreCorruptionError):
            store.list_by_category("all")


class TestSearch:

    def test_substring_over_title_body_source(self, store):
        t = store.create("market", {"title": "AAPL beats"})
        b = store.create("market", {"title": "x", "body": "AAPL guidance"})
        s = store.create("market", {"title": "y", "source": "AAPL-wire"})
        store.create("market", {"title": "unrelated"})
        assert {e.id for e in store.search_substring("AAPL")} == {t, b, s}
        assert store.search_substring("nonexistent_xyz_123") == []

    def test_case_sensitive(self, store):
        store.create("market", {"title": "AAPL beats"})
        assert store.search_substring("aapl") == []

    def test_title_body_ids_exclude_source(self, store):
        t = store.create("market", {"title": "AAPL beats"})
        store.create("market", {"title": "y", "source": "AAPL-wire"})
        assert store.search_title_body("AAPL", 10) == [t]


class TestAggregates:

    def test_export_oldest_first(self, store):
        ids = [store.create("market", {"title": f"t{i}"}) for i in range(3)]
        store.create("newsletter", {"title": "n"})
        assert [e.id for e in store.export(category="market")] == ids
        assert len(store.export()) == 4

    def test_stats(self, store):
        store.create("market", {"title": "a", "actionable": True})
        store.create("market", {"title": "b"})
        store.create("newsletter", {"title": "c"})
        stats = store.stats()
        assert stats["total"] == 3
        assert stats["actionable"] == 1
        assert stats["categories"][0]["category"] == "market"
        assert stats["categories"][0]["count"] == 2

    def test_tags_counts(self, store):
        store.create("market", {"title": "a", "tags": ["fed", "rates"]})
        store.create("market", {"title": "b", "tags": ["fed"]})
        store.create("newsletter", {"title": "c", "tags": ["crypto"]})
        assert store.tags()[0] == {"tag": "fed", "count": 2}
        assert store.tags("newsletter") == [{"tag": "crypto", "count": 1}]
