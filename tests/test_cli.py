"""
Tests for the `openintel` command line: JSON envelopes and exit codes.
"""

from __future__ import annotations

import json

import pytest


@pytest.fixture
def run(clean_env, monkeypatch, capsys):
    monkeypatch.setenv("OPENINTEL_VEC_BACKEND", "none")
    db = str(clean_env / "cli.db")

    def _run(*argv):
        from openintel.cli import main
        code = main(["--db", db, *argv])
        out, err = capsys.readouterr()
        stream = out if code == 0 else err
        return code, json.loads(stream)

    return _run


class TestCommands:

    def test_add_and_query(self, run):
        code, added = run("add", "market", '{"title": "AAPL beats", "tags": ["earnings"]}')
        assert code == 0
        assert added == {"ok": True, "id": 1}
        code, listed = run("query", "market", "--tag", "earnings")
        assert listed["count"] == 1
        assert listed["results"][0]["tags"] == ["earnings"]

    def test_unquoted_json_words_joined(self, run):
        code, added = run("add", "market", '{"title":', '"split"}')
        assert code == 0
        _, listed = run("query")
        assert listed["results"][0]["title"] == "split"

    def test_search_and_think(self, run):
        run("add", "market", '{"title": "AAPL beats"}')
        _, found = run("search", "AAPL")
        assert found["count"] == 1
        _, hybrid = run("think", "AAPL", "--limit", "5")
        assert hybrid["results"][0]["hybrid_score"] == pytest.approx(0.3)

    def test_stats_tags_export_summarize(self, run):
        run("add", "market", '{"title": "a", "tags": ["fed"]}')
        _, stats = run("stats")
        assert stats["total"] == 1
        assert stats["vec_enabled"] is False
        _, tags = run("tags")
        assert tags["tags"] == [{"tag": "fed", "count": 1}]
        _, exported = run("export", "--category", "market")
        assert exported["count"] == 1
        _, digest = run("summarize", "--hours", "2")
        assert digest["total_entries"] == 1

    def test_trades(self, run):
        trade = '{"ticker": "KXFED", "direction": "no", "contracts": 3, "entry_price": 0.6}'
        _, added = run("trade-add", trade)
        code, resolved = run("trade-resolve", str(added["id"]), "WIN", "350")
        assert code == 0
        assert resolved["outcome"] == "win"
        _, closed = run("trades", "--resolved", "true")
        assert closed["trades"][0]["pnl_cents"] == 350
        _, open_ = run("trades", "--resolved", "false")
        assert open_["count"] == 0


class TestErrors:

    def test_validation_error(self, run):
        code, err = run("add", "market", '{"body": "no title"}')
        assert code == 1
        assert err["ok"] is False
        assert "title" in err["error"]

    def test_invalid_json(self, run):
        code, err = run("add", "market", "{not json")
        assert code == 1
        assert err["ok"] is False

    def test_json_must_be_object(self, run):
        code, err = run("trade-add", "[1, 2]")
        assert code == 1
        assert "JSON object" in err["error"]

    def test_semantic_without_capability(self, run):
        code, err = run("semantic", "fed")
        assert code == 1
        assert "embedding provider" in err["error"]

    def test_reindex_without_provider(self, run):
        code, err = run("reindex")
        assert code == 1

    def test_resolve_unknown_trade(self, run):
        code, err = run("trade-resolve", "99", "win", "1")
        assert code == 1
        assert "not found" in err["error"]

    def test_bad_resolved_flag(self, run):
        with pytest.raises(SystemExit):
            run("trades", "--resolved", "maybe")

    def test_bad_config_value(self, run, monkeypatch):
        monkeypatch.setenv("OPENINTEL_EMBEDDING_DIMENSIONS", "many")
        code, err = run("stats")
        assert code == 1
        assert err["ok"] is False

    def test_unopenable_database(self, run, clean_env):
        # a directory cannot be opened as a database file
        code, err = run("--db", str(clean_env), "stats")
        assert code == 1
        assert err["ok"] is False
