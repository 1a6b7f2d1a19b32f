"""
`openintel` command-line interface.

Every command prints one JSON object on stdout (``{"ok": true, ...}``).
Failures print ``{"ok": false, "error": ...}`` on stderr and exit with 1.

Commands
--------
openintel add <category> '<json>'           -- add an entry (auto-embeds if configured)
openintel query [category] [--limit --since --tag]
openintel search "<text>" [--limit N]       -- keyword search (title/body/source)
openintel semantic "<query>" [--limit N]    -- vector similarity search
openintel think "<query>" [--limit N]       -- hybrid: 0.7 semantic + 0.3 keyword
openintel reindex [--progress]              -- embed entries missing vectors
openintel stats
openintel tags [category]
openintel export [--since --category]
openintel summarize [--hours N]
openintel trade-add '<json>'
openintel trade-resolve <id> <win|loss|scratch> <pnl_cents> [--exit-price P]
openintel trades [--limit --since --resolved true|false]
"""

from __future__ import annotations

import argparse
import json
import logging
import sqlite3
import sys
from typing import Any, Optional

from .config import Config
from .errors import OpenIntelError
from .store import OpenIntel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _emit(payload: dict, stream=None, indent: Optional[int] = None) -> None:
    print(json.dumps(payload, indent=indent, default=str), file=stream or sys.stdout)


def _ok(**fields: Any) -> dict:
    return {"ok": True, **fields}


def _parse_json_arg(raw: str, what: str) -> dict:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered not in ("true", "false"):
        raise argparse.ArgumentTypeError("expected 'true' or 'false'")
    return lowered == "true"


def _entries(results) -> list[dict]:
    return [e.to_dict() for e in results]


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------

def _cmd_add(intel: OpenIntel, args: argparse.Namespace) -> dict:
    entry_id = intel.add(args.category, _parse_json_arg(" ".join(args.json), "entry"))
    return _ok(id=entry_id)


def _cmd_query(intel: OpenIntel, args: argparse.Namespace) -> dict:
    results = intel.query(args.category, limit=args.limit, since=args.since, tag=args.tag)
    return _ok(count=len(results), results=_entries(results))


def _cmd_search(intel: OpenIntel, args: argparse.Namespace) -> dict:
    results = intel.search(args.text, limit=args.limit)
    return _ok(count=len(results), results=_entries(results))


def _cmd_semantic(intel: OpenIntel, args: argparse.Namespace) -> dict:
    results = intel.semantic(args.query, limit=args.limit)
    return _ok(count=len(results), results=_entries(results))


def _cmd_think(intel: OpenIntel, args: argparse.Namespace) -> dict:
    results = intel.think(args.query, limit=args.limit)
    return _ok(count=len(results), results=_entries(results))


def _cmd_reindex(intel: OpenIntel, args: argparse.Namespace) -> dict:
    return _ok(**intel.reindex(progress=args.progress))


def _cmd_stats(intel: OpenIntel, args: argparse.Namespace) -> dict:
    return _ok(**intel.stats())


def _cmd_tags(intel: OpenIntel, args: argparse.Namespace) -> dict:
    return _ok(tags=intel.tags(args.category))


def _cmd_export(intel: OpenIntel, args: argparse.Namespace) -> dict:
    data = intel.export(since=args.since, category=args.category)
    return _ok(count=len(data), data=_entries(data))


def _cmd_summarize(intel: OpenIntel, args: argparse.Namespace) -> dict:
    return _ok(**intel.summarize(hours=args.hours))


def _cmd_trade_add(intel: OpenIntel, args: argparse.Namespace) -> dict:
    trade_id = intel.add_trade(_parse_json_arg(" ".join(args.json), "trade"))
    return _ok(id=trade_id)


def _cmd_trade_resolve(intel: OpenIntel, args: argparse.Namespace) -> dict:
    intel.resolve_trade(args.id, args.outcome, args.pnl_cents, exit_price=args.exit_price)
    return _ok(id=args.id, outcome=args.outcome.lower(), pnl_cents=args.pnl_cents)


def _cmd_trades(intel: OpenIntel, args: argparse.Namespace) -> dict:
    trades = intel.trades(limit=args.limit, since=args.since, resolved=args.resolved)
    return _ok(count=len(trades), trades=[t.to_dict() for t in trades])


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openintel",
        description="OpenIntel: structured intelligence knowledge base",
    )
    parser.add_argument("--db", help="Database path (overrides OPENINTEL_DB)")
    parser.add_argument("--config", help="Path to an .openintel.yaml file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    add_p = subparsers.add_parser("add", help="Add an intel entry")
    add_p.add_argument("category")
    add_p.add_argument("json", nargs="+", help="Entry fields as a JSON object")
    add_p.set_defaults(func=_cmd_add)

    query_p = subparsers.add_parser("query", help="List entries by category")
    query_p.add_argument("category", nargs="?", default="all")
    query_p.add_argument("--limit", type=int, default=20)
    query_p.add_argument("--since")
    query_p.add_argument("--tag")
    query_p.set_defaults(func=_cmd_query)

    search_p = subparsers.add_parser("search", help="Keyword search (title/body/source)")
    search_p.add_argument("text")
    search_p.add_argument("--limit", type=int, default=10)
    search_p.set_defaults(func=_cmd_search)

    for name, helptext, func in (
        ("semantic", "Vector similarity search", _cmd_semantic),
        ("think", "Hybrid search: 0.7 semantic + 0.3 keyword", _cmd_think),
    ):
        p = subparsers.add_parser(name, help=helptext)
        p.add_argument("query")
        p.add_argument("--limit", type=int, default=10)
        p.set_defaults(func=func)

    reindex_p = subparsers.add_parser("reindex", help="Embed all entries missing vectors")
    reindex_p.add_argument("--progress", action="store_true", help="Show a progress bar")
    reindex_p.set_defaults(func=_cmd_reindex)

    stats_p = subparsers.add_parser("stats", help="Overview statistics")
    stats_p.set_defaults(func=_cmd_stats)

    tags_p = subparsers.add_parser("tags", help="List tags with counts")
    tags_p.add_argument("category", nargs="?")
    tags_p.set_defaults(func=_cmd_tags)

    export_p = subparsers.add_parser("export", help="Export entries as JSON, oldest first")
    export_p.add_argument("--since")
    export_p.add_argument("--category")
    export_p.set_defaults(func=_cmd_export)

    summarize_p = subparsers.add_parser("summarize", help="Digest of recent entries")
    summarize_p.add_argument("--hours", type=int, default=24)
    summarize_p.set_defaults(func=_cmd_summarize)

    trade_add_p = subparsers.add_parser("trade-add", help="Log a trade")
    trade_add_p.add_argument("json", nargs="+", help="Trade fields as a JSON object")
    trade_add_p.set_defaults(func=_cmd_trade_add)

    resolve_p = subparsers.add_parser("trade-resolve", help="Resolve an open trade")
    resolve_p.add_argument("id", type=int)
    resolve_p.add_argument("outcome", help="win, loss or scratch")
    resolve_p.add_argument("pnl_cents", type=int)
    resolve_p.add_argument("--exit-price", type=float)
    resolve_p.set_defaults(func=_cmd_trade_resolve)

    trades_p = subparsers.add_parser("trades", help="List trades")
    trades_p.add_argument("--limit", type=int, default=20)
    trades_p.add_argument("--since")
    trades_p.add_argument("--resolved", type=_parse_bool)
    trades_p.set_defaults(func=_cmd_trades)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        cfg = Config.load(args.config)
        if args.db:
            cfg.DB_PATH = args.db
        with OpenIntel.from_config(cfg) as intel:
            payload = args.func(intel, args)
    except (OpenIntelError, ValueError, sqlite3.Error) as exc:
        # json.JSONDecodeError is a ValueError
        logger.debug("Command %s failed", args.command, exc_info=True)
        _emit({"ok": False, "error": str(exc)}, stream=sys.stderr)
        return 1

    _emit(payload, indent=2 if args.command == "export" else None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
