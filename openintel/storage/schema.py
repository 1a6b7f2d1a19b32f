"""
SQLite schema and connection setup for the OpenIntel database.

The entry and trade tables live here.  Vector tables are owned by
:mod:`openintel.vector.index` because their existence depends on which
vector backend could be opened.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS intel (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    category    TEXT    NOT NULL,
    title       TEXT    NOT NULL,
    body        TEXT,
    source      TEXT,
    tags        TEXT    NOT NULL DEFAULT '[]',
    confidence  REAL    NOT NULL DEFAULT 0.5,
    actionable  INTEGER NOT NULL DEFAULT 0,
    metadata    TEXT    NOT NULL DEFAULT '{}',
    created_at  TEXT    NOT NULL,
    expires_at  TEXT
);

CREATE INDEX IF NOT EXISTS idx_intel_category   ON intel(category);
CREATE INDEX IF NOT EXISTS idx_intel_created    ON intel(created_at);
CREATE INDEX IF NOT EXISTS idx_intel_actionable ON intel(actionable);

CREATE TABLE IF NOT EXISTS trades (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    ticker        TEXT    NOT NULL,
    series_ticker TEXT,
    direction     TEXT    NOT NULL,
    contracts     INTEGER NOT NULL,
    entry_price   REAL    NOT NULL,
    exit_price    REAL,
    thesis        TEXT,
    outcome       TEXT,
    pnl_cents     INTEGER,
    placed_at     TEXT    NOT NULL,
    resolved_at   TEXT,
    metadata      TEXT    NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_trades_ticker ON trades(ticker);
CREATE INDEX IF NOT EXISTS idx_trades_placed ON trades(placed_at);
"""


def format_timestamp(moment: datetime) -> str:
    """Render *moment* (UTC) as a sortable ISO-8601 string with microseconds."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def utc_now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def connect(db_path: str) -> sqlite3.Connection:
    """Open *db_path* with WAL journaling and foreign keys enabled."""
    if db_path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create the entry and trade tables and stamp the schema version."""
    conn.executescript(_SCHEMA)
    version = conn.execute("PRAGMA user_version").fetchone()[0]
    if version < SCHEMA_VERSION:
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        logger.debug("Schema stamped at version %d", SCHEMA_VERSION)
    conn.commit()
