"""
Entry Store: the durable ``intel`` table.

Owns identity assignment and field validation for intel entries.  Tags and
metadata are stored as JSON text and expanded back to structured values on
every read path.  Only this module writes those columns, so a value that
fails to decode is reported as :class:`StoreCorruptionError` rather than
being papered over.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Iterable, Mapping, Optional

from ..errors import StoreCorruptionError, ValidationError
from ..models import IntelEntry
from .schema import utc_now

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"

_INSERT = (
    "INSERT INTO intel (category, title, body, source, tags, confidence, "
    "actionable, metadata, created_at, expires_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)

_NEWEST_FIRST = " ORDER BY created_at DESC, id DESC"
_OLDEST_FIRST = " ORDER BY created_at ASC, id ASC"


def _decode(raw: Optional[str], column: str, entry_id: int, default: Any) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise StoreCorruptionError(
            f"intel #{entry_id}: column '{column}' holds invalid JSON: {exc}"
        ) from exc


def row_to_entry(row: sqlite3.Row) -> IntelEntry:
    """Build an :class:`IntelEntry` from a full ``intel`` row."""
    entry_id = row["id"]
    return IntelEntry(
        id=entry_id,
        category=row["category"],
        title=row["title"],
        body=row["body"],
        source=row["source"],
        tags=_decode(row["tags"], "tags", entry_id, []),
        confidence=row["confidence"],
        actionable=bool(row["actionable"]),
        metadata=_decode(row["metadata"], "metadata", entry_id, {}),
        created_at=row["created_at"],
        expires_at=row["expires_at"],
    )


def _validate(category: str, fields: Mapping[str, Any]) -> tuple:
    if not category or not str(category).strip():
        raise ValidationError("category is required")
    title = fields.get("title")
    if not title or not str(title).strip():
        raise ValidationError("title is required")

    tags = fields.get("tags") or []
    if isinstance(tags, str) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("tags must be a list of strings")
    metadata = fields.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise ValidationError("metadata must be a mapping")
    try:
        tags_json = json.dumps(list(tags))
        metadata_json = json.dumps(dict(metadata))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"metadata is not JSON-serialisable: {exc}") from exc

    confidence = fields.get("confidence")
    try:
        confidence = 0.5 if confidence is None else float(confidence)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"confidence must be a number: {exc}") from exc

    return (
        category,
        title,
        fields.get("body") or None,
        fields.get("source") or None,
        tags_json,
        confidence,
        1 if fields.get("actionable") else 0,
        metadata_json,
        utc_now(),
        fields.get("expires_at") or None,
    )


class EntryStore:
    """
    Durable table of intel entries.

    Parameters
    ----------
    conn:
        Open connection with :func:`~openintel.storage.schema.init_schema`
        already applied.  The store does not own or close it.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, category: str, fields: Mapping[str, Any]) -> int:
        """
        Validate and insert an entry, returning its new id.

        Empty ``body``, ``source`` and ``expires_at`` values are stored as
        ``NULL`` and read back as ``None``.

        Raises
        ------
        ValidationError
            When ``title`` or *category* is missing, or a structured field
            has the wrong shape.  Nothing is written in that case.
        """
        params = _validate(category, fields)
        cur = self._conn.execute(_INSERT, params)
        self._conn.commit()
        entry_id = int(cur.lastrowid)
        logger.debug("Stored intel #%d in category '%s'", entry_id, category)
        return entry_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch(self, sql: str, params: Iterable[Any] = ()) -> list[IntelEntry]:
        rows = self._conn.execute(sql, tuple(params)).fetchall()
        return [row_to_entry(r) for r in rows]

    def list_by_category(
        self,
        category: Optional[str] = ALL_CATEGORIES,
        limit: int = 20,
        since: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> list[IntelEntry]:
        """
        List entries newest first.

        Parameters
        ----------
        category:
            Exact category, or ``"all"`` / ``None`` for every category.
        since:
            ISO timestamp (or prefix such as ``"2026-01-01"``); only entries
            created at or after it are returned.
        tag:
            Only entries whose tag list contains exactly this tag.
        """
        sql = "SELECT * FROM intel WHERE 1=1"
        params: list[Any] = []
        if category and category != ALL_CATEGORIES:
            sql += " AND category = ?"
            params.append(category)
        if since:
            sql += " AND created_at >= ?"
            params.append(since)
        if tag:
            sql += (
                " AND EXISTS (SELECT 1 FROM json_each(intel.tags)"
                " WHERE json_each.value = ?)"
            )
            params.append(tag)
        sql += _NEWEST_FIRST + " LIMIT ?"
        params.append(limit)
        return self._fetch(sql, params)

    def search_substring(self, text: str, limit: int = 10) -> list[IntelEntry]:
        """Case-sensitive substring match over title, body or source, newest first."""
        sql = (
            "SELECT * FROM intel "
            "WHERE instr(title, ?) > 0 OR instr(body, ?) > 0 OR instr(source, ?) > 0"
            + _NEWEST_FIRST + " LIMIT ?"
        )
        return self._fetch(sql, (text, text, text, limit))

    def search_title_body(self, text: str, limit: int) -> list[int]:
        """Ids of entries whose title or body contains *text*, newest first."""
        rows = self._conn.execute(
            "SELECT id FROM intel WHERE instr(title, ?) > 0 OR instr(body, ?) > 0"
            + _NEWEST_FIRST + " LIMIT ?",
            (text, text, limit),
        ).fetchall()
        return [r["id"] for r in rows]

    def get_by_ids(self, ids: Iterable[int]) -> list[IntelEntry]:
        """Fetch entries by id.  Result order is unspecified."""
        id_list = list(ids)
        if not id_list:
            return []
        placeholders = ",".join("?" for _ in id_list)
        return self._fetch(
            f"SELECT * FROM intel WHERE id IN ({placeholders})", id_list
        )

    def export(
        self,
        since: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[IntelEntry]:
        """Every matching entry, oldest first."""
        sql = "SELECT * FROM intel WHERE 1=1"
        params: list[Any] = []
        if since:
            sql += " AND created_at >= ?"
            params.append(since)
        if category and category != ALL_CATEGORIES:
            sql += " AND category = ?"
            params.append(category)
        return self._fetch(sql + _OLDEST_FIRST, params)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """
        Entry totals.

        Returns
        -------
        dict
            Keys: ``total``, ``actionable``, ``categories`` (list of
            ``{category, count, latest}`` sorted by count descending).
        """
        total = self._conn.execute("SELECT COUNT(*) FROM intel").fetchone()[0]
        actionable = self._conn.execute(
            "SELECT COUNT(*) FROM intel WHERE actionable = 1"
        ).fetchone()[0]
        rows = self._conn.execute(
            "SELECT category, COUNT(*) AS count, MAX(created_at) AS latest "
            "FROM intel GROUP BY category ORDER BY count DESC, category ASC"
        ).fetchall()
        return {
            "total": total,
            "actionable": actionable,
            "categories": [dict(r) for r in rows],
        }

    def tags(self, category: Optional[str] = None) -> list[dict]:
        """All tags with usage counts, most used first."""
        sql = "SELECT id, tags FROM intel"
        params: list[Any] = []
        if category and category != ALL_CATEGORIES:
            sql += " WHERE category = ?"
            params.append(category)
        counts: dict[str, int] = {}
        for row in self._conn.execute(sql, params).fetchall():
            for tag in _decode(row["tags"], "tags", row["id"], []):
                counts[tag] = counts.get(tag, 0) + 1
        ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return [{"tag": t, "count": c} for t, c in ranked]
