"""
Append-only trade journal sharing the OpenIntel database.

A trade is created open and may be resolved exactly once; there is no way
to reopen it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Mapping, Optional

from ..errors import NotFoundError, StoreCorruptionError, TradeStateError, ValidationError
from ..models import Trade, TradeDirection, TradeOutcome
from .schema import utc_now

logger = logging.getLogger(__name__)

_INSERT = (
    "INSERT INTO trades (ticker, series_ticker, direction, contracts, "
    "entry_price, thesis, placed_at, metadata) VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
)

_RESOLVE = (
    "UPDATE trades SET outcome = ?, pnl_cents = ?, exit_price = ?, resolved_at = ? "
    "WHERE id = ? AND outcome IS NULL"
)


def _row_to_trade(row: sqlite3.Row) -> Trade:
    try:
        metadata = json.loads(row["metadata"]) if row["metadata"] else {}
    except json.JSONDecodeError as exc:
        raise StoreCorruptionError(
            f"trade #{row['id']}: column 'metadata' holds invalid JSON: {exc}"
        ) from exc
    outcome = row["outcome"]
    return Trade(
        id=row["id"],
        ticker=row["ticker"],
        series_ticker=row["series_ticker"],
        direction=TradeDirection(row["direction"]),
        contracts=row["contracts"],
        entry_price=row["entry_price"],
        exit_price=row["exit_price"],
        thesis=row["thesis"],
        outcome=TradeOutcome(outcome) if outcome else None,
        pnl_cents=row["pnl_cents"],
        metadata=metadata,
        placed_at=row["placed_at"],
        resolved_at=row["resolved_at"],
    )


def _parse_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"{field_name} must be one of: {allowed} (got {value!r})"
        ) from None


class TradeJournal:
    """Trade rows in the ``trades`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def add(self, fields: Mapping[str, Any]) -> int:
        """Log an open trade and return its id."""
        ticker = fields.get("ticker")
        if not ticker:
            raise ValidationError("ticker is required")
        direction = _parse_enum(TradeDirection, fields.get("direction"), "direction")
        try:
            contracts = int(fields["contracts"])
            entry_price = float(fields["entry_price"])
        except KeyError as exc:
            raise ValidationError(f"{exc.args[0]} is required") from None
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"invalid trade size or price: {exc}") from exc
        metadata = fields.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise ValidationError("metadata must be a mapping")

        cur = self._conn.execute(_INSERT, (
            ticker,
            fields.get("series_ticker") or None,
            direction.value,
            contracts,
            entry_price,
            fields.get("thesis") or None,
            utc_now(),
            json.dumps(dict(metadata)),
        ))
        self._conn.commit()
        trade_id = int(cur.lastrowid)
        logger.debug("Logged trade #%d %s %s x%d", trade_id, ticker, direction.value, contracts)
        return trade_id

    def resolve(
        self,
        trade_id: int,
        outcome: str | TradeOutcome,
        pnl_cents: int,
        exit_price: Optional[float] = None,
    ) -> None:
        """
        Close an open trade.

        Raises
        ------
        ValidationError
            *outcome* is not ``win``, ``loss`` or ``scratch``.
        NotFoundError
            No trade has *trade_id*.
        TradeStateError
            The trade was already resolved.
        """
        parsed = _parse_enum(TradeOutcome, getattr(outcome, "value", outcome), "outcome")
        cur = self._conn.execute(
            _RESOLVE, (parsed.value, int(pnl_cents), exit_price, utc_now(), trade_id)
        )
        self._conn.commit()
        if cur.rowcount == 0:
            if self.get(trade_id) is None:
                raise NotFoundError(f"trade #{trade_id} not found")
            raise TradeStateError(f"trade #{trade_id} is already resolved")
        logger.debug("Resolved trade #%d as %s (%d cents)", trade_id, parsed.value, pnl_cents)

    def get(self, trade_id: int) -> Optional[Trade]:
        row = self._conn.execute(
            "SELECT * FROM trades WHERE id = ?", (trade_id,)
        ).fetchone()
        return _row_to_trade(row) if row else None

    def list_trades(
        self,
        limit: int = 20,
        since: Optional[str] = None,
        resolved: Optional[bool] = None,
    ) -> list[Trade]:
        """Trades newest first; *resolved* selects closed (True) or open (False) only."""
        sql = "SELECT * FROM trades WHERE 1=1"
        params: list[Any] = []
        if since:
            sql += " AND placed_at >= ?"
            params.append(since)
        if resolved is True:
            sql += " AND outcome IS NOT NULL"
        elif resolved is False:
            sql += " AND outcome IS NULL"
        sql += " ORDER BY placed_at DESC, id DESC LIMIT ?"
        params.append(limit)
        return [_row_to_trade(r) for r in self._conn.execute(sql, params).fetchall()]

    def summary(self) -> dict:
        row = self._conn.execute(
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN outcome IS NOT NULL THEN 1 ELSE 0 END), 0) AS resolved, "
            "COALESCE(SUM(COALESCE(pnl_cents, 0)), 0) AS total_pnl_cents "
            "FROM trades"
        ).fetchone()
        return dict(row)
