"""
Relational storage for OpenIntel: the intel entry table and the trade journal.
"""

from .entry_store import ALL_CATEGORIES, EntryStore
from .schema import connect, format_timestamp, init_schema, utc_now
from .trade_journal import TradeJournal

__all__ = [
    "ALL_CATEGORIES",
    "EntryStore",
    "TradeJournal",
    "connect",
    "format_timestamp",
    "init_schema",
    "utc_now",
]
