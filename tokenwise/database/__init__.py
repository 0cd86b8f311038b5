"""
Persistence layer — ranked wallet snapshots and transaction events.

SQLite via EventStore and get_event_store(); backend is swappable.
"""

from tokenwise.database.database import (
    EventStore,
    SQLiteBackend,
    StoreBackend,
    cutoff_for_hours,
    get_event_store,
)
from tokenwise.database.models import (
    QueryResult,
    TradeType,
    TransactionEvent,
    WalletSnapshot,
    to_iso,
    utc_now_iso,
)

__all__ = [
    "EventStore",
    "QueryResult",
    "SQLiteBackend",
    "StoreBackend",
    "TradeType",
    "TransactionEvent",
    "WalletSnapshot",
    "cutoff_for_hours",
    "get_event_store",
    "to_iso",
    "utc_now_iso",
]
