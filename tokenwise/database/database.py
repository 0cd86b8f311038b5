"""
Event store: durable append/query layer for wallet snapshots and transaction events.

SQLite via a synchronous backend; the async EventStore facade offloads every
call to a worker thread so storage I/O never blocks the event loop. Designed so
the backend can be swapped (e.g. PostgreSQL) behind the same abstract interface.

Failure policy: read errors are logged and returned as an empty QueryResult with
error set; write errors raise StorageError to the caller, which owns any retry.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence, TypeVar

from tokenwise.core.exceptions import StorageError
from tokenwise.database.models import QueryResult, TransactionEvent, WalletSnapshot, to_iso
from tokenwise.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# -----------------------------------------------------------------------------
# Schema (SQLite). Timestamps are ISO-8601 UTC text with fixed precision.
# -----------------------------------------------------------------------------

SCHEMA_WALLETS = """
CREATE TABLE IF NOT EXISTS wallets (
    address TEXT PRIMARY KEY,
    balance REAL NOT NULL,
    token_amount REAL NOT NULL,
    rank INTEGER NOT NULL,
    last_activity TEXT,
    created_at INTEGER,
    updated_at INTEGER
);
CREATE INDEX IF NOT EXISTS ix_wallets_rank ON wallets(rank);
"""

SCHEMA_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    wallet_address TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('buy', 'sell')),
    amount REAL NOT NULL CHECK (amount >= 0),
    price REAL NOT NULL,
    protocol TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    signature TEXT NOT NULL,
    created_at INTEGER
);
CREATE INDEX IF NOT EXISTS ix_transactions_timestamp ON transactions(timestamp);
CREATE INDEX IF NOT EXISTS ix_transactions_wallet_timestamp ON transactions(wallet_address, timestamp);
"""

_EVENT_COLUMNS = "id, wallet_address, type, amount, price, protocol, timestamp, signature"
_WALLET_COLUMNS = "address, balance, token_amount, rank, last_activity"


def cutoff_for_hours(hours: float, now: datetime | None = None) -> str:
    """Inclusive lower bound `now - hours` as a normalised ISO timestamp."""
    now = now or datetime.now(timezone.utc)
    return to_iso(now - timedelta(hours=hours))


# -----------------------------------------------------------------------------
# Abstract backend: swap implementation for PostgreSQL later.
# -----------------------------------------------------------------------------


class StoreBackend(ABC):
    """Synchronous persistence interface; implement for SQLite or PostgreSQL."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    @abstractmethod
    def upsert_wallets(self, wallets: Sequence[WalletSnapshot], *, replace: bool = False) -> int:
        """
        Insert or update wallets keyed by address (last-write-wins), in one transaction.
        With replace=True, wallets not in `wallets` are deleted in the same transaction.
        Returns number of rows written.
        """
        ...

    @abstractmethod
    def upsert_event(self, event: TransactionEvent) -> None:
        """Insert or overwrite an event keyed by id."""
        ...

    @abstractmethod
    def list_wallets(self, limit: int) -> list[WalletSnapshot]:
        """Return wallets ordered by rank ascending."""
        ...

    @abstractmethod
    def get_wallet(self, address: str) -> WalletSnapshot | None:
        ...

    @abstractmethod
    def list_events(
        self,
        *,
        limit: int | None = None,
        since: str | None = None,
        wallet_address: str | None = None,
    ) -> list[TransactionEvent]:
        """Return events ordered by timestamp descending (id descending on ties)."""
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


class SQLiteBackend(StoreBackend):
    """SQLite implementation; single file, one connection per operation, WAL journal."""

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in (SCHEMA_WALLETS, SCHEMA_TRANSACTIONS):
                cur.executescript(stmt)

    def upsert_wallets(self, wallets: Sequence[WalletSnapshot], *, replace: bool = False) -> int:
        now = int(time.time())
        with self._cursor() as cur:
            if replace:
                keep = {w.address for w in wallets}
                cur.execute("SELECT address FROM wallets")
                stale = [row["address"] for row in cur.fetchall() if row["address"] not in keep]
                if stale:
                    cur.executemany("DELETE FROM wallets WHERE address = ?", [(a,) for a in stale])
            cur.executemany(
                """
                INSERT INTO wallets (address, balance, token_amount, rank, last_activity, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    balance = excluded.balance,
                    token_amount = excluded.token_amount,
                    rank = excluded.rank,
                    last_activity = COALESCE(excluded.last_activity, last_activity),
                    updated_at = excluded.updated_at
                """,
                [
                    (w.address, w.balance, w.token_amount, w.rank, w.last_activity, now, now)
                    for w in wallets
                ],
            )
        return len(wallets)

    def upsert_event(self, event: TransactionEvent) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO transactions ({_EVENT_COLUMNS}, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    wallet_address = excluded.wallet_address,
                    type = excluded.type,
                    amount = excluded.amount,
                    price = excluded.price,
                    protocol = excluded.protocol,
                    timestamp = excluded.timestamp,
                    signature = excluded.signature
                """,
                (
                    event.id,
                    event.wallet_address,
                    event.type.value,
                    event.amount,
                    event.price,
                    event.protocol,
                    event.timestamp,
                    event.signature,
                    int(time.time()),
                ),
            )

    def list_wallets(self, limit: int) -> list[WalletSnapshot]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_WALLET_COLUMNS} FROM wallets ORDER BY rank ASC LIMIT ?",
                (limit,),
            )
            rows = cur.fetchall()
        return [WalletSnapshot.from_row(row) for row in rows]

    def get_wallet(self, address: str) -> WalletSnapshot | None:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE address = ?", (address,))
            row = cur.fetchone()
        return WalletSnapshot.from_row(row) if row is not None else None

    def list_events(
        self,
        *,
        limit: int | None = None,
        since: str | None = None,
        wallet_address: str | None = None,
    ) -> list[TransactionEvent]:
        sql = f"SELECT {_EVENT_COLUMNS} FROM transactions WHERE 1 = 1"
        params: list[Any] = []
        if wallet_address is not None:
            sql += " AND wallet_address = ?"
            params.append(wallet_address)
        if since is not None:
            sql += " AND timestamp >= ?"
            params.append(since)
        sql += " ORDER BY timestamp DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [TransactionEvent.from_row(row) for row in rows]


# -----------------------------------------------------------------------------
# Async facade: single entrypoint for the pipeline and API; backend is swappable.
# -----------------------------------------------------------------------------


class EventStore:
    """
    Async event store over a StoreBackend.

    upsert_* are idempotent by primary key (address for snapshots, id for events).
    Time-window queries use an inclusive lower bound.
    """

    def __init__(self, backend: StoreBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> StoreBackend:
        return self._backend

    async def _write(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except sqlite3.Error as e:
            logger.error("store_write_failed", operation=operation, error=str(e))
            raise StorageError(f"{operation} failed: {e}") from e

    async def _read(self, operation: str, fn: Callable[[], list[T]]) -> QueryResult[T]:
        try:
            return QueryResult(items=await asyncio.to_thread(fn))
        except sqlite3.Error as e:
            logger.error("store_read_failed", operation=operation, error=str(e))
            return QueryResult(items=[], error=f"{operation} failed: {e}")

    async def ensure_schema(self) -> None:
        await self._write("ensure_schema", self._backend.ensure_schema)

    # --- Wallet snapshots ---

    async def upsert_snapshot(self, wallets: Sequence[WalletSnapshot], *, replace: bool = False) -> int:
        """Persist a ranked snapshot. replace=True drops wallets absent from this generation."""
        wallets = list(wallets)
        written = await self._write(
            "upsert_snapshot", lambda: self._backend.upsert_wallets(wallets, replace=replace)
        )
        logger.info("store_snapshot_saved", wallets=written, replace=replace)
        return written

    async def list_top_wallets(self, limit: int = 60) -> QueryResult[WalletSnapshot]:
        return await self._read("list_top_wallets", lambda: self._backend.list_wallets(limit))

    async def get_wallet(self, address: str) -> WalletSnapshot | None:
        result = await self._read(
            "get_wallet",
            lambda: [w for w in [self._backend.get_wallet(address)] if w is not None],
        )
        return result.items[0] if result.items else None

    # --- Transaction events ---

    async def upsert_event(self, event: TransactionEvent) -> None:
        await self._write("upsert_event", lambda: self._backend.upsert_event(event))

    async def list_recent_events(self, limit: int = 100) -> QueryResult[TransactionEvent]:
        return await self._read("list_recent_events", lambda: self._backend.list_events(limit=limit))

    async def list_events_since(self, cutoff: datetime | str) -> QueryResult[TransactionEvent]:
        since = to_iso(cutoff)
        return await self._read("list_events_since", lambda: self._backend.list_events(since=since))

    async def list_events_for_wallet(
        self, address: str, cutoff: datetime | str
    ) -> QueryResult[TransactionEvent]:
        since = to_iso(cutoff)
        return await self._read(
            "list_events_for_wallet",
            lambda: self._backend.list_events(since=since, wallet_address=address),
        )

    async def list_events_in_last_hours(self, hours: float) -> QueryResult[TransactionEvent]:
        return await self.list_events_since(cutoff_for_hours(hours))

    async def wallet_activity(self, address: str, hours: float = 24) -> QueryResult[TransactionEvent]:
        return await self.list_events_for_wallet(address, cutoff_for_hours(hours))


def get_event_store(path: str | Path | None = None) -> EventStore:
    """
    Return an EventStore backed by SQLite at `path` (default: tokenwise.db in cwd).

    The schema is not created here; call `await store.ensure_schema()` once at startup.
    """
    if path is None:
        path = Path("tokenwise.db")
    return EventStore(SQLiteBackend(path))
