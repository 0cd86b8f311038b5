"""
Domain models for stored entities.

Wallet snapshots (ranked holders) and transaction events (buy/sell activity).
Used by the store, the ranking engine, and the event source; no ORM coupling
so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Iterator, TypeVar

T = TypeVar("T")


class TradeType(str, Enum):
    BUY = "buy"
    SELL = "sell"


def to_iso(value: datetime | str) -> str:
    """
    Normalise a datetime or ISO-8601 string to UTC with millisecond precision
    and a trailing Z, so lexicographic order equals chronological order.
    Naive datetimes are taken as UTC.
    """
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


@dataclass
class WalletSnapshot:
    """One ranked holder within a snapshot generation."""

    address: str
    balance: float
    """Native SOL balance."""
    token_amount: float
    """Holdings of the tracked token (ui amount, after decimals)."""
    rank: int = 0
    """1-based position by descending token_amount; 0 until ranked."""
    last_activity: str | None = None
    """ISO-8601 timestamp of the most recent known transaction; null if unknown."""

    def __post_init__(self) -> None:
        self.address = (self.address or "").strip()
        if not self.address:
            raise ValueError("wallet address must be non-empty")
        if self.balance < 0 or self.token_amount < 0:
            raise ValueError("balance and token_amount must be non-negative")
        if self.last_activity:
            self.last_activity = to_iso(self.last_activity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "balance": self.balance,
            "tokenAmount": self.token_amount,
            "rank": self.rank,
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_row(cls, row: Any) -> "WalletSnapshot":
        return cls(
            address=row["address"],
            balance=row["balance"],
            token_amount=row["token_amount"],
            rank=row["rank"],
            last_activity=row["last_activity"],
        )


@dataclass(frozen=True)
class TransactionEvent:
    """
    A classified buy/sell event for a monitored wallet.

    Immutable once created; persisted exactly once by id (replays overwrite).
    """

    id: str
    wallet_address: str
    type: TradeType
    amount: float
    price: float
    protocol: str
    timestamp: str
    signature: str

    def __post_init__(self) -> None:
        if not (self.id or "").strip():
            raise ValueError("event id must be non-empty")
        if not (self.wallet_address or "").strip():
            raise ValueError("wallet_address must be non-empty")
        object.__setattr__(self, "type", TradeType(self.type))
        if self.amount < 0:
            raise ValueError("amount must be non-negative")
        if self.price < 0:
            raise ValueError("price must be non-negative")
        object.__setattr__(self, "timestamp", to_iso(self.timestamp))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "walletAddress": self.wallet_address,
            "type": self.type.value,
            "amount": self.amount,
            "price": self.price,
            "protocol": self.protocol,
            "timestamp": self.timestamp,
            "signature": self.signature,
        }

    @classmethod
    def from_row(cls, row: Any) -> "TransactionEvent":
        return cls(
            id=row["id"],
            wallet_address=row["wallet_address"],
            type=TradeType(row["type"]),
            amount=row["amount"],
            price=row["price"],
            protocol=row["protocol"],
            timestamp=row["timestamp"],
            signature=row["signature"],
        )


@dataclass
class QueryResult(Generic[T]):
    """
    Result of a store read. On storage failure items is empty and error is set,
    so callers can render "data unavailable" distinctly from "zero results".
    """

    items: list[T] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
