"""
Activity summaries over transaction events.

Rule-based aggregates for dashboards: buy/sell counts, total volume, market
direction, per-protocol counts and volume, and hourly buckets (UTC).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterable

from tokenwise.database.models import TradeType, TransactionEvent

NET_BUY_HEAVY = "buy-heavy"
NET_SELL_HEAVY = "sell-heavy"
NET_BALANCED = "balanced"


@dataclass
class ProtocolStats:
    protocol: str
    count: int = 0
    volume: float = 0.0


@dataclass
class HourlyBucket:
    hour: str
    """Bucket start, ISO-8601 truncated to the hour (UTC)."""
    buys: int = 0
    sells: int = 0
    volume: float = 0.0


@dataclass
class ActivitySummary:
    buy_count: int = 0
    sell_count: int = 0
    total_volume: float = 0.0
    net_direction: str = NET_BALANCED
    protocols: list[ProtocolStats] = field(default_factory=list)
    hourly: list[HourlyBucket] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return self.buy_count + self.sell_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "buyCount": self.buy_count,
            "sellCount": self.sell_count,
            "totalCount": self.total_count,
            "totalVolume": self.total_volume,
            "netDirection": self.net_direction,
            "protocols": [asdict(p) for p in self.protocols],
            "hourly": [asdict(h) for h in self.hourly],
        }


def net_direction(buy_count: int, sell_count: int) -> str:
    if buy_count > sell_count:
        return NET_BUY_HEAVY
    if sell_count > buy_count:
        return NET_SELL_HEAVY
    return NET_BALANCED


def _hour_key(timestamp: str) -> str:
    dt = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    return dt.replace(minute=0, second=0, microsecond=0).isoformat().replace("+00:00", "Z")


def summarize(events: Iterable[TransactionEvent]) -> ActivitySummary:
    """Aggregate events into an ActivitySummary. Empty input gives a balanced, zeroed summary."""
    summary = ActivitySummary()
    protocols: dict[str, ProtocolStats] = {}
    hourly: dict[str, HourlyBucket] = defaultdict(lambda: HourlyBucket(hour=""))

    for event in events:
        is_buy = event.type is TradeType.BUY
        if is_buy:
            summary.buy_count += 1
        else:
            summary.sell_count += 1
        summary.total_volume += event.amount

        stats = protocols.setdefault(event.protocol, ProtocolStats(protocol=event.protocol))
        stats.count += 1
        stats.volume += event.amount

        key = _hour_key(event.timestamp)
        bucket = hourly[key]
        bucket.hour = key
        if is_buy:
            bucket.buys += 1
        else:
            bucket.sells += 1
        bucket.volume += event.amount

    summary.net_direction = net_direction(summary.buy_count, summary.sell_count)
    summary.protocols = sorted(protocols.values(), key=lambda p: (-p.count, p.protocol))
    summary.hourly = [hourly[k] for k in sorted(hourly)]
    return summary
