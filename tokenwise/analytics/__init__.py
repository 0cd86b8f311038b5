# Activity analytics: buy/sell direction, protocol breakdown, hourly buckets.

from tokenwise.analytics.activity import (
    NET_BALANCED,
    NET_BUY_HEAVY,
    NET_SELL_HEAVY,
    ActivitySummary,
    HourlyBucket,
    ProtocolStats,
    net_direction,
    summarize,
)

__all__ = [
    "NET_BALANCED",
    "NET_BUY_HEAVY",
    "NET_SELL_HEAVY",
    "ActivitySummary",
    "HourlyBucket",
    "ProtocolStats",
    "net_direction",
    "summarize",
]
