"""
Transaction monitoring package.

The event source owns the monitoring set and runs the production loop;
producers implement one production step (mock trades by default).
"""

from tokenwise.monitor.producer import DEFAULT_PROTOCOLS, EventProducer, MockTradeProducer
from tokenwise.monitor.source import MonitorState, TransactionEventSource

__all__ = [
    "DEFAULT_PROTOCOLS",
    "EventProducer",
    "MockTradeProducer",
    "MonitorState",
    "TransactionEventSource",
]
