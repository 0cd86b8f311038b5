# Broadcast hub: bounded per-subscriber queues, non-blocking publish.

from tokenwise.broadcast.hub import (
    KIND_TRANSACTION,
    KIND_WALLETS,
    BroadcastHub,
    Subscription,
)

__all__ = ["KIND_TRANSACTION", "KIND_WALLETS", "BroadcastHub", "Subscription"]
