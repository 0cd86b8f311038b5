"""
Event producers for the transaction event source.

An EventProducer turns the current monitoring set into one classified event
per production step. MockTradeProducer is the development stand-in that
draws random buy/sell trades; a real ledger-subscription producer plugs in
behind the same produce() contract without changing downstream consumers.
"""

from __future__ import annotations

import random
import uuid
from typing import Protocol, Sequence

from tokenwise.database.models import TradeType, TransactionEvent, utc_now_iso

DEFAULT_PROTOCOLS: tuple[str, ...] = ("Jupiter", "Raydium", "Orca", "Serum")

# Mock ranges: amount in [100, 10100), price in [0.0001, 0.0011)
MOCK_AMOUNT_MIN = 100.0
MOCK_AMOUNT_SPAN = 10_000.0
MOCK_PRICE_MIN = 0.0001
MOCK_PRICE_SPAN = 0.001
SIGNATURE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz123456789"
SIGNATURE_LENGTH = 88


class EventProducer(Protocol):
    def produce(self, wallets: Sequence[str]) -> TransactionEvent | None:
        """Return the next event for one of `wallets`, or None when nothing happened."""
        ...


class MockTradeProducer:
    """
    MOCK producer: random trades for development and demos, not real ledger data.

    Picks a wallet uniformly, buy/sell with equal probability, amount and price
    from bounded ranges, a protocol uniformly from `protocols`, and stamps the
    current time with a fresh id and signature.
    """

    def __init__(
        self,
        protocols: Sequence[str] = DEFAULT_PROTOCOLS,
        *,
        rng: random.Random | None = None,
    ) -> None:
        if not protocols:
            raise ValueError("protocols must be non-empty")
        self._protocols = tuple(protocols)
        self._rng = rng or random.Random()

    @property
    def protocols(self) -> tuple[str, ...]:
        return self._protocols

    def _signature(self) -> str:
        return "".join(self._rng.choice(SIGNATURE_ALPHABET) for _ in range(SIGNATURE_LENGTH))

    def produce(self, wallets: Sequence[str]) -> TransactionEvent | None:
        if not wallets:
            return None
        rng = self._rng
        return TransactionEvent(
            id=uuid.uuid4().hex,
            wallet_address=rng.choice(list(wallets)),
            type=TradeType.BUY if rng.random() < 0.5 else TradeType.SELL,
            amount=MOCK_AMOUNT_MIN + rng.random() * MOCK_AMOUNT_SPAN,
            price=MOCK_PRICE_MIN + rng.random() * MOCK_PRICE_SPAN,
            protocol=rng.choice(self._protocols),
            timestamp=utc_now_iso(),
            signature=self._signature(),
        )
