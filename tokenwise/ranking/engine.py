"""
Holder ranking engine: top-N holders of the tracked token.

Fetches raw token accounts through the ledger multiplexer, resolves each
owner's native balance, and returns a ranked snapshot with a generation id.
When the ledger is unavailable it returns a placeholder snapshot that is
flagged as such; it never raises and never passes off failure as "no holders".
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from tokenwise.core.exceptions import EndpointError
from tokenwise.database.models import WalletSnapshot, to_iso
from tokenwise.logging import get_logger
from tokenwise.solana_rpc.multiplexer import LedgerMultiplexer

logger = get_logger(__name__)

DEFAULT_BALANCE_CONCURRENCY = 8
BASE58_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz123456789"
PLACEHOLDER_ADDRESS_LENGTH = 44


@dataclass
class RankingResult:
    """Ranked snapshot for one generation. placeholder=True means non-authoritative data."""

    wallets: list[WalletSnapshot]
    generation: int
    token_mint: str
    placeholder: bool = False
    error: str | None = None
    ranked_at: str = field(default_factory=lambda: to_iso(datetime.now(timezone.utc)))

    @property
    def addresses(self) -> list[str]:
        return [w.address for w in self.wallets]

    def to_dict(self) -> dict:
        return {
            "wallets": [w.to_dict() for w in self.wallets],
            "generation": self.generation,
            "tokenMint": self.token_mint,
            "placeholder": self.placeholder,
            "error": self.error,
            "rankedAt": self.ranked_at,
        }


def assign_ranks(wallets: list[WalletSnapshot], limit: int) -> list[WalletSnapshot]:
    """
    Stable sort descending by token_amount (ties keep discovery order),
    set rank = index + 1, truncate to limit.
    """
    ordered = sorted(wallets, key=lambda w: w.token_amount, reverse=True)[:limit]
    for index, wallet in enumerate(ordered):
        wallet.rank = index + 1
    return ordered


def aggregate_by_owner(records: list[dict]) -> list[tuple[str, float]]:
    """
    Sum positive ui amounts per owner, keeping first-discovery order.
    Returns [(owner, token_amount), ...].
    """
    totals: dict[str, float] = {}
    for record in records:
        amount = float(record.get("ui_amount") or 0)
        owner = record.get("owner") or ""
        if amount <= 0 or not owner:
            continue
        totals[owner] = totals.get(owner, 0.0) + amount
    return list(totals.items())


class HolderRankingEngine:
    """
    Derives the ranked Top-N snapshot from the ledger.

    Balance lookups run concurrently (bounded by a semaphore); a failed lookup
    excludes that holder and is logged, it does not abort the ranking.
    """

    def __init__(
        self,
        multiplexer: LedgerMultiplexer,
        *,
        balance_concurrency: int = DEFAULT_BALANCE_CONCURRENCY,
        rng: random.Random | None = None,
    ) -> None:
        self._multiplexer = multiplexer
        self._balance_concurrency = max(1, balance_concurrency)
        self._rng = rng or random.Random()
        self._generation = 0

    @property
    def generation(self) -> int:
        """Generation id of the most recent ranking (0 before the first)."""
        return self._generation

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def rank_top_holders(self, token_mint: str, limit: int) -> RankingResult:
        if limit < 1:
            raise ValueError("limit must be >= 1")

        try:
            records = await self._multiplexer.fetch_holder_accounts(token_mint)
        except EndpointError as e:
            logger.error(
                "ranking_unavailable",
                mint=token_mint,
                error=str(e),
                error_class=type(e).__name__,
            )
            return self.placeholder_snapshot(token_mint, limit, error=str(e))

        holders = aggregate_by_owner(records)
        wallets = await self._resolve_balances(holders)
        ranked = assign_ranks(wallets, limit)
        generation = self._next_generation()
        logger.info(
            "ranking_completed",
            mint=token_mint,
            accounts=len(records),
            holders=len(holders),
            resolved=len(wallets),
            ranked=len(ranked),
            generation=generation,
        )
        return RankingResult(wallets=ranked, generation=generation, token_mint=token_mint)

    async def _resolve_balances(self, holders: list[tuple[str, float]]) -> list[WalletSnapshot]:
        semaphore = asyncio.Semaphore(self._balance_concurrency)

        async def _resolve(owner: str, token_amount: float) -> WalletSnapshot | None:
            async with semaphore:
                try:
                    balance = await self._multiplexer.fetch_balance(owner)
                except EndpointError as e:
                    logger.warning("ranking_balance_failed", wallet_id=owner, error=str(e))
                    return None
            return WalletSnapshot(address=owner, balance=balance, token_amount=token_amount)

        # gather preserves input order, so discovery order survives for tie-breaks
        results = await asyncio.gather(*(_resolve(owner, amount) for owner, amount in holders))
        return [w for w in results if w is not None]

    def placeholder_snapshot(self, token_mint: str, limit: int, *, error: str | None = None) -> RankingResult:
        """Synthetic, clearly flagged snapshot used when the ledger is unavailable."""
        now = datetime.now(timezone.utc)
        wallets = []
        for rank in range(1, limit + 1):
            wallets.append(
                WalletSnapshot(
                    address="".join(self._rng.choice(BASE58_ALPHABET) for _ in range(PLACEHOLDER_ADDRESS_LENGTH)),
                    balance=self._rng.random() * 100,
                    token_amount=float(limit - rank + 1) * 1_000_000,
                    rank=rank,
                    last_activity=to_iso(now - timedelta(seconds=self._rng.random() * 86400)),
                )
            )
        generation = self._next_generation()
        logger.warning("ranking_placeholder", mint=token_mint, wallets=len(wallets), generation=generation)
        return RankingResult(
            wallets=wallets,
            generation=generation,
            token_mint=token_mint,
            placeholder=True,
            error=error or "ranking unavailable",
        )
