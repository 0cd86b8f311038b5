"""
Pipeline orchestrator: wires multiplexer, ranking, store, event source and hub.

Startup flow: ensure schema -> rank top holders -> persist snapshot -> push
snapshot to subscribers -> start monitoring the ranked wallets. Re-ranking can
be triggered on demand or by an optional periodic loop; the monitoring set is
reconciled with each new generation without restarting the source.

All components are constructed once in build_pipeline() and passed explicitly;
there is no module-level state.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx

from tokenwise.broadcast.hub import BroadcastHub
from tokenwise.config.settings import Settings
from tokenwise.core.exceptions import StorageError
from tokenwise.database.database import EventStore, get_event_store
from tokenwise.logging import get_logger
from tokenwise.monitor.producer import EventProducer, MockTradeProducer
from tokenwise.monitor.source import TransactionEventSource
from tokenwise.ranking.engine import HolderRankingEngine, RankingResult
from tokenwise.solana_rpc.multiplexer import LedgerMultiplexer

logger = get_logger(__name__)


class PipelineOrchestrator:
    """Owns the pipeline components for one tracked token."""

    def __init__(
        self,
        settings: Settings,
        *,
        multiplexer: LedgerMultiplexer,
        ranking: HolderRankingEngine,
        store: EventStore,
        source: TransactionEventSource,
        hub: BroadcastHub,
    ) -> None:
        self.settings = settings
        self.multiplexer = multiplexer
        self.ranking = ranking
        self.store = store
        self.source = source
        self.hub = hub
        self._latest: RankingResult | None = None
        self._persisted_generation: int | None = None
        self._rerank_lock = asyncio.Lock()
        self._rerank_stop: asyncio.Event | None = None
        self._rerank_task: asyncio.Task | None = None
        self._started = False

    @property
    def latest_snapshot(self) -> RankingResult | None:
        return self._latest

    @property
    def persisted_generation(self) -> int | None:
        """Generation of the snapshot currently held by the store (None if none was written)."""
        return self._persisted_generation

    async def start(self) -> RankingResult:
        """Initialise storage, rank, start monitoring and (optionally) the re-rank loop."""
        await self.store.ensure_schema()
        result = await self.rerank()
        await self.start_monitoring()
        if self.settings.rerank_interval_sec > 0 and self._rerank_task is None:
            self._rerank_stop = asyncio.Event()
            self._rerank_task = asyncio.create_task(
                self._rerank_loop(self._rerank_stop), name="tokenwise-rerank"
            )
        self._started = True
        logger.info(
            "pipeline_started",
            mint=self.settings.token_mint,
            wallets=len(result.wallets),
            placeholder=result.placeholder,
            rerank_interval_sec=self.settings.rerank_interval_sec,
        )
        return result

    async def rerank(self) -> RankingResult:
        """
        Produce a new ranking generation, persist it, and push it to subscribers.

        Placeholder snapshots are broadcast (flagged) but never written to the store,
        so stored rankings only ever hold ledger data. A snapshot write failure is
        logged; the snapshot is still served from memory and broadcast.
        """
        async with self._rerank_lock:
            result = await self.ranking.rank_top_holders(
                self.settings.token_mint, self.settings.top_holders_limit
            )
            if not result.placeholder:
                try:
                    await self.store.upsert_snapshot(result.wallets, replace=True)
                    self._persisted_generation = result.generation
                except StorageError as e:
                    logger.error(
                        "pipeline_snapshot_persist_failed",
                        generation=result.generation,
                        error=str(e),
                    )
            self._latest = result
            delivered = self.hub.publish_snapshot(
                result.wallets, generation=result.generation, placeholder=result.placeholder
            )
            if self.source.is_monitoring:
                await self._reconcile_monitoring(result.addresses)
            logger.info(
                "pipeline_reranked",
                generation=result.generation,
                wallets=len(result.wallets),
                placeholder=result.placeholder,
                subscribers=delivered,
            )
            return result

    async def _reconcile_monitoring(self, addresses: list[str]) -> None:
        wanted = set(addresses)
        current = await self.source.get_monitored_wallets()
        for address in current - wanted:
            await self.source.remove_wallet(address)
        for address in wanted - current:
            await self.source.add_wallet(address)

    async def _rerank_loop(self, stop_event: asyncio.Event) -> None:
        interval = self.settings.rerank_interval_sec
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            try:
                await self.rerank()
            except Exception as e:
                logger.exception("pipeline_rerank_failed", error=str(e))
        logger.info("pipeline_rerank_loop_exited")

    async def start_monitoring(self) -> bool:
        """Start the event source on the latest snapshot's wallets (ranking first if needed)."""
        latest = self._latest if self._latest is not None else await self.rerank()
        return await self.source.start(latest.addresses)

    async def stop_monitoring(self) -> None:
        await self.source.stop()

    async def status(self) -> dict[str, Any]:
        latest = self._latest
        monitored = await self.source.get_monitored_wallets()
        return {
            "tokenMint": self.settings.token_mint,
            "started": self._started,
            "monitorState": self.source.state.value,
            "monitoredWallets": len(monitored),
            "eventsProduced": self.source.events_produced,
            "persistFailures": self.source.persist_failures,
            "generation": latest.generation if latest else None,
            "placeholder": latest.placeholder if latest else None,
            "rankedAt": latest.ranked_at if latest else None,
            "subscribers": self.hub.subscriber_count,
            "activeEndpoint": self.multiplexer.active_endpoint.display_url,
        }

    async def close(self) -> None:
        """Stop loops and the source, flush pending writes, release HTTP clients."""
        if self._rerank_stop is not None:
            self._rerank_stop.set()
        if self._rerank_task is not None:
            await asyncio.gather(self._rerank_task, return_exceptions=True)
            self._rerank_task = None
        await self.source.stop()
        await self.source.wait_idle()
        self.hub.close()
        await self.multiplexer.close()
        logger.info("pipeline_closed")


def build_pipeline(
    settings: Settings,
    *,
    store: EventStore | None = None,
    producer: EventProducer | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    rng: random.Random | None = None,
) -> PipelineOrchestrator:
    """Construct every pipeline component once and inject them into the orchestrator."""
    multiplexer = LedgerMultiplexer(
        settings.rpc_urls, timeout=settings.rpc_timeout_sec, transport=transport
    )
    hub = BroadcastHub(max_queue=settings.broadcast_queue_size)
    store = store or get_event_store(settings.db_path)
    ranking = HolderRankingEngine(
        multiplexer, balance_concurrency=settings.balance_concurrency, rng=rng
    )
    source = TransactionEventSource(
        store,
        hub,
        producer or MockTradeProducer(settings.protocols, rng=rng),
        delay_range=(settings.min_delay_sec, settings.max_delay_sec),
        rng=rng,
    )
    return PipelineOrchestrator(
        settings,
        multiplexer=multiplexer,
        ranking=ranking,
        store=store,
        source=source,
        hub=hub,
    )
