"""
Transaction event source — produces classified events for the monitoring set.

Responsibilities:
- Own the monitoring set (wallets in scope); all access goes through an asyncio.Lock.
- Run the production loop: random inter-event delay, then one production step.
- Publish each event to the broadcast hub immediately and persist it as an
  independent task; persistence failures are logged and never stop production
  or suppress the broadcast.
- State machine Idle -> Monitoring -> Stopped, restartable via start().
"""

from __future__ import annotations

import asyncio
import random
from enum import Enum
from typing import Iterable

from tokenwise.broadcast.hub import BroadcastHub
from tokenwise.core.exceptions import StorageError
from tokenwise.database.database import EventStore
from tokenwise.database.models import TransactionEvent
from tokenwise.logging import bind_wallet, get_logger
from tokenwise.monitor.producer import EventProducer, MockTradeProducer

logger = get_logger(__name__)

DEFAULT_DELAY_RANGE = (1.0, 10.0)


class MonitorState(str, Enum):
    IDLE = "idle"
    MONITORING = "monitoring"
    STOPPED = "stopped"


class TransactionEventSource:
    """
    Continuously produces transaction events for the monitored wallets.

    Exactly one instance runs per process; events are broadcast and persisted
    in production order. stop() prevents further production but lets an
    in-flight step finish.
    """

    def __init__(
        self,
        store: EventStore,
        hub: BroadcastHub,
        producer: EventProducer | None = None,
        *,
        delay_range: tuple[float, float] = DEFAULT_DELAY_RANGE,
        rng: random.Random | None = None,
    ) -> None:
        """
        Args:
            store: Event store used for persistence.
            hub: Broadcast hub; the source only ever calls publish_event().
            producer: Production step implementation; defaults to MockTradeProducer.
            delay_range: (min, max) seconds between production steps, drawn uniformly.
            rng: Random source for delays (seed it for reproducible tests).
        """
        low, high = delay_range
        if low < 0 or high < low:
            raise ValueError("delay_range must satisfy 0 <= min <= max")
        self._store = store
        self._hub = hub
        self._producer = producer or MockTradeProducer()
        self._delay_range = (float(low), float(high))
        self._rng = rng or random.Random()

        self._lock = asyncio.Lock()
        self._wallets: set[str] = set()
        self._state = MonitorState.IDLE
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._persist_tail: asyncio.Task | None = None
        self._events_produced = 0
        self._persist_failures = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_monitoring(self) -> bool:
        return self._state is MonitorState.MONITORING

    @property
    def events_produced(self) -> int:
        return self._events_produced

    @property
    def persist_failures(self) -> int:
        return self._persist_failures

    # --- Lifecycle ---

    async def start(self, wallets: Iterable[str]) -> bool:
        """Enter Monitoring with `wallets`. Returns False (no-op) if already monitoring."""
        if self._state is MonitorState.MONITORING:
            logger.info("monitor_already_running", wallets=len(self._wallets))
            return False
        async with self._lock:
            self._wallets = {w for w in wallets if w}
            count = len(self._wallets)
        self._state = MonitorState.MONITORING
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._task = asyncio.create_task(self._run(stop_event), name="tokenwise-event-source")
        logger.info(
            "monitor_started",
            wallets=count,
            min_delay_sec=self._delay_range[0],
            max_delay_sec=self._delay_range[1],
        )
        return True

    async def stop(self) -> None:
        """Stop production, clear the monitoring set; waits for an in-flight step."""
        was_monitoring = self._state is MonitorState.MONITORING
        if self._state is not MonitorState.IDLE:
            self._state = MonitorState.STOPPED
        if self._stop_event is not None:
            self._stop_event.set()
        async with self._lock:
            self._wallets.clear()
        task, self._task = self._task, None
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        if was_monitoring:
            logger.info("monitor_stopped", events_produced=self._events_produced)

    async def _run(self, stop_event: asyncio.Event) -> None:
        low, high = self._delay_range
        while not stop_event.is_set():
            delay = self._rng.uniform(low, high)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            try:
                await self.step()
            except Exception as e:
                logger.exception("monitor_step_failed", error=str(e))
        logger.info("monitor_loop_exited")

    # --- Production ---

    async def step(self) -> TransactionEvent | None:
        """
        Run one production step now. Skipped (None) when the monitoring set is empty.
        The hub publish happens before persistence is scheduled and never waits on it.
        """
        async with self._lock:
            wallets = sorted(self._wallets)
        if not wallets:
            logger.debug("monitor_step_skipped", reason="empty_monitoring_set")
            return None
        event = self._producer.produce(wallets)
        if event is None:
            return None
        self._events_produced += 1
        self._hub.publish_event(event)
        self._schedule_persist(event)
        logger.info(
            "monitor_event_produced",
            wallet_id=event.wallet_address,
            type=event.type.value,
            amount=round(event.amount, 2),
            protocol=event.protocol,
        )
        return event

    def _schedule_persist(self, event: TransactionEvent) -> None:
        # Each write waits for the previous one so rows land in production order
        previous = self._persist_tail

        async def _persist() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            try:
                await self._store.upsert_event(event)
            except StorageError as e:
                self._persist_failures += 1
                logger.error("monitor_persist_failed", event_id=event.id, error=str(e))

        task = asyncio.create_task(_persist())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._persist_tail = task

    async def wait_idle(self) -> None:
        """Wait until every scheduled persistence task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- Monitoring set ---

    async def add_wallet(self, address: str) -> None:
        address = (address or "").strip()
        if not address:
            raise ValueError("wallet address must be non-empty")
        async with self._lock:
            self._wallets.add(address)
        bind_wallet(address).info("monitor_wallet_added")

    async def remove_wallet(self, address: str) -> None:
        async with self._lock:
            self._wallets.discard(address)
        bind_wallet(address).info("monitor_wallet_removed")

    async def get_monitored_wallets(self) -> frozenset[str]:
        async with self._lock:
            return frozenset(self._wallets)

    async def is_wallet_monitored(self, address: str) -> bool:
        async with self._lock:
            return address in self._wallets
