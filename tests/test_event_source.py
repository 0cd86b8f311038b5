"""
Pytest tests for the transaction event source and the mock trade producer.

Steps are driven directly with step() for determinism; one test exercises the
timed production loop with a near-zero delay range.
"""

from __future__ import annotations

import asyncio
import random

import pytest

WALLETS = {"W1", "W2"}


def _source(store, hub, *, delay_range=(3600.0, 3600.0), seed=42):
    from tokenwise.monitor import MockTradeProducer, TransactionEventSource

    rng = random.Random(seed)
    return TransactionEventSource(
        store, hub, MockTradeProducer(rng=rng), delay_range=delay_range, rng=rng
    )


def test_steps_produce_events_for_monitored_wallets(store):
    """Bounded steps over {W1, W2}: every event targets a monitored wallet, is broadcast and persisted."""
    from tokenwise.broadcast import BroadcastHub

    async def scenario():
        hub = BroadcastHub()
        sub = hub.subscribe()
        source = _source(store, hub)
        await source.start(WALLETS)
        events = [await source.step() for _ in range(6)]
        await source.wait_idle()
        broadcast = [(await sub.get())["transaction"]["id"] for _ in range(sub.pending())]
        stored = await store.list_recent_events(100)
        await source.stop()
        return events, broadcast, stored, source.events_produced

    events, broadcast, stored, produced = asyncio.run(scenario())
    assert produced == 6
    assert {e.wallet_address for e in events} <= WALLETS
    assert broadcast == [e.id for e in events]
    assert {e.id for e in stored} == {e.id for e in events}


def test_stop_clears_set_and_halts_production(store):
    from tokenwise.broadcast import BroadcastHub
    from tokenwise.monitor import MonitorState

    async def scenario():
        source = _source(store, BroadcastHub())
        await source.start(WALLETS)
        await source.step()
        await source.stop()
        after = await source.step()
        return source, after, await source.get_monitored_wallets()

    source, after, monitored = asyncio.run(scenario())
    assert source.state is MonitorState.STOPPED
    assert monitored == frozenset()
    assert after is None
    assert source.events_produced == 1


def test_start_twice_is_noop(store):
    from tokenwise.broadcast import BroadcastHub

    async def scenario():
        source = _source(store, BroadcastHub())
        first = await source.start(WALLETS)
        second = await source.start({"W3"})
        monitored = await source.get_monitored_wallets()
        await source.stop()
        return first, second, monitored

    first, second, monitored = asyncio.run(scenario())
    assert first is True
    assert second is False
    assert monitored == frozenset(WALLETS)


def test_restart_after_stop(store):
    from tokenwise.broadcast import BroadcastHub
    from tokenwise.monitor import MonitorState

    async def scenario():
        source = _source(store, BroadcastHub())
        await source.start(WALLETS)
        await source.stop()
        restarted = await source.start({"W3"})
        event = await source.step()
        state = source.state
        await source.stop()
        return restarted, event, state

    restarted, event, state = asyncio.run(scenario())
    assert restarted is True
    assert state is MonitorState.MONITORING
    assert event.wallet_address == "W3"


def test_persist_failure_still_broadcasts(tmp_path):
    """A store that cannot write: the event is broadcast anyway and the failure is counted."""
    from tokenwise.broadcast import BroadcastHub
    from tokenwise.database import get_event_store

    broken = get_event_store(tmp_path / "no_schema.db")

    async def scenario():
        hub = BroadcastHub()
        sub = hub.subscribe()
        source = _source(broken, hub)
        await source.start(WALLETS)
        event = await source.step()
        second = await source.step()
        await source.wait_idle()
        await source.stop()
        return event, second, sub.pending(), source.persist_failures

    event, second, pending, failures = asyncio.run(scenario())
    assert event is not None and second is not None
    assert pending == 2
    assert failures == 2


def test_production_loop_runs_until_stopped(store):
    from tokenwise.broadcast import BroadcastHub

    async def scenario():
        source = _source(store, BroadcastHub(), delay_range=(0.0, 0.01))
        await source.start(WALLETS)
        for _ in range(200):
            if source.events_produced >= 3:
                break
            await asyncio.sleep(0.01)
        await source.stop()
        produced = source.events_produced
        await asyncio.sleep(0.05)
        await source.wait_idle()
        return produced, source.events_produced

    produced_at_stop, produced_later = asyncio.run(scenario())
    assert produced_at_stop >= 3
    assert produced_later == produced_at_stop


def test_empty_monitoring_set_skips_step(store):
    from tokenwise.broadcast import BroadcastHub

    async def scenario():
        hub = BroadcastHub()
        sub = hub.subscribe()
        source = _source(store, hub)
        await source.start([])
        event = await source.step()
        await source.stop()
        return event, sub.pending()

    event, pending = asyncio.run(scenario())
    assert event is None
    assert pending == 0


def test_add_and_remove_wallets(store):
    from tokenwise.broadcast import BroadcastHub

    async def scenario():
        source = _source(store, BroadcastHub())
        await source.add_wallet(" W9 ")
        added = await source.is_wallet_monitored("W9")
        await source.remove_wallet("W9")
        removed = await source.is_wallet_monitored("W9")
        await source.remove_wallet("never-added")
        with pytest.raises(ValueError):
            await source.add_wallet("  ")
        return added, removed

    added, removed = asyncio.run(scenario())
    assert added is True
    assert removed is False


def test_invalid_delay_range_rejected(store):
    from tokenwise.broadcast import BroadcastHub
    from tokenwise.monitor import TransactionEventSource

    with pytest.raises(ValueError):
        TransactionEventSource(store, BroadcastHub(), delay_range=(5.0, 1.0))


def test_mock_producer_ranges():
    from tokenwise.monitor import DEFAULT_PROTOCOLS, MockTradeProducer

    producer = MockTradeProducer(rng=random.Random(3))
    assert producer.produce([]) is None
    events = [producer.produce(["W1", "W2"]) for _ in range(200)]
    assert {e.type.value for e in events} == {"buy", "sell"}
    for event in events:
        assert 100 <= event.amount < 10_100
        assert 0.0001 <= event.price < 0.0011
        assert event.protocol in DEFAULT_PROTOCOLS
        assert len(event.signature) == 88
        assert event.wallet_address in {"W1", "W2"}
    assert len({e.id for e in events}) == 200


def test_mock_producer_requires_protocols():
    from tokenwise.monitor import MockTradeProducer

    with pytest.raises(ValueError):
        MockTradeProducer(protocols=())
