"""
Pytest tests for the FastAPI server: read endpoints, export, controls and the /ws stream.

The app gets a pipeline built on the FakeRpc transport and a temporary DB; the
production loop is parked so only explicit calls change state.
"""

from __future__ import annotations

import asyncio
import random
import sqlite3

import pytest

HOLDER_1 = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
HOLDER_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
HOLDER_3 = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"


@pytest.fixture
def pipeline(settings, fake_rpc):
    from tokenwise.pipeline import build_pipeline

    return build_pipeline(settings, transport=fake_rpc.transport, rng=random.Random(2))


@pytest.fixture
def client(pipeline):
    """TestClient with lifespan: the pipeline is started on enter and closed on exit."""
    from fastapi.testclient import TestClient

    from tokenwise.api_server import create_app

    with TestClient(create_app(pipeline)) as test_client:
        yield test_client


def _seed(store, *events):
    async def scenario():
        await store.ensure_schema()
        for event in events:
            await store.upsert_event(event)

    asyncio.run(scenario())


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_wallets_snapshot(client):
    r = client.get("/api/wallets")
    assert r.status_code == 200
    data = r.json()
    assert [w["address"] for w in data["wallets"]] == [HOLDER_1, HOLDER_2, HOLDER_3]
    assert [w["rank"] for w in data["wallets"]] == [1, 2, 3]
    assert data["generation"] == 1
    assert data["placeholder"] is False
    assert data["stale"] is False
    assert data["degraded"] is False

    r = client.get("/api/wallets", params={"limit": 1})
    assert len(r.json()["wallets"]) == 1


def test_wallets_placeholder_when_ledger_unavailable(settings, fake_rpc):
    """Ranking unavailable at startup: the flagged placeholder is served from memory."""
    from fastapi.testclient import TestClient

    from tokenwise.api_server import create_app
    from tokenwise.pipeline import build_pipeline

    fake_rpc.rate_limited = {"rpc-a.example", "rpc-b.example", "rpc-c.example"}
    pipeline = build_pipeline(settings, transport=fake_rpc.transport, rng=random.Random(2))
    with TestClient(create_app(pipeline)) as client:
        data = client.get("/api/wallets").json()
    assert data["placeholder"] is True
    assert len(data["wallets"]) == settings.top_holders_limit
    assert data["error"]


def test_recent_transactions(client, pipeline, make_event):
    _seed(
        pipeline.store,
        make_event(event_id="old", age_minutes=30),
        make_event(event_id="new", age_minutes=1),
        make_event(event_id="mid", age_minutes=10),
    )
    data = client.get("/api/transactions").json()
    assert [t["id"] for t in data["transactions"]] == ["new", "mid", "old"]
    assert data["count"] == 3
    assert data["degraded"] is False

    data = client.get("/api/transactions", params={"limit": 2}).json()
    assert [t["id"] for t in data["transactions"]] == ["new", "mid"]


def test_invalid_query_params_rejected(client):
    assert client.get("/api/transactions", params={"limit": 0}).status_code == 422
    assert client.get("/api/transactions/historical", params={"hours": 0}).status_code == 422
    assert client.get("/api/stats", params={"hours": -1}).status_code == 422


def test_historical_window(client, pipeline, make_event):
    _seed(
        pipeline.store,
        make_event(event_id="recent", age_minutes=20),
        make_event(event_id="two-hours", age_minutes=120),
    )
    data = client.get("/api/transactions/historical", params={"hours": 1}).json()
    assert [t["id"] for t in data["transactions"]] == ["recent"]
    data = client.get("/api/transactions/historical").json()
    assert [t["id"] for t in data["transactions"]] == ["recent", "two-hours"]


def test_wallet_activity(client, pipeline, make_event):
    _seed(
        pipeline.store,
        make_event(wallet=HOLDER_1, event_id="h1"),
        make_event(wallet=HOLDER_2, event_id="h2"),
    )
    data = client.get(f"/api/wallets/{HOLDER_2}/activity").json()
    assert [t["id"] for t in data["transactions"]] == ["h2"]
    assert data["transactions"][0]["walletAddress"] == HOLDER_2


def test_stats(client, pipeline, make_event):
    _seed(
        pipeline.store,
        make_event(event_id="b1", type="buy", amount=100.0, protocol="Orca"),
        make_event(event_id="b2", type="buy", amount=50.0, protocol="Jupiter"),
        make_event(event_id="s1", type="sell", amount=25.0, protocol="Orca"),
    )
    data = client.get("/api/stats").json()
    assert data["buyCount"] == 2
    assert data["sellCount"] == 1
    assert data["totalVolume"] == 175.0
    assert data["netDirection"] == "buy-heavy"
    assert data["protocols"][0]["protocol"] == "Orca"
    assert data["hours"] == 24.0
    assert data["degraded"] is False


def test_export_csv(client, pipeline, make_event):
    _seed(pipeline.store, make_event(event_id="csv-1", type="sell", amount=7.0))
    r = client.get("/api/export/csv")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "tokenwise-data.csv" in r.headers["content-disposition"]
    header, line = r.text.split("\n")
    assert header == "id,walletAddress,type,amount,price,protocol,timestamp,signature"
    assert line.startswith('"csv-1",')
    assert ',"sell",7.0,' in line


def test_export_json(client, pipeline, make_event):
    _seed(pipeline.store, make_event(event_id="json-1"))
    r = client.get("/api/export/json", params={"hours": 1})
    assert r.status_code == 200
    assert "tokenwise-data.json" in r.headers["content-disposition"]
    assert [t["id"] for t in r.json()] == ["json-1"]


def test_export_unknown_format(client):
    r = client.get("/api/export/xml")
    assert r.status_code == 400
    assert "format" in r.json()["detail"]


def test_status_and_monitoring_controls(client):
    status = client.get("/api/status").json()
    assert status["monitorState"] == "monitoring"
    assert status["monitoredWallets"] == 3

    r = client.post("/api/monitoring/stop")
    assert r.json() == {"state": "stopped", "changed": True}
    assert client.post("/api/monitoring/stop").json()["changed"] is False
    assert client.get("/api/status").json()["monitoredWallets"] == 0

    r = client.post("/api/monitoring/start")
    assert r.json() == {"state": "monitoring", "changed": True}
    assert client.post("/api/monitoring/start").json()["changed"] is False
    assert client.get("/api/status").json()["monitoredWallets"] == 3


def test_rerank_endpoint(client):
    r = client.post("/api/rerank")
    assert r.status_code == 200
    body = r.json()
    assert body["generation"] == 2
    assert body["placeholder"] is False
    assert client.get("/api/wallets").json()["generation"] == 2


def test_wallets_after_placeholder_rerank_are_stale_not_placeholder(client, fake_rpc):
    """Stored ledger rows outlive a failed re-rank; they keep their own generation and flags."""
    fake_rpc.rate_limited = {"rpc-a.example", "rpc-b.example", "rpc-c.example"}
    body = client.post("/api/rerank").json()
    assert body["placeholder"] is True
    assert body["generation"] == 2

    data = client.get("/api/wallets").json()
    assert [w["address"] for w in data["wallets"]] == [HOLDER_1, HOLDER_2, HOLDER_3]
    assert data["placeholder"] is False
    assert data["stale"] is True
    assert data["generation"] == 1
    assert data["degraded"] is False
    assert data["error"]

    fake_rpc.rate_limited = set()
    client.post("/api/rerank")
    data = client.get("/api/wallets").json()
    assert data["stale"] is False
    assert data["generation"] == 3
    assert data["error"] is None


def test_websocket_stream(client):
    """Snapshot on connect, then every broadcast (here: a re-rank) as it happens."""
    with client.websocket_connect("/ws") as ws:
        first = ws.receive_json()
        assert first["type"] == "wallets"
        assert first["generation"] == 1
        assert [w["address"] for w in first["wallets"]] == [HOLDER_1, HOLDER_2, HOLDER_3]

        client.post("/api/rerank")
        update = ws.receive_json()
        assert update["type"] == "wallets"
        assert update["generation"] == 2


def test_degraded_reads(settings, fake_rpc):
    """A failing store yields degraded=True with empty lists; export refuses with 503."""
    from fastapi.testclient import TestClient

    from tokenwise.api_server import create_app
    from tokenwise.database import EventStore, SQLiteBackend
    from tokenwise.pipeline import build_pipeline

    class FailingReadsBackend(SQLiteBackend):
        def list_events(self, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        def list_wallets(self, limit):
            raise sqlite3.OperationalError("disk I/O error")

    store = EventStore(FailingReadsBackend(settings.db_path))
    pipeline = build_pipeline(settings, store=store, transport=fake_rpc.transport, rng=random.Random(2))
    with TestClient(create_app(pipeline)) as client:
        tx = client.get("/api/transactions").json()
        wallets = client.get("/api/wallets").json()
        export = client.get("/api/export/csv")

    assert tx["degraded"] is True
    assert tx["transactions"] == []
    assert "disk I/O error" in tx["error"]
    assert wallets["degraded"] is True
    # in-memory snapshot still served
    assert [w["address"] for w in wallets["wallets"]] == [HOLDER_1, HOLDER_2, HOLDER_3]
    assert export.status_code == 503
