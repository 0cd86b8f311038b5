"""
Pytest fixtures for TokenWise tests.

Temporary SQLite event store, explicit Settings, and a scriptable fake Solana RPC
served through httpx.MockTransport so no test touches the network.
"""

from __future__ import annotations

import asyncio
import json
import random
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

VALID_MINT = "9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump"
ENDPOINTS = ["https://rpc-a.example", "https://rpc-b.example", "https://rpc-c.example"]

HOLDER_1 = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
HOLDER_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
HOLDER_3 = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"


def token_account(owner: str, ui_amount: float, *, pubkey: str | None = None) -> dict:
    """jsonParsed SPL token account as returned by getProgramAccounts."""
    return {
        "pubkey": pubkey or f"acct-{owner[:8]}-{ui_amount}",
        "account": {
            "data": {
                "parsed": {
                    "info": {
                        "owner": owner,
                        "mint": VALID_MINT,
                        "tokenAmount": {
                            "amount": str(int(ui_amount * 1_000_000)),
                            "decimals": 6,
                            "uiAmount": ui_amount,
                        },
                    },
                    "type": "account",
                },
                "program": "spl-token",
            },
            "lamports": 2039280,
        },
    }


class FakeRpc:
    """
    Scriptable JSON-RPC server keyed by endpoint host.

    rate_limited hosts answer HTTP 429, down hosts raise ConnectError,
    failing_balances owners get a JSON-RPC internal error from getBalance.
    """

    def __init__(self, accounts: list[dict] | None = None, balances: dict[str, int] | None = None) -> None:
        self.accounts = accounts if accounts is not None else []
        self.balances = balances or {}
        self.rate_limited: set[str] = set()
        self.down: set[str] = set()
        self.failing_balances: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        body = json.loads(request.content)
        method = body["method"]
        self.calls.append((host, method))
        if host in self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if host in self.rate_limited:
            return httpx.Response(429, text="Too Many Requests")
        if method == "getProgramAccounts":
            result = self.accounts
        elif method == "getBalance":
            owner = body["params"][0]
            if owner in self.failing_balances:
                return httpx.Response(
                    200,
                    json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32603, "message": "internal error"}},
                )
            result = {"context": {"slot": 1}, "value": self.balances.get(owner, 0)}
        else:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "method not found"}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def hosts_called(self, method: str) -> list[str]:
        return [host for host, m in self.calls if m == method]


@pytest.fixture
def fake_rpc():
    """Three holders: HOLDER_1 has two accounts (10 + 25), HOLDER_2 30, HOLDER_3 20; one empty account."""
    return FakeRpc(
        accounts=[
            token_account(HOLDER_1, 10.0),
            token_account(HOLDER_2, 30.0),
            token_account(HOLDER_3, 20.0),
            token_account(HOLDER_1, 25.0),
            token_account("EmptyOwner1111111111111111111111111111111111", 0.0),
        ],
        balances={HOLDER_1: 1_500_000_000, HOLDER_2: 250_000_000, HOLDER_3: 0},
    )


@pytest.fixture
def settings(tmp_path):
    """Settings for one test: temp DB, fake endpoints, production loop effectively parked."""
    from tokenwise.config import Settings

    return Settings(
        token_mint=VALID_MINT,
        rpc_urls=list(ENDPOINTS),
        db_path=tmp_path / "tokenwise.db",
        top_holders_limit=5,
        min_delay_sec=3600.0,
        max_delay_sec=3600.0,
    )


@pytest.fixture
def store(tmp_path):
    """EventStore on a temporary SQLite file with the schema created."""
    from tokenwise.database import get_event_store

    event_store = get_event_store(tmp_path / "events.db")
    asyncio.run(event_store.ensure_schema())
    return event_store


@pytest.fixture
def make_event():
    """Factory for TransactionEvent with sensible defaults; age_minutes shifts the timestamp back."""
    from tokenwise.database import TransactionEvent

    def _make(
        wallet: str = HOLDER_1,
        type: str = "buy",
        amount: float = 500.0,
        *,
        age_minutes: float = 0.0,
        protocol: str = "Jupiter",
        event_id: str | None = None,
        price: float = 0.0005,
    ) -> TransactionEvent:
        ts = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
        return TransactionEvent(
            id=event_id or uuid.uuid4().hex,
            wallet_address=wallet,
            type=type,
            amount=amount,
            price=price,
            protocol=protocol,
            timestamp=ts,
            signature="5" * 88,
        )

    return _make


@pytest.fixture
def rng():
    return random.Random(1234)
