"""
Ledger endpoint multiplexer — several redundant RPC endpoints behind one cursor.

Responsibilities:
- Hold an ordered list of endpoint clients and a cursor to the active one.
- On a rate-limited/blocked call, rotate the cursor (wrapping) and retry on the
  next endpoint, up to len(endpoints) attempts in total.
- Propagate every other error immediately; report exhaustion as
  AllEndpointsFailedError so callers can tell it apart from "zero holders".
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Sequence, TypeVar

import httpx

from tokenwise.core.exceptions import AllEndpointsFailedError, RateLimitError
from tokenwise.logging import get_logger
from tokenwise.solana_rpc.client import RpcEndpointClient

logger = get_logger(__name__)

T = TypeVar("T")

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_ACCOUNT_DATA_SIZE = 165
MINT_OFFSET = 0
LAMPORTS_PER_SOL = 1_000_000_000


def parse_token_account(item: dict[str, Any]) -> dict[str, Any] | None:
    """
    Flatten one jsonParsed SPL token account into a raw holder record:
    {pubkey, owner, mint, amount, ui_amount, decimals}. None if not parseable.
    """
    try:
        info = item["account"]["data"]["parsed"]["info"]
        token_amount = info["tokenAmount"]
        owner = (info.get("owner") or "").strip()
    except (KeyError, TypeError):
        return None
    if not owner:
        return None
    ui_amount = token_amount.get("uiAmount")
    if ui_amount is None:
        ui_amount = token_amount.get("uiAmountString") or 0
    try:
        return {
            "pubkey": item.get("pubkey", ""),
            "owner": owner,
            "mint": info.get("mint", ""),
            "amount": int(token_amount.get("amount") or 0),
            "ui_amount": float(ui_amount),
            "decimals": int(token_amount.get("decimals") or 0),
        }
    except (TypeError, ValueError):
        return None


class LedgerMultiplexer:
    """
    Wraps N remote-ledger endpoints and rotates on rate-limit failures.

    The cursor only moves on RateLimitError; a failure raised by a client that
    is no longer active (concurrent callers) does not rotate a second time.
    """

    def __init__(
        self,
        endpoints: Sequence[str | RpcEndpointClient],
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            endpoints: Ordered endpoint URLs (or prebuilt clients); the first is active.
            timeout: HTTP timeout applied to clients built from URLs.
            transport: Optional httpx transport for clients built from URLs (tests).
        """
        if not endpoints:
            raise ValueError("endpoints must be non-empty")
        self._clients: list[RpcEndpointClient] = [
            e if isinstance(e, RpcEndpointClient) else RpcEndpointClient(e, timeout=timeout, transport=transport)
            for e in endpoints
        ]
        self._index = 0

    def __len__(self) -> int:
        return len(self._clients)

    @property
    def endpoints(self) -> list[str]:
        return [c.url for c in self._clients]

    @property
    def active_index(self) -> int:
        return self._index

    @property
    def active_endpoint(self) -> RpcEndpointClient:
        return self._clients[self._index]

    def rotate(self) -> RpcEndpointClient:
        """Advance the cursor to the next endpoint (wrapping) and return it."""
        previous = self._clients[self._index]
        self._index = (self._index + 1) % len(self._clients)
        current = self._clients[self._index]
        logger.info(
            "rpc_endpoint_switched",
            previous=previous.display_url,
            endpoint=current.display_url,
            index=self._index,
        )
        return current

    async def call_with_rotation(
        self,
        fn: Callable[[RpcEndpointClient], Awaitable[T]],
        *,
        operation: str = "rpc_call",
    ) -> T:
        """
        Run fn(active_client); on RateLimitError rotate and retry.

        At most len(endpoints) attempts. Non rate-limit errors propagate at once.
        Raises AllEndpointsFailedError when every attempt was rate-limited.
        """
        attempts = len(self._clients)
        last_error: Exception | None = None
        for attempt in range(attempts):
            client = self.active_endpoint
            try:
                return await fn(client)
            except RateLimitError as e:
                last_error = e
                logger.warning(
                    "rpc_rate_limited",
                    operation=operation,
                    endpoint=client.display_url,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(e),
                )
                if self.active_endpoint is client:
                    self.rotate()
        logger.error("rpc_all_endpoints_failed", operation=operation, attempts=attempts)
        raise AllEndpointsFailedError(
            f"{operation}: all {attempts} endpoints failed",
            attempts=attempts,
            last_error=last_error,
        )

    async def fetch_holder_accounts(
        self,
        token_mint: str,
        data_size: int = TOKEN_ACCOUNT_DATA_SIZE,
    ) -> list[dict[str, Any]]:
        """
        Return raw holder records for every token account of `token_mint`.

        Filters program accounts of the SPL Token program by account layout size
        and a mint byte-prefix match at offset 0.
        """
        filters = [
            {"dataSize": data_size},
            {"memcmp": {"offset": MINT_OFFSET, "bytes": token_mint}},
        ]

        async def _fetch(client: RpcEndpointClient) -> list[dict[str, Any]]:
            logger.info("rpc_fetch_holders", endpoint=client.display_url, mint=token_mint)
            return await client.get_program_accounts(TOKEN_PROGRAM_ID, filters)

        items = await self.call_with_rotation(_fetch, operation="fetch_holder_accounts")
        records: list[dict[str, Any]] = []
        for item in items:
            record = parse_token_account(item) if isinstance(item, dict) else None
            if record is not None:
                records.append(record)
        logger.info("rpc_holder_accounts", accounts=len(items), parsed=len(records))
        return records

    async def fetch_balance(self, account: str) -> float:
        """Native SOL balance for `account` (lamports converted to SOL)."""
        lamports = await self.call_with_rotation(
            lambda client: client.get_balance(account), operation="fetch_balance"
        )
        return lamports / LAMPORTS_PER_SOL

    async def close(self) -> None:
        for client in self._clients:
            await client.close()

    async def __aenter__(self) -> "LedgerMultiplexer":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()
