"""
Single-endpoint Solana JSON-RPC client over httpx.AsyncClient.

Responsibilities:
- Build JSON-RPC bodies and POST them to one endpoint.
- Classify failures: rate-limited/blocked responses raise RateLimitError (the
  caller may rotate to another endpoint); everything else raises EndpointError.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from tokenwise.config.env import mask_rpc_url
from tokenwise.core.exceptions import EndpointError, RateLimitError

RATE_LIMIT_STATUS_CODES = frozenset({403, 429})
RATE_LIMIT_RPC_CODES = frozenset({429, -32005})
_RATE_LIMIT_MARKERS = ("429", "403", "rate limit", "too many requests", "blocked")

# JSON-RPC request id counter (shared by all clients in the process)
_request_ids = itertools.count(1)


def build_rpc_body(method: str, params: list[Any]) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": next(_request_ids),
        "method": method,
        "params": params,
    }


def is_rate_limit_message(message: str) -> bool:
    """True when an error message looks like a rate-limit or access block."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


class RpcEndpointClient:
    """
    JSON-RPC client bound to one endpoint URL.

    The underlying httpx.AsyncClient is created lazily and reused across calls;
    pass transport= to inject an httpx.MockTransport in tests.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url.strip():
            raise ValueError("RPC url must be non-empty")
        self.url = url.strip()
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"RpcEndpointClient({self.display_url!r})"

    @property
    def display_url(self) -> str:
        return mask_rpc_url(self.url)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={"Accept": "application/json", "User-Agent": "TokenWise/0.1.0"},
            )
        return self._client

    async def call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call; return `result` or raise a classified error."""
        body = build_rpc_body(method, params)
        try:
            resp = await self.client.post(self.url, json=body)
        except httpx.TransportError as e:
            raise EndpointError(
                f"{method} request failed: {e}", endpoint=self.display_url
            ) from e

        if resp.status_code in RATE_LIMIT_STATUS_CODES:
            raise RateLimitError(
                f"{method}: HTTP {resp.status_code}",
                endpoint=self.display_url,
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            message = resp.text or f"HTTP {resp.status_code}"
            if is_rate_limit_message(message):
                raise RateLimitError(
                    f"{method}: {message}", endpoint=self.display_url, status_code=resp.status_code
                )
            raise EndpointError(
                f"{method}: HTTP {resp.status_code}: {message[:200]}",
                endpoint=self.display_url,
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise EndpointError(
                f"{method}: invalid JSON response", endpoint=self.display_url
            ) from e
        if not isinstance(data, dict):
            raise EndpointError(
                f"{method}: unexpected response shape ({type(data).__name__})",
                endpoint=self.display_url,
            )

        if "error" in data:
            err = data["error"]
            code = err.get("code") if isinstance(err, dict) else None
            message = str(err.get("message", err)) if isinstance(err, dict) else str(err)
            error_cls = (
                RateLimitError
                if code in RATE_LIMIT_RPC_CODES or is_rate_limit_message(message)
                else EndpointError
            )
            raise error_cls(
                f"Solana RPC error: {message} (code={code})",
                endpoint=self.display_url,
            )
        return data.get("result")

    async def get_program_accounts(
        self,
        program_id: str,
        filters: list[dict[str, Any]],
        *,
        encoding: str = "jsonParsed",
    ) -> list[dict[str, Any]]:
        """getProgramAccounts; accepts both the plain-list and {context, value} result shapes."""
        result = await self.call(
            "getProgramAccounts",
            [program_id, {"encoding": encoding, "filters": filters, "commitment": "confirmed"}],
        )
        if isinstance(result, dict):
            result = result.get("value")
        return result if isinstance(result, list) else []

    async def get_balance(self, address: str) -> int:
        """getBalance in lamports."""
        result = await self.call("getBalance", [address, {"commitment": "confirmed"}])
        if isinstance(result, dict):
            result = result.get("value")
        if result is None:
            raise EndpointError("getBalance returned no value", endpoint=self.display_url)
        return int(result)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
