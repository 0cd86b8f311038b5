"""
Solana RPC access package.

Single-endpoint JSON-RPC client with failure classification, and the ledger
endpoint multiplexer that rotates across redundant endpoints on rate limits.
"""

from tokenwise.solana_rpc.client import RpcEndpointClient
from tokenwise.solana_rpc.multiplexer import (
    LAMPORTS_PER_SOL,
    TOKEN_ACCOUNT_DATA_SIZE,
    TOKEN_PROGRAM_ID,
    LedgerMultiplexer,
    parse_token_account,
)

__all__ = [
    "LAMPORTS_PER_SOL",
    "TOKEN_ACCOUNT_DATA_SIZE",
    "TOKEN_PROGRAM_ID",
    "LedgerMultiplexer",
    "RpcEndpointClient",
    "parse_token_account",
]
