"""
Environment variable loading for TokenWise.

- TOKEN_MINT: mint address of the tracked SPL token (one token per instance)
- SOLANA_RPC_URLS: comma-separated RPC endpoints, tried in order with rotation
- HELIUS_API_KEY: optional; prepends a Helius mainnet endpoint to the list
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is tokenwise/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_TOKEN_MINT = "9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump"

# Public mainnet endpoints, in fallback order
PUBLIC_RPC_URLS: tuple[str, ...] = (
    "https://solana-api.projectserum.com",
    "https://rpc.ankr.com/solana",
    "https://solana-mainnet.rpc.extrnode.com",
    "https://api.mainnet-beta.solana.com",
)
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"


def load_tokenwise_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    load_dotenv(_ENV_PATH, override=False)


def get_token_mint() -> str:
    """Return TOKEN_MINT from env, or the default tracked token."""
    load_tokenwise_env()
    return (os.getenv("TOKEN_MINT") or "").strip() or DEFAULT_TOKEN_MINT


def get_rpc_urls() -> list[str]:
    """
    Resolve the ordered RPC endpoint list.
    Order: HELIUS_API_KEY endpoint (if set) first, then SOLANA_RPC_URLS, else public defaults.
    Duplicates are dropped, first occurrence wins.
    """
    load_tokenwise_env()
    raw = (os.getenv("SOLANA_RPC_URLS") or os.getenv("SOLANA_RPC_URL") or "").strip()
    urls = [u.strip() for u in raw.split(",") if u.strip()] if raw else list(PUBLIC_RPC_URLS)
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if key:
        urls.insert(0, HELIUS_MAINNET_URL_TEMPLATE.format(key=key))
    seen: set[str] = set()
    ordered: list[str] = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            ordered.append(url)
    return ordered


def mask_rpc_url(url: str) -> str:
    """Mask API key in an RPC URL for logging."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
