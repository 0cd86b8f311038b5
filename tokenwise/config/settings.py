"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and the .env file.
- Validate required settings and provide defaults for optional ones.
- Expose typed settings (token mint, RPC endpoints, DB path, monitor timing,
  API host/port) for use across ranking, monitor, pipeline, and API server.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from solders.pubkey import Pubkey

from tokenwise.config.env import get_rpc_urls, get_token_mint, load_tokenwise_env
from tokenwise.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOP_HOLDERS_LIMIT = 60
DEFAULT_DB_PATH = "tokenwise.db"
DEFAULT_MIN_DELAY_SEC = 1.0
DEFAULT_MAX_DELAY_SEC = 10.0
DEFAULT_PROTOCOLS: tuple[str, ...] = ("Jupiter", "Raydium", "Orca", "Serum")
DEFAULT_RPC_TIMEOUT_SEC = 30.0
DEFAULT_BALANCE_CONCURRENCY = 8
DEFAULT_BROADCAST_QUEUE_SIZE = 256
DEFAULT_API_PORT = 3001


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("settings_invalid_value", name=name, value=raw, default=default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("settings_invalid_value", name=name, value=raw, default=default)
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    items = tuple(s.strip() for s in raw.split(",") if s.strip())
    return items or default


@dataclass
class Settings:
    """
    Typed configuration for one running instance (one tracked token).

    rpc_urls: Ordered endpoint list for the ledger multiplexer.
    top_holders_limit: Size of the ranked snapshot (Top-N).
    min_delay_sec / max_delay_sec: Inter-event delay bounds for the event source.
    rerank_interval_sec: Periodic re-rank interval; 0 disables the loop.
    """

    token_mint: str = field(default_factory=get_token_mint)
    rpc_urls: list[str] = field(default_factory=get_rpc_urls)
    top_holders_limit: int = DEFAULT_TOP_HOLDERS_LIMIT
    db_path: Path = field(default_factory=lambda: Path(DEFAULT_DB_PATH))
    min_delay_sec: float = DEFAULT_MIN_DELAY_SEC
    max_delay_sec: float = DEFAULT_MAX_DELAY_SEC
    protocols: tuple[str, ...] = DEFAULT_PROTOCOLS
    rerank_interval_sec: float = 0.0
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    balance_concurrency: int = DEFAULT_BALANCE_CONCURRENCY
    broadcast_queue_size: int = DEFAULT_BROADCAST_QUEUE_SIZE
    api_host: str = "0.0.0.0"
    api_port: int = DEFAULT_API_PORT

    def __post_init__(self) -> None:
        self.token_mint = (self.token_mint or "").strip()
        try:
            Pubkey.from_string(self.token_mint)
        except Exception as e:
            raise ValueError(f"Invalid token mint address: {self.token_mint!r}") from e
        if not self.rpc_urls:
            raise ValueError("at least one RPC endpoint is required")
        self.db_path = Path(self.db_path)
        self.top_holders_limit = max(1, int(self.top_holders_limit))
        self.min_delay_sec = max(0.0, float(self.min_delay_sec))
        self.max_delay_sec = max(self.min_delay_sec, float(self.max_delay_sec))
        self.rerank_interval_sec = max(0.0, float(self.rerank_interval_sec))
        self.balance_concurrency = max(1, int(self.balance_concurrency))
        self.broadcast_queue_size = max(1, int(self.broadcast_queue_size))
        if not self.protocols:
            self.protocols = DEFAULT_PROTOCOLS

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after loading .env)."""
        load_tokenwise_env()
        return cls(
            token_mint=get_token_mint(),
            rpc_urls=get_rpc_urls(),
            top_holders_limit=_env_int("TOP_HOLDERS_LIMIT", DEFAULT_TOP_HOLDERS_LIMIT),
            db_path=Path((os.getenv("DB_PATH") or "").strip() or DEFAULT_DB_PATH),
            min_delay_sec=_env_float("MONITOR_MIN_DELAY_SEC", DEFAULT_MIN_DELAY_SEC),
            max_delay_sec=_env_float("MONITOR_MAX_DELAY_SEC", DEFAULT_MAX_DELAY_SEC),
            protocols=_env_list("MONITOR_PROTOCOLS", DEFAULT_PROTOCOLS),
            rerank_interval_sec=_env_float("RERANK_INTERVAL_SEC", 0.0),
            rpc_timeout_sec=_env_float("RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC),
            balance_concurrency=_env_int("BALANCE_CONCURRENCY", DEFAULT_BALANCE_CONCURRENCY),
            broadcast_queue_size=_env_int("BROADCAST_QUEUE_SIZE", DEFAULT_BROADCAST_QUEUE_SIZE),
            api_host=(os.getenv("API_HOST") or "").strip() or "0.0.0.0",
            api_port=_env_int("API_PORT", DEFAULT_API_PORT),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process settings, loading them from env on first call."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next get_settings() re-reads env (tests)."""
    global _settings
    _settings = None
