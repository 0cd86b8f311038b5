"""
Structured JSON logging: timestamp, event_type, wallet_id and free-form context.

structlog with ISO timestamps, log level, and consistent keys for aggregation.
All modules use get_logger() and log a snake_case event name plus keyword
context (e.g. logger.info("ranking_completed", holders=60, generation=3)).
RPC API keys are redacted from every string value before rendering.

Uses only Python stdlib logging and structlog; no other tokenwise imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# json (default) for aggregation; console for local runs
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

_API_KEY_PATTERN = re.compile(r"(api[-_]key=)[^&\s\"']+", re.IGNORECASE)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (UTC, millisecond precision, Z suffix)."""
    event_dict.setdefault("timestamp", _utc_timestamp())
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type; keep message if present."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def _redact_api_keys(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask `api-key=...` query values (Helius endpoints) in string fields, tracebacks included."""
    for key, value in event_dict.items():
        if isinstance(value, str) and "key=" in value.lower():
            event_dict[key] = _API_KEY_PATTERN.sub(r"\1***", value)
    return event_dict


def configure_structlog(
    level: int = LOG_LEVEL_VALUE,
    fmt: str = LOG_FORMAT,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog: JSON or console renderer, timestamp, level, event_type, redaction."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
        _redact_api_keys,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("monitor_event_produced", wallet_id=addr, type="buy", amount=512.0)

    JSON output: {"event_type": "monitor_event_produced", "wallet_id": "...", "type": "buy",
    "amount": 512.0, "timestamp": "...Z", "level": "info", "logger": "tokenwise.monitor.source"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(wallet_id: str) -> structlog.BoundLogger:
    """Logger with wallet_id bound to all subsequent calls."""
    return get_logger("tokenwise").bind(wallet_id=wallet_id)
