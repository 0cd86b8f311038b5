"""
Test that tokenwise.logging can be imported without circular import and the logger works.
"""

from __future__ import annotations

import json


def test_logging_import():
    """Import get_logger from tokenwise.logging and use the logger."""
    from tokenwise.logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")


def test_event_renamed_to_event_type():
    from tokenwise.logging.logger import _add_timestamp, _normalize_event

    event_dict = _normalize_event(None, "info", {"event": "ranking_completed", "holders": 3})
    event_dict = _add_timestamp(None, "info", event_dict)
    assert event_dict["event_type"] == "ranking_completed"
    assert "event" not in event_dict
    assert event_dict["holders"] == 3
    assert event_dict["timestamp"].endswith("Z")
    json.dumps(event_dict)


def test_api_keys_redacted():
    """Helius-style api-key query values never reach the rendered log line."""
    from tokenwise.logging.logger import _redact_api_keys

    event_dict = _redact_api_keys(
        None,
        "error",
        {
            "event_type": "rpc_rate_limited",
            "endpoint": "https://mainnet.helius-rpc.com/?api-key=s3cret&x=1",
            "error": "getBalance request failed: https://mainnet.helius-rpc.com/?api-key=s3cret",
            "attempt": 2,
        },
    )
    assert event_dict["endpoint"] == "https://mainnet.helius-rpc.com/?api-key=***&x=1"
    assert "s3cret" not in event_dict["error"]
    assert event_dict["attempt"] == 2


def test_bind_wallet():
    from tokenwise.logging import bind_wallet

    log = bind_wallet("9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka")
    log.info("monitor_wallet_added")
