"""
Structured logging for TokenWise.

JSON logs with timestamp, event_type and keyword context.
Use get_logger() in all modules for aggregation-friendly output.
"""

from tokenwise.logging.logger import bind_wallet, configure_structlog, get_logger

__all__ = ["bind_wallet", "configure_structlog", "get_logger"]
