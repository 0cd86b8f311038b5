"""
TokenWise — top-holder tracking and live trade stream for a single Solana token.

Ranks the largest holders of one SPL token through redundant RPC endpoints,
streams buy/sell activity for those holders to subscribers, and persists both
snapshots and events for later query and export. Modular architecture with
clear separation between RPC access, ranking, storage, monitoring, broadcast,
and the API server.
"""

__version__ = "0.1.0"
