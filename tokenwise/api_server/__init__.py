"""
HTTP and WebSocket surface for TokenWise: read API, exports, pipeline controls, live stream.
"""

from tokenwise.api_server.export import to_csv
from tokenwise.api_server.server import create_app

__all__ = ["create_app", "to_csv"]
