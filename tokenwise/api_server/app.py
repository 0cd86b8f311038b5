"""
FastAPI/ASGI application entrypoint.

Run with: uvicorn tokenwise.api_server.app:app --host 0.0.0.0 --port 3001
"""

from tokenwise.api_server.server import create_app

app = create_app()

__all__ = ["app"]
