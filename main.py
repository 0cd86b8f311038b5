"""
Main entrypoint: TokenWise pipeline + FastAPI server in one process.

The pipeline (ranking, event source, broadcast hub) is started by the app lifespan,
so the API and the producer share one event loop. On SIGINT/SIGTERM uvicorn runs
the lifespan shutdown, which stops the source and flushes pending writes.

Env: TOKEN_MINT, SOLANA_RPC_URLS, HELIUS_API_KEY, DB_PATH, API_HOST, API_PORT, etc.
(see .env.example).

API only, same thing: uvicorn tokenwise.api_server.app:app --host 0.0.0.0 --port 3001
"""

import os

# Configure structured JSON logging before other imports that may log
from tokenwise.logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Load settings, build the app, run uvicorn in the main thread."""
    from tokenwise.config import get_settings

    try:
        settings = get_settings()
    except ValueError as e:
        logger.error("main_config_error", message=str(e))
        raise SystemExit(1) from e

    from tokenwise.api_server import create_app
    import uvicorn

    app = create_app()
    logger.info(
        "main_server_starting",
        host=settings.api_host,
        port=settings.api_port,
        mint=settings.token_mint,
        endpoints=len(settings.rpc_urls),
    )
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
