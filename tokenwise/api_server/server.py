"""
FastAPI server — read API, export, control endpoints and live stream.

Thin handlers over the pipeline: snapshots and events are read from the event
store, exports are rendered as CSV or JSON, and /ws forwards every broadcast
message. Responses carry degraded/placeholder flags so clients can render
"data unavailable" distinctly from "zero results".
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from tokenwise.analytics.activity import summarize
from tokenwise.api_server.export import to_csv
from tokenwise.broadcast.hub import KIND_WALLETS
from tokenwise.config.settings import get_settings
from tokenwise.logging import get_logger
from tokenwise.pipeline.orchestrator import PipelineOrchestrator, build_pipeline

logger = get_logger(__name__)

DEFAULT_WALLET_LIMIT = 60
DEFAULT_EVENT_LIMIT = 100
DEFAULT_HOURS = 24.0
MAX_HOURS = 24.0 * 365
EXPORT_FORMATS = ("csv", "json")


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class WalletsResponse(BaseModel):
    """GET /api/wallets response: ranked snapshot plus data-quality flags."""

    wallets: list[dict[str, Any]] = Field(default_factory=list, description="Ranked holders, rank ascending")
    generation: int | None = Field(None, description="Generation of the wallets returned, if known")
    placeholder: bool = Field(False, description="True when the returned wallets are synthetic (ledger unavailable)")
    stale: bool = Field(False, description="True when stored wallets predate the latest ranking attempt")
    degraded: bool = Field(False, description="True when the store read failed and cached data is served")
    error: str | None = Field(None, description="Storage or ranking error, if any")


class TransactionsResponse(BaseModel):
    """Transaction list response; degraded=True means the store could not be read."""

    transactions: list[dict[str, Any]] = Field(default_factory=list)
    count: int = Field(0, description="Number of transactions returned")
    degraded: bool = Field(False)
    error: str | None = Field(None)


class MonitoringResponse(BaseModel):
    state: str = Field(..., description="idle | monitoring | stopped")
    changed: bool = Field(..., description="False when the call was a no-op")


# -----------------------------------------------------------------------------
# Dependency
# -----------------------------------------------------------------------------


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="pipeline not initialised")
    return orchestrator


def _transactions_response(result: Any) -> TransactionsResponse:
    items = [e.to_dict() for e in result.items]
    return TransactionsResponse(
        transactions=items, count=len(items), degraded=not result.ok, error=result.error
    )


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(orchestrator: PipelineOrchestrator | None = None) -> FastAPI:
    """
    Build the ASGI app. Without an injected orchestrator, the lifespan builds one
    from get_settings(). The lifespan starts the pipeline and closes it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pipeline = orchestrator if orchestrator is not None else build_pipeline(get_settings())
        app.state.orchestrator = pipeline
        try:
            await pipeline.start()
        except Exception as e:
            # Keep serving stored data even if the first ranking cycle crashed
            logger.exception("api_pipeline_start_failed", error=str(e))
        yield
        await pipeline.close()
        logger.info("api_pipeline_stopped")

    app = FastAPI(
        title="TokenWise API",
        description="Top holders and live buy/sell activity for a tracked Solana token.",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness probe: API is up."""
        return {"status": "ok"}

    @app.get("/api/wallets", response_model=WalletsResponse)
    async def get_wallets(
        request: Request,
        limit: int = Query(DEFAULT_WALLET_LIMIT, ge=1, le=1000),
    ) -> WalletsResponse:
        """
        Current top-N snapshot. Falls back to the in-memory snapshot when the store
        read fails (degraded) or when only a placeholder ranking exists. Stored rows
        left over from an earlier generation are returned with stale=True and their
        own generation, never with the flags of a newer placeholder.
        """
        pipeline = get_orchestrator(request)
        latest = pipeline.latest_snapshot
        result = await pipeline.store.list_top_wallets(limit)
        from_memory = latest is not None and (
            not result.ok or (latest.placeholder and not result.items)
        )
        if from_memory:
            # Flags describe the in-memory generation actually returned
            return WalletsResponse(
                wallets=[w.to_dict() for w in latest.wallets[:limit]],
                generation=latest.generation,
                placeholder=latest.placeholder,
                degraded=not result.ok,
                error=result.error or latest.error,
            )
        # Stored rows only ever hold ledger data; stale when a newer ranking was not persisted
        persisted = pipeline.persisted_generation
        stale = bool(result.items) and latest is not None and latest.generation != persisted
        return WalletsResponse(
            wallets=[w.to_dict() for w in result.items],
            generation=persisted,
            placeholder=False,
            stale=stale,
            degraded=not result.ok,
            error=result.error or (latest.error if stale else None),
        )

    @app.get("/api/transactions", response_model=TransactionsResponse)
    async def get_transactions(
        request: Request,
        limit: int = Query(DEFAULT_EVENT_LIMIT, ge=1, le=1000),
    ) -> TransactionsResponse:
        """Most recent transactions, newest first."""
        result = await get_orchestrator(request).store.list_recent_events(limit)
        return _transactions_response(result)

    @app.get("/api/transactions/historical", response_model=TransactionsResponse)
    async def get_historical_transactions(
        request: Request,
        hours: float = Query(DEFAULT_HOURS, gt=0, le=MAX_HOURS),
    ) -> TransactionsResponse:
        """Transactions in the last `hours` hours, newest first."""
        result = await get_orchestrator(request).store.list_events_in_last_hours(hours)
        return _transactions_response(result)

    @app.get("/api/wallets/{address}/activity", response_model=TransactionsResponse)
    async def get_wallet_activity(
        address: str,
        request: Request,
        hours: float = Query(DEFAULT_HOURS, gt=0, le=MAX_HOURS),
    ) -> TransactionsResponse:
        """Transactions of one wallet in the last `hours` hours."""
        address = address.strip()
        if not address:
            raise HTTPException(status_code=400, detail="address must be non-empty")
        result = await get_orchestrator(request).store.wallet_activity(address, hours)
        return _transactions_response(result)

    @app.get("/api/stats")
    async def get_stats(
        request: Request,
        hours: float = Query(DEFAULT_HOURS, gt=0, le=MAX_HOURS),
    ) -> dict[str, Any]:
        """Buy/sell direction, protocol breakdown and hourly buckets for the window."""
        result = await get_orchestrator(request).store.list_events_in_last_hours(hours)
        body = summarize(result.items).to_dict()
        body["hours"] = hours
        body["degraded"] = not result.ok
        body["error"] = result.error
        return body

    @app.get("/api/export/{fmt}")
    async def export_transactions(
        fmt: str,
        request: Request,
        hours: float = Query(DEFAULT_HOURS, gt=0, le=MAX_HOURS),
    ) -> Response:
        """Download transactions of the last `hours` hours as CSV or JSON."""
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise HTTPException(status_code=400, detail=f"format must be one of {', '.join(EXPORT_FORMATS)}")
        result = await get_orchestrator(request).store.list_events_in_last_hours(hours)
        if not result.ok:
            raise HTTPException(status_code=503, detail="transaction data unavailable")
        records = [e.to_dict() for e in result.items]
        filename = f"tokenwise-data.{fmt}"
        headers = {"Content-Disposition": f"attachment; filename={filename}"}
        logger.info("api_export", format=fmt, hours=hours, rows=len(records))
        if fmt == "csv":
            return Response(content=to_csv(records), media_type="text/csv", headers=headers)
        return JSONResponse(content=records, headers=headers)

    @app.get("/api/status")
    async def get_status(request: Request) -> dict[str, Any]:
        return await get_orchestrator(request).status()

    @app.post("/api/rerank")
    async def post_rerank(request: Request) -> dict[str, Any]:
        """Run a ranking cycle now; the new snapshot is also pushed to stream subscribers."""
        result = await get_orchestrator(request).rerank()
        return result.to_dict()

    @app.post("/api/monitoring/start", response_model=MonitoringResponse)
    async def post_monitoring_start(request: Request) -> MonitoringResponse:
        pipeline = get_orchestrator(request)
        changed = await pipeline.start_monitoring()
        return MonitoringResponse(state=pipeline.source.state.value, changed=changed)

    @app.post("/api/monitoring/stop", response_model=MonitoringResponse)
    async def post_monitoring_stop(request: Request) -> MonitoringResponse:
        pipeline = get_orchestrator(request)
        changed = pipeline.source.is_monitoring
        await pipeline.stop_monitoring()
        return MonitoringResponse(state=pipeline.source.state.value, changed=changed)

    @app.websocket("/ws")
    async def stream(websocket: WebSocket) -> None:
        """
        Live stream: current snapshot on connect (if any), then every hub message
        ({"type": "transaction" | "wallets", ...}) as JSON until the client leaves.
        """
        pipeline: PipelineOrchestrator | None = getattr(websocket.app.state, "orchestrator", None)
        await websocket.accept()
        if pipeline is None:
            await websocket.close(code=1011)
            return
        sub = pipeline.hub.subscribe()

        async def _watch_disconnect() -> None:
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        break
            finally:
                sub.close()

        watcher = asyncio.create_task(_watch_disconnect())
        try:
            latest = pipeline.latest_snapshot
            if latest is not None:
                await websocket.send_json(
                    {
                        "type": KIND_WALLETS,
                        "wallets": [w.to_dict() for w in latest.wallets],
                        "generation": latest.generation,
                        "placeholder": latest.placeholder,
                    }
                )
            async for message in sub:
                await websocket.send_json(message)
        except Exception as e:
            logger.info("api_stream_closed", subscription_id=sub.id, reason=str(e))
        finally:
            sub.close()
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    return app
