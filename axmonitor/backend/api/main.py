"""
api/main.py

FastAPI app for the AX Monitor dashboard.

Every data route lives under /api/{environment}/...; the environment name is
resolved against the ServiceRegistry installed with set_registry().

Errors are returned as {"error": {"operation", "type", "message"}}:
    NotFoundError (rule / alert / incident / environment) → 404
    ConditionParseError, other ValueError                → 422
    anything else                                        → 500 (logged, no traceback sent)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketDisconnect

from ..errors import NotFoundError
from ..metrics import METRICS
from ..services import ServiceRegistry
from .routes import alerts as alerts_router
from .routes import environments as environments_router
from .routes import escalations as escalations_router
from .routes import incidents as incidents_router
from .routes import maintenance as maintenance_router
from .routes import remediation as remediation_router
from .routes import rules as rules_router
from .routes import stats as stats_router
from .ws_manager import CHANNELS, ws_manager

logger = logging.getLogger(__name__)

_registry: ServiceRegistry | None = None


def set_registry(registry: ServiceRegistry) -> None:
    global _registry
    _registry = registry


def get_registry() -> ServiceRegistry:
    if _registry is None:
        raise RuntimeError("Service registry not initialised — call set_registry() first")
    return _registry


def _error(request: Request, status: int, exc: Exception, message: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={
            "error": {
                "operation": f"{request.method} {request.url.path}",
                "type": type(exc).__name__,
                "message": str(exc) if message is None else message,
            }
        },
    )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI startup")
        yield
        logger.info("FastAPI shutdown")

    app = FastAPI(
        title="AX Monitor — Alert Correlation & Remediation",
        version="1.0.0",
        description="Alert correlation, escalation and guarded remediation for AX 2012 environments",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(request, 404, exc)

    @app.exception_handler(ValueError)
    async def invalid_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(request, 422, exc)

    @app.exception_handler(Exception)
    async def unexpected_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error in %s %s", request.method, request.url.path)
        # details stay in the log
        return _error(request, 500, exc, "internal server error")

    # REST routers
    app.include_router(environments_router.router, prefix="/api")
    app.include_router(alerts_router.router,       prefix="/api")
    app.include_router(incidents_router.router,    prefix="/api")
    app.include_router(rules_router.router,        prefix="/api")
    app.include_router(escalations_router.router,  prefix="/api")
    app.include_router(remediation_router.router,  prefix="/api")
    app.include_router(maintenance_router.router,  prefix="/api")
    app.include_router(stats_router.router,        prefix="/api")

    # WebSockets: one endpoint per broadcast channel
    @app.websocket("/ws/{channel}")
    async def ws_channel(websocket: WebSocket, channel: str):
        if channel not in CHANNELS:
            await websocket.close(code=4404)
            return
        await ws_manager.connect(websocket, channel)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await ws_manager.disconnect(websocket, channel)

    @app.get("/health")
    async def health() -> dict:
        environments = _registry.environments if _registry is not None else []
        return {
            "status": "ok",
            "environments": environments,
            "ws_connections": ws_manager.all_counts(),
            "metrics": METRICS.as_dict(),
        }

    return app
