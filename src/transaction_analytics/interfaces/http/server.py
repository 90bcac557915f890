"""
Liveness and metrics HTTP listeners.

Two independent apps, each bound to its own port:
 - health:  GET /health  -> "Service is running"
 - metrics: GET /metrics -> Prometheus text exposition

Neither exposes or calls anything in the query core; they only share the
process lifetime.
"""

from __future__ import annotations

import asyncio
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, Response

from transaction_analytics.config import AppConfig
from transaction_analytics.observability import CONTENT_TYPE_LATEST, metrics_text

logger = logging.getLogger(__name__)


def create_health_app() -> FastAPI:
    app = FastAPI(title="transaction-analytics health")

    @app.get("/health", response_class=PlainTextResponse)
    def health() -> str:
        return "Service is running"

    return app


def create_metrics_app() -> FastAPI:
    app = FastAPI(title="transaction-analytics metrics")

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=metrics_text(), media_type=CONTENT_TYPE_LATEST)

    return app


async def serve_app(app: FastAPI, host: str, port: int) -> None:
    """Serve an app with explicit uvicorn configuration."""
    config = uvicorn.Config(app, host=host, port=int(port), log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


async def serve_all(config: AppConfig) -> None:
    """Run the health and metrics listeners until both stop."""
    logger.info("API server listening on %s:%d", config.api_host, config.api_port)
    logger.info("Metrics server listening on %s:%d", config.metrics_host, config.metrics_port)
    await asyncio.gather(
        serve_app(create_health_app(), config.api_host, config.api_port),
        serve_app(create_metrics_app(), config.metrics_host, config.metrics_port),
    )
