"""HTTP surface: Prometheus metrics and health checks.

Endpoints
---------
``GET /metrics``      Prometheus text exposition of the metrics registry.
``GET /health``       Service health; 503 when consumer, store or sweeper is down.
``GET /health/live``  Liveness check, always 200.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from monitor_spine import __version__
from monitor_spine.observability.metrics import MetricsRegistry, get_metrics_registry

if TYPE_CHECKING:
    from monitor_spine.service import MonitorService

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    service: str = "monitor-spine"
    version: str = __version__
    uptime_s: float
    timestamp: str
    checks: dict[str, Any] = {}


def create_app(
    service: MonitorService | None = None,
    *,
    registry: MetricsRegistry | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Parameters
    ----------
    service : MonitorService | None
        Running service whose health is reported. Without one, ``/health``
        only reports that the process is up.
    registry : MetricsRegistry | None
        Registry exported at ``/metrics``; defaults to the service's
        registry, then the global one.
    """
    registry = registry or (service.registry if service is not None else get_metrics_registry())
    started = time.monotonic()

    app = FastAPI(title="monitor-spine", version=__version__, docs_url=None, redoc_url=None)
    app.state.service = service
    app.state.registry = registry

    @app.get("/metrics", tags=["observability"], response_class=PlainTextResponse)
    async def metrics_endpoint() -> PlainTextResponse:
        """Export Prometheus-compatible metrics."""
        return PlainTextResponse(content=registry.export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)

    @app.get("/health", tags=["health"], response_model=HealthResponse)
    def health() -> JSONResponse:
        checks = service.health() if service is not None else {"healthy": True}
        healthy = bool(checks.get("healthy"))
        body = HealthResponse(
            status="healthy" if healthy else "unhealthy",
            uptime_s=round(time.monotonic() - started, 1),
            timestamp=datetime.now(UTC).isoformat(),
            checks={k: v for k, v in checks.items() if k != "healthy"},
        )
        return JSONResponse(content=body.model_dump(), status_code=200 if healthy else 503)

    @app.get("/health/live", tags=["health"])
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    return app


__all__ = ["create_app", "HealthResponse"]
