"""Health check endpoints for Nirbachon Live API v1.

Liveness and readiness probes for Cloud Run.  Readiness verifies the
document store answers and reports which extraction backends are wired.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

from src.services.store import STATUS_DOC

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe; does not touch downstream dependencies."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe.

    The store must answer a singleton read.  A registry without any
    extraction backend is reported as degraded: the dashboard still
    serves, but nothing new will be collected.
    """
    checks: dict[str, str] = {}
    all_ok = True

    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            await store.get_singleton(STATUS_DOC)
            checks["store"] = "ok"
        except Exception as exc:
            checks["store"] = f"error: {exc!s}"
            all_ok = False
    else:
        checks["store"] = "not_initialised"
        all_ok = False

    registry = getattr(request.app.state, "registry", None)
    if registry is not None and registry.has_backend:
        checks["extraction"] = f"ok ({registry.active_count} active sources)"
    else:
        checks["extraction"] = "not_configured"
        all_ok = False

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        checks["scheduler"] = "running" if scheduler.is_running else "idle"
    else:
        checks["scheduler"] = "not_initialised"
        all_ok = False

    status = "ready" if all_ok else "degraded"
    logger.info("health.readiness_check", status=status, checks=checks)
    return ReadinessResponse(status=status, checks=checks)
