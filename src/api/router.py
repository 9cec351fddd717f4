"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.

Includes:
    * Results: constituencies, summary, referendum, status, feeds, sources
    * Admin: collection control, review queue, overrides, seeding, errors
    * Health: liveness and readiness probes
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import admin, health, results

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(results.router)
api_router.include_router(admin.router)
api_router.include_router(health.router)
