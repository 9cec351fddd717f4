"""Public read endpoints for the live dashboard.

Endpoints
---------
- ``GET /api/v1/constituencies``           -- All canonical seats (filterable).
- ``GET /api/v1/constituencies/{number}``  -- One seat by number.
- ``GET /api/v1/summary``                  -- Party standings and national totals.
- ``GET /api/v1/referendum``               -- Referendum tally.
- ``GET /api/v1/status``                   -- Collector status.
- ``GET /api/v1/updates``                  -- Recent ticker entries.
- ``GET /api/v1/news``                     -- Recent news items.
- ``GET /api/v1/sources``                  -- Per-source health.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from src.models.election import ConstituencyStatus, SystemStatus
from src.services.store import (
    RECENT_NEWS_LIMIT,
    RECENT_UPDATES_LIMIT,
    REFERENDUM_DOC,
    STATUS_DOC,
    SUMMARY_DOC,
)
from src.services.summary import compute_summary

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(tags=["results"])


def _get_store(request: Request):
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Document store not initialised.")
    return store


# ---------------------------------------------------------------------------
# Constituencies
# ---------------------------------------------------------------------------


@router.get("/constituencies")
async def list_constituencies(
    request: Request,
    status: ConstituencyStatus | None = Query(default=None),
    division: str | None = Query(default=None, max_length=50),
) -> list[dict[str, Any]]:
    store = _get_store(request)
    records = await store.list_constituencies()
    if status is not None:
        records = [r for r in records if r.status == status]
    if division:
        records = [r for r in records if r.division.lower() == division.lower()]
    return [r.to_document() for r in sorted(records, key=lambda r: r.number)]


@router.get("/constituencies/{number}")
async def get_constituency(request: Request, number: int) -> dict[str, Any]:
    store = _get_store(request)
    records = await store.list_constituencies()
    for record in records:
        if record.number == number:
            return record.to_document()
    raise HTTPException(status_code=404, detail=f"Constituency {number} not found.")


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------


@router.get("/summary")
async def get_summary(request: Request) -> dict[str, Any]:
    """The stored summary, or one computed on the fly if none exists yet."""
    store = _get_store(request)
    summary = await store.get_singleton(SUMMARY_DOC)
    if summary is not None:
        return summary
    return compute_summary(await store.list_constituencies()).to_document()


@router.get("/referendum")
async def get_referendum(request: Request) -> dict[str, Any]:
    store = _get_store(request)
    referendum = await store.get_singleton(REFERENDUM_DOC)
    if referendum is None:
        raise HTTPException(status_code=404, detail="No referendum results published yet.")
    return referendum


@router.get("/status")
async def get_status(request: Request) -> dict[str, Any]:
    store = _get_store(request)
    status = SystemStatus().to_document()
    status.update(await store.get_singleton(STATUS_DOC) or {})

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        status["scheduler"] = scheduler.stats()
    return status


# ---------------------------------------------------------------------------
# Feeds
# ---------------------------------------------------------------------------


@router.get("/updates")
async def recent_updates(
    request: Request,
    limit: int = Query(default=RECENT_UPDATES_LIMIT, ge=1, le=RECENT_UPDATES_LIMIT),
) -> list[dict[str, Any]]:
    store = _get_store(request)
    return [u.to_document() for u in await store.recent_updates(limit)]


@router.get("/news")
async def recent_news(
    request: Request,
    limit: int = Query(default=RECENT_NEWS_LIMIT, ge=1, le=100),
) -> list[dict[str, Any]]:
    store = _get_store(request)
    return [n.to_document() for n in await store.recent_news(limit)]


@router.get("/sources")
async def list_sources(request: Request) -> list[dict[str, Any]]:
    """Live health counters, or the last mirrored snapshot if no registry runs here."""
    registry = getattr(request.app.state, "registry", None)
    if registry is not None:
        statuses = registry.statuses()
    else:
        statuses = await _get_store(request).list_source_statuses()
    return [s.to_document() for s in statuses]
