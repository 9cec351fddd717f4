"""Operator endpoints for Nirbachon Live v1.

Every route here requires the ``X-Admin-API-Key`` header.

Endpoints
---------
Collection
    - ``POST /api/v1/admin/fetch``                      -- One-shot collection cycle.
    - ``POST /api/v1/admin/collection/start``           -- Start the scheduler.
    - ``POST /api/v1/admin/collection/stop``            -- Stop the scheduler.
    - ``POST /api/v1/admin/sources/{id}/toggle``        -- Enable / disable a source.
Review
    - ``GET  /api/v1/admin/pending``                    -- Pending updates.
    - ``POST /api/v1/admin/pending/{id}/approve``       -- Publish a pending update.
    - ``POST /api/v1/admin/pending/{id}/reject``        -- Reject a pending update.
    - ``GET  /api/v1/admin/conflicts``                  -- Conflict log.
    - ``POST /api/v1/admin/conflicts/{id}/resolve``     -- Resolve a conflict.
    - ``GET  /api/v1/admin/audit``                      -- Audit log.
Direct writes
    - ``POST /api/v1/admin/constituencies/override``    -- Admin override.
    - ``POST /api/v1/admin/constituencies/manual``      -- Manual entry.
    - ``POST /api/v1/admin/referendum``                 -- Referendum tally.
    - ``POST /api/v1/admin/seed``                       -- Re-seed all seats.
News and errors
    - ``POST /api/v1/admin/news``                       -- Publish a news item.
    - ``POST /api/v1/admin/news/collect``               -- Run news collection now.
    - ``POST /api/v1/admin/news/auto``                  -- Enable / disable auto-news.
    - ``GET  /api/v1/admin/errors``                     -- System error log.
    - ``POST /api/v1/admin/errors/{id}/resolve``        -- Mark an error resolved.
    - ``POST /api/v1/admin/errors/{id}/ignore``         -- Ignore an error.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.data.seed import seed_constituencies
from src.middleware.auth import require_admin_api_key
from src.models.election import CollectionPhase, ConstituencyStatus, NewsCategory, NewsItem
from src.models.reconciliation import (
    ConflictResolution,
    PendingStatus,
    ReportedConstituency,
    SystemErrorStatus,
)
from src.services.reconciliation.errors import (
    PendingUpdateAlreadyReviewedError,
    ReconciliationError,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_api_key)],
)


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class ActionResponse(BaseModel):
    status: str
    message: str
    result: dict[str, Any] | None = None


class FetchRequest(BaseModel):
    force_llm: bool = False
    max_sources: int | None = Field(default=None, ge=1, le=10)


class ToggleRequest(BaseModel):
    active: bool


class ResolveConflictRequest(BaseModel):
    resolution: str = Field(min_length=1, max_length=2000)


class ReferendumRequest(BaseModel):
    yes_votes: int = Field(ge=0)
    no_votes: int = Field(ge=0)
    total_eligible: int = Field(default=0, ge=0)
    centers_reported: int = Field(default=0, ge=0)
    total_centers: int = Field(default=0, ge=0)
    status: ConstituencyStatus = ConstituencyStatus.COUNTING


class NewsRequest(BaseModel):
    headline: str = Field(min_length=1, max_length=300)
    summary: str = Field(default="", max_length=2000)
    source: str = "Admin"
    source_url: str = ""
    category: NewsCategory = NewsCategory.GENERAL


class AutoNewsRequest(BaseModel):
    enabled: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(request: Request, name: str):
    """Retrieve a service from app state, or raise 503."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name.replace('_', ' ').capitalize()} not initialised.")
    return service


def _http_error(exc: ReconciliationError) -> HTTPException:
    if isinstance(exc, PendingUpdateAlreadyReviewedError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=404, detail=str(exc))


async def _refresh_summary(request: Request) -> None:
    aggregator = _service(request, "aggregator")
    scheduler = getattr(request.app.state, "scheduler", None)
    phase = scheduler.current_phase() if scheduler is not None else CollectionPhase.PRE_VOTING
    await aggregator.refresh(phase)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.post("/fetch", response_model=ActionResponse)
async def manual_fetch(request: Request, body: FetchRequest | None = None) -> ActionResponse:
    """Run one collection cycle now, waiting for any cycle in flight."""
    scheduler = _service(request, "scheduler")
    body = body or FetchRequest()
    logger.info("api.admin.fetch_triggered", force_llm=body.force_llm)

    result = await scheduler.run_cycle(force_llm=body.force_llm, max_sources=body.max_sources)
    if result is None:
        raise HTTPException(status_code=500, detail="Fetch failed; see the system error log.")
    return ActionResponse(
        status="completed",
        message=(
            f"Fetched {result.reports} reports: {result.stats.updated} updated, "
            f"{result.stats.staged} staged, {result.stats.conflicts} escalated."
        ),
        result=result.to_dict(),
    )


@router.post("/collection/start", response_model=ActionResponse)
async def start_collection(request: Request) -> ActionResponse:
    scheduler = _service(request, "scheduler")
    await scheduler.start()
    return ActionResponse(status="running", message="Collection started.", result=scheduler.stats())


@router.post("/collection/stop", response_model=ActionResponse)
async def stop_collection(request: Request) -> ActionResponse:
    scheduler = _service(request, "scheduler")
    await scheduler.stop()
    return ActionResponse(status="stopped", message="Collection stopped.", result=scheduler.stats())


@router.post("/sources/{source_id}/toggle")
async def toggle_source(request: Request, source_id: str, body: ToggleRequest) -> dict[str, Any]:
    registry = _service(request, "registry")
    try:
        status = registry.toggle_source(source_id, body.active)
    except ReconciliationError as exc:
        raise _http_error(exc) from exc
    await _service(request, "store").put_source_statuses(registry.statuses())
    return status.to_document()


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


@router.get("/pending")
async def list_pending(
    request: Request,
    status: PendingStatus | None = Query(default=PendingStatus.PENDING),
) -> list[dict[str, Any]]:
    store = _service(request, "store")
    return [p.to_document() for p in await store.list_pending_updates(status)]


@router.post("/pending/{pending_id}/approve")
async def approve_pending(request: Request, pending_id: str) -> dict[str, Any]:
    resolver = _service(request, "resolver")
    try:
        record = await resolver.approve_pending_update(pending_id)
    except ReconciliationError as exc:
        raise _http_error(exc) from exc
    await _refresh_summary(request)
    return record.to_document()


@router.post("/pending/{pending_id}/reject")
async def reject_pending(request: Request, pending_id: str) -> dict[str, Any]:
    resolver = _service(request, "resolver")
    try:
        pending = await resolver.reject_pending_update(pending_id)
    except ReconciliationError as exc:
        raise _http_error(exc) from exc
    return pending.to_document()


@router.get("/conflicts")
async def list_conflicts(
    request: Request,
    resolved_by: ConflictResolution | None = Query(default=None),
) -> list[dict[str, Any]]:
    store = _service(request, "store")
    return [c.to_document() for c in await store.list_conflicts(resolved_by)]


@router.post("/conflicts/{conflict_id}/resolve")
async def resolve_conflict(
    request: Request,
    conflict_id: str,
    body: ResolveConflictRequest,
) -> dict[str, Any]:
    resolver = _service(request, "resolver")
    try:
        conflict = await resolver.resolve_conflict(conflict_id, body.resolution)
    except ReconciliationError as exc:
        raise _http_error(exc) from exc
    return conflict.to_document()


@router.get("/audit")
async def list_audit(
    request: Request,
    limit: int = Query(default=100, ge=1, le=500),
) -> list[dict[str, Any]]:
    store = _service(request, "store")
    return [a.to_document() for a in await store.list_audit_entries(limit)]


# ---------------------------------------------------------------------------
# Direct writes
# ---------------------------------------------------------------------------


@router.post("/constituencies/override")
async def admin_override(request: Request, body: ReportedConstituency) -> dict[str, Any]:
    """Write canonical state directly with trust 100, bypassing reconciliation."""
    resolver = _service(request, "resolver")
    record = await resolver.admin_override(body)
    await _refresh_summary(request)
    return record.to_document()


@router.post("/constituencies/manual")
async def manual_entry(request: Request, body: ReportedConstituency) -> dict[str, Any]:
    resolver = _service(request, "resolver")
    record = await resolver.manual_entry(body)
    await _refresh_summary(request)
    return record.to_document()


@router.post("/referendum")
async def update_referendum(request: Request, body: ReferendumRequest) -> dict[str, Any]:
    aggregator = _service(request, "aggregator")
    result = await aggregator.publish_referendum(
        yes_votes=body.yes_votes,
        no_votes=body.no_votes,
        total_eligible=body.total_eligible,
        centers_reported=body.centers_reported,
        total_centers=body.total_centers,
        status=body.status,
    )
    return result.to_document()


@router.post("/seed", response_model=ActionResponse)
async def seed(request: Request) -> ActionResponse:
    store = _service(request, "store")
    resolver = getattr(request.app.state, "resolver", None)
    result = await seed_constituencies(store, resolver=resolver)
    return ActionResponse(
        status="completed",
        message=f"Seeded {result.constituencies} constituencies ({result.postponed} postponed).",
        result=result.to_dict(),
    )


# ---------------------------------------------------------------------------
# News and errors
# ---------------------------------------------------------------------------


@router.post("/news")
async def add_news(request: Request, body: NewsRequest) -> dict[str, Any]:
    store = _service(request, "store")
    item = NewsItem(
        headline=body.headline.strip(),
        summary=body.summary,
        source=body.source,
        source_url=body.source_url,
        category=body.category,
        is_verified=True,
    )
    item.id = await store.add_news(item)
    return item.to_document()


@router.post("/news/collect", response_model=ActionResponse)
async def collect_news(request: Request) -> ActionResponse:
    news = _service(request, "news")
    result = await news.collect()
    return ActionResponse(
        status="completed" if result.success else "skipped",
        message=result.message,
        result=result.to_dict(),
    )


@router.post("/news/auto", response_model=ActionResponse)
async def set_auto_news(request: Request, body: AutoNewsRequest) -> ActionResponse:
    news = _service(request, "news")
    news.set_enabled(body.enabled)
    return ActionResponse(
        status="enabled" if body.enabled else "disabled",
        message=f"Auto-news {'enabled' if body.enabled else 'disabled'}.",
        result=news.stats(),
    )


@router.get("/errors")
async def list_errors(
    request: Request,
    status: SystemErrorStatus | None = Query(default=SystemErrorStatus.ACTIVE),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[dict[str, Any]]:
    store = _service(request, "store")
    return [e.to_document() for e in await store.list_system_errors(status, limit=limit)]


@router.post("/errors/{error_id}/resolve", response_model=ActionResponse)
async def resolve_error(request: Request, error_id: str) -> ActionResponse:
    error_log = _service(request, "error_log")
    try:
        await error_log.resolve(error_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"System error not found: {error_id}") from exc
    return ActionResponse(status="resolved", message=f"Error {error_id} resolved.")


@router.post("/errors/{error_id}/ignore", response_model=ActionResponse)
async def ignore_error(request: Request, error_id: str) -> ActionResponse:
    error_log = _service(request, "error_log")
    try:
        await error_log.ignore(error_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"System error not found: {error_id}") from exc
    return ActionResponse(status="ignored", message=f"Error {error_id} ignored.")
