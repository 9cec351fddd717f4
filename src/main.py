"""Nirbachon Live FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the collection services (document store,
extraction backends, source registry, conflict resolver, summary
aggregator, news collector and scheduler).
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            settings.log_level,
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the collection services.

    On startup:
      1. Open the document store (Firestore when a GCP project is
         configured, otherwise an in-memory store seeded with the
         catalogue)
      2. Create the system error log
      3. Create the extraction backends that have credentials
      4. Wire the source registry, resolver, aggregator and news collector
      5. Create the scheduler, starting it if auto-collection is enabled
      6. Store everything on ``app.state``

    On shutdown:
      - Stop the scheduler.
      - Close HTTP clients and the store's watch client.
    """
    _configure_logging()
    logger.info(
        "app.startup",
        env=settings.env,
        gcp_project=settings.gcp_project_id,
        firestore=settings.firestore_enabled,
    )

    app.state.start_time = time.time()

    # -- 1. Document store --------------------------------------------------
    from src.services.store import FirestoreElectionStore, InMemoryElectionStore

    store: FirestoreElectionStore | InMemoryElectionStore
    if settings.firestore_enabled:
        store = FirestoreElectionStore(
            project_id=settings.gcp_project_id,
            database=settings.firestore_database,
        )
        logger.info("app.store_initialised", backend="firestore")
    else:
        store = InMemoryElectionStore()
        logger.info("app.store_initialised", backend="memory")
    app.state.store = store

    # -- 2. System error log -------------------------------------------------
    from src.services.error_log import SystemErrorLog

    error_log = SystemErrorLog(store)
    app.state.error_log = error_log

    # -- 3. Extraction backends ----------------------------------------------
    from src.services.ingestion.extraction import GeminiExtractionClient, TavilyExtractionClient

    llm_client: GeminiExtractionClient | None = None
    if settings.gcp_project_id:
        llm_client = GeminiExtractionClient(
            project_id=settings.gcp_project_id,
            region=settings.vertex_ai_location,
            model_name=settings.vertex_ai_model,
        )
        logger.info("app.gemini_configured", model=settings.vertex_ai_model)

    search_client: TavilyExtractionClient | None = None
    if settings.tavily_api_key and settings.use_search_backend:
        search_client = TavilyExtractionClient(
            settings.tavily_api_key,
            timeout=settings.source_fetch_timeout_seconds,
        )
        logger.info("app.tavily_configured")

    if llm_client is None and search_client is None:
        logger.warning("app.no_extraction_backend")

    # -- 4. Collection services ----------------------------------------------
    from src.services.ingestion.news import NewsCollector
    from src.services.ingestion.sources import SourceRegistry
    from src.services.reconciliation import ConflictResolver
    from src.services.summary import SummaryAggregator

    registry = SourceRegistry(
        llm_client,
        search_client=search_client,
        error_log=error_log,
        timeout=settings.source_fetch_timeout_seconds,
    )
    resolver = ConflictResolver(store)
    aggregator = SummaryAggregator(store)
    news = NewsCollector(
        llm_client or search_client,
        store,
        cooldown_seconds=settings.news_cooldown_seconds,
        error_log=error_log,
    )
    app.state.registry = registry
    app.state.resolver = resolver
    app.state.aggregator = aggregator
    app.state.news = news

    if isinstance(store, InMemoryElectionStore):
        from src.data.seed import seed_constituencies

        await seed_constituencies(store, resolver=resolver)

    # -- 5. Scheduler --------------------------------------------------------
    from src.services.ingestion.scheduler import CollectionScheduler

    scheduler = CollectionScheduler(
        registry,
        resolver,
        aggregator,
        store,
        settings,
        news=news,
        error_log=error_log,
    )
    app.state.scheduler = scheduler

    start_task: asyncio.Task | None = None  # type: ignore[type-arg]
    if settings.enable_auto_collection:
        start_task = asyncio.create_task(scheduler.start(), name="collection-start")
        logger.info("app.auto_collection_started")

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")

    if start_task is not None and not start_task.done():
        start_task.cancel()
    await scheduler.stop()

    if search_client is not None:
        await search_client.close()
    if isinstance(store, FirestoreElectionStore):
        store.close()

    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Nirbachon Live API",
    description=(
        "Live results for the Bangladesh 13th National Parliament Election. "
        "Collects constituency results from multiple news sources, scores "
        "their trustworthiness and reconciles disagreements before publishing."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
# allow_credentials=True must not be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-Admin-API-Key"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-Admin-API-Key"],
    )

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "Nirbachon Live API",
        "description": "Bangladesh election results reconciliation",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "constituencies": "/api/v1/constituencies",
            "summary": "/api/v1/summary",
            "referendum": "/api/v1/referendum",
            "status": "/api/v1/status",
            "updates": "/api/v1/updates",
            "news": "/api/v1/news",
            "sources": "/api/v1/sources",
            "admin": "/api/v1/admin",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.main:app", host=settings.api_host, port=settings.api_port)
