"""Phase-driven collection scheduler.

Drives the fetch -> reconcile -> summarise cycle on a cadence set by the
real-world phase of election day, measured in Bangladesh Standard Time
(UTC+6) relative to the configured close of polls.

Phases
------
- **pre_voting / voting**: no collection (interval 0).
- **early_results** (close of polls to +2h30m): every 60 s.
- **peak_results** (to +7h30m): every 60 s, three sources per cycle.
- **late_results** (to +15h30m): every 120 s.
- **cleanup** (to +72h): every 600 s.
- **completed**: no collection.

While the phase has no interval the loop rechecks every
:data:`IDLE_RECHECK_SECONDS` instead of busy-looping.  Cycles are never
reentrant: the background loop and manual fetches share one lock, and
the next interval is only computed once a cycle has fully completed.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Final

import structlog

from config.settings import BST
from src.models.election import CollectionPhase, SystemStatus
from src.models.reconciliation import ConflictResolution, SystemErrorType
from src.services.reconciliation.resolver import ResolutionStats
from src.services.store import STATUS_DOC

if TYPE_CHECKING:
    from config.settings import Settings
    from src.services.error_log import SystemErrorLog
    from src.services.ingestion.news import NewsCollector
    from src.services.ingestion.sources import SourceRegistry
    from src.services.reconciliation.resolver import ConflictResolver
    from src.services.store import ElectionStore
    from src.services.summary import SummaryAggregator

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Phase boundaries, measured from the close of polls.
EARLY_RESULTS_WINDOW: Final[timedelta] = timedelta(hours=2, minutes=30)
PEAK_RESULTS_WINDOW: Final[timedelta] = timedelta(hours=7, minutes=30)
LATE_RESULTS_WINDOW: Final[timedelta] = timedelta(hours=15, minutes=30)
CLEANUP_WINDOW: Final[timedelta] = timedelta(hours=72)

PHASE_INTERVAL_SECONDS: Final[dict[CollectionPhase, int]] = {
    CollectionPhase.PRE_VOTING: 0,
    CollectionPhase.VOTING: 0,
    CollectionPhase.EARLY_RESULTS: 60,
    CollectionPhase.PEAK_RESULTS: 60,
    CollectionPhase.LATE_RESULTS: 120,
    CollectionPhase.CLEANUP: 600,
    CollectionPhase.COMPLETED: 0,
}

IDLE_RECHECK_SECONDS: Final[int] = 60
PEAK_SOURCES_PER_CYCLE: Final[int] = 3
DEFAULT_SOURCES_PER_CYCLE: Final[int] = 2
_STOP_GRACE_SECONDS: Final[float] = 10.0


# ---------------------------------------------------------------------------
# Phase model
# ---------------------------------------------------------------------------


def get_collection_phase(
    now: datetime,
    voting_start: datetime,
    voting_end: datetime,
) -> CollectionPhase:
    """Classify *now* into a collection phase.

    Naive datetimes are interpreted as Bangladesh Standard Time.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=BST)
    if now < voting_start:
        return CollectionPhase.PRE_VOTING
    if now < voting_end:
        return CollectionPhase.VOTING

    since_close = now - voting_end
    if since_close < EARLY_RESULTS_WINDOW:
        return CollectionPhase.EARLY_RESULTS
    if since_close < PEAK_RESULTS_WINDOW:
        return CollectionPhase.PEAK_RESULTS
    if since_close < LATE_RESULTS_WINDOW:
        return CollectionPhase.LATE_RESULTS
    if since_close < CLEANUP_WINDOW:
        return CollectionPhase.CLEANUP
    return CollectionPhase.COMPLETED


def interval_for_phase(phase: CollectionPhase) -> int:
    """Polling interval in seconds; 0 means collection is off."""
    return PHASE_INTERVAL_SECONDS.get(phase, 0)


def sources_for_phase(phase: CollectionPhase) -> int:
    if phase == CollectionPhase.PEAK_RESULTS:
        return PEAK_SOURCES_PER_CYCLE
    return DEFAULT_SOURCES_PER_CYCLE


def is_collection_active(phase: CollectionPhase) -> bool:
    return interval_for_phase(phase) > 0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CycleResult:
    """Outcome of one collection cycle."""

    phase: CollectionPhase
    reports: int = 0
    stats: ResolutionStats = field(default_factory=ResolutionStats)
    seats_declared: int = 0
    news_added: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "reports": self.reports,
            "stats": self.stats.to_dict(),
            "seatsDeclared": self.seats_declared,
            "newsAdded": self.news_added,
            "durationMs": round(self.duration_ms, 1),
        }


# ---------------------------------------------------------------------------
# CollectionScheduler
# ---------------------------------------------------------------------------


class CollectionScheduler:
    """Runs collection cycles on a phase-dependent timer.

    Parameters
    ----------
    registry:
        Source registry to fetch from.
    resolver:
        Conflict resolver the fetched reports are handed to.
    aggregator:
        Summary aggregator refreshed after every cycle.
    store:
        Document store holding the status singleton and source mirror.
    settings:
        Application settings (voting window, news cadence).
    news:
        Optional news collector run every ``news_every_n_cycles`` cycles.
    error_log:
        Optional system error log for cycle-level failures.
    now:
        Wall-clock provider returning an aware datetime, injectable for
        tests.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        resolver: ConflictResolver,
        aggregator: SummaryAggregator,
        store: ElectionStore,
        settings: Settings,
        *,
        news: NewsCollector | None = None,
        error_log: SystemErrorLog | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(BST),
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._aggregator = aggregator
        self._store = store
        self._settings = settings
        self._news = news
        self._error_log = error_log
        self._now = now

        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._stop_event = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._running = False

        self._cycle_count = 0
        self._total_api_calls = 0
        self._api_calls_today = 0
        self._errors_today = 0
        self._counter_date: date | None = None
        self._last_fetch_time = 0
        self._next_fetch_time = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def errors_today(self) -> int:
        return self._errors_today

    @property
    def api_calls_today(self) -> int:
        return self._api_calls_today

    def current_phase(self) -> CollectionPhase:
        return get_collection_phase(
            self._now(),
            self._settings.voting_start,
            self._settings.voting_end,
        )

    def _now_ms(self) -> int:
        return int(self._now().timestamp() * 1000)

    def stats(self) -> dict:
        phase = self.current_phase()
        return {
            "isRunning": self._running,
            "phase": phase.value,
            "interval": interval_for_phase(phase),
            "isActive": is_collection_active(phase),
            "cycles": self._cycle_count,
            "apiCallsToday": self._api_calls_today,
            "errorsToday": self._errors_today,
            "lastFetchTime": self._last_fetch_time,
            "nextFetchTime": self._next_fetch_time,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run one cycle immediately, then keep collecting in the background.

        Calling ``start`` while already running, or while another
        ``start`` is still in its first cycle, only rewrites the
        collecting flag.  The running flag is claimed before the first
        ``await`` so overlapping calls cannot both get past the check.
        """
        if self._running:
            logger.info("scheduler.already_running")
            await self._store.merge_singleton(STATUS_DOC, {"isCollecting": True})
            return

        self._running = True
        self._stop_event.clear()
        phase = self.current_phase()
        await self._store.merge_singleton(
            STATUS_DOC,
            {
                "isCollecting": True,
                "collectionPhase": phase.value,
                "activeSources": self._registry.active_count,
            },
        )
        logger.info("scheduler.started", phase=phase.value)

        await self.run_cycle()
        if self._stop_event.is_set():
            return
        self._task = asyncio.create_task(self._loop(), name="collection-scheduler")

    async def stop(self) -> None:
        """Stop the background loop; idempotent apart from the flag write.

        A cycle already in flight is given a short grace period to
        finish before the loop task is cancelled.
        """
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=_STOP_GRACE_SECONDS)
            if not done:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._running = False
        self._next_fetch_time = 0
        await self._store.merge_singleton(STATUS_DOC, {"isCollecting": False, "nextFetchTime": 0})
        logger.info("scheduler.stopped")

    async def _sleep(self, seconds: float) -> bool:
        """Wait for *seconds* or until stopped.  Returns ``True`` if stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                phase = self.current_phase()
                interval = interval_for_phase(phase)
                if interval <= 0:
                    logger.debug("scheduler.idle", phase=phase.value)
                    delay = IDLE_RECHECK_SECONDS
                else:
                    delay = interval
                self._next_fetch_time = self._now_ms() + delay * 1000

                if await self._sleep(delay):
                    break
                if not is_collection_active(self.current_phase()):
                    continue
                await self.run_cycle()
        except asyncio.CancelledError:
            logger.info("scheduler.loop_cancelled")
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(
        self,
        *,
        force_llm: bool = False,
        max_sources: int | None = None,
    ) -> CycleResult | None:
        """Run one fetch -> reconcile -> summarise cycle.

        Waits for any cycle already in flight.  Every exception is
        caught, counted in ``errorsToday`` and recorded as a system
        error; ``None`` is returned in that case.
        """
        async with self._cycle_lock:
            self._roll_daily_counters()
            phase = self.current_phase()
            self._cycle_count += 1
            start = time.perf_counter()
            logger.info("scheduler.cycle_started", phase=phase.value, cycle=self._cycle_count)

            try:
                return await self._run_cycle(phase, force_llm=force_llm, max_sources=max_sources, start=start)
            except Exception as exc:
                self._errors_today += 1
                logger.error("scheduler.cycle_failed", phase=phase.value, exc_info=True)
                if self._error_log is not None:
                    await self._error_log.log_error(
                        SystemErrorType.OTHER,
                        "Collection cycle failed",
                        source="scheduler",
                        details=str(exc),
                    )
                try:
                    await self._store.merge_singleton(STATUS_DOC, {"errorsToday": self._errors_today})
                except Exception:
                    logger.error("scheduler.status_write_failed", exc_info=True)
                return None

    async def _run_cycle(
        self,
        phase: CollectionPhase,
        *,
        force_llm: bool,
        max_sources: int | None,
        start: float,
    ) -> CycleResult:
        result = CycleResult(phase=phase)

        if self._news is not None and self._cycle_count % self._settings.news_every_n_cycles == 0:
            news = await self._news.collect()
            result.news_added = news.items_added

        fetches_before = self._registry.total_fetches
        reports = await self._registry.fetch_from_multiple_sources(
            max_sources or sources_for_phase(phase),
            force_llm=force_llm,
        )
        calls = self._registry.total_fetches - fetches_before
        self._total_api_calls += calls
        self._api_calls_today += calls
        self._last_fetch_time = self._now_ms()
        result.reports = len(reports)

        result.stats = await self._resolver.process_reports(reports)
        summary = await self._aggregator.refresh(phase)
        result.seats_declared = summary.seats_declared

        await self._publish_status(phase, summary.seats_declared)
        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "scheduler.cycle_complete",
            phase=phase.value,
            reports=result.reports,
            declared=result.seats_declared,
            duration_ms=round(result.duration_ms, 1),
            **result.stats.to_dict(),
        )
        return result

    async def _publish_status(self, phase: CollectionPhase, seats_declared: int) -> None:
        conflicts = await self._store.list_conflicts()
        interval = interval_for_phase(phase)
        status = SystemStatus(
            is_collecting=self._running,
            last_fetch_time=self._last_fetch_time,
            next_fetch_time=self._last_fetch_time + interval * 1000 if self._running and interval else 0,
            total_api_calls=self._total_api_calls,
            api_calls_today=self._api_calls_today,
            errors_today=self._errors_today,
            seats_declared=seats_declared,
            collection_phase=phase,
            active_sources=self._registry.active_count,
            total_conflicts=len(conflicts),
            resolved_conflicts=sum(1 for c in conflicts if c.resolved_by != ConflictResolution.PENDING),
            auto_news_count=self._news.total_collected if self._news is not None else 0,
        )
        await self._store.merge_singleton(STATUS_DOC, status.to_document())
        await self._store.put_source_statuses(self._registry.statuses())

    def _roll_daily_counters(self) -> None:
        today = self._now().astimezone(BST).date()
        if self._counter_date != today:
            if self._counter_date is not None:
                logger.info("scheduler.daily_counters_reset", previous=str(self._counter_date))
            self._counter_date = today
            self._api_calls_today = 0
            self._errors_today = 0
