"""Source catalogue, health bookkeeping and rotating multi-source fetch.

Each configured source is an outlet (or group of outlets) with a trust
tier and a tier-specific instruction for the extraction collaborator.
:class:`SourceRegistry` owns the mutable runtime state -- active flags,
per-source health counters and the rotation cursor -- so several
independent registries can coexist (one per test, for example).

Fetches for the sources selected in one call run concurrently.  A
failing or unparseable source is logged, counted in its health record
and written to the system error log; it never fails its siblings.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import structlog

from src.models.election import now_ms
from src.models.reconciliation import SourceReport, SourceStatus, SystemErrorType
from src.services.error_log import classify_exception
from src.services.ingestion.parsing import RESULT_SCHEMA_HINT, parse_results_envelope
from src.services.reconciliation.errors import UnknownSourceError

if TYPE_CHECKING:
    from src.services.error_log import SystemErrorLog
    from src.services.ingestion.extraction import ExtractionClient

logger = structlog.get_logger(__name__)

# Exponential smoothing for the rolling average latency.
LATENCY_DECAY: Final[float] = 0.7
LATENCY_SAMPLE_WEIGHT: Final[float] = 0.3

DEFAULT_FETCH_TIMEOUT_SECONDS: Final[float] = 45.0


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SourceConfig:
    """Static description of one data source."""

    id: str
    name: str
    tier: int
    domain: str
    prompt: str


_ELECTION = "Bangladesh 13th National Parliament Election 2026 results from February 12, 2026"

SOURCE_CONFIGS: Final[tuple[SourceConfig, ...]] = (
    SourceConfig(
        id="ec-bss",
        name="EC / BSS (Official)",
        tier=1,
        domain="ec.org.bd / bssnews.net",
        prompt=(
            "Search Bangladesh Election Commission (ec.org.bd) and Bangladesh Sangbad "
            f"Sangstha (bssnews.net) for the latest official {_ELECTION}. "
            "Focus on officially declared constituencies only. Return data in JSON."
        ),
    ),
    SourceConfig(
        id="bdnews24",
        name="bdnews24.com",
        tier=2,
        domain="bdnews24.com",
        prompt=(
            f"Search bdnews24.com for the latest {_ELECTION}. Include any "
            "constituency-level vote counts, winner declarations, and leading "
            "candidates. Return data in JSON."
        ),
    ),
    SourceConfig(
        id="daily-star",
        name="The Daily Star",
        tier=2,
        domain="thedailystar.net",
        prompt=(
            f"Search thedailystar.net for the latest {_ELECTION}. Include "
            "constituency results, vote counts, and any winner declarations. "
            "Return data in JSON."
        ),
    ),
    SourceConfig(
        id="prothom-alo",
        name="Prothom Alo",
        tier=2,
        domain="prothomalo.com",
        prompt=(
            f"Search prothomalo.com for the latest {_ELECTION}. Include "
            "constituency results, vote counts, and leading candidates. "
            "Return data in JSON."
        ),
    ),
    SourceConfig(
        id="dhaka-tribune",
        name="Dhaka Tribune",
        tier=2,
        domain="dhakatribune.com",
        prompt=(
            f"Search dhakatribune.com for the latest {_ELECTION}. Include "
            "constituency results and vote tallies. Return data in JSON."
        ),
    ),
    SourceConfig(
        id="international",
        name="International Media",
        tier=3,
        domain="ndtv.com / indiatoday.in / aljazeera.com",
        prompt=(
            "Search international news media (NDTV, India Today, Al Jazeera, BBC) "
            f"for the latest {_ELECTION}. Include any constituency-level results "
            "and overall trends. Return data in JSON."
        ),
    ),
)


# ---------------------------------------------------------------------------
# SourceRegistry
# ---------------------------------------------------------------------------


class SourceRegistry:
    """Owns the source catalogue, health counters and rotation cursor.

    Parameters
    ----------
    llm_client:
        Extraction backend used when no search backend is configured or
        when a caller forces the LLM path.
    search_client:
        Optional web-search extraction backend, preferred by default.
    error_log:
        Optional system error log; fetch and parse failures are recorded
        there as well as in the source's health counters.
    configs:
        Source catalogue; defaults to :data:`SOURCE_CONFIGS`.
    timeout:
        Upper bound in seconds on one source fetch.
    clock:
        Epoch-millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        llm_client: ExtractionClient | None = None,
        *,
        search_client: ExtractionClient | None = None,
        error_log: SystemErrorLog | None = None,
        configs: tuple[SourceConfig, ...] = SOURCE_CONFIGS,
        timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._llm_client = llm_client
        self._search_client = search_client
        self._error_log = error_log
        self._configs = {config.id: config for config in configs}
        self._timeout = timeout
        self._clock = clock
        self._status = {
            config.id: SourceStatus(
                id=config.id,
                name=config.name,
                tier=config.tier,
                domain=config.domain,
            )
            for config in configs
        }
        self._rotation_index = 0

    # ------------------------------------------------------------------
    # Catalogue and health
    # ------------------------------------------------------------------

    @property
    def configs(self) -> list[SourceConfig]:
        return list(self._configs.values())

    @property
    def active_count(self) -> int:
        return sum(1 for status in self._status.values() if status.is_active)

    @property
    def total_fetches(self) -> int:
        return sum(status.fetch_count for status in self._status.values())

    @property
    def has_backend(self) -> bool:
        return self._llm_client is not None or self._search_client is not None

    def statuses(self) -> list[SourceStatus]:
        """Snapshots of every source's health record."""
        return [status.model_copy() for status in self._status.values()]

    def status(self, source_id: str) -> SourceStatus:
        if source_id not in self._status:
            raise UnknownSourceError(source_id)
        return self._status[source_id].model_copy()

    def toggle_source(self, source_id: str, active: bool) -> SourceStatus:
        """Enable or disable a source for subsequent rotations."""
        if source_id not in self._status:
            raise UnknownSourceError(source_id)
        self._status[source_id].is_active = active
        logger.info("sources.toggled", source=source_id, active=active)
        return self._status[source_id].model_copy()

    def _active_configs(self) -> list[SourceConfig]:
        return [
            config for config in self._configs.values() if self._status[config.id].is_active
        ]

    def select_sources(self, max_sources: int) -> list[SourceConfig]:
        """Pick up to *max_sources* active sources and advance the cursor."""
        active = self._active_configs()
        if not active or max_sources <= 0:
            return []
        count = min(max_sources, len(active))
        start = self._rotation_index % len(active)
        selected = [active[(start + offset) % len(active)] for offset in range(count)]
        self._rotation_index = (start + max_sources) % len(active)
        return selected

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _client_for(self, force_llm: bool) -> ExtractionClient | None:
        if self._search_client is not None and not force_llm:
            return self._search_client
        return self._llm_client or self._search_client

    async def fetch_from_multiple_sources(
        self,
        max_sources: int = 2,
        *,
        force_llm: bool = False,
    ) -> list[SourceReport]:
        """Fetch concurrently from the next *max_sources* active sources.

        Returns the reports of every source that answered with a
        parseable envelope; failures are absorbed.
        """
        selected = self.select_sources(max_sources)
        if not selected:
            return []

        logger.info(
            "sources.fetch_started",
            sources=[config.id for config in selected],
            force_llm=force_llm,
        )
        outcomes = await asyncio.gather(
            *(self.fetch_from_source(config.id, force_llm=force_llm) for config in selected),
            return_exceptions=True,
        )

        reports: list[SourceReport] = []
        for config, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "sources.fetch_crashed",
                    source=config.id,
                    error=str(outcome),
                )
                continue
            reports.extend(outcome)
        return reports

    async def fetch_from_source(
        self,
        source_id: str,
        *,
        force_llm: bool = False,
    ) -> list[SourceReport]:
        """Fetch and parse one source.  Returns ``[]`` on any failure."""
        config = self._configs.get(source_id)
        if config is None:
            raise UnknownSourceError(source_id)
        status = self._status[source_id]
        if not status.is_active:
            return []

        client = self._client_for(force_llm)
        if client is None:
            logger.warning("sources.no_backend", source=source_id)
            return []

        status.fetch_count += 1
        status.last_fetch_time = self._clock()
        start = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                client.extract(config.prompt, RESULT_SCHEMA_HINT),
                timeout=self._timeout,
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self._record_failure(status, message)
            logger.warning(
                "sources.fetch_failed",
                source=source_id,
                error=message,
                error_type=type(exc).__name__,
            )
            await self._log_error(
                classify_exception(exc),
                f"Failed to fetch from {config.name}",
                source=source_id,
                details=message,
            )
            return []

        try:
            envelope = parse_results_envelope(response.text)
        except Exception:
            logger.error("sources.parse_crashed", source=source_id, exc_info=True)
            envelope = None
        if envelope is None:
            self._record_failure(status, "Failed to parse response")
            logger.warning(
                "sources.parse_failed",
                source=source_id,
                preview=response.text[:200],
            )
            await self._log_error(
                SystemErrorType.PARSING,
                f"Failed to parse response from {config.name}",
                source=source_id,
                details=response.text[:200],
            )
            return []

        elapsed_ms = (time.perf_counter() - start) * 1000
        sources_used = response.citations or envelope.sources_used or [config.domain]

        # A source repeating a seat keeps its last entry.
        by_number = {entry.number: entry for entry in envelope.results}
        fetched_at = self._clock()
        reports = [
            SourceReport(
                source_id=config.id,
                source_name=config.name,
                tier=config.tier,
                constituency=entry,
                confidence=envelope.confidence,
                sources_used=sources_used,
                fetched_at=fetched_at,
            )
            for entry in by_number.values()
        ]

        status.success_count += 1
        status.last_success_time = fetched_at
        status.constituencies_reported = len(reports)
        status.avg_response_time_ms = (
            status.avg_response_time_ms * LATENCY_DECAY + elapsed_ms * LATENCY_SAMPLE_WEIGHT
            if status.avg_response_time_ms > 0
            else elapsed_ms
        )
        status.last_error = None

        logger.info(
            "sources.fetch_complete",
            source=source_id,
            provider=response.provider,
            constituencies=len(reports),
            dropped=envelope.dropped,
            time_ms=round(elapsed_ms, 1),
        )
        return reports

    @staticmethod
    def _record_failure(status: SourceStatus, message: str) -> None:
        status.error_count += 1
        status.last_error = message

    async def _log_error(
        self,
        error_type: SystemErrorType,
        message: str,
        *,
        source: str,
        details: str,
    ) -> None:
        if self._error_log is not None:
            await self._error_log.log_error(error_type, message, source=source, details=details)
