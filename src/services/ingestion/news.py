"""Automatic election news collection.

Asks the extraction collaborator for a ``{"news": [...]}`` envelope,
drops headlines already published (normalised-headline hashes, bounded
memory), and appends the rest to the news feed.  Only items the
collaborator marks as high importance are auto-verified.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Final

import structlog

from src.models.election import NewsCategory, NewsItem, now_ms
from src.models.reconciliation import SystemErrorType
from src.services.error_log import classify_exception
from src.services.ingestion.parsing import parse_json_object

if TYPE_CHECKING:
    from src.services.error_log import SystemErrorLog
    from src.services.ingestion.extraction import ExtractionClient
    from src.services.store import ElectionStore

logger = structlog.get_logger(__name__)

MAX_SEEN_HEADLINES: Final[int] = 500
SEEN_EVICTION_BATCH: Final[int] = 100
DEFAULT_COOLDOWN_SECONDS: Final[float] = 120.0
_DEFAULT_NEWS_SOURCE: Final[str] = "Auto-collected"

NEWS_INSTRUCTION: Final[str] = """\
You are a news aggregator for the Bangladesh 13th National Parliament \
Election held on February 12, 2026.

Search for the LATEST election news, updates, and breaking developments \
from major Bangladesh and international news outlets including \
bdnews24.com, The Daily Star, Prothom Alo, Dhaka Tribune, NDTV, India \
Today, Al Jazeera, and BBC.

Focus on:
- Breaking results declarations
- Voter turnout updates
- Election irregularities or incidents
- Major party reactions and statements
- Referendum updates
- International reactions
- Analysis and projections

Only include verified news from reliable sources. Maximum 10 items.\
"""

NEWS_SCHEMA_HINT: Final[str] = """\
{
  "news": [
    {
      "headline": "<headline>",
      "summary": "<2-3 sentence summary>",
      "source": "<source name>",
      "sourceUrl": "<url>",
      "category": "breaking" | "result" | "analysis" | "incident" | "general",
      "importance": "high" | "medium" | "low"
    }
  ]
}"""

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalise_headline(headline: str) -> str:
    text = _NON_ALNUM.sub("", headline.lower())
    return _WHITESPACE.sub(" ", text).strip()


def headline_hash(headline: str) -> str:
    return hashlib.sha1(normalise_headline(headline).encode()).hexdigest()[:16]  # noqa: S324


def validate_category(value: object) -> NewsCategory:
    if isinstance(value, str):
        try:
            return NewsCategory(value.strip().lower())
        except ValueError:
            pass
    return NewsCategory.GENERAL


@dataclass(slots=True)
class NewsCollectionResult:
    success: bool
    items_added: int = 0
    items_skipped: int = 0
    message: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class NewsCollector:
    """Collects and deduplicates auto-generated news items.

    Parameters
    ----------
    client:
        Extraction backend asked for the news envelope.
    store:
        Document store the accepted items are appended to.
    cooldown_seconds:
        Minimum gap between two collections.
    error_log:
        Optional system error log for failed collections.
    clock:
        Epoch-millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        client: ExtractionClient | None,
        store: ElectionStore,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        error_log: SystemErrorLog | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._client = client
        self._store = store
        self._cooldown_ms = int(cooldown_seconds * 1000)
        self._error_log = error_log
        self._clock = clock
        self._seen: dict[str, None] = {}
        self._enabled = True
        self._last_fetch_time = 0
        self._total_collected = 0

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def total_collected(self) -> int:
        return self._total_collected

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("news.auto_toggled", enabled=enabled)

    def stats(self) -> dict:
        return {
            "autoEnabled": self._enabled,
            "lastFetchTime": self._last_fetch_time,
            "totalAutoFetched": self._total_collected,
            "seenHeadlines": len(self._seen),
            "cooldownMs": self._cooldown_ms,
        }

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    def is_duplicate(self, headline: str) -> bool:
        return headline_hash(headline) in self._seen

    def mark_seen(self, headline: str) -> None:
        self._seen[headline_hash(headline)] = None
        if len(self._seen) > MAX_SEEN_HEADLINES:
            for key in list(self._seen)[:SEEN_EVICTION_BATCH]:
                del self._seen[key]

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    async def collect(self) -> NewsCollectionResult:
        if not self._enabled:
            return NewsCollectionResult(success=False, message="Auto-news disabled")
        if self._client is None:
            return NewsCollectionResult(success=False, message="No extraction backend configured")

        now = self._clock()
        elapsed = now - self._last_fetch_time
        if self._last_fetch_time and elapsed < self._cooldown_ms:
            remaining = -(-(self._cooldown_ms - elapsed) // 1000)
            return NewsCollectionResult(success=False, message=f"Cooldown: {remaining}s remaining")
        self._last_fetch_time = now

        try:
            response = await self._client.extract(NEWS_INSTRUCTION, NEWS_SCHEMA_HINT)
        except Exception as exc:
            logger.error("news.collect_failed", error=str(exc), exc_info=True)
            if self._error_log is not None:
                await self._error_log.log_error(
                    classify_exception(exc),
                    "News collection failed",
                    source="news",
                    details=str(exc),
                )
            return NewsCollectionResult(success=False, message=f"Error: {exc}")

        payload = parse_json_object(response.text)
        raw_items = payload.get("news") if payload is not None else None
        if not isinstance(raw_items, list):
            logger.warning("news.parse_failed", preview=response.text[:200])
            if self._error_log is not None:
                await self._error_log.log_error(
                    SystemErrorType.PARSING,
                    "Failed to parse news response",
                    source="news",
                    details=response.text[:200],
                )
            return NewsCollectionResult(success=True, message="No new news items found")

        added = 0
        skipped = 0
        for raw in raw_items:
            headline = raw.get("headline") if isinstance(raw, dict) else None
            if not isinstance(headline, str) or not headline.strip():
                skipped += 1
                continue
            if self.is_duplicate(headline):
                skipped += 1
                continue
            self.mark_seen(headline)

            item = NewsItem(
                headline=headline.strip(),
                summary=str(raw.get("summary") or ""),
                source=str(raw.get("source") or _DEFAULT_NEWS_SOURCE),
                source_url=str(raw.get("sourceUrl") or ""),
                timestamp=self._clock(),
                category=validate_category(raw.get("category")),
                is_verified=raw.get("importance") == "high",
            )
            await self._store.add_news(item)
            added += 1
            self._total_collected += 1

        logger.info("news.collected", added=added, skipped=skipped)
        return NewsCollectionResult(
            success=True,
            items_added=added,
            items_skipped=skipped,
            message=f"Collected {added} news items",
        )
