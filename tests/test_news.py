"""Tests for the auto-news collector: dedup, cooldown and categorisation."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from src.models.election import NewsCategory
from src.models.reconciliation import SystemErrorType
from src.services.error_log import SystemErrorLog
from src.services.ingestion.extraction import ExtractionResponse
from src.services.ingestion.news import (
    MAX_SEEN_HEADLINES,
    SEEN_EVICTION_BATCH,
    NewsCollector,
    headline_hash,
    normalise_headline,
    validate_category,
)
from src.services.store import InMemoryElectionStore


class _Clock:
    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _client(items: list[dict] | str) -> AsyncMock:
    text = items if isinstance(items, str) else "Latest:\n" + json.dumps({"news": items})
    client = AsyncMock()
    client.extract = AsyncMock(return_value=ExtractionResponse(text=text))
    return client


_ITEMS = [
    {
        "headline": "BNP leads in early counting",
        "summary": "Early counts show BNP ahead.",
        "source": "The Daily Star",
        "sourceUrl": "https://thedailystar.net/x",
        "category": "result",
        "importance": "high",
    },
    {"headline": "Turnout crosses 40 percent", "category": "Breaking", "importance": "medium"},
    {"headline": "Clash reported in Cumilla", "category": "rumour"},
]


class TestHeadlines:
    def test_normalisation(self):
        assert normalise_headline("  BNP   leads -- in Dhaka!! ") == "bnp leads in dhaka"

    def test_hash_ignores_case_and_punctuation(self):
        assert headline_hash("BNP leads in Dhaka!") == headline_hash("bnp leads in dhaka")
        assert len(headline_hash("x")) == 16

    def test_category_fallback(self):
        assert validate_category("Incident") == NewsCategory.INCIDENT
        assert validate_category("rumour") == NewsCategory.GENERAL
        assert validate_category(None) == NewsCategory.GENERAL


class TestCollect:
    @pytest.mark.asyncio
    async def test_collects_items(self):
        store = InMemoryElectionStore()
        collector = NewsCollector(_client(_ITEMS), store, clock=_Clock())

        result = await collector.collect()

        assert result.success is True
        assert result.items_added == 3
        assert result.message == "Collected 3 news items"
        assert collector.total_collected == 3

        news = {n.headline: n for n in await store.recent_news()}
        first = news["BNP leads in early counting"]
        assert first.is_verified is True
        assert first.category == NewsCategory.RESULT
        assert first.source_url == "https://thedailystar.net/x"
        assert news["Turnout crosses 40 percent"].category == NewsCategory.BREAKING
        assert news["Turnout crosses 40 percent"].is_verified is False
        assert news["Turnout crosses 40 percent"].source == "Auto-collected"
        assert news["Clash reported in Cumilla"].category == NewsCategory.GENERAL

    @pytest.mark.asyncio
    async def test_duplicates_are_skipped(self):
        store = InMemoryElectionStore()
        clock = _Clock()
        collector = NewsCollector(_client(_ITEMS), store, cooldown_seconds=0, clock=clock)

        await collector.collect()
        clock.now += 1
        again = await collector.collect()

        assert again.items_added == 0
        assert again.items_skipped == 3
        assert len(await store.recent_news()) == 3

    @pytest.mark.asyncio
    async def test_items_without_headline_are_skipped(self):
        collector = NewsCollector(_client([{"summary": "no headline"}, "junk"]), InMemoryElectionStore())
        result = await collector.collect()
        assert result.items_added == 0
        assert result.items_skipped == 2

    @pytest.mark.asyncio
    async def test_cooldown(self):
        clock = _Clock()
        client = _client(_ITEMS)
        collector = NewsCollector(client, InMemoryElectionStore(), cooldown_seconds=120, clock=clock)

        await collector.collect()
        clock.now += 30_500
        blocked = await collector.collect()

        assert blocked.success is False
        assert blocked.message == "Cooldown: 90s remaining"
        assert client.extract.await_count == 1

        clock.now += 90_000
        assert (await collector.collect()).success is True
        assert client.extract.await_count == 2

    @pytest.mark.asyncio
    async def test_disabled(self):
        client = _client(_ITEMS)
        collector = NewsCollector(client, InMemoryElectionStore())
        collector.set_enabled(False)

        result = await collector.collect()

        assert result.success is False
        assert result.message == "Auto-news disabled"
        client.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_backend(self):
        result = await NewsCollector(None, InMemoryElectionStore()).collect()
        assert result.success is False
        assert result.message == "No extraction backend configured"

    @pytest.mark.asyncio
    async def test_backend_failure(self):
        store = InMemoryElectionStore()
        client = AsyncMock()
        client.extract = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        collector = NewsCollector(client, store, error_log=SystemErrorLog(store))

        result = await collector.collect()

        assert result.success is False
        assert result.message == "Error: quota exceeded"
        errors = await store.list_system_errors()
        assert errors[0].type == SystemErrorType.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_unparseable_response(self):
        collector = NewsCollector(_client("nothing to report"), InMemoryElectionStore())
        result = await collector.collect()
        assert result.success is True
        assert result.items_added == 0
        assert result.message == "No new news items found"


class TestSeenSet:
    def test_eviction(self):
        collector = NewsCollector(None, InMemoryElectionStore())
        for i in range(MAX_SEEN_HEADLINES + 1):
            collector.mark_seen(f"headline number {i}")

        assert collector.stats()["seenHeadlines"] == MAX_SEEN_HEADLINES + 1 - SEEN_EVICTION_BATCH
        assert not collector.is_duplicate("headline number 0")
        assert collector.is_duplicate(f"headline number {MAX_SEEN_HEADLINES}")
