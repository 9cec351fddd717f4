"""Tests for summary aggregation and referendum tallies."""

from __future__ import annotations

import pytest

from src.data.constituencies import build_constituencies
from src.data.parties import PARTIES
from src.models.election import Candidate, CollectionPhase, ConstituencyStatus
from src.services.store import REFERENDUM_DOC, SUMMARY_DOC, InMemoryElectionStore
from src.services.summary import SummaryAggregator, compute_referendum, compute_summary


def _records():
    records = build_constituencies()
    records[0] = records[0].model_copy(
        update={
            "status": ConstituencyStatus.DECLARED,
            "candidates": [
                Candidate(name="A", party="bnp", votes=60_000, is_winner=True),
                Candidate(name="B", party="jamaat", votes=40_000),
            ],
            "total_votes": 100_000,
            "turnout_percent": 50.0,
        }
    )
    records[1] = records[1].model_copy(
        update={
            "status": ConstituencyStatus.COUNTING,
            "candidates": [
                Candidate(name="C", party="jamaat", votes=30_000, is_leading=True),
                Candidate(name="D", party="mystery-party", votes=10_000),
            ],
            "total_votes": 41_000,
            "turnout_percent": 61.0,
        }
    )
    records[2] = records[2].model_copy(
        update={
            "status": ConstituencyStatus.COUNTING,
            "candidates": [Candidate(name="E", party="bnp", votes=5_000, is_leading=True)],
            "total_votes": 5_000,
        }
    )
    return records


class TestComputeSummary:
    def test_counts(self):
        summary = compute_summary(_records(), phase=CollectionPhase.EARLY_RESULTS, now=42)
        parties = {p.id: p for p in summary.parties}

        assert summary.total_seats == 300
        assert summary.seats_declared == 1
        assert summary.seats_remaining == 299
        assert summary.total_votes_counted == 146_000
        assert summary.avg_turnout == 56
        assert summary.last_updated == 42
        assert summary.phase == CollectionPhase.EARLY_RESULTS

        assert parties["bnp"].seats_won == 1
        assert parties["bnp"].seats_leading == 1
        assert parties["jamaat"].seats_won == 0
        assert parties["jamaat"].seats_leading == 1
        assert parties["bnp"].total_votes == 65_000
        assert parties["others"].total_votes == 10_000

    def test_leading_party(self):
        assert compute_summary(_records()).leading_party == "bnp"

    def test_tie_goes_to_catalogue_order(self):
        assert compute_summary(build_constituencies()).leading_party == PARTIES[0].id

    def test_every_party_listed(self):
        summary = compute_summary(build_constituencies())
        assert [p.id for p in summary.parties] == [p.id for p in PARTIES]
        assert summary.seats_declared == 0
        assert summary.avg_turnout == 0

    def test_deterministic(self):
        assert compute_summary(_records(), now=1) == compute_summary(_records(), now=1)

    def test_won_plus_leading_never_exceeds_seats(self):
        summary = compute_summary(_records())
        assert sum(p.seats_won + p.seats_leading for p in summary.parties) <= summary.total_seats
        assert sum(p.seats_won for p in summary.parties) <= summary.seats_declared

    def test_fully_declared_set_accounts_for_every_seat(self):
        records = [
            record.model_copy(
                update={
                    "status": ConstituencyStatus.RESULT_CONFIRMED if i % 2 else ConstituencyStatus.DECLARED,
                    "candidates": [
                        Candidate(name="W", party=PARTIES[i % len(PARTIES)].id, votes=1_000, is_winner=True),
                        Candidate(name="R", party=PARTIES[(i + 1) % len(PARTIES)].id, votes=900),
                    ],
                    "total_votes": 1_900,
                }
            )
            for i, record in enumerate(build_constituencies())
        ]

        summary = compute_summary(records)

        assert summary.seats_declared == len(records) == 300
        assert sum(p.seats_won + p.seats_leading for p in summary.parties) == summary.seats_declared
        assert all(p.seats_leading == 0 for p in summary.parties)


class TestReferendum:
    def test_percentages(self):
        result = compute_referendum(yes_votes=2, no_votes=1, total_eligible=10, now=5)
        assert result.total_votes_cast == 3
        assert result.percent_yes == 66.67
        assert result.percent_no == 33.33
        assert result.last_updated == 5

    def test_no_votes(self):
        result = compute_referendum(yes_votes=0, no_votes=0)
        assert result.percent_yes == 0.0
        assert result.percent_no == 0.0


class TestSummaryAggregator:
    @pytest.mark.asyncio
    async def test_refresh_writes_singleton(self):
        store = InMemoryElectionStore()
        await store.batch_put_constituencies(_records())
        aggregator = SummaryAggregator(store, clock=lambda: 7)

        summary = await aggregator.refresh(CollectionPhase.PEAK_RESULTS)

        stored = await store.get_singleton(SUMMARY_DOC)
        assert stored["seatsDeclared"] == summary.seats_declared == 1
        assert stored["phase"] == "peak_results"
        assert stored["lastUpdated"] == 7

    @pytest.mark.asyncio
    async def test_publish_referendum(self):
        store = InMemoryElectionStore()
        aggregator = SummaryAggregator(store, clock=lambda: 7)

        result = await aggregator.publish_referendum(yes_votes=600, no_votes=400, total_centers=10, centers_reported=4)

        assert result.percent_yes == 60.0
        assert result.trust_score == 100
        stored = await store.get_singleton(REFERENDUM_DOC)
        assert stored["totalVotesCast"] == 1000
        assert stored["centersReported"] == 4
