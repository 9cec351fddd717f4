"""Tests for data models: enums, constituency, report and catalogue models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.data.constituencies import TOTAL_SEATS, build_constituencies, constituency_slug
from src.data.parties import NON_UNIQUE_PARTY_IDS, PARTIES, canonical_party_id
from src.models.election import (
    Candidate,
    CollectionPhase,
    ConstituencyRecord,
    ConstituencyStatus,
    SystemStatus,
    coerce_count,
    status_rank,
)
from src.models.reconciliation import (
    ConfidenceLevel,
    ConflictSeverity,
    ReportedConstituency,
    SourceReport,
)


# -----------------------------------------------------------------------
# Enum tests
# -----------------------------------------------------------------------


class TestConstituencyStatus:
    def test_values(self) -> None:
        expected = {"not_started", "counting", "declared", "result_confirmed", "postponed"}
        assert {e.value for e in ConstituencyStatus} == expected

    def test_terminal(self) -> None:
        assert ConstituencyStatus.DECLARED.is_terminal
        assert ConstituencyStatus.RESULT_CONFIRMED.is_terminal
        assert not ConstituencyStatus.COUNTING.is_terminal
        assert not ConstituencyStatus.POSTPONED.is_terminal

    def test_rank(self) -> None:
        assert status_rank("not_started") == 0
        assert status_rank("result_confirmed") == 3
        assert status_rank("postponed") is None, "postponed sits outside the progression"
        assert status_rank(None) is None


class TestCollectionPhase:
    def test_values(self) -> None:
        assert [p.value for p in CollectionPhase] == [
            "pre_voting",
            "voting",
            "early_results",
            "peak_results",
            "late_results",
            "cleanup",
            "completed",
        ]


class TestConfidenceLevel:
    def test_parse(self) -> None:
        assert ConfidenceLevel.parse(" HIGH ") == ConfidenceLevel.HIGH
        assert ConfidenceLevel.parse("certain") == ConfidenceLevel.UNKNOWN
        assert ConfidenceLevel.parse(3) == ConfidenceLevel.UNKNOWN


class TestConflictSeverity:
    def test_ordering(self) -> None:
        ranks = [s.rank for s in (ConflictSeverity.LOW, ConflictSeverity.MEDIUM, ConflictSeverity.HIGH, ConflictSeverity.CRITICAL)]
        assert ranks == sorted(ranks)


# -----------------------------------------------------------------------
# Constituency models
# -----------------------------------------------------------------------


class TestCandidate:
    def test_party_is_normalised(self) -> None:
        assert Candidate(name="A", party=" BNP ").party == "bnp"
        assert Candidate(name="A", party="").party == "others"
        assert Candidate(name="A", party=None).party == "others"

    def test_votes_coerced(self) -> None:
        assert Candidate(name="A", votes="12,345").votes == 12_345
        assert Candidate(name="A", votes="n/a").votes == 0

    def test_camel_case_aliases(self) -> None:
        candidate = Candidate.model_validate({"name": "A", "party": "bnp", "isWinner": True})
        assert candidate.is_winner is True
        assert candidate.to_document()["isWinner"] is True


class TestCoerceCount:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (5, 5),
            ("1,000", 1000),
            ("12.0", 12),
            (None, 0),
            ("unknown", 0),
            (-3, 0),
            (True, 0),
            ("1e999", 0),
            ("inf", 0),
            ("nan", 0),
            (10**400, 0),
        ],
    )
    def test_values(self, value, expected) -> None:
        assert coerce_count(value) == expected


class TestReportedConstituency:
    def test_number_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ReportedConstituency(number=0)
        with pytest.raises(ValidationError):
            ReportedConstituency(number=301)

    def test_number_from_string(self) -> None:
        assert ReportedConstituency(number="42").number == 42

    def test_total_filled_from_candidates(self) -> None:
        report = ReportedConstituency(
            number=1,
            candidates=[Candidate(name="A", votes=10), Candidate(name="B", votes=5)],
        )
        assert report.total_votes == 15

    def test_explicit_total_kept(self) -> None:
        report = ReportedConstituency(number=1, total_votes=100, candidates=[Candidate(name="A", votes=10)])
        assert report.total_votes == 100

    def test_lenient_fields(self) -> None:
        report = ReportedConstituency.model_validate(
            {"number": 1, "name": None, "status": "Declared", "candidates": [{"name": "A"}, "junk", 4]}
        )
        assert report.name == ""
        assert report.status == ConstituencyStatus.DECLARED
        assert len(report.candidates) == 1

    def test_leader(self) -> None:
        report = ReportedConstituency(
            number=1,
            candidates=[Candidate(name="A", votes=10), Candidate(name="B", votes=5, is_leading=True)],
        )
        assert report.leader().name == "B"


class TestSourceReport:
    def test_tier_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SourceReport(source_id="x", source_name="x", tier=5, constituency=ReportedConstituency(number=1))

    def test_number(self) -> None:
        report = SourceReport(source_id="x", source_name="x", tier=2, constituency=ReportedConstituency(number=9))
        assert report.number == 9
        assert report.confidence == ConfidenceLevel.UNKNOWN


class TestConstituencyRecord:
    def test_trust_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ConstituencyRecord(id="x", number=1, name="x", trust_score=101)

    def test_document_is_camel_case(self) -> None:
        doc = ConstituencyRecord(id="x", number=1, name="x").to_document()
        assert {"totalVotes", "totalRegistered", "turnoutPercent", "winMargin", "lastUpdated", "trustScore"} <= doc.keys()
        assert doc["status"] == "not_started"

    def test_status_defaults(self) -> None:
        status = SystemStatus().to_document()
        assert status["seatsTotal"] == 300
        assert status["collectionPhase"] == "pre_voting"


# -----------------------------------------------------------------------
# Catalogues
# -----------------------------------------------------------------------


class TestConstituencyCatalogue:
    def test_three_hundred_unique_seats(self) -> None:
        records = build_constituencies()
        assert len(records) == TOTAL_SEATS == 300
        assert [r.number for r in records] == list(range(1, 301))
        assert len({r.id for r in records}) == 300

    def test_postponed_seat(self) -> None:
        postponed = [r.name for r in build_constituencies() if r.status == ConstituencyStatus.POSTPONED]
        assert postponed == ["Sherpur-3"]

    def test_registered_voters_are_stable(self) -> None:
        first = {r.id: r.total_registered for r in build_constituencies()}
        second = {r.id: r.total_registered for r in build_constituencies()}
        assert first == second
        assert all(340_000 <= v <= 511_000 for v in first.values())

    def test_slug(self) -> None:
        assert constituency_slug("Cox's Bazar-1") == "cox-s-bazar-1"
        assert constituency_slug("Dhaka-10") == "dhaka-10"


class TestParties:
    def test_catalogue(self) -> None:
        ids = [p.id for p in PARTIES]
        assert ids[:2] == ["bnp", "jamaat"]
        assert len(ids) == len(set(ids)) == 11
        assert NON_UNIQUE_PARTY_IDS <= set(ids)

    def test_canonical_party_id(self) -> None:
        assert canonical_party_id("ncp") == "ncp"
        assert canonical_party_id("awami-league") == "others"
