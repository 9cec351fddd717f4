"""Tests for pairwise conflict detection and consensus merging."""

from __future__ import annotations

import pytest

from src.models.election import Candidate
from src.models.reconciliation import ConflictSeverity, ConflictType, ReportedConstituency, SourceReport
from src.services.reconciliation.conflicts import (
    claimed_leader,
    detect_all_conflicts,
    detect_conflicts,
    merge_candidate_votes,
    merge_total_votes,
    tier_weight,
    vote_mismatch_severity,
)


def _report(
    source_id: str,
    tier: int,
    candidates: list[tuple[str, str, int]],
    *,
    status: str = "counting",
    total_votes: int = 0,
) -> SourceReport:
    return SourceReport(
        source_id=source_id,
        source_name=source_id,
        tier=tier,
        constituency=ReportedConstituency(
            number=42,
            name="Cumilla-5",
            status=status,
            total_votes=total_votes,
            candidates=[Candidate(name=name, party=party, votes=votes) for name, party, votes in candidates],
        ),
    )


_BASE = [("Abdul Karim", "bnp", 30_000), ("Rafiqul Islam", "jamaat", 20_000)]


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------


class TestVoteMismatchSeverity:
    @pytest.mark.parametrize(
        ("percent", "expected"),
        [
            (0.0, None),
            (5.0, None),
            (5.1, ConflictSeverity.MEDIUM),
            (10.0, ConflictSeverity.MEDIUM),
            (10.5, ConflictSeverity.HIGH),
            (20.0, ConflictSeverity.HIGH),
            (20.5, ConflictSeverity.CRITICAL),
        ],
    )
    def test_bands(self, percent, expected):
        assert vote_mismatch_severity(percent) == expected

    def test_monotonic(self):
        ranks = [
            (vote_mismatch_severity(p / 2).rank if vote_mismatch_severity(p / 2) else 0)
            for p in range(0, 100)
        ]
        assert ranks == sorted(ranks)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class TestDetectConflicts:
    def test_agreeing_reports_have_no_conflicts(self):
        a = _report("a", 2, _BASE)
        b = _report("b", 2, [("Abdul Karim", "bnp", 30_500), ("Rafiqul Islam", "jamaat", 20_200)])
        assert detect_conflicts(a, b) == []

    def test_vote_mismatch(self):
        a = _report("a", 2, _BASE, total_votes=100_000)
        b = _report("b", 2, _BASE, total_votes=88_000)
        conflicts = detect_conflicts(a, b)
        assert [c.type for c in conflicts] == [ConflictType.VOTE_MISMATCH]
        assert conflicts[0].severity == ConflictSeverity.HIGH
        assert conflicts[0].auto_resolvable is True

    def test_winner_disagreement_is_critical(self):
        a = _report("a", 2, _BASE, total_votes=50_000)
        b = _report(
            "b",
            2,
            [("Abdul Karim", "bnp", 19_000), ("Rafiqul Islam", "jamaat", 31_000)],
            total_votes=50_000,
        )
        conflicts = detect_conflicts(a, b)
        assert [c.type for c in conflicts] == [ConflictType.WINNER_DISAGREEMENT]
        assert conflicts[0].severity == ConflictSeverity.CRITICAL
        assert conflicts[0].auto_resolvable is False

    def test_status_gap_of_two(self):
        a = _report("a", 2, [], status="not_started")
        b = _report("b", 2, [], status="declared")
        conflicts = detect_conflicts(a, b)
        assert [c.type for c in conflicts] == [ConflictType.STATUS_REGRESSION]
        assert conflicts[0].severity == ConflictSeverity.HIGH

    def test_adjacent_statuses_are_fine(self):
        a = _report("a", 2, _BASE, status="counting")
        b = _report("b", 2, _BASE, status="declared")
        assert all(c.type != ConflictType.STATUS_REGRESSION for c in detect_conflicts(a, b))

    def test_candidate_name_mismatch(self):
        a = _report("a", 2, _BASE)
        b = _report("b", 2, [("Mirza Fakhrul", "bnp", 30_000), ("Rafiqul Islam", "jamaat", 20_000)])
        conflicts = detect_conflicts(a, b)
        assert [c.type for c in conflicts] == [ConflictType.CANDIDATE_NAME_MISMATCH]
        assert conflicts[0].severity == ConflictSeverity.LOW

    def test_honorifics_do_not_count_as_mismatch(self):
        a = _report("a", 2, [("Md. Abdul Karim", "bnp", 30_000)])
        b = _report("b", 2, [("Abdul Karim", "bnp", 30_000)])
        assert detect_conflicts(a, b) == []

    def test_independents_are_not_name_checked(self):
        a = _report("a", 2, [("Abdul Karim", "independent", 30_000)])
        b = _report("b", 2, [("Someone Else", "independent", 30_000)])
        assert detect_conflicts(a, b) == []

    def test_symmetric(self):
        a = _report("a", 1, _BASE, total_votes=100_000)
        b = _report(
            "b",
            3,
            [("Mirza Fakhrul", "bnp", 10_000), ("Rafiqul Islam", "jamaat", 60_000)],
            status="declared",
            total_votes=70_000,
        )
        forward = {(c.type, c.severity) for c in detect_conflicts(a, b)}
        backward = {(c.type, c.severity) for c in detect_conflicts(b, a)}
        assert forward == backward
        assert len(forward) == 3

    def test_all_pairs(self):
        a = _report("a", 2, _BASE, total_votes=100_000)
        b = _report("b", 2, _BASE, total_votes=100_000)
        c = _report("c", 3, _BASE, total_votes=50_000)
        conflicts = detect_all_conflicts([a, b, c])
        assert len(conflicts) == 2
        assert {(x.report_a.source_id, x.report_b.source_id) for x in conflicts} == {("a", "c"), ("b", "c")}


class TestClaimedLeader:
    def test_flag_wins_over_votes(self):
        data = ReportedConstituency(
            number=1,
            candidates=[
                Candidate(name="A", party="bnp", votes=100),
                Candidate(name="B", party="jamaat", votes=50, is_leading=True),
            ],
        )
        assert claimed_leader(data).party == "jamaat"

    def test_falls_back_to_top_votes(self):
        data = ReportedConstituency(number=1, candidates=[Candidate(name="A", party="bnp", votes=100)])
        assert claimed_leader(data).party == "bnp"

    def test_no_votes_no_leader(self):
        data = ReportedConstituency(number=1, candidates=[Candidate(name="A", party="bnp")])
        assert claimed_leader(data) is None


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class TestMerge:
    def test_tier_weights(self):
        assert tier_weight(1) == 1.0
        assert tier_weight(2) == 0.8
        assert tier_weight(3) == 0.5
        assert tier_weight(9) == 0.5

    def test_equal_tiers_average(self):
        a = _report("a", 2, _BASE, total_votes=50_000)
        b = _report("b", 2, [("Abdul Karim", "bnp", 31_000), ("Rafiqul Islam", "jamaat", 20_400)], total_votes=51_400)
        merged = {c.party: c.votes for c in merge_candidate_votes([a, b])}
        assert merged == {"bnp": 30_500, "jamaat": 20_200}
        assert merge_total_votes([a, b]) == 50_700

    def test_merged_votes_within_reported_range(self):
        a = _report("a", 1, [("Abdul Karim", "bnp", 30_000)])
        b = _report("b", 3, [("Abdul Karim", "bnp", 33_000)])
        votes = merge_candidate_votes([a, b])[0].votes
        assert 30_000 <= votes <= 33_000
        assert votes == 31_000

    def test_structural_fields_from_most_trusted(self):
        a = _report("a", 3, [("Karim", "bnp", 30_000)])
        b = _report("b", 1, [("Abdul Karim", "bnp", 30_000)])
        assert merge_candidate_votes([a, b])[0].name == "Abdul Karim"

    def test_reports_without_total_are_skipped(self):
        a = SourceReport(source_id="a", source_name="a", tier=2, constituency=ReportedConstituency(number=42))
        b = _report("b", 2, _BASE, total_votes=50_000)
        assert merge_total_votes([a, b]) == 50_000
        assert merge_total_votes([a]) == 0
