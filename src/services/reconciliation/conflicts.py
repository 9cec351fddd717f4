"""Pairwise conflict detection and consensus merging.

Both operations are pure: they look only at the reports handed to them.
Detection is symmetric -- ``detect_conflicts(a, b)`` and
``detect_conflicts(b, a)`` yield the same conflict types and severities.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.data.parties import NON_UNIQUE_PARTY_IDS
from src.models.election import Candidate, status_rank
from src.models.reconciliation import ConflictSeverity, ConflictType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.models.reconciliation import ReportedConstituency, SourceReport

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VOTE_TOLERANCE_PERCENT = 5.0
_HIGH_SEVERITY_PERCENT = 10.0
_CRITICAL_SEVERITY_PERCENT = 20.0

TIER_WEIGHTS: dict[int, float] = {
    1: 1.0,  # official registrar
    2: 0.8,  # major national press
    3: 0.5,  # international press
    4: 1.0,  # manual / admin entry
}
_DEFAULT_TIER_WEIGHT = 0.5

# Status steps two reports may differ by before it counts as a regression.
_MAX_STATUS_GAP = 1

_NAME_NOISE = frozenset({"md", "mohammad", "muhammad", "mohammed", "sheikh", "dr", "adv", "advocate", "alhaj"})


def tier_weight(tier: int) -> float:
    """Merge weight for a source tier."""
    return TIER_WEIGHTS.get(tier, _DEFAULT_TIER_WEIGHT)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectedConflict:
    """A conflict found between two reports, before it is persisted."""

    type: ConflictType
    severity: ConflictSeverity
    description: str
    report_a: SourceReport
    report_b: SourceReport

    @property
    def auto_resolvable(self) -> bool:
        return self.type in _AUTO_RESOLVABLE and self.severity != ConflictSeverity.CRITICAL


_AUTO_RESOLVABLE = frozenset({ConflictType.VOTE_MISMATCH, ConflictType.CANDIDATE_NAME_MISMATCH})


def vote_mismatch_severity(percent_diff: float) -> ConflictSeverity | None:
    """Severity of a relative vote gap, or ``None`` when within tolerance."""
    if percent_diff <= VOTE_TOLERANCE_PERCENT:
        return None
    if percent_diff > _CRITICAL_SEVERITY_PERCENT:
        return ConflictSeverity.CRITICAL
    if percent_diff > _HIGH_SEVERITY_PERCENT:
        return ConflictSeverity.HIGH
    return ConflictSeverity.MEDIUM


def claimed_leader(data: ReportedConstituency) -> Candidate | None:
    """The candidate a report puts ahead.

    An explicit winner/leading flag wins; otherwise the top vote-getter
    is used when anyone has votes at all.
    """
    flagged = data.leader()
    if flagged is not None:
        return flagged
    with_votes = [c for c in data.candidates if c.votes > 0]
    if not with_votes:
        return None
    return max(with_votes, key=lambda c: c.votes)


def detect_conflicts(a: SourceReport, b: SourceReport) -> list[DetectedConflict]:
    """Compare two reports for the same seat.

    One pair may produce several conflicts (for example a vote mismatch
    and a winner disagreement at once).
    """
    conflicts: list[DetectedConflict] = []
    da, db = a.constituency, b.constituency

    # -- vote totals ---------------------------------------------------------
    if da.total_votes > 0 and db.total_votes > 0:
        diff = abs(da.total_votes - db.total_votes)
        percent = diff / max(da.total_votes, db.total_votes) * 100
        severity = vote_mismatch_severity(percent)
        if severity is not None:
            conflicts.append(
                DetectedConflict(
                    type=ConflictType.VOTE_MISMATCH,
                    severity=severity,
                    description=(
                        f"Vote totals differ by {percent:.1f}% "
                        f"({da.total_votes:,} vs {db.total_votes:,})"
                    ),
                    report_a=a,
                    report_b=b,
                )
            )

    # -- winner / leader -----------------------------------------------------
    leader_a, leader_b = claimed_leader(da), claimed_leader(db)
    if leader_a is not None and leader_b is not None and leader_a.party != leader_b.party:
        conflicts.append(
            DetectedConflict(
                type=ConflictType.WINNER_DISAGREEMENT,
                severity=ConflictSeverity.CRITICAL,
                description=(
                    f"{a.source_name} has {leader_a.name} ({leader_a.party}) ahead, "
                    f"{b.source_name} has {leader_b.name} ({leader_b.party})"
                ),
                report_a=a,
                report_b=b,
            )
        )

    # -- status progression --------------------------------------------------
    rank_a, rank_b = status_rank(da.status), status_rank(db.status)
    if rank_a is not None and rank_b is not None and abs(rank_a - rank_b) > _MAX_STATUS_GAP:
        conflicts.append(
            DetectedConflict(
                type=ConflictType.STATUS_REGRESSION,
                severity=ConflictSeverity.HIGH,
                description=f"Status {da.status} vs {db.status}",
                report_a=a,
                report_b=b,
            )
        )

    # -- candidate names -----------------------------------------------------
    mismatched = _mismatched_candidate_parties(da, db)
    if mismatched:
        conflicts.append(
            DetectedConflict(
                type=ConflictType.CANDIDATE_NAME_MISMATCH,
                severity=ConflictSeverity.LOW,
                description=f"Different candidate names for: {', '.join(mismatched)}",
                report_a=a,
                report_b=b,
            )
        )

    return conflicts


def detect_all_conflicts(reports: Sequence[SourceReport]) -> list[DetectedConflict]:
    """Run :func:`detect_conflicts` over every unordered pair."""
    conflicts: list[DetectedConflict] = []
    for i, a in enumerate(reports):
        for b in reports[i + 1 :]:
            conflicts.extend(detect_conflicts(a, b))
    return conflicts


def _name_tokens(name: str) -> set[str]:
    tokens = set()
    for token in name.lower().replace(".", " ").split():
        token = token.strip("()[]{},;:-\"'")
        if token and token not in _NAME_NOISE and len(token) > 1:
            tokens.add(token)
    return tokens


def _mismatched_candidate_parties(a: ReportedConstituency, b: ReportedConstituency) -> list[str]:
    names_a = {c.party: c.name for c in a.candidates if c.party not in NON_UNIQUE_PARTY_IDS and c.name}
    names_b = {c.party: c.name for c in b.candidates if c.party not in NON_UNIQUE_PARTY_IDS and c.name}

    mismatched = []
    for party in sorted(names_a.keys() & names_b.keys()):
        tokens_a, tokens_b = _name_tokens(names_a[party]), _name_tokens(names_b[party])
        if tokens_a and tokens_b and not tokens_a & tokens_b:
            mismatched.append(party)
    return mismatched


# ---------------------------------------------------------------------------
# Consensus merge
# ---------------------------------------------------------------------------


def _candidate_key(candidate: Candidate) -> str:
    if candidate.party in NON_UNIQUE_PARTY_IDS:
        return f"{candidate.party}:{candidate.name.lower()}"
    return candidate.party


def merge_candidate_votes(reports: Sequence[SourceReport]) -> list[Candidate]:
    """Tier-weighted average of each candidate's votes across reports.

    Candidates are matched by party id (by name for independents).  Each
    merged count lies between the smallest and largest count reported
    for that candidate.  The structural fields (name, flags) come from
    the most trusted report that lists the candidate.

    Returns
    -------
    list[Candidate]
        Merged candidates sorted by votes, descending.
    """
    ordered = sorted(reports, key=lambda r: r.tier)
    merged: dict[str, tuple[Candidate, list[tuple[int, float]]]] = {}

    for report in ordered:
        weight = tier_weight(report.tier)
        for candidate in report.constituency.candidates:
            key = _candidate_key(candidate)
            if key not in merged:
                merged[key] = (candidate, [])
            merged[key][1].append((candidate.votes, weight))

    result: list[Candidate] = []
    for template, samples in merged.values():
        total_weight = sum(w for _, w in samples)
        votes = round(sum(v * w for v, w in samples) / total_weight) if total_weight > 0 else 0
        result.append(template.model_copy(update={"votes": votes}))

    return sorted(result, key=lambda c: c.votes, reverse=True)


def merge_total_votes(reports: Sequence[SourceReport]) -> int:
    """Tier-weighted average of the reported totals (reports with no total are skipped)."""
    samples = [(r.constituency.total_votes, tier_weight(r.tier)) for r in reports if r.constituency.total_votes > 0]
    total_weight = sum(w for _, w in samples)
    if total_weight <= 0:
        return 0
    return round(sum(v * w for v, w in samples) / total_weight)
