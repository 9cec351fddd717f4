"""Trust scoring for source reports.

Converts heterogeneous signals about a single claim into a 0-100
confidence value.  The scorer is a pure function: identical inputs
always produce an identical score and factor breakdown, and malformed
input contributes zero rather than raising.

Factors and weights
-------------------
+-------------------------+--------+-----------------------------------------+
| Factor                  | Weight | Signal                                  |
+-------------------------+--------+-----------------------------------------+
| source_agreement        |  0.25  | distinct cited sources (1/2/3+)         |
| cross_source_agreement  |  0.20  | cited sources on the reliable allow-list|
| source_reliability      |  0.20  | best reliability tier among citations   |
| data_completeness       |  0.15  | required fields populated               |
| temporal_consistency    |  0.10  | vote total / status vs. canonical prior |
| ai_confidence           |  0.10  | collaborator's stated confidence        |
+-------------------------+--------+-----------------------------------------+

A temporal consistency of zero (a severe vote decrease or a status moving
backwards) caps the final score at :data:`TEMPORAL_ANOMALY_CAP`, which is
below :data:`TRUST_THRESHOLD`, so such a report can never auto-publish.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from src.models.election import status_rank
from src.models.reconciliation import ConfidenceLevel

if TYPE_CHECKING:
    from collections.abc import Iterable

    from src.models.election import ConstituencyRecord
    from src.models.reconciliation import ReportedConstituency

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TRUST_THRESHOLD = 60
TEMPORAL_ANOMALY_CAP = 40

FACTOR_WEIGHTS: dict[str, float] = {
    "source_agreement": 0.25,
    "cross_source_agreement": 0.20,
    "source_reliability": 0.20,
    "data_completeness": 0.15,
    "temporal_consistency": 0.10,
    "ai_confidence": 0.10,
}

RELIABLE_SOURCES: tuple[str, ...] = (
    "ec.org.bd",
    "bssnews.net",
    "bdnews24.com",
    "thedailystar.net",
    "prothomalo.com",
    "dhakatribune.com",
    "bbc.com",
    "aljazeera.com",
    "reuters.com",
    "ap.org",
    "ndtv.com",
    "indiatoday.in",
    "newagebd.net",
    "samakal.com",
    "ec / bss (official)",
    "the daily star",
    "prothom alo",
    "dhaka tribune",
    "international media",
)

# Checked in order; the first tier with a matching marker wins.
_RELIABILITY_TIERS: tuple[tuple[int, tuple[str, ...]], ...] = (
    (100, ("ec.org.bd", "bssnews", "official")),
    (85, ("bdnews24", "dailystar", "prothomalo", "dhakatribune")),
    (80, ("bbc", "aljazeera", "reuters")),
    (70, ("ndtv", "indiatoday")),
)
_UNRECOGNISED_RELIABILITY = 40

_CONFIDENCE_SCORES: dict[ConfidenceLevel, int] = {
    ConfidenceLevel.HIGH: 90,
    ConfidenceLevel.MEDIUM: 60,
    ConfidenceLevel.LOW: 30,
    ConfidenceLevel.UNKNOWN: 50,
}

_FIRST_REPORT_CONSISTENCY = 75
_MIN_MATCH_LENGTH = 4

# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TrustFactors:
    source_agreement: int = 0
    cross_source_agreement: int = 0
    source_reliability: int = 0
    data_completeness: int = 0
    temporal_consistency: int = 0
    ai_confidence: int = 0

    def weighted_sum(self) -> float:
        return sum(getattr(self, name) * weight for name, weight in FACTOR_WEIGHTS.items())

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class TrustResult:
    """Score in ``[0, 100]`` plus the per-factor breakdown."""

    score: int
    factors: TrustFactors

    @property
    def publishable(self) -> bool:
        return should_auto_publish(self.score)

    def to_dict(self) -> dict[str, object]:
        return {"score": self.score, "factors": self.factors.to_dict()}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def calculate_trust_score(
    report: ReportedConstituency,
    prior: ConstituencyRecord | None,
    sources_used: Iterable[str],
    confidence: ConfidenceLevel | str | None,
) -> TrustResult:
    """Score one claim about a seat against its canonical prior.

    Parameters
    ----------
    report:
        The claimed seat state.
    prior:
        Current canonical record for the seat, or ``None`` when the seat
        has never been reported.
    sources_used:
        Names or domains the claim cites.
    confidence:
        Confidence stated by the extraction collaborator.

    Returns
    -------
    TrustResult
        Integer score in ``[0, 100]`` and the factor breakdown.
    """
    cited = [s.strip() for s in sources_used if isinstance(s, str) and s.strip()]

    factors = TrustFactors(
        source_agreement=_source_agreement(cited),
        cross_source_agreement=_cross_source_agreement(cited),
        source_reliability=_source_reliability(cited),
        data_completeness=_data_completeness(report),
        temporal_consistency=_temporal_consistency(report, prior),
        ai_confidence=_CONFIDENCE_SCORES[ConfidenceLevel.parse(confidence)],
    )

    score = round(factors.weighted_sum())
    if factors.temporal_consistency == 0:
        score = min(score, TEMPORAL_ANOMALY_CAP)

    return TrustResult(score=max(0, min(100, score)), factors=factors)


def should_auto_publish(score: int) -> bool:
    """Whether *score* is high enough to overwrite canonical state unattended."""
    return score >= TRUST_THRESHOLD


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------


def _source_agreement(cited: list[str]) -> int:
    distinct = len({s.lower() for s in cited})
    if distinct >= 3:
        return 100
    if distinct == 2:
        return 75
    return 40


def _is_reliable(source: str) -> bool:
    lowered = source.lower()
    for known in RELIABLE_SOURCES:
        if known in lowered:
            return True
        if len(lowered) >= _MIN_MATCH_LENGTH and lowered in known:
            return True
    return False


def _cross_source_agreement(cited: list[str]) -> int:
    hits = sum(1 for s in cited if _is_reliable(s))
    if hits >= 3:
        return 100
    if hits == 2:
        return 80
    if hits == 1:
        return 50
    return 20


def _source_reliability(cited: list[str]) -> int:
    # Whitespace is dropped so "The Daily Star" matches "dailystar".
    haystack = "".join(" ".join(cited).lower().split())
    for score, markers in _RELIABILITY_TIERS:
        if any(marker in haystack for marker in markers):
            return score
    return _UNRECOGNISED_RELIABILITY


def _data_completeness(report: ReportedConstituency) -> int:
    score = 0
    if report.name:
        score += 20
    if report.number:
        score += 20
    if report.candidates:
        score += 25
    if report.total_votes > 0:
        score += 20
    if report.status is not None:
        score += 15
    return score


def _temporal_consistency(report: ReportedConstituency, prior: ConstituencyRecord | None) -> int:
    if prior is None:
        return _FIRST_REPORT_CONSISTENCY

    prior_rank = status_rank(prior.status)
    new_rank = status_rank(report.status)
    if prior_rank is not None and new_rank is not None and new_rank < prior_rank:
        return 0

    if prior.total_votes <= 0:
        return _FIRST_REPORT_CONSISTENCY
    if report.total_votes <= 0:
        return 0
    if report.total_votes >= prior.total_votes:
        return 100

    decrease = (prior.total_votes - report.total_votes) / prior.total_votes * 100
    if decrease < 5:
        return 70
    if decrease < 15:
        return 30
    return 0
