"""Result reconciliation for Nirbachon Live.

Turns per-source claims into canonical constituency state: trust
scoring, pairwise conflict detection, consensus merging and the
escalation / admin-override paths.

Public API::

    from src.services.reconciliation import (
        ConflictResolver,
        calculate_trust_score,
        should_auto_publish,
        TRUST_THRESHOLD,
    )
"""

from __future__ import annotations

from src.services.reconciliation.conflicts import (
    TIER_WEIGHTS,
    VOTE_TOLERANCE_PERCENT,
    DetectedConflict,
    detect_all_conflicts,
    detect_conflicts,
    merge_candidate_votes,
    tier_weight,
)
from src.services.reconciliation.errors import (
    ConflictNotFoundError,
    PendingUpdateAlreadyReviewedError,
    PendingUpdateNotFoundError,
    ReconciliationError,
    UnknownSourceError,
)
from src.services.reconciliation.resolver import (
    ADMIN_OVERRIDE_SOURCE,
    CONFLICT_PENDING_TRUST_CAP,
    CONSENSUS_BONUS,
    MANUAL_ENTRY_SOURCE,
    MIN_SOURCES_FOR_DECLARED,
    ConflictResolver,
    ResolutionStats,
    normalise_candidates,
)
from src.services.reconciliation.trust import (
    TEMPORAL_ANOMALY_CAP,
    TRUST_THRESHOLD,
    TrustFactors,
    TrustResult,
    calculate_trust_score,
    should_auto_publish,
)

__all__ = [
    "ADMIN_OVERRIDE_SOURCE",
    "CONFLICT_PENDING_TRUST_CAP",
    "CONSENSUS_BONUS",
    "ConflictNotFoundError",
    "ConflictResolver",
    "DetectedConflict",
    "MANUAL_ENTRY_SOURCE",
    "MIN_SOURCES_FOR_DECLARED",
    "PendingUpdateAlreadyReviewedError",
    "PendingUpdateNotFoundError",
    "ReconciliationError",
    "ResolutionStats",
    "TEMPORAL_ANOMALY_CAP",
    "TIER_WEIGHTS",
    "TRUST_THRESHOLD",
    "TrustFactors",
    "TrustResult",
    "UnknownSourceError",
    "VOTE_TOLERANCE_PERCENT",
    "calculate_trust_score",
    "detect_all_conflicts",
    "detect_conflicts",
    "merge_candidate_votes",
    "normalise_candidates",
    "should_auto_publish",
    "tier_weight",
]
