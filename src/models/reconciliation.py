"""Reconciliation data models for Nirbachon Live.

Covers everything between a raw source claim and a canonical write:
the per-source report produced at the parse boundary, conflicts between
two reports, the pending-update queue, the audit log, per-source health
and the system error log.

Reports arrive from AI search agents as loosely-typed JSON.  The
``ReportedConstituency`` model is deliberately lenient: unknown statuses
become ``None`` and junk counts become ``0`` so a single malformed field
never discards an otherwise usable claim.  Only the seat number is
strictly validated (1..300).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator, model_validator

from src.models.election import (
    Candidate,
    ConstituencyStatus,
    DocumentModel,
    coerce_count,
    now_ms,
)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ConfidenceLevel(StrEnum):
    """Self-reported confidence of the extraction collaborator."""

    __slots__ = ()

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> ConfidenceLevel:
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN


class ConflictType(StrEnum):
    __slots__ = ()

    VOTE_MISMATCH = "vote_mismatch"
    WINNER_DISAGREEMENT = "winner_disagreement"
    STATUS_REGRESSION = "status_regression"
    CANDIDATE_NAME_MISMATCH = "candidate_name_mismatch"


class ConflictSeverity(StrEnum):
    """Conflict severity, ordered from least to most serious."""

    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[ConflictSeverity, int] = {
    ConflictSeverity.LOW: 0,
    ConflictSeverity.MEDIUM: 1,
    ConflictSeverity.HIGH: 2,
    ConflictSeverity.CRITICAL: 3,
}


class ConflictResolution(StrEnum):
    """Who (or what) resolved a conflict.  ``pending`` means nobody yet."""

    __slots__ = ()

    AUTO_CONSENSUS = "auto_consensus"
    ADMIN_OVERRIDE = "admin_override"
    PENDING = "pending"


class AuditAction(StrEnum):
    __slots__ = ()

    CREATE = "create"
    UPDATE = "update"
    CONFLICT_RESOLVE = "conflict_resolve"
    MANUAL_OVERRIDE = "manual_override"
    AUTO_PUBLISH = "auto_publish"


class PendingStatus(StrEnum):
    __slots__ = ()

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MERGED = "merged"


class SystemErrorType(StrEnum):
    __slots__ = ()

    SOURCE_FETCH = "source_fetch"
    PARSING = "parsing"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    VALIDATION = "validation"
    OTHER = "other"


class SystemErrorStatus(StrEnum):
    __slots__ = ()

    ACTIVE = "active"
    RESOLVED = "resolved"
    IGNORED = "ignored"


# ---------------------------------------------------------------------------
# Source reports
# ---------------------------------------------------------------------------


class ReportedConstituency(DocumentModel):
    """One source's claimed state of a seat (no trust, no provenance)."""

    number: int = Field(ge=1, le=300)
    name: str = ""
    division: str = ""
    district: str = ""
    candidates: list[Candidate] = Field(default_factory=list)
    status: ConstituencyStatus | None = None
    total_votes: int = Field(default=0, ge=0)

    @field_validator("number", mode="before")
    @classmethod
    def _coerce_number(cls, v: object) -> object:
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return v

    @field_validator("status", mode="before")
    @classmethod
    def _lenient_status(cls, v: object) -> ConstituencyStatus | None:
        if isinstance(v, str):
            try:
                return ConstituencyStatus(v.strip().lower())
            except ValueError:
                return None
        return None

    @field_validator("total_votes", mode="before")
    @classmethod
    def _coerce_total(cls, v: object) -> int:
        return coerce_count(v)

    @field_validator("name", "division", "district", mode="before")
    @classmethod
    def _coerce_text(cls, v: object) -> str:
        return v.strip() if isinstance(v, str) else ""

    @field_validator("candidates", mode="before")
    @classmethod
    def _drop_junk_candidates(cls, v: object) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [c for c in v if isinstance(c, (dict, Candidate))]

    @model_validator(mode="after")
    def _fill_total_from_candidates(self) -> ReportedConstituency:
        if self.total_votes == 0 and self.candidates:
            self.total_votes = sum(c.votes for c in self.candidates)
        return self

    def leader(self) -> Candidate | None:
        """The winning or leading candidate, if any is flagged."""
        for candidate in self.candidates:
            if candidate.is_winner or candidate.is_leading:
                return candidate
        return None


class SourceReport(DocumentModel):
    """One source's claim about one constituency in one fetch cycle."""

    source_id: str
    source_name: str
    tier: int = Field(ge=1, le=4)
    constituency: ReportedConstituency
    confidence: ConfidenceLevel = ConfidenceLevel.UNKNOWN
    sources_used: list[str] = Field(default_factory=list)
    fetched_at: int = Field(default_factory=now_ms)

    @property
    def number(self) -> int:
        return self.constituency.number


# ---------------------------------------------------------------------------
# Conflicts, pending updates and audit
# ---------------------------------------------------------------------------


class ConflictSide(DocumentModel):
    """Snapshot of one side of a conflict."""

    source_id: str
    source_name: str
    tier: int
    data: ReportedConstituency


class DataConflict(DocumentModel):
    """Disagreement between exactly two reports for one seat."""

    id: str = ""
    constituency_id: str
    constituency_number: int
    constituency_name: str = ""
    type: ConflictType
    severity: ConflictSeverity
    description: str = ""
    source_a: ConflictSide
    source_b: ConflictSide
    detected_at: int = Field(default_factory=now_ms)
    resolved_by: ConflictResolution = ConflictResolution.PENDING
    resolution: str = ""
    resolved_at: int | None = None

    @property
    def is_critical(self) -> bool:
        return self.severity == ConflictSeverity.CRITICAL


class PendingUpdate(DocumentModel):
    """A staged report awaiting more trust or a human decision."""

    id: str = ""
    constituency_id: str
    constituency_number: int
    source_id: str
    source_name: str
    tier: int
    data: ReportedConstituency
    trust_score: int = Field(ge=0, le=100)
    confidence: ConfidenceLevel = ConfidenceLevel.UNKNOWN
    sources_used: list[str] = Field(default_factory=list)
    status: PendingStatus = PendingStatus.PENDING
    conflict_id: str | None = None
    created_at: int = Field(default_factory=now_ms)
    reviewed_at: int | None = None


class AuditEntry(DocumentModel):
    """Write-once record of a canonical write."""

    id: str = ""
    constituency_id: str
    constituency_number: int
    action: AuditAction
    source: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    timestamp: int = Field(default_factory=now_ms)
    trust_score: int = 0


# ---------------------------------------------------------------------------
# Runtime health and errors
# ---------------------------------------------------------------------------


class SourceStatus(DocumentModel):
    """Health counters for one data source."""

    id: str
    name: str
    tier: int
    domain: str = ""
    is_active: bool = True
    last_fetch_time: int = 0
    last_success_time: int = 0
    fetch_count: int = 0
    success_count: int = 0
    error_count: int = 0
    avg_response_time_ms: float = 0.0
    constituencies_reported: int = 0
    last_error: str | None = None


class SystemErrorEntry(DocumentModel):
    """An operational error surfaced to the admin dashboard."""

    id: str = ""
    type: SystemErrorType = SystemErrorType.OTHER
    message: str
    source: str = ""
    details: str = ""
    timestamp: int = Field(default_factory=now_ms)
    status: SystemErrorStatus = SystemErrorStatus.ACTIVE
