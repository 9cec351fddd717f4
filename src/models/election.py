"""Election data models for Nirbachon Live.

Defines the canonical per-seat record, the dashboard singletons (system
status, election summary, referendum) and the ticker / news documents.

All persisted models serialise with camelCase keys so the documents
match what the dashboard reads, and all timestamps are epoch
milliseconds.
"""

from __future__ import annotations

import math
import time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ConstituencyStatus(StrEnum):
    """Counting state of a single seat."""

    __slots__ = ()

    NOT_STARTED = "not_started"
    COUNTING = "counting"
    DECLARED = "declared"
    RESULT_CONFIRMED = "result_confirmed"
    POSTPONED = "postponed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({ConstituencyStatus.DECLARED, ConstituencyStatus.RESULT_CONFIRMED})

# Canonical progression; ``postponed`` is a side-state outside it.
STATUS_ORDER: tuple[ConstituencyStatus, ...] = (
    ConstituencyStatus.NOT_STARTED,
    ConstituencyStatus.COUNTING,
    ConstituencyStatus.DECLARED,
    ConstituencyStatus.RESULT_CONFIRMED,
)


def status_rank(status: str | None) -> int | None:
    """Position of *status* on the canonical progression, or ``None``."""
    try:
        return STATUS_ORDER.index(ConstituencyStatus(status))
    except ValueError:
        return None


class CollectionPhase(StrEnum):
    """Real-world phase of election day driving the polling cadence."""

    __slots__ = ()

    PRE_VOTING = "pre_voting"
    VOTING = "voting"
    EARLY_RESULTS = "early_results"
    PEAK_RESULTS = "peak_results"
    LATE_RESULTS = "late_results"
    CLEANUP = "cleanup"
    COMPLETED = "completed"


class UpdateType(StrEnum):
    __slots__ = ()

    RESULT_DECLARED = "result_declared"
    VOTE_UPDATE = "vote_update"
    LEAD_CHANGE = "lead_change"
    CORRECTION = "correction"
    NEWS = "news"


class NewsCategory(StrEnum):
    __slots__ = ()

    BREAKING = "breaking"
    RESULT = "result"
    ANALYSIS = "analysis"
    INCIDENT = "incident"
    GENERAL = "general"


# ---------------------------------------------------------------------------
# Base document model
# ---------------------------------------------------------------------------


class DocumentModel(BaseModel):
    """Base for every model stored in the document store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict:
        """Serialise to a camelCase, JSON-compatible dictionary."""
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Constituency
# ---------------------------------------------------------------------------


def coerce_count(value: object) -> int:
    """Best-effort conversion of a loosely-typed count to a non-negative int.

    Extraction output routinely carries ``"51,200"``, ``None`` or
    ``"unknown"`` in count fields; anything that is not a number becomes 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(int(number), 0)


class Candidate(DocumentModel):
    name: str = ""
    party: str = "others"
    votes: int = Field(default=0, ge=0)
    is_winner: bool = False
    is_leading: bool = False

    @field_validator("votes", mode="before")
    @classmethod
    def _coerce_votes(cls, v: object) -> int:
        return coerce_count(v)

    @field_validator("party", mode="before")
    @classmethod
    def _normalise_party(cls, v: object) -> str:
        if not isinstance(v, str) or not v.strip():
            return "others"
        return v.strip().lower()

    @field_validator("name", mode="before")
    @classmethod
    def _normalise_name(cls, v: object) -> str:
        return v.strip() if isinstance(v, str) else ""


class ConstituencyRecord(DocumentModel):
    """Canonical, published state of one electoral seat.

    Created at seeding time with zeroed counts and only ever mutated
    through the conflict resolver's write path (or an admin override).
    """

    id: str
    number: int = Field(ge=1, le=300)
    name: str
    division: str = ""
    district: str = ""
    candidates: list[Candidate] = Field(default_factory=list)
    status: ConstituencyStatus = ConstituencyStatus.NOT_STARTED
    total_votes: int = Field(default=0, ge=0)
    total_registered: int = Field(default=0, ge=0)
    turnout_percent: float = Field(default=0.0, ge=0.0)
    win_margin: int = Field(default=0, ge=0)
    last_updated: int = 0
    trust_score: int = Field(default=0, ge=0, le=100)
    source: str = ""

    def leader(self) -> Candidate | None:
        """The winning or leading candidate, if any."""
        for candidate in self.candidates:
            if candidate.is_winner or candidate.is_leading:
                return candidate
        return None


# ---------------------------------------------------------------------------
# Ticker and news
# ---------------------------------------------------------------------------


class ElectionUpdate(DocumentModel):
    """One line on the live ticker."""

    id: str = ""
    constituency_id: str
    constituency_name: str
    timestamp: int = Field(default_factory=now_ms)
    type: UpdateType = UpdateType.VOTE_UPDATE
    message: str
    trust_score: int = 0
    source: str = ""
    is_verified: bool = False


class NewsItem(DocumentModel):
    id: str = ""
    headline: str
    summary: str = ""
    source: str = ""
    source_url: str = ""
    timestamp: int = Field(default_factory=now_ms)
    category: NewsCategory = NewsCategory.GENERAL
    is_verified: bool = False


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------


class SystemStatus(DocumentModel):
    """Collector state mirrored for the dashboard header."""

    is_collecting: bool = False
    last_fetch_time: int = 0
    next_fetch_time: int = 0
    total_api_calls: int = 0
    api_calls_today: int = 0
    errors_today: int = 0
    seats_declared: int = 0
    seats_total: int = 300
    collection_phase: CollectionPhase = CollectionPhase.PRE_VOTING
    active_sources: int = 0
    total_conflicts: int = 0
    resolved_conflicts: int = 0
    auto_news_count: int = 0


class PartyStanding(DocumentModel):
    id: str
    name: str
    short_name: str
    color: str = ""
    alliance: str = "others"
    seats_won: int = 0
    seats_leading: int = 0
    total_votes: int = 0


class ElectionSummary(DocumentModel):
    total_seats: int = 300
    seats_declared: int = 0
    seats_remaining: int = 300
    total_votes_counted: int = 0
    avg_turnout: int = 0
    last_updated: int = 0
    parties: list[PartyStanding] = Field(default_factory=list)
    leading_party: str = ""
    phase: CollectionPhase = CollectionPhase.PRE_VOTING


class ReferendumResult(DocumentModel):
    total_yes_votes: int = Field(default=0, ge=0)
    total_no_votes: int = Field(default=0, ge=0)
    total_votes_cast: int = 0
    total_eligible: int = 0
    percent_yes: float = 0.0
    percent_no: float = 0.0
    centers_reported: int = 0
    total_centers: int = 0
    last_updated: int = 0
    status: ConstituencyStatus = ConstituencyStatus.NOT_STARTED
    trust_score: int | None = None
