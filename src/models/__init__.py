from src.models.election import (
    Candidate,
    CollectionPhase,
    ConstituencyRecord,
    ConstituencyStatus,
    DocumentModel,
    ElectionSummary,
    ElectionUpdate,
    NewsCategory,
    NewsItem,
    PartyStanding,
    ReferendumResult,
    SystemStatus,
    UpdateType,
)
from src.models.reconciliation import (
    AuditAction,
    AuditEntry,
    ConfidenceLevel,
    ConflictResolution,
    ConflictSeverity,
    ConflictSide,
    ConflictType,
    DataConflict,
    PendingStatus,
    PendingUpdate,
    ReportedConstituency,
    SourceReport,
    SourceStatus,
    SystemErrorEntry,
    SystemErrorStatus,
    SystemErrorType,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "Candidate",
    "CollectionPhase",
    "ConfidenceLevel",
    "ConflictResolution",
    "ConflictSeverity",
    "ConflictSide",
    "ConflictType",
    "ConstituencyRecord",
    "ConstituencyStatus",
    "DataConflict",
    "DocumentModel",
    "ElectionSummary",
    "ElectionUpdate",
    "NewsCategory",
    "NewsItem",
    "PartyStanding",
    "PendingStatus",
    "PendingUpdate",
    "ReferendumResult",
    "ReportedConstituency",
    "SourceReport",
    "SourceStatus",
    "SystemErrorEntry",
    "SystemErrorStatus",
    "SystemErrorType",
    "UpdateType",
]
