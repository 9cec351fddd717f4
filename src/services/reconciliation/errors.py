"""Domain errors raised to callers of the admin operations."""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for reconciliation errors surfaced to admin callers."""


class ConflictNotFoundError(ReconciliationError):
    def __init__(self, conflict_id: str) -> None:
        super().__init__(f"Conflict not found: {conflict_id}")
        self.conflict_id = conflict_id


class PendingUpdateNotFoundError(ReconciliationError):
    def __init__(self, pending_id: str) -> None:
        super().__init__(f"Pending update not found: {pending_id}")
        self.pending_id = pending_id


class PendingUpdateAlreadyReviewedError(ReconciliationError):
    def __init__(self, pending_id: str, status: str) -> None:
        super().__init__(f"Pending update {pending_id} was already {status}")
        self.pending_id = pending_id
        self.status = status


class UnknownSourceError(ReconciliationError):
    def __init__(self, source_id: str) -> None:
        super().__init__(f"Unknown source: {source_id}")
        self.source_id = source_id
