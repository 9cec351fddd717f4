"""Nirbachon Live service layer -- document store, error log, summary,
reconciliation and ingestion.

GCP-dependent pieces (Firestore, Vertex AI) import their client
libraries lazily inside the classes that need them, so importing
``src.services`` never requires GCP credentials.
"""

from __future__ import annotations

from src.services.error_log import SystemErrorLog
from src.services.store import ElectionStore, FirestoreElectionStore, InMemoryElectionStore

__all__ = [
    "ElectionStore",
    "FirestoreElectionStore",
    "InMemoryElectionStore",
    "SystemErrorLog",
]
