"""Document store for canonical election state.

Two backends implement :class:`ElectionStore`:

* :class:`FirestoreElectionStore` -- Cloud Firestore via the async
  client; change subscriptions use the sync client's ``on_snapshot``
  watch (the async client has no listener API).
* :class:`InMemoryElectionStore` -- process-local dictionaries, used in
  development when no GCP project is configured and as the store fake
  in tests.  Subscribers are notified synchronously after each write.

Documents are exchanged as pydantic models; partial updates
(``update_conflict``, ``merge_singleton``...) take camelCase field
dictionaries, exactly as stored.  All timestamps are epoch milliseconds.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from typing import Any, Protocol, TypeVar, runtime_checkable

import structlog
from pydantic import BaseModel

from src.models.election import ConstituencyRecord, ElectionUpdate, NewsItem
from src.models.reconciliation import (
    AuditEntry,
    ConflictResolution,
    DataConflict,
    PendingStatus,
    PendingUpdate,
    SourceStatus,
    SystemErrorEntry,
    SystemErrorStatus,
)

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Collection and singleton names
# ---------------------------------------------------------------------------

CONSTITUENCIES = "constituencies"
UPDATES = "updates"
NEWS = "news"
CONFLICTS = "conflicts"
PENDING_UPDATES = "pending_updates"
AUDIT_LOG = "audit_log"
SOURCES = "sources"
SYSTEM_ERRORS = "system_errors"
SYSTEM = "system"

STATUS_DOC = "status"
SUMMARY_DOC = "summary"
REFERENDUM_DOC = "referendum"
SINGLETONS = frozenset({STATUS_DOC, SUMMARY_DOC, REFERENDUM_DOC})

RECENT_UPDATES_LIMIT = 50
RECENT_NEWS_LIMIT = 20
_BATCH_SIZE = 100

Unsubscribe = Callable[[], None]
ConstituencyListener = Callable[[list[ConstituencyRecord]], None]
UpdateListener = Callable[[list[ElectionUpdate]], None]

_M = TypeVar("_M", bound=BaseModel)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ElectionStore(Protocol):
    """Persistence collaborator for the reconciliation core."""

    # -- constituencies --------------------------------------------------------

    async def list_constituencies(self) -> list[ConstituencyRecord]: ...

    async def get_constituency(self, constituency_id: str) -> ConstituencyRecord | None: ...

    async def put_constituency(self, record: ConstituencyRecord) -> None: ...

    async def batch_put_constituencies(self, records: Iterable[ConstituencyRecord]) -> int: ...

    def subscribe_constituencies(self, listener: ConstituencyListener) -> Unsubscribe: ...

    # -- ticker and news -------------------------------------------------------

    async def add_update(self, update: ElectionUpdate) -> str: ...

    async def recent_updates(self, limit: int = RECENT_UPDATES_LIMIT) -> list[ElectionUpdate]: ...

    def subscribe_updates(self, listener: UpdateListener) -> Unsubscribe: ...

    async def add_news(self, item: NewsItem) -> str: ...

    async def recent_news(self, limit: int = RECENT_NEWS_LIMIT) -> list[NewsItem]: ...

    # -- singletons ------------------------------------------------------------

    async def get_singleton(self, name: str) -> dict[str, Any] | None: ...

    async def merge_singleton(self, name: str, fields: dict[str, Any]) -> None: ...

    # -- reconciliation logs ---------------------------------------------------

    async def add_conflict(self, conflict: DataConflict) -> str: ...

    async def get_conflict(self, conflict_id: str) -> DataConflict | None: ...

    async def list_conflicts(self, resolved_by: ConflictResolution | None = None) -> list[DataConflict]: ...

    async def update_conflict(self, conflict_id: str, fields: dict[str, Any]) -> None: ...

    async def add_pending_update(self, pending: PendingUpdate) -> str: ...

    async def get_pending_update(self, pending_id: str) -> PendingUpdate | None: ...

    async def list_pending_updates(self, status: PendingStatus | None = PendingStatus.PENDING) -> list[PendingUpdate]: ...

    async def update_pending_update(self, pending_id: str, fields: dict[str, Any]) -> None: ...

    async def add_audit_entry(self, entry: AuditEntry) -> str: ...

    async def list_audit_entries(self, limit: int = 100) -> list[AuditEntry]: ...

    # -- operations ------------------------------------------------------------

    async def put_source_statuses(self, statuses: Iterable[SourceStatus]) -> None: ...

    async def list_source_statuses(self) -> list[SourceStatus]: ...

    async def add_system_error(self, error: SystemErrorEntry) -> str: ...

    async def list_system_errors(self, status: SystemErrorStatus | None = None, limit: int = 50) -> list[SystemErrorEntry]: ...

    async def update_system_error(self, error_id: str, fields: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryElectionStore:
    """Dictionary-backed store holding camelCase documents.

    Reads return freshly validated model copies so callers can never
    mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._singletons: dict[str, dict[str, Any]] = {}
        self._constituency_listeners: list[ConstituencyListener] = []
        self._update_listeners: list[UpdateListener] = []

    # -- helpers ---------------------------------------------------------------

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _add(self, collection: str, model: BaseModel) -> str:
        doc_id = getattr(model, "id", "") or _new_id()
        data = model.model_dump(by_alias=True, mode="json")
        data["id"] = doc_id
        self._collection(collection)[doc_id] = data
        return doc_id

    def _get(self, collection: str, doc_id: str, model: type[_M]) -> _M | None:
        data = self._collection(collection).get(doc_id)
        return model.model_validate(data) if data is not None else None

    def _all(self, collection: str, model: type[_M]) -> list[_M]:
        return [model.model_validate(d) for d in self._collection(collection).values()]

    def _update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        data = self._collection(collection).get(doc_id)
        if data is None:
            raise KeyError(f"{collection}/{doc_id} not found")
        data.update(fields)

    def _notify_constituencies(self) -> None:
        if not self._constituency_listeners:
            return
        snapshot = sorted(self._all(CONSTITUENCIES, ConstituencyRecord), key=lambda r: r.number)
        for listener in list(self._constituency_listeners):
            listener(snapshot)

    def _notify_updates(self) -> None:
        if not self._update_listeners:
            return
        snapshot = self._recent(UPDATES, ElectionUpdate, RECENT_UPDATES_LIMIT)
        for listener in list(self._update_listeners):
            listener(snapshot)

    def _recent(self, collection: str, model: type[_M], limit: int) -> list[_M]:
        docs = sorted(
            self._collection(collection).values(),
            key=lambda d: d.get("timestamp", 0),
            reverse=True,
        )
        return [model.model_validate(d) for d in docs[:limit]]

    # -- constituencies --------------------------------------------------------

    async def list_constituencies(self) -> list[ConstituencyRecord]:
        return sorted(self._all(CONSTITUENCIES, ConstituencyRecord), key=lambda r: r.number)

    async def get_constituency(self, constituency_id: str) -> ConstituencyRecord | None:
        return self._get(CONSTITUENCIES, constituency_id, ConstituencyRecord)

    async def put_constituency(self, record: ConstituencyRecord) -> None:
        self._collection(CONSTITUENCIES)[record.id] = record.to_document()
        self._notify_constituencies()

    async def batch_put_constituencies(self, records: Iterable[ConstituencyRecord]) -> int:
        count = 0
        for record in records:
            self._collection(CONSTITUENCIES)[record.id] = record.to_document()
            count += 1
        self._notify_constituencies()
        return count

    def subscribe_constituencies(self, listener: ConstituencyListener) -> Unsubscribe:
        self._constituency_listeners.append(listener)
        listener(sorted(self._all(CONSTITUENCIES, ConstituencyRecord), key=lambda r: r.number))
        return lambda: self._constituency_listeners.remove(listener)

    # -- ticker and news -------------------------------------------------------

    async def add_update(self, update: ElectionUpdate) -> str:
        doc_id = self._add(UPDATES, update)
        self._notify_updates()
        return doc_id

    async def recent_updates(self, limit: int = RECENT_UPDATES_LIMIT) -> list[ElectionUpdate]:
        return self._recent(UPDATES, ElectionUpdate, limit)

    def subscribe_updates(self, listener: UpdateListener) -> Unsubscribe:
        self._update_listeners.append(listener)
        listener(self._recent(UPDATES, ElectionUpdate, RECENT_UPDATES_LIMIT))
        return lambda: self._update_listeners.remove(listener)

    async def add_news(self, item: NewsItem) -> str:
        return self._add(NEWS, item)

    async def recent_news(self, limit: int = RECENT_NEWS_LIMIT) -> list[NewsItem]:
        return self._recent(NEWS, NewsItem, limit)

    # -- singletons ------------------------------------------------------------

    async def get_singleton(self, name: str) -> dict[str, Any] | None:
        data = self._singletons.get(name)
        return dict(data) if data is not None else None

    async def merge_singleton(self, name: str, fields: dict[str, Any]) -> None:
        if name not in SINGLETONS:
            raise ValueError(f"Unknown singleton document: {name!r}")
        self._singletons.setdefault(name, {}).update(fields)

    # -- reconciliation logs ---------------------------------------------------

    async def add_conflict(self, conflict: DataConflict) -> str:
        return self._add(CONFLICTS, conflict)

    async def get_conflict(self, conflict_id: str) -> DataConflict | None:
        return self._get(CONFLICTS, conflict_id, DataConflict)

    async def list_conflicts(self, resolved_by: ConflictResolution | None = None) -> list[DataConflict]:
        conflicts = self._all(CONFLICTS, DataConflict)
        if resolved_by is not None:
            conflicts = [c for c in conflicts if c.resolved_by == resolved_by]
        return sorted(conflicts, key=lambda c: c.detected_at, reverse=True)

    async def update_conflict(self, conflict_id: str, fields: dict[str, Any]) -> None:
        self._update(CONFLICTS, conflict_id, fields)

    async def add_pending_update(self, pending: PendingUpdate) -> str:
        return self._add(PENDING_UPDATES, pending)

    async def get_pending_update(self, pending_id: str) -> PendingUpdate | None:
        return self._get(PENDING_UPDATES, pending_id, PendingUpdate)

    async def list_pending_updates(self, status: PendingStatus | None = PendingStatus.PENDING) -> list[PendingUpdate]:
        pending = self._all(PENDING_UPDATES, PendingUpdate)
        if status is not None:
            pending = [p for p in pending if p.status == status]
        return sorted(pending, key=lambda p: p.created_at, reverse=True)

    async def update_pending_update(self, pending_id: str, fields: dict[str, Any]) -> None:
        self._update(PENDING_UPDATES, pending_id, fields)

    async def add_audit_entry(self, entry: AuditEntry) -> str:
        return self._add(AUDIT_LOG, entry)

    async def list_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        return self._recent(AUDIT_LOG, AuditEntry, limit)

    # -- operations ------------------------------------------------------------

    async def put_source_statuses(self, statuses: Iterable[SourceStatus]) -> None:
        for status in statuses:
            self._collection(SOURCES)[status.id] = status.to_document()

    async def list_source_statuses(self) -> list[SourceStatus]:
        return self._all(SOURCES, SourceStatus)

    async def add_system_error(self, error: SystemErrorEntry) -> str:
        return self._add(SYSTEM_ERRORS, error)

    async def list_system_errors(self, status: SystemErrorStatus | None = None, limit: int = 50) -> list[SystemErrorEntry]:
        errors = self._recent(SYSTEM_ERRORS, SystemErrorEntry, len(self._collection(SYSTEM_ERRORS)))
        if status is not None:
            errors = [e for e in errors if e.status == status]
        return errors[:limit]

    async def update_system_error(self, error_id: str, fields: dict[str, Any]) -> None:
        self._update(SYSTEM_ERRORS, error_id, fields)


# ---------------------------------------------------------------------------
# Firestore backend
# ---------------------------------------------------------------------------


class FirestoreElectionStore:
    """Cloud Firestore implementation of :class:`ElectionStore`.

    Parameters
    ----------
    project_id:
        GCP project hosting the Firestore database.
    database:
        Firestore database id (``"(default)"`` for the default database).
    """

    def __init__(self, project_id: str, database: str = "(default)") -> None:
        from google.cloud import firestore

        self._firestore = firestore
        self._project_id = project_id
        self._database = database
        self._db = firestore.AsyncClient(project=project_id, database=database)
        self._watch_client: Any = None

        logger.info("store.firestore_initialised", project=project_id, database=database)

    # -- helpers ---------------------------------------------------------------

    def _watch_db(self) -> Any:
        if self._watch_client is None:
            self._watch_client = self._firestore.Client(project=self._project_id, database=self._database)
        return self._watch_client

    async def _add(self, collection: str, model: BaseModel) -> str:
        ref = self._db.collection(collection).document(getattr(model, "id", "") or None)
        data = model.model_dump(by_alias=True, mode="json")
        data["id"] = ref.id
        await ref.set(data)
        return ref.id

    async def _get(self, collection: str, doc_id: str, model: type[_M]) -> _M | None:
        snapshot = await self._db.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return model.model_validate({**snapshot.to_dict(), "id": snapshot.id})

    async def _stream(self, query: Any, model: type[_M]) -> list[_M]:
        return [model.model_validate({**doc.to_dict(), "id": doc.id}) async for doc in query.stream()]

    def _recent_query(self, collection: str, limit: int) -> Any:
        return (
            self._db.collection(collection)
            .order_by("timestamp", direction=self._firestore.Query.DESCENDING)
            .limit(limit)
        )

    def _where(self, query: Any, field: str, value: str) -> Any:
        from google.cloud.firestore_v1.base_query import FieldFilter

        return query.where(filter=FieldFilter(field, "==", value))

    # -- constituencies --------------------------------------------------------

    async def list_constituencies(self) -> list[ConstituencyRecord]:
        records = await self._stream(self._db.collection(CONSTITUENCIES), ConstituencyRecord)
        return sorted(records, key=lambda r: r.number)

    async def get_constituency(self, constituency_id: str) -> ConstituencyRecord | None:
        return await self._get(CONSTITUENCIES, constituency_id, ConstituencyRecord)

    async def put_constituency(self, record: ConstituencyRecord) -> None:
        await self._db.collection(CONSTITUENCIES).document(record.id).set(record.to_document(), merge=True)

    async def batch_put_constituencies(self, records: Iterable[ConstituencyRecord]) -> int:
        pending = list(records)
        for start in range(0, len(pending), _BATCH_SIZE):
            batch = self._db.batch()
            for record in pending[start : start + _BATCH_SIZE]:
                batch.set(self._db.collection(CONSTITUENCIES).document(record.id), record.to_document())
            await batch.commit()
            logger.info("store.batch_committed", offset=start, size=min(_BATCH_SIZE, len(pending) - start))
        return len(pending)

    def subscribe_constituencies(self, listener: ConstituencyListener) -> Unsubscribe:
        def _on_snapshot(docs: list[Any], _changes: Any, _read_time: Any) -> None:
            records = [ConstituencyRecord.model_validate({**d.to_dict(), "id": d.id}) for d in docs]
            listener(sorted(records, key=lambda r: r.number))

        watch = self._watch_db().collection(CONSTITUENCIES).on_snapshot(_on_snapshot)
        return watch.unsubscribe

    # -- ticker and news -------------------------------------------------------

    async def add_update(self, update: ElectionUpdate) -> str:
        return await self._add(UPDATES, update)

    async def recent_updates(self, limit: int = RECENT_UPDATES_LIMIT) -> list[ElectionUpdate]:
        return await self._stream(self._recent_query(UPDATES, limit), ElectionUpdate)

    def subscribe_updates(self, listener: UpdateListener) -> Unsubscribe:
        def _on_snapshot(docs: list[Any], _changes: Any, _read_time: Any) -> None:
            listener([ElectionUpdate.model_validate({**d.to_dict(), "id": d.id}) for d in docs])

        query = (
            self._watch_db()
            .collection(UPDATES)
            .order_by("timestamp", direction=self._firestore.Query.DESCENDING)
            .limit(RECENT_UPDATES_LIMIT)
        )
        return query.on_snapshot(_on_snapshot).unsubscribe

    async def add_news(self, item: NewsItem) -> str:
        return await self._add(NEWS, item)

    async def recent_news(self, limit: int = RECENT_NEWS_LIMIT) -> list[NewsItem]:
        return await self._stream(self._recent_query(NEWS, limit), NewsItem)

    # -- singletons ------------------------------------------------------------

    async def get_singleton(self, name: str) -> dict[str, Any] | None:
        snapshot = await self._db.collection(SYSTEM).document(name).get()
        return snapshot.to_dict() if snapshot.exists else None

    async def merge_singleton(self, name: str, fields: dict[str, Any]) -> None:
        if name not in SINGLETONS:
            raise ValueError(f"Unknown singleton document: {name!r}")
        await self._db.collection(SYSTEM).document(name).set(fields, merge=True)

    # -- reconciliation logs ---------------------------------------------------

    async def add_conflict(self, conflict: DataConflict) -> str:
        return await self._add(CONFLICTS, conflict)

    async def get_conflict(self, conflict_id: str) -> DataConflict | None:
        return await self._get(CONFLICTS, conflict_id, DataConflict)

    async def list_conflicts(self, resolved_by: ConflictResolution | None = None) -> list[DataConflict]:
        query: Any = self._db.collection(CONFLICTS)
        if resolved_by is not None:
            query = self._where(query, "resolvedBy", resolved_by.value)
        conflicts = await self._stream(query, DataConflict)
        return sorted(conflicts, key=lambda c: c.detected_at, reverse=True)

    async def update_conflict(self, conflict_id: str, fields: dict[str, Any]) -> None:
        await self._db.collection(CONFLICTS).document(conflict_id).update(fields)

    async def add_pending_update(self, pending: PendingUpdate) -> str:
        return await self._add(PENDING_UPDATES, pending)

    async def get_pending_update(self, pending_id: str) -> PendingUpdate | None:
        return await self._get(PENDING_UPDATES, pending_id, PendingUpdate)

    async def list_pending_updates(self, status: PendingStatus | None = PendingStatus.PENDING) -> list[PendingUpdate]:
        query: Any = self._db.collection(PENDING_UPDATES)
        if status is not None:
            query = self._where(query, "status", status.value)
        pending = await self._stream(query, PendingUpdate)
        return sorted(pending, key=lambda p: p.created_at, reverse=True)

    async def update_pending_update(self, pending_id: str, fields: dict[str, Any]) -> None:
        await self._db.collection(PENDING_UPDATES).document(pending_id).update(fields)

    async def add_audit_entry(self, entry: AuditEntry) -> str:
        return await self._add(AUDIT_LOG, entry)

    async def list_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        return await self._stream(self._recent_query(AUDIT_LOG, limit), AuditEntry)

    # -- operations ------------------------------------------------------------

    async def put_source_statuses(self, statuses: Iterable[SourceStatus]) -> None:
        batch = self._db.batch()
        for status in statuses:
            batch.set(self._db.collection(SOURCES).document(status.id), status.to_document())
        await batch.commit()

    async def list_source_statuses(self) -> list[SourceStatus]:
        return await self._stream(self._db.collection(SOURCES), SourceStatus)

    async def add_system_error(self, error: SystemErrorEntry) -> str:
        return await self._add(SYSTEM_ERRORS, error)

    async def list_system_errors(self, status: SystemErrorStatus | None = None, limit: int = 50) -> list[SystemErrorEntry]:
        query: Any = self._db.collection(SYSTEM_ERRORS)
        if status is not None:
            query = self._where(query, "status", status.value)
        query = query.order_by("timestamp", direction=self._firestore.Query.DESCENDING).limit(limit)
        return await self._stream(query, SystemErrorEntry)

    async def update_system_error(self, error_id: str, fields: dict[str, Any]) -> None:
        await self._db.collection(SYSTEM_ERRORS).document(error_id).update(fields)

    def close(self) -> None:
        if self._watch_client is not None:
            self._watch_client.close()
