"""Operational error log surfaced on the admin dashboard.

Every recoverable failure (a source fetch timing out, a response with no
parseable JSON, a cycle-level crash) is recorded as a
:class:`~src.models.reconciliation.SystemErrorEntry`.  Logging an error
must never itself fail the caller, so store failures are logged and
swallowed here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

from src.models.reconciliation import SystemErrorEntry, SystemErrorStatus, SystemErrorType

if TYPE_CHECKING:
    from src.services.store import ElectionStore

logger = structlog.get_logger(__name__)

_MAX_DETAILS_LENGTH = 2000


def classify_exception(exc: BaseException) -> SystemErrorType:
    """Map an exception raised by an external call onto an error type."""
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
        return SystemErrorType.RATE_LIMIT
    if isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError)):
        return SystemErrorType.NETWORK
    if isinstance(exc, ValueError):
        return SystemErrorType.VALIDATION
    message = str(exc).lower()
    if "429" in message or "quota" in message or "rate limit" in message:
        return SystemErrorType.RATE_LIMIT
    return SystemErrorType.SOURCE_FETCH


class SystemErrorLog:
    """Records and manages :class:`SystemErrorEntry` documents.

    Parameters
    ----------
    store:
        Document store the entries are written to.
    """

    def __init__(self, store: ElectionStore) -> None:
        self._store = store

    async def log_error(
        self,
        error_type: SystemErrorType,
        message: str,
        *,
        source: str = "",
        details: str = "",
    ) -> str | None:
        """Record an error.  Never raises; returns the new id or ``None``."""
        entry = SystemErrorEntry(
            type=error_type,
            message=message,
            source=source,
            details=details[:_MAX_DETAILS_LENGTH],
        )
        try:
            return await self._store.add_system_error(entry)
        except Exception as exc:
            logger.error(
                "error_log.write_failed",
                error_type=str(error_type),
                original_message=message,
                error=str(exc),
            )
            return None

    async def active_errors(self, limit: int = 50) -> list[SystemErrorEntry]:
        return await self._store.list_system_errors(SystemErrorStatus.ACTIVE, limit=limit)

    async def recent_errors(self, limit: int = 50) -> list[SystemErrorEntry]:
        return await self._store.list_system_errors(None, limit=limit)

    async def resolve(self, error_id: str) -> None:
        await self._store.update_system_error(error_id, {"status": SystemErrorStatus.RESOLVED.value})

    async def ignore(self, error_id: str) -> None:
        await self._store.update_system_error(error_id, {"status": SystemErrorStatus.IGNORED.value})
