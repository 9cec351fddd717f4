"""Seeding of the canonical constituency set.

Writes the zeroed 300-seat catalogue from
:mod:`src.data.constituencies` to the document store and resets the
summary singleton to match.  Re-seeding overwrites every constituency
document, so it is an admin-only operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.data.constituencies import build_constituencies
from src.models.election import CollectionPhase, ConstituencyStatus, SystemStatus
from src.services.store import STATUS_DOC, SUMMARY_DOC
from src.services.summary import compute_summary

if TYPE_CHECKING:
    from src.services.reconciliation.resolver import ConflictResolver
    from src.services.store import ElectionStore

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class SeedResult:
    constituencies: int
    postponed: int

    def to_dict(self) -> dict[str, int]:
        return {"constituencies": self.constituencies, "postponed": self.postponed}


async def seed_constituencies(
    store: ElectionStore,
    *,
    resolver: ConflictResolver | None = None,
    phase: CollectionPhase = CollectionPhase.PRE_VOTING,
) -> SeedResult:
    """Batch-write the zeroed catalogue and an initial summary.

    Parameters
    ----------
    store:
        Document store to seed.
    resolver:
        When given, its canonical cache is dropped so the next cycle
        rehydrates from the freshly seeded documents.
    phase:
        Phase recorded on the initial summary.

    Returns
    -------
    SeedResult
        Number of seats written and how many of them are postponed.
    """
    records = build_constituencies()
    written = await store.batch_put_constituencies(records)

    summary = compute_summary(records, phase=phase)
    await store.merge_singleton(SUMMARY_DOC, summary.to_document())
    await store.merge_singleton(
        STATUS_DOC,
        {"seatsDeclared": 0, "seatsTotal": SystemStatus().seats_total},
    )

    if resolver is not None:
        resolver.invalidate_cache()

    postponed = sum(1 for record in records if record.status == ConstituencyStatus.POSTPONED)
    logger.info("seed.complete", constituencies=written, postponed=postponed)
    return SeedResult(constituencies=written, postponed=postponed)
