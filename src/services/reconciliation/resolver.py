"""Conflict resolver: the only write path into canonical constituency state.

Per processing cycle, per constituency:

1. **Group** all reports of the cycle by seat number.
2. **Single source** -- score against the canonical prior.  Below the
   publish threshold the report is staged as a pending update.  A
   non-official (tier > 1) source can never declare a winner on its
   own: a terminal status is downgraded to ``counting`` before writing.
3. **Several sources, no conflicts** -- consensus.  Candidate votes are
   merged by tier-weighted average, the most trusted report supplies
   the structural fields, the score gets :data:`CONSENSUS_BONUS`, and a
   declaration passes only with :data:`MIN_SOURCES_FOR_DECLARED`
   tier <= 2 sources (or an official primary).
4. **Only non-critical vote / name mismatches** -- prefer the most
   trusted source, score it, and if it clears the threshold write it
   and log every conflict as ``auto_consensus``.
5. **Anything else** (winner disagreement, critical mismatch, status
   regression) -- persist the conflicts as ``pending``, stage every
   report as a pending update with a lowered score, leave canonical
   state untouched.

Admin escape hatches (:meth:`ConflictResolver.admin_override`,
:meth:`ConflictResolver.manual_entry`, pending-update approval) write
with trust 100 and always leave an audit entry.

The resolver keeps a cache of canonical records keyed by seat number.
It is hydrated from the store once, lazily, and updated synchronously
after every canonical write.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from src.data.constituencies import constituency_slug
from src.models.election import (
    Candidate,
    ConstituencyRecord,
    ConstituencyStatus,
    ElectionUpdate,
    UpdateType,
    now_ms,
)
from src.models.reconciliation import (
    AuditAction,
    AuditEntry,
    ConfidenceLevel,
    ConflictResolution,
    ConflictSide,
    DataConflict,
    PendingStatus,
    PendingUpdate,
    ReportedConstituency,
    SourceReport,
)
from src.services.reconciliation.conflicts import (
    DetectedConflict,
    detect_all_conflicts,
    merge_candidate_votes,
    merge_total_votes,
)
from src.services.reconciliation.errors import (
    ConflictNotFoundError,
    PendingUpdateAlreadyReviewedError,
    PendingUpdateNotFoundError,
)
from src.services.reconciliation.trust import calculate_trust_score, should_auto_publish

if TYPE_CHECKING:
    from src.services.store import ElectionStore

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONSENSUS_BONUS = 10
CONFLICT_PENDING_TRUST_CAP = 50
MIN_SOURCES_FOR_DECLARED = 2
ADMIN_TRUST_SCORE = 100

ADMIN_OVERRIDE_SOURCE = "admin_override"
MANUAL_ENTRY_SOURCE = "manual_entry"

_OFFICIAL_TIER = 1
_MAJOR_PRESS_TIER = 2


class Outcome(StrEnum):
    """What happened to one constituency in one cycle."""

    __slots__ = ()

    UPDATED = "updated"
    STAGED = "staged"
    CONFLICT = "conflict"


@dataclass(slots=True)
class ResolutionStats:
    """Per-cycle counters returned by :meth:`ConflictResolver.process_reports`."""

    updated: int = 0
    staged: int = 0
    conflicts: int = 0
    errors: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.UPDATED:
            self.updated += 1
        elif outcome is Outcome.STAGED:
            self.staged += 1
        else:
            self.conflicts += 1

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Candidate normalisation
# ---------------------------------------------------------------------------


def normalise_candidates(candidates: Iterable[Candidate], status: ConstituencyStatus) -> list[Candidate]:
    """Sort by votes and fix the winner / leading flags for *status*.

    In a terminal status exactly one candidate is the winner: the one the
    source flagged, else the top vote-getter.  While counting, the top
    candidate with any votes is leading and nobody has won.  In every
    other status no flags are set.
    """
    ordered = sorted(candidates, key=lambda c: c.votes, reverse=True)
    if not ordered:
        return []

    cleared = [c.model_copy(update={"is_winner": False, "is_leading": False}) for c in ordered]

    if status.is_terminal:
        flagged = next((i for i, c in enumerate(ordered) if c.is_winner), 0)
        cleared[flagged] = cleared[flagged].model_copy(update={"is_winner": True})
    elif status == ConstituencyStatus.COUNTING and cleared[0].votes > 0:
        cleared[0] = cleared[0].model_copy(update={"is_leading": True})

    return cleared


def _win_margin(candidates: Sequence[Candidate]) -> int:
    votes = sorted((c.votes for c in candidates), reverse=True)
    if not votes:
        return 0
    return votes[0] - (votes[1] if len(votes) > 1 else 0)


def _snapshot(record: ConstituencyRecord | None) -> dict[str, Any] | None:
    if record is None:
        return None
    leader = record.leader()
    return {
        "status": str(record.status),
        "totalVotes": record.total_votes,
        "leader": leader.name if leader else None,
        "leaderParty": leader.party if leader else None,
        "candidateCount": len(record.candidates),
        "source": record.source,
    }


def _cited_sources(reports: Iterable[SourceReport]) -> list[str]:
    """Sub-sources cited by the reports; a report citing nothing counts as itself."""
    cited: list[str] = []
    for report in reports:
        cited.extend(report.sources_used or [report.source_name])
    return cited


# ---------------------------------------------------------------------------
# ConflictResolver
# ---------------------------------------------------------------------------


class ConflictResolver:
    """Reconciles per-cycle source reports into canonical constituency state.

    Parameters
    ----------
    store:
        Persistence collaborator holding canonical records and the
        conflict / pending / audit logs.
    clock:
        Returns the current time in epoch milliseconds.  Injected so
        tests can pin timestamps.
    """

    def __init__(self, store: ElectionStore, *, clock: Callable[[], int] = now_ms) -> None:
        self._store = store
        self._clock = clock
        self._cache: dict[int, ConstituencyRecord] = {}
        self._hydrated = False
        self._hydrate_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Canonical cache
    # ------------------------------------------------------------------

    async def ensure_cache(self) -> None:
        """Hydrate the canonical cache from the store (once)."""
        if self._hydrated:
            return
        async with self._hydrate_lock:
            if self._hydrated:
                return
            records = await self._store.list_constituencies()
            self._cache = {r.number: r for r in records}
            self._hydrated = True
            logger.info("resolver.cache_hydrated", records=len(records))

    def invalidate_cache(self) -> None:
        """Forget cached state; the next cycle re-reads the store."""
        self._cache.clear()
        self._hydrated = False

    def canonical(self, number: int) -> ConstituencyRecord | None:
        return self._cache.get(number)

    # ------------------------------------------------------------------
    # Cycle processing
    # ------------------------------------------------------------------

    async def process_reports(self, reports: Iterable[SourceReport]) -> ResolutionStats:
        """Reconcile every report of one fetch cycle.

        A failure while handling one constituency is logged and counted;
        it never prevents the remaining constituencies from processing.
        """
        await self.ensure_cache()

        grouped: dict[int, list[SourceReport]] = {}
        for report in reports:
            grouped.setdefault(report.number, []).append(report)

        stats = ResolutionStats()
        for number, group in grouped.items():
            try:
                stats.record(await self._process_constituency(number, group))
            except Exception as exc:
                stats.errors += 1
                logger.error(
                    "resolver.constituency_failed",
                    constituency=number,
                    error=str(exc),
                    exc_info=True,
                )

        logger.info("resolver.cycle_processed", constituencies=len(grouped), **stats.to_dict())
        return stats

    async def _process_constituency(self, number: int, reports: list[SourceReport]) -> Outcome:
        prior = self._cache.get(number)

        if len(reports) == 1:
            return await self._apply_single_source(reports[0], prior)

        conflicts = detect_all_conflicts(reports)
        if not conflicts:
            return await self._apply_consensus(number, reports, prior)

        return await self._handle_conflicts(number, reports, conflicts, prior)

    async def _apply_single_source(self, report: SourceReport, prior: ConstituencyRecord | None) -> Outcome:
        result = calculate_trust_score(report.constituency, prior, _cited_sources([report]), report.confidence)

        if not result.publishable:
            await self._stage_pending(report, result.score)
            logger.info(
                "resolver.single_source_staged",
                constituency=report.number,
                source=report.source_id,
                score=result.score,
            )
            return Outcome.STAGED

        status = self._effective_status(report.constituency, prior)
        if status.is_terminal and report.tier > _OFFICIAL_TIER:
            logger.info(
                "resolver.declaration_downgraded",
                constituency=report.number,
                source=report.source_id,
                claimed=str(status),
            )
            status = ConstituencyStatus.COUNTING

        await self._write_canonical(
            report.constituency,
            status=status,
            trust_score=result.score,
            source=report.source_name,
            action=AuditAction.UPDATE if prior is not None and prior.last_updated else AuditAction.CREATE,
        )
        return Outcome.UPDATED

    async def _apply_consensus(
        self,
        number: int,
        reports: list[SourceReport],
        prior: ConstituencyRecord | None,
    ) -> Outcome:
        ordered = sorted(reports, key=lambda r: r.tier)
        primary = ordered[0]
        merged = primary.constituency.model_copy(
            update={
                "candidates": merge_candidate_votes(reports),
                "total_votes": merge_total_votes(reports),
            }
        )

        result = calculate_trust_score(merged, prior, _cited_sources(reports), ConfidenceLevel.HIGH)
        score = min(100, result.score + CONSENSUS_BONUS)
        source_names = " + ".join(r.source_name for r in ordered)

        if not should_auto_publish(score):
            await self._stage_pending(
                primary.model_copy(update={"constituency": merged, "source_name": source_names}),
                score,
            )
            logger.info("resolver.consensus_staged", constituency=number, score=score)
            return Outcome.STAGED

        status = self._gate_declaration(self._effective_status(merged, prior), ordered)
        await self._write_canonical(
            merged,
            status=status,
            trust_score=score,
            source=source_names,
            action=AuditAction.AUTO_PUBLISH,
        )
        logger.info("resolver.consensus_published", constituency=number, sources=len(reports), score=score)
        return Outcome.UPDATED

    async def _handle_conflicts(
        self,
        number: int,
        reports: list[SourceReport],
        conflicts: list[DetectedConflict],
        prior: ConstituencyRecord | None,
    ) -> Outcome:
        ordered = sorted(reports, key=lambda r: r.tier)

        if all(c.auto_resolvable for c in conflicts):
            best = ordered[0]
            result = calculate_trust_score(best.constituency, prior, _cited_sources(reports), best.confidence)
            if result.publishable:
                status = self._gate_declaration(self._effective_status(best.constituency, prior), ordered)
                record = await self._write_canonical(
                    best.constituency,
                    status=status,
                    trust_score=result.score,
                    source=f"{best.source_name} (auto-resolved)",
                    action=AuditAction.CONFLICT_RESOLVE,
                )
                note = f"Auto-resolved: preferred {best.source_name} (tier {best.tier})"
                for conflict in conflicts:
                    await self._store.add_conflict(
                        self._conflict_document(
                            conflict,
                            record.id,
                            resolved_by=ConflictResolution.AUTO_CONSENSUS,
                            resolution=note,
                        )
                    )
                logger.info(
                    "resolver.conflicts_auto_resolved",
                    constituency=number,
                    conflicts=len(conflicts),
                    preferred=best.source_id,
                )
                return Outcome.UPDATED

        constituency_id = self._constituency_id(number, ordered[0].constituency)
        conflict_ids = [
            await self._store.add_conflict(self._conflict_document(c, constituency_id))
            for c in conflicts
        ]
        for report in reports:
            individual = calculate_trust_score(report.constituency, prior, _cited_sources([report]), report.confidence)
            await self._stage_pending(
                report,
                min(individual.score, CONFLICT_PENDING_TRUST_CAP),
                conflict_id=conflict_ids[0],
            )

        logger.warning(
            "resolver.conflict_escalated",
            constituency=number,
            conflicts=[f"{c.type}:{c.severity}" for c in conflicts],
            sources=[r.source_id for r in reports],
        )
        return Outcome.CONFLICT

    # ------------------------------------------------------------------
    # Status rules
    # ------------------------------------------------------------------

    @staticmethod
    def _effective_status(data: ReportedConstituency, prior: ConstituencyRecord | None) -> ConstituencyStatus:
        if data.status is not None:
            return data.status
        if data.total_votes > 0:
            return ConstituencyStatus.COUNTING
        if prior is not None:
            return prior.status
        return ConstituencyStatus.NOT_STARTED

    @staticmethod
    def _gate_declaration(status: ConstituencyStatus, ordered: Sequence[SourceReport]) -> ConstituencyStatus:
        """Downgrade a declaration that lacks enough trusted corroboration."""
        if not status.is_terminal:
            return status
        trusted = sum(1 for r in ordered if r.tier <= _MAJOR_PRESS_TIER)
        if trusted >= MIN_SOURCES_FOR_DECLARED or ordered[0].tier == _OFFICIAL_TIER:
            return status
        return ConstituencyStatus.COUNTING

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _constituency_id(self, number: int, data: ReportedConstituency | None = None) -> str:
        prior = self._cache.get(number)
        if prior is not None:
            return prior.id
        if data is not None and data.name:
            return constituency_slug(data.name)
        return f"constituency-{number}"

    async def _stage_pending(self, report: SourceReport, trust_score: int, *, conflict_id: str | None = None) -> str:
        pending = PendingUpdate(
            constituency_id=self._constituency_id(report.number, report.constituency),
            constituency_number=report.number,
            source_id=report.source_id,
            source_name=report.source_name,
            tier=report.tier,
            data=report.constituency,
            trust_score=max(0, min(100, trust_score)),
            confidence=report.confidence,
            sources_used=report.sources_used,
            conflict_id=conflict_id,
            created_at=self._clock(),
        )
        return await self._store.add_pending_update(pending)

    def _conflict_document(
        self,
        conflict: DetectedConflict,
        constituency_id: str,
        *,
        resolved_by: ConflictResolution = ConflictResolution.PENDING,
        resolution: str = "",
    ) -> DataConflict:
        now = self._clock()
        a, b = conflict.report_a, conflict.report_b
        return DataConflict(
            constituency_id=constituency_id,
            constituency_number=a.number,
            constituency_name=a.constituency.name or b.constituency.name,
            type=conflict.type,
            severity=conflict.severity,
            description=conflict.description,
            source_a=ConflictSide(source_id=a.source_id, source_name=a.source_name, tier=a.tier, data=a.constituency),
            source_b=ConflictSide(source_id=b.source_id, source_name=b.source_name, tier=b.tier, data=b.constituency),
            detected_at=now,
            resolved_by=resolved_by,
            resolution=resolution,
            resolved_at=None if resolved_by == ConflictResolution.PENDING else now,
        )

    async def _write_canonical(
        self,
        data: ReportedConstituency,
        *,
        status: ConstituencyStatus,
        trust_score: int,
        source: str,
        action: AuditAction,
    ) -> ConstituencyRecord:
        """Persist a canonical record, then audit it and post a ticker line."""
        number = data.number
        prior = self._cache.get(number)
        now = self._clock()

        candidates = normalise_candidates(data.candidates, status)
        total_votes = data.total_votes or sum(c.votes for c in candidates)
        registered = prior.total_registered if prior is not None else 0

        record = ConstituencyRecord(
            id=self._constituency_id(number, data),
            number=number,
            name=data.name or (prior.name if prior else f"Constituency {number}"),
            division=data.division or (prior.division if prior else ""),
            district=data.district or (prior.district if prior else ""),
            candidates=candidates,
            status=status,
            total_votes=total_votes,
            total_registered=registered,
            turnout_percent=round(total_votes / registered * 100, 2) if registered else 0.0,
            win_margin=_win_margin(candidates),
            last_updated=now,
            trust_score=max(0, min(100, trust_score)),
            source=source,
        )

        await self._store.put_constituency(record)
        self._cache[number] = record

        await self._store.add_audit_entry(
            AuditEntry(
                constituency_id=record.id,
                constituency_number=number,
                action=action,
                source=source,
                before=_snapshot(prior),
                after=_snapshot(record),
                timestamp=now,
                trust_score=record.trust_score,
            )
        )
        await self._store.add_update(self._ticker_update(record, prior, action))

        logger.info(
            "resolver.canonical_written",
            constituency=number,
            status=str(status),
            total_votes=total_votes,
            trust_score=record.trust_score,
            action=str(action),
            source=source,
        )
        return record

    @staticmethod
    def _ticker_update(
        record: ConstituencyRecord,
        prior: ConstituencyRecord | None,
        action: AuditAction,
    ) -> ElectionUpdate:
        leader = record.leader()
        prior_leader = prior.leader() if prior is not None else None

        if leader is None:
            message = f"{record.name}: Counting in progress"
        elif record.status.is_terminal:
            message = f"{record.name}: {leader.name} ({leader.party}) wins with {leader.votes:,} votes"
        else:
            message = f"{record.name}: {leader.name} ({leader.party}) leading with {leader.votes:,} votes"

        if action == AuditAction.MANUAL_OVERRIDE and prior is not None and prior.last_updated:
            update_type = UpdateType.CORRECTION
        elif record.status.is_terminal:
            update_type = UpdateType.RESULT_DECLARED
        elif leader is not None and prior_leader is not None and leader.party != prior_leader.party:
            update_type = UpdateType.LEAD_CHANGE
        else:
            update_type = UpdateType.VOTE_UPDATE

        return ElectionUpdate(
            constituency_id=record.id,
            constituency_name=record.name,
            timestamp=record.last_updated,
            type=update_type,
            message=message,
            trust_score=record.trust_score,
            source=record.source,
            is_verified=should_auto_publish(record.trust_score),
        )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def resolve_conflict(self, conflict_id: str, resolution: str) -> DataConflict:
        """Mark a conflict as resolved by an administrator.

        Canonical state is not touched; pair this with
        :meth:`admin_override` to publish the resolved data.
        """
        conflict = await self._store.get_conflict(conflict_id)
        if conflict is None:
            raise ConflictNotFoundError(conflict_id)

        fields = {
            "resolvedBy": ConflictResolution.ADMIN_OVERRIDE.value,
            "resolution": resolution,
            "resolvedAt": self._clock(),
        }
        await self._store.update_conflict(conflict_id, fields)
        logger.info("resolver.conflict_resolved", conflict_id=conflict_id, constituency=conflict.constituency_number)
        return conflict.model_copy(
            update={
                "resolved_by": ConflictResolution.ADMIN_OVERRIDE,
                "resolution": resolution,
                "resolved_at": fields["resolvedAt"],
            }
        )

    async def admin_override(self, data: ReportedConstituency) -> ConstituencyRecord:
        """Write *data* straight to canonical state with full trust."""
        return await self._admin_write(data, ADMIN_OVERRIDE_SOURCE)

    async def manual_entry(self, data: ReportedConstituency) -> ConstituencyRecord:
        """Record results typed in by an operator (e.g. from a returning officer)."""
        return await self._admin_write(data, MANUAL_ENTRY_SOURCE)

    async def _admin_write(self, data: ReportedConstituency, source: str) -> ConstituencyRecord:
        await self.ensure_cache()
        prior = self._cache.get(data.number)
        record = await self._write_canonical(
            data,
            status=self._effective_status(data, prior),
            trust_score=ADMIN_TRUST_SCORE,
            source=source,
            action=AuditAction.MANUAL_OVERRIDE,
        )
        logger.warning("resolver.admin_write", constituency=data.number, source=source)
        return record

    async def list_pending_updates(self) -> list[PendingUpdate]:
        return await self._store.list_pending_updates(PendingStatus.PENDING)

    async def approve_pending_update(self, pending_id: str) -> ConstituencyRecord:
        """Publish a staged report to canonical state."""
        pending = await self._reviewable(pending_id)
        await self.ensure_cache()
        prior = self._cache.get(pending.constituency_number)

        record = await self._write_canonical(
            pending.data,
            status=self._effective_status(pending.data, prior),
            trust_score=ADMIN_TRUST_SCORE,
            source=f"{pending.source_name} (admin approved)",
            action=AuditAction.UPDATE,
        )
        await self._store.update_pending_update(
            pending_id,
            {"status": PendingStatus.APPROVED.value, "reviewedAt": self._clock()},
        )
        logger.info("resolver.pending_approved", pending_id=pending_id, constituency=pending.constituency_number)
        return record

    async def reject_pending_update(self, pending_id: str) -> PendingUpdate:
        pending = await self._reviewable(pending_id)
        reviewed_at = self._clock()
        await self._store.update_pending_update(
            pending_id,
            {"status": PendingStatus.REJECTED.value, "reviewedAt": reviewed_at},
        )
        logger.info("resolver.pending_rejected", pending_id=pending_id, constituency=pending.constituency_number)
        return pending.model_copy(update={"status": PendingStatus.REJECTED, "reviewed_at": reviewed_at})

    async def _reviewable(self, pending_id: str) -> PendingUpdate:
        pending = await self._store.get_pending_update(pending_id)
        if pending is None:
            raise PendingUpdateNotFoundError(pending_id)
        if pending.status != PendingStatus.PENDING:
            raise PendingUpdateAlreadyReviewedError(pending_id, str(pending.status))
        return pending
