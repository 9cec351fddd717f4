"""Global election summary and referendum tallies.

:func:`compute_summary` is a deterministic fold over the canonical
constituency set with no hidden state, so it can be exercised without a
scheduler or store.  :class:`SummaryAggregator` wires it to the store.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import structlog

from src.data.constituencies import TOTAL_SEATS
from src.data.parties import PARTIES, canonical_party_id
from src.models.election import (
    CollectionPhase,
    ConstituencyStatus,
    ElectionSummary,
    PartyStanding,
    ReferendumResult,
    now_ms,
)
from src.services.store import REFERENDUM_DOC, SUMMARY_DOC

if TYPE_CHECKING:
    from src.models.election import ConstituencyRecord
    from src.services.store import ElectionStore

logger = structlog.get_logger(__name__)


def compute_summary(
    records: Iterable[ConstituencyRecord],
    *,
    phase: CollectionPhase = CollectionPhase.PRE_VOTING,
    now: int | None = None,
) -> ElectionSummary:
    """Recompute party standings and national totals.

    A party *wins* a seat when its candidate is the winner of a declared
    or confirmed seat, and *leads* one when its candidate is leading a
    seat still counting.  Unknown party ids are tallied under
    ``others``.  The leading party has the highest ``won + leading``;
    ties go to the earlier party in the catalogue order.
    """
    records = list(records)
    won = {p.id: 0 for p in PARTIES}
    leading = {p.id: 0 for p in PARTIES}
    votes = {p.id: 0 for p in PARTIES}

    declared = 0
    total_votes = 0
    turnout_sum = 0.0
    turnout_count = 0

    for record in records:
        if record.status.is_terminal:
            declared += 1
            winner = next((c for c in record.candidates if c.is_winner), None)
            if winner is not None:
                won[canonical_party_id(winner.party)] += 1
        elif record.status == ConstituencyStatus.COUNTING:
            leader = next((c for c in record.candidates if c.is_leading), None)
            if leader is not None:
                leading[canonical_party_id(leader.party)] += 1

        for candidate in record.candidates:
            votes[canonical_party_id(candidate.party)] += candidate.votes
        total_votes += record.total_votes

        if record.turnout_percent > 0:
            turnout_sum += record.turnout_percent
            turnout_count += 1

    standings = [
        PartyStanding(
            id=p.id,
            name=p.name,
            short_name=p.short_name,
            color=p.color,
            alliance=p.alliance,
            seats_won=won[p.id],
            seats_leading=leading[p.id],
            total_votes=votes[p.id],
        )
        for p in PARTIES
    ]

    leading_party = standings[0]
    for standing in standings[1:]:
        if standing.seats_won + standing.seats_leading > leading_party.seats_won + leading_party.seats_leading:
            leading_party = standing

    total_seats = max(TOTAL_SEATS, len(records))
    return ElectionSummary(
        total_seats=total_seats,
        seats_declared=declared,
        seats_remaining=total_seats - declared,
        total_votes_counted=total_votes,
        avg_turnout=round(turnout_sum / turnout_count) if turnout_count else 0,
        last_updated=now if now is not None else now_ms(),
        parties=standings,
        leading_party=leading_party.id,
        phase=phase,
    )


def compute_referendum(
    *,
    yes_votes: int,
    no_votes: int,
    total_eligible: int = 0,
    centers_reported: int = 0,
    total_centers: int = 0,
    status: ConstituencyStatus = ConstituencyStatus.COUNTING,
    trust_score: int | None = None,
    now: int | None = None,
) -> ReferendumResult:
    """Derive cast total and yes/no percentages (two decimals)."""
    cast = yes_votes + no_votes
    return ReferendumResult(
        total_yes_votes=yes_votes,
        total_no_votes=no_votes,
        total_votes_cast=cast,
        total_eligible=total_eligible,
        percent_yes=round(yes_votes / cast * 100, 2) if cast else 0.0,
        percent_no=round(no_votes / cast * 100, 2) if cast else 0.0,
        centers_reported=centers_reported,
        total_centers=total_centers,
        last_updated=now if now is not None else now_ms(),
        status=status,
        trust_score=trust_score,
    )


class SummaryAggregator:
    """Recomputes the summary singleton from the store."""

    def __init__(self, store: ElectionStore, *, clock: Callable[[], int] = now_ms) -> None:
        self._store = store
        self._clock = clock

    async def refresh(self, phase: CollectionPhase) -> ElectionSummary:
        records = await self._store.list_constituencies()
        summary = compute_summary(records, phase=phase, now=self._clock())
        await self._store.merge_singleton(SUMMARY_DOC, summary.to_document())
        logger.info(
            "summary.refreshed",
            declared=summary.seats_declared,
            leading_party=summary.leading_party,
            total_votes=summary.total_votes_counted,
        )
        return summary

    async def publish_referendum(
        self,
        *,
        yes_votes: int,
        no_votes: int,
        total_eligible: int = 0,
        centers_reported: int = 0,
        total_centers: int = 0,
        status: ConstituencyStatus = ConstituencyStatus.COUNTING,
    ) -> ReferendumResult:
        """Recompute and write the referendum singleton from admin-entered counts."""
        result = compute_referendum(
            yes_votes=yes_votes,
            no_votes=no_votes,
            total_eligible=total_eligible,
            centers_reported=centers_reported,
            total_centers=total_centers,
            status=status,
            trust_score=100,
            now=self._clock(),
        )
        await self._store.merge_singleton(REFERENDUM_DOC, result.to_document())
        logger.info(
            "summary.referendum_published",
            cast=result.total_votes_cast,
            percent_yes=result.percent_yes,
        )
        return result
