"""Leaderboard, stats and feed folds over ActivityRecords.

Everything here is pure: no I/O, no clock, no module state. The same input
sequence always yields the same output.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from rafflecache.services.records import (
    RAFFLE_FINALIZED,
    TICKET_PURCHASE,
    ActivityRecord,
    LeaderboardEntry,
    StatsSnapshot,
)

_MONEY_PRECISION = 8


def dedupe_records(records: Iterable[ActivityRecord]) -> list[ActivityRecord]:
    """Collapse records sharing a source version; the first one seen wins."""
    seen: set[str] = set()
    unique: list[ActivityRecord] = []
    for record in records:
        if record.source_version in seen:
            continue
        seen.add(record.source_version)
        unique.append(record)
    return unique


def _non_negative_int(value: int | None) -> int:
    return value if value is not None and value > 0 else 0


def _non_negative_float(value: float | None) -> float:
    return value if value is not None and value > 0 else 0.0


@dataclass
class _BuyerTotals:
    address: str
    total_tickets: int = 0
    total_spent: float = 0.0
    first_version: int = 0
    raffles: set[int] = field(default_factory=set)

    def sort_key(self) -> tuple:
        return (-self.total_tickets, -self.total_spent, self.first_version, self.address)


def compute_leaderboard(
    records: Iterable[ActivityRecord],
    raffle_id: int | None = None,
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Rank buyers by tickets bought.

    Ties on ticket count fall back to amount spent (higher first), then to
    the earliest first purchase (lowest source version), then to address.
    """
    totals: dict[str, _BuyerTotals] = {}
    for record in dedupe_records(records):
        if record.kind != TICKET_PURCHASE or not record.buyer:
            continue
        if raffle_id is not None and record.raffle_id != raffle_id:
            continue
        # addresses are hex; the first spelling seen is the one reported
        buyer_key = record.buyer.lower()
        entry = totals.get(buyer_key)
        if entry is None:
            entry = _BuyerTotals(address=record.buyer, first_version=record.version_number)
            totals[buyer_key] = entry
        entry.total_tickets += _non_negative_int(record.ticket_count)
        entry.total_spent += _non_negative_float(record.amount_paid)
        entry.first_version = min(entry.first_version, record.version_number)
        entry.raffles.add(record.raffle_id)

    ranked = sorted(totals.values(), key=_BuyerTotals.sort_key)
    if limit is not None:
        ranked = ranked[: max(0, limit)]

    return [
        LeaderboardEntry(
            address=entry.address,
            total_tickets=entry.total_tickets,
            total_spent=round(entry.total_spent, _MONEY_PRECISION),
            raffle_count=len(entry.raffles),
            rank=position,
        )
        for position, entry in enumerate(ranked, start=1)
    ]


def compute_stats(records: Iterable[ActivityRecord], raffle_id: int | None = None) -> StatsSnapshot:
    """Fold records into a StatsSnapshot.

    A raffle counts as completed once a finalization is seen for it; every
    other raffle observed, with or without purchases, counts as active.
    """
    total_tickets = 0
    total_volume = 0.0
    participants: set[str] = set()
    raffles: set[int] = set()
    completed: set[int] = set()

    for record in dedupe_records(records):
        if raffle_id is not None and record.raffle_id != raffle_id:
            continue
        raffles.add(record.raffle_id)
        if record.kind == TICKET_PURCHASE:
            total_tickets += _non_negative_int(record.ticket_count)
            total_volume += _non_negative_float(record.amount_paid)
            if record.buyer:
                participants.add(record.buyer.lower())
        elif record.kind == RAFFLE_FINALIZED:
            completed.add(record.raffle_id)

    unique_participants = len(participants)
    average = total_tickets / unique_participants if unique_participants > 0 else 0.0
    return StatsSnapshot(
        total_tickets_sold=total_tickets,
        total_volume=round(total_volume, _MONEY_PRECISION),
        unique_participants=unique_participants,
        average_tickets_per_user=average,
        total_raffles=len(raffles),
        active_raffles=len(raffles) - len(completed),
        completed_raffles=len(completed),
    )


def filter_activity(
    records: Iterable[ActivityRecord],
    raffle_id: int | None = None,
    user_address: str | None = None,
    limit: int | None = None,
) -> list[ActivityRecord]:
    """Select feed entries, keeping input order."""
    if limit is not None and limit <= 0:
        return []
    wanted_user = user_address.lower() if user_address else None
    selected: list[ActivityRecord] = []
    for record in dedupe_records(records):
        if raffle_id is not None and record.raffle_id != raffle_id:
            continue
        if wanted_user is not None:
            actors = (record.buyer, record.creator, record.winner)
            if not any(actor and actor.lower() == wanted_user for actor in actors):
                continue
        selected.append(record)
        if limit is not None and len(selected) >= limit:
            break
    return selected
