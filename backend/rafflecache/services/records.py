"""Normalized activity records and the derived read-model shapes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

TICKET_PURCHASE = "ticket_purchase"
RAFFLE_CREATED = "raffle_created"
RAFFLE_FINALIZED = "raffle_finalized"

ACTIVITY_KINDS = (TICKET_PURCHASE, RAFFLE_CREATED, RAFFLE_FINALIZED)


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    """One parsed blockchain event.

    ``source_version`` is the indexer transaction version and identifies the
    event; two records with the same version are the same event.
    """

    kind: str
    raffle_id: int
    source_version: str
    block_height: int
    timestamp: str
    buyer: str | None = None
    creator: str | None = None
    winner: str | None = None
    ticket_count: int | None = None
    amount_paid: float | None = None
    prize_amount: float | None = None

    @property
    def actor(self) -> str:
        return self.buyer or self.creator or self.winner or ""

    @property
    def version_number(self) -> int:
        try:
            return int(self.source_version)
        except ValueError:
            return 0

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.kind,
            "raffleId": self.raffle_id,
            "buyer": self.buyer,
            "creator": self.creator,
            "winner": self.winner,
            "ticketCount": self.ticket_count,
            "totalPaid": self.amount_paid,
            "prizeAmount": self.prize_amount,
            "timestamp": self.timestamp,
            "transactionVersion": self.source_version,
            "blockHeight": self.block_height,
        }
        return {key: value for key, value in payload.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityRecord":
        ticket_count = data.get("ticketCount")
        amount_paid = data.get("totalPaid")
        prize_amount = data.get("prizeAmount")
        return cls(
            kind=str(data["type"]),
            raffle_id=int(data.get("raffleId", 0)),
            source_version=str(data["transactionVersion"]),
            block_height=int(data.get("blockHeight", 0)),
            timestamp=str(data.get("timestamp", "")),
            buyer=data.get("buyer"),
            creator=data.get("creator"),
            winner=data.get("winner"),
            ticket_count=int(ticket_count) if ticket_count is not None else None,
            amount_paid=float(amount_paid) if amount_paid is not None else None,
            prize_amount=float(prize_amount) if prize_amount is not None else None,
        )


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    address: str
    total_tickets: int
    total_spent: float
    raffle_count: int
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "totalTickets": self.total_tickets,
            "totalSpent": self.total_spent,
            "raffleCount": self.raffle_count,
            "rank": self.rank,
        }


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    total_tickets_sold: int = 0
    total_volume: float = 0.0
    unique_participants: int = 0
    average_tickets_per_user: float = 0.0
    total_raffles: int = 0
    active_raffles: int = 0
    completed_raffles: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTicketsSold": self.total_tickets_sold,
            "totalVolume": self.total_volume,
            "uniqueParticipants": self.unique_participants,
            "averageTicketsPerUser": self.average_tickets_per_user,
            "totalRaffles": self.total_raffles,
            "activeRaffles": self.active_raffles,
            "completedRaffles": self.completed_raffles,
        }
