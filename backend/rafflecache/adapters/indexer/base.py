"""Protocol and shared types for upstream raffle event sources."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RaffleMetadata:
    """On-chain raffle state as returned by the ``get_raffle`` view function."""

    id: int
    title: str
    description: str
    image_url: str
    ticket_price: float
    total_tickets: int
    tickets_sold: int
    prize_amount: float
    creator: str
    status: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "id": data["id"],
            "title": data["title"],
            "description": data["description"],
            "imageUrl": data["image_url"],
            "ticketPrice": data["ticket_price"],
            "totalTickets": data["total_tickets"],
            "ticketsSold": data["tickets_sold"],
            "prizeAmount": data["prize_amount"],
            "creator": data["creator"],
            "status": data["status"],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RaffleMetadata":
        return cls(
            id=int(data.get("id", 0)),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            image_url=str(data.get("imageUrl", "")),
            ticket_price=float(data.get("ticketPrice", 0.0)),
            total_tickets=int(data.get("totalTickets", 0)),
            tickets_sold=int(data.get("ticketsSold", 0)),
            prize_amount=float(data.get("prizeAmount", 0.0)),
            creator=str(data.get("creator", "")),
            status=int(data.get("status", 0)),
        )


@runtime_checkable
class EventSourceClient(Protocol):
    """Interface the event source expects from an upstream indexer client.

    Raw events are returned untouched (type tag, opaque ``data`` payload,
    ``transaction_version``, ``transaction_block_height``); parsing happens
    downstream in ``rafflecache.services.activity_parser``.
    """

    async def fetch_raw_events(self, *, limit: int, offset: int) -> list[dict]:
        ...

    async def fetch_raw_events_after(self, *, version: int, limit: int) -> list[dict]:
        ...

    async def fetch_transaction_timestamps(self, versions: list[str]) -> dict[str, str]:
        ...


@runtime_checkable
class RaffleViewClient(Protocol):
    """Interface for reading a single raffle's on-chain state."""

    async def get_raffle(self, raffle_id: int) -> RaffleMetadata:
        ...
