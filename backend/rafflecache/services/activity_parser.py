"""Classify raw indexer events into ActivityRecords.

The indexer schema is not stable: the same logical field shows up as
``raffle_id`` or ``raffleId`` depending on the contract build, and a few
fields carry legacy names (``user`` for the buyer, ``winner_address``).
All of that is captured in ``FIELD_ALIASES``; parsing code never looks up a
payload key directly.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from rafflecache.core.config import OCTAS_PER_UNIT
from rafflecache.services.records import (
    RAFFLE_CREATED,
    RAFFLE_FINALIZED,
    TICKET_PURCHASE,
    ActivityRecord,
)

logger = logging.getLogger(__name__)

# Substrings of the Move event type tag, per activity kind.
EVENT_TYPE_MARKERS: dict[str, tuple[str, ...]] = {
    TICKET_PURCHASE: ("BuyTicketEvent",),
    RAFFLE_CREATED: ("CreateRaffleEvent", "RaffleCreatedEvent"),
    RAFFLE_FINALIZED: ("FinalizeRaffleEvent", "RaffleFinalizedEvent"),
}

# Logical field -> accepted payload spellings, first match wins.
FIELD_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    TICKET_PURCHASE: {
        "raffle_id": ("raffle_id", "raffleId"),
        "buyer": ("buyer", "user"),
        "ticket_count": ("ticket_count", "ticketCount"),
        "total_paid": ("total_paid", "totalPaid"),
        "timestamp": ("timestamp", "purchased_at", "purchasedAt"),
    },
    RAFFLE_CREATED: {
        "raffle_id": ("raffle_id", "raffleId"),
        "creator": ("creator", "creator_address", "creatorAddress"),
        "ticket_price": ("ticket_price", "ticketPrice"),
        "total_tickets": ("total_tickets", "totalTickets"),
        "target_amount": ("target_amount", "targetAmount"),
        "timestamp": ("timestamp", "created_at", "createdAt"),
    },
    RAFFLE_FINALIZED: {
        "raffle_id": ("raffle_id", "raffleId"),
        "winner": ("winner", "winner_address", "winnerAddress"),
        "prize_amount": ("prize_amount", "prizeAmount", "amount"),
        "timestamp": ("timestamp", "finalized_at", "finalizedAt"),
    },
}

# Envelope fields live on the raw event itself rather than in ``data``.
ENVELOPE_ALIASES: dict[str, tuple[str, ...]] = {
    "type": ("type", "indexed_type", "indexedType"),
    "version": ("transaction_version", "transactionVersion"),
    "block_height": ("transaction_block_height", "transactionBlockHeight", "block_height"),
    "timestamp": ("timestamp", "transaction_timestamp"),
}


class MalformedEventError(ValueError):
    pass


def resolve_field(payload: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = payload.get(alias)
        if value is not None and value != "":
            return value
    return None


def classify_event_type(type_tag: Any) -> str | None:
    if not type_tag or not isinstance(type_tag, str):
        return None
    for kind, markers in EVENT_TYPE_MARKERS.items():
        if any(marker in type_tag for marker in markers):
            return kind
    return None


def _to_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, OverflowError):
        return 0


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not parsed.is_finite():
        return Decimal(0)
    return parsed


def octas_to_units(value: Any) -> float:
    """Convert an octa amount to whole units.

    Whole octa values divide exactly; only a fractional source value is
    rounded to the nearest octa first.
    """
    octas = _to_decimal(value)
    if octas != octas.to_integral_value():
        octas = octas.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(octas / OCTAS_PER_UNIT)


def _to_address(value: Any) -> str:
    return str(value) if value is not None else ""


def _decode_payload(raw_data: Any) -> dict[str, Any]:
    if isinstance(raw_data, str):
        try:
            raw_data = json.loads(raw_data)
        except json.JSONDecodeError as exc:
            raise MalformedEventError(f"event data is not valid JSON: {exc}") from exc
    if not isinstance(raw_data, dict):
        raise MalformedEventError(f"event data has unexpected type {type(raw_data).__name__}")
    return raw_data


def parse_event(
    event: Mapping[str, Any],
    *,
    ingested_at: datetime | None = None,
    timestamps: Mapping[str, str] | None = None,
) -> ActivityRecord | None:
    """Return the ActivityRecord for *event*, or None for unrelated events.

    Raises MalformedEventError when the event is one of ours but cannot be
    interpreted (undecodable payload, missing transaction version).
    """
    kind = classify_event_type(resolve_field(event, ENVELOPE_ALIASES["type"]))
    if kind is None:
        return None

    version = resolve_field(event, ENVELOPE_ALIASES["version"])
    if version is None:
        raise MalformedEventError("event is missing its transaction version")
    source_version = str(version)

    data = _decode_payload(event.get("data"))
    aliases = FIELD_ALIASES[kind]

    def field(name: str) -> Any:
        return resolve_field(data, aliases[name])

    timestamp = (
        (timestamps or {}).get(source_version)
        or resolve_field(event, ENVELOPE_ALIASES["timestamp"])
        or field("timestamp")
    )
    if not timestamp:
        timestamp = (ingested_at or datetime.now(UTC)).isoformat()

    common = {
        "kind": kind,
        "raffle_id": _to_int(field("raffle_id")),
        "source_version": source_version,
        "block_height": _to_int(resolve_field(event, ENVELOPE_ALIASES["block_height"])),
        "timestamp": str(timestamp),
    }

    if kind == TICKET_PURCHASE:
        return ActivityRecord(
            **common,
            buyer=_to_address(field("buyer")),
            ticket_count=_to_int(field("ticket_count")),
            amount_paid=octas_to_units(field("total_paid")),
        )

    if kind == RAFFLE_CREATED:
        # Creation events carry no prize; the target amount stands in for it,
        # falling back to the full ticket run when no target was set.
        target_amount = _to_decimal(field("target_amount"))
        if target_amount <= 0:
            target_amount = _to_decimal(field("ticket_price")) * _to_decimal(field("total_tickets"))
        return ActivityRecord(
            **common,
            creator=_to_address(field("creator")),
            prize_amount=octas_to_units(target_amount),
        )

    return ActivityRecord(
        **common,
        winner=_to_address(field("winner")),
        prize_amount=octas_to_units(field("prize_amount")),
    )


def parse_events(
    raw_events: Iterable[Any],
    *,
    ingested_at: datetime | None = None,
    timestamps: Mapping[str, str] | None = None,
) -> Iterator[ActivityRecord]:
    """Lazily parse *raw_events*, dropping anything that cannot be classified."""
    ingested_at = ingested_at or datetime.now(UTC)
    for raw in raw_events:
        if not isinstance(raw, Mapping):
            logger.warning("Dropping non-object indexer event", extra={"type": type(raw).__name__})
            continue
        try:
            record = parse_event(raw, ingested_at=ingested_at, timestamps=timestamps)
        except (MalformedEventError, TypeError, ValueError) as exc:
            logger.warning(
                "Dropping malformed indexer event",
                extra={
                    "transaction_version": str(raw.get("transaction_version", "")),
                    "reason": str(exc),
                },
            )
            continue
        if record is None:
            logger.debug(
                "Skipping unrecognized indexer event",
                extra={"type": str(raw.get("type") or raw.get("indexed_type") or "")},
            )
            continue
        yield record
