"""Derive user notifications from raffle activity.

Each activity is handled at most once per ledger window: the ledger is
checked first and the marker is written only after every notification for
the activity was emitted. The transaction version travels with each
notification as its idempotency token, so a re-delivery after the marker
expired collapses on the ``notifications`` unique constraint instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.dialects.postgresql import insert as pg_insert

from rafflecache.adapters.indexer.base import RaffleMetadata
from rafflecache.core.database import SessionFactory
from rafflecache.models.notification import Notification
from rafflecache.services.dedup_ledger import DedupLedger
from rafflecache.services.raffle_metadata import RaffleMetadataResolver
from rafflecache.services.records import (
    RAFFLE_CREATED,
    RAFFLE_FINALIZED,
    TICKET_PURCHASE,
    ActivityRecord,
)

logger = logging.getLogger(__name__)

TICKET_PURCHASED = "ticket_purchased"
RAFFLE_CREATED_NOTICE = "raffle_created"
RAFFLE_WON = "raffle_won"
RAFFLE_ENDED = "raffle_ended"

HANDLED = "handled"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True, slots=True)
class NotificationRequest:
    user_address: str
    type: str
    title: str
    message: str
    raffle_id: int | None = None
    related_address: str | None = None
    amount: float | None = None
    transaction_hash: str | None = None

    def as_row(self) -> dict:
        return {
            "user_address": self.user_address,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "raffle_id": self.raffle_id,
            "related_address": self.related_address,
            "amount": self.amount,
            "transaction_hash": self.transaction_hash,
        }


class NotificationEmitter(Protocol):
    async def emit(self, request: NotificationRequest) -> bool:
        """Record *request*; False means it was already recorded."""
        ...


def build_notification_insert(request: NotificationRequest):
    stmt = pg_insert(Notification).values(**request.as_row())
    return stmt.on_conflict_do_nothing(constraint="uq_notifications_idempotency")


class SqlNotificationEmitter:
    """Writes notifications into the ``notifications`` table for later delivery."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def emit(self, request: NotificationRequest) -> bool:
        async with self._session_factory() as db:
            try:
                result = await db.execute(build_notification_insert(request))
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        inserted = bool(result.rowcount)
        if not inserted:
            logger.info(
                "Notification already recorded",
                extra={
                    "transaction_hash": request.transaction_hash,
                    "user_address": request.user_address,
                    "type": request.type,
                },
            )
        return inserted


def _same_address(left: str | None, right: str | None) -> bool:
    return bool(left) and bool(right) and left.lower() == right.lower()


def _raffle_name(record: ActivityRecord, metadata: RaffleMetadata | None) -> str:
    if metadata is not None and metadata.title:
        return metadata.title
    return f"Raffle #{record.raffle_id}"


def build_notifications(
    record: ActivityRecord,
    metadata: RaffleMetadata | None = None,
) -> list[NotificationRequest]:
    """Notifications owed for *record*; may be empty."""
    token = record.source_version

    if record.kind == TICKET_PURCHASE:
        if not record.buyer or not record.ticket_count or not record.amount_paid:
            return []
        creator = metadata.creator if metadata is not None else None
        if not creator or _same_address(creator, record.buyer):
            return []
        ticket_text = "ticket" if record.ticket_count == 1 else "tickets"
        return [
            NotificationRequest(
                user_address=creator,
                type=TICKET_PURCHASED,
                title="New Ticket Purchase!",
                message=(
                    f"Someone bought {record.ticket_count} {ticket_text} for "
                    f"{record.amount_paid:.4f} MOVE on \"{_raffle_name(record, metadata)}\""
                ),
                raffle_id=record.raffle_id,
                related_address=record.buyer,
                amount=record.amount_paid,
                transaction_hash=token,
            )
        ]

    if record.kind == RAFFLE_CREATED:
        if not record.creator:
            return []
        return [
            NotificationRequest(
                user_address=record.creator,
                type=RAFFLE_CREATED_NOTICE,
                title="Raffle Created!",
                message=f"Your raffle #{record.raffle_id} has been created successfully. Good luck!",
                raffle_id=record.raffle_id,
                amount=record.prize_amount,
                transaction_hash=token,
            )
        ]

    if record.kind == RAFFLE_FINALIZED:
        name = _raffle_name(record, metadata)
        prize = record.prize_amount or (metadata.prize_amount if metadata is not None else 0.0) or 0.0
        requests: list[NotificationRequest] = []
        if record.winner:
            requests.append(
                NotificationRequest(
                    user_address=record.winner,
                    type=RAFFLE_WON,
                    title="Congratulations! You Won!",
                    message=f"You won \"{name}\" with a prize of {prize:.4f} MOVE! Claim your prize now.",
                    raffle_id=record.raffle_id,
                    amount=prize,
                    transaction_hash=token,
                )
            )
        creator = metadata.creator if metadata is not None else None
        if creator and not _same_address(creator, record.winner):
            requests.append(
                NotificationRequest(
                    user_address=creator,
                    type=RAFFLE_ENDED,
                    title="Raffle Ended!",
                    message=f"Your raffle \"{name}\" has ended. A winner has been selected!",
                    raffle_id=record.raffle_id,
                    related_address=record.winner or None,
                    amount=prize,
                    transaction_hash=token,
                )
            )
        return requests

    return []


class NotificationTrigger:
    def __init__(
        self,
        ledger: DedupLedger,
        emitter: NotificationEmitter | None,
        metadata_resolver: RaffleMetadataResolver | None = None,
    ) -> None:
        self._ledger = ledger
        self._emitter = emitter
        self._metadata = metadata_resolver

    @property
    def enabled(self) -> bool:
        return self._emitter is not None

    async def process_activity(
        self,
        record: ActivityRecord,
        metadata: RaffleMetadata | None = None,
    ) -> bool:
        """Emit the notifications for *record* unless already handled.

        Returns True when the record was handled in this call.
        """
        return await self._handle(record, metadata) == HANDLED

    async def _handle(self, record: ActivityRecord, metadata: RaffleMetadata | None) -> str:
        if self._emitter is None:
            return SKIPPED
        if await self._ledger.is_processed(record.source_version):
            return SKIPPED

        try:
            for request in build_notifications(record, metadata):
                await self._emitter.emit(request)
        except Exception:
            logger.exception(
                "Notification processing failed; event left unmarked for retry",
                extra={"transaction_version": record.source_version, "kind": record.kind},
            )
            return FAILED

        await self._ledger.mark_processed(record.source_version)
        return HANDLED

    async def process_batch(
        self,
        records: Iterable[ActivityRecord],
        metadata_by_raffle: Mapping[int, RaffleMetadata] | None = None,
    ) -> dict:
        """Handle *records* in order.

        ``failed`` lists the source versions whose notifications could not
        be emitted; they stay unmarked so a later batch can retry them.
        """
        records = list(records)
        summary = {"seen": len(records), "processed": 0, "failed": []}
        if self._emitter is None or not records:
            return summary

        if metadata_by_raffle is None and self._metadata is not None:
            needs_metadata = {r.raffle_id for r in records if r.kind in (TICKET_PURCHASE, RAFFLE_FINALIZED)}
            metadata_by_raffle = await self._metadata.get_many(sorted(needs_metadata))
        metadata_by_raffle = metadata_by_raffle or {}

        for record in records:
            outcome = await self._handle(record, metadata_by_raffle.get(record.raffle_id))
            if outcome == HANDLED:
                summary["processed"] += 1
            elif outcome == FAILED:
                summary["failed"].append(record.source_version)
        logger.info(
            "Notification batch processed",
            extra={"seen": summary["seen"], "processed": summary["processed"], "failed": len(summary["failed"])},
        )
        return summary
