"""Historical copy of activity records in ``raffle_activities``."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from rafflecache.core.database import SessionFactory
from rafflecache.models.raffle_activity import RaffleActivity
from rafflecache.services.aggregation import dedupe_records
from rafflecache.services.records import ActivityRecord

logger = logging.getLogger(__name__)

_INSERT_CHUNK_SIZE = 500


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.now(UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def activity_row(record: ActivityRecord) -> dict:
    return {
        "transaction_version": record.source_version,
        "activity_type": record.kind,
        "raffle_id": record.raffle_id,
        "user_address": record.actor,
        "ticket_count": record.ticket_count,
        "total_paid": record.amount_paid,
        "prize_amount": record.prize_amount,
        "block_height": record.block_height,
        "timestamp": _parse_timestamp(record.timestamp),
    }


def build_activity_insert(rows: list[dict]):
    stmt = pg_insert(RaffleActivity).values(rows)
    return stmt.on_conflict_do_nothing(index_elements=["transaction_version"])


class ActivityRecorder:
    def __init__(self, session_factory: SessionFactory | None, enabled: bool = True) -> None:
        self._session_factory = session_factory
        self._enabled = enabled and session_factory is not None

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def track_batch(self, records: Iterable[ActivityRecord]) -> int:
        """Persist *records*, skipping versions already stored.

        Returns the number of newly inserted rows; failures are logged and
        count as zero.
        """
        if not self._enabled:
            return 0
        rows = [activity_row(record) for record in dedupe_records(records)]
        if not rows:
            return 0

        inserted = 0
        async with self._session_factory() as db:
            try:
                for start in range(0, len(rows), _INSERT_CHUNK_SIZE):
                    result = await db.execute(build_activity_insert(rows[start : start + _INSERT_CHUNK_SIZE]))
                    inserted += max(0, result.rowcount or 0)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.warning("Activity tracking failed", exc_info=True, extra={"records": len(rows)})
                return 0

        logger.info(
            "Activity batch tracked",
            extra={"records": len(rows), "inserted": inserted, "already_recorded": len(rows) - inserted},
        )
        return inserted

    async def user_history(self, address: str, limit: int = 100) -> list[dict]:
        if not self._enabled:
            return []
        stmt = (
            select(RaffleActivity)
            .where(func.lower(RaffleActivity.user_address) == address.lower())
            .order_by(RaffleActivity.timestamp.desc())
            .limit(max(1, limit))
        )
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(stmt)).scalars().all()
        except Exception:
            logger.warning("User history lookup failed", exc_info=True, extra={"user_address": address})
            return []
        return [
            {
                "type": row.activity_type,
                "raffleId": row.raffle_id,
                "userAddress": row.user_address,
                "ticketCount": row.ticket_count,
                "totalPaid": row.total_paid,
                "prizeAmount": row.prize_amount,
                "transactionVersion": row.transaction_version,
                "blockHeight": row.block_height,
                "timestamp": row.timestamp.isoformat(),
            }
            for row in rows
        ]
