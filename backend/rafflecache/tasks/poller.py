import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from rafflecache.core.config import get_settings
from rafflecache.core.database import SessionFactory
from rafflecache.core.logging import setup_logging
from rafflecache.core.resources import AppResources, open_resources
from rafflecache.models.polling_state import POLLING_STATE_ROW_ID, PollingState
from rafflecache.services.records import ActivityRecord

settings = get_settings()
logger = logging.getLogger(__name__)

POLL_LOCK_KEY = "poller:raffle-sync-lock"


def determine_poll_interval(cycle_result: dict | None) -> int:
    active_interval = max(1, settings.poll_interval_seconds)
    idle_interval = max(1, settings.poll_interval_idle_seconds)
    error_interval = max(1, settings.poll_interval_error_seconds)

    if not cycle_result:
        return active_interval
    if cycle_result.get("failed"):
        return error_interval

    events_seen = cycle_result.get("events_seen", 0)
    if isinstance(events_seen, int) and events_seen == 0:
        return idle_interval
    return active_interval


@asynccontextmanager
async def redis_cycle_lock(redis: Redis | None, lock_key: str, ttl_seconds: int = 55):
    if redis is None:
        yield True
        return

    lock_value = str(uuid.uuid4())
    try:
        acquired = await redis.set(lock_key, lock_value, ex=ttl_seconds, nx=True)
    except Exception:
        logger.exception("Failed to acquire redis lock")
        yield True
        return

    if not acquired:
        yield False
        return

    try:
        yield True
    finally:
        try:
            current = await redis.get(lock_key)
            if current == lock_value:
                await redis.delete(lock_key)
        except Exception:
            logger.exception("Failed to release redis lock")


async def _ensure_polling_state(db: AsyncSession) -> PollingState:
    state = await db.get(PollingState, POLLING_STATE_ROW_ID)
    if state is None:
        state = PollingState(
            id=POLLING_STATE_ROW_ID,
            last_synced_version=0,
            is_syncing=False,
            error_count=0,
        )
        db.add(state)
        await db.flush()
    return state


async def load_polling_state(session_factory: SessionFactory | None) -> PollingState | None:
    if session_factory is None:
        return None
    async with session_factory() as db:
        return await db.get(PollingState, POLLING_STATE_ROW_ID)


async def _record_cycle_failure(session_factory: SessionFactory, error: str) -> None:
    try:
        async with session_factory() as db:
            state = await _ensure_polling_state(db)
            state.is_syncing = False
            state.error_count = (state.error_count or 0) + 1
            state.last_error = error[:1000]
            state.last_error_at = datetime.now(UTC)
            await db.commit()
    except Exception:
        logger.exception("Failed to record polling failure")


def _next_cursor(after_version: int, records: list[ActivityRecord], failed_versions) -> int:
    """Highest version safe to sync past.

    Stops just short of the oldest event whose notifications failed, so the
    next fetch picks it up again. Events already marked in the ledger are
    skipped on the retry.
    """
    failed = set(failed_versions)
    if failed:
        oldest_failed = min(record.version_number for record in records if record.source_version in failed)
        return max(after_version, oldest_failed - 1)
    return max(after_version, *(record.version_number for record in records))


async def run_polling_cycle(resources: AppResources) -> dict:
    """Pull activity newer than the stored cursor and fan it out.

    New records are tracked for analytics, run through the notification
    triggers and, when any arrived, invalidate the cached read models.
    The cursor only advances past events whose notifications went out;
    any failure holds it just short of the oldest failed event.
    """
    session_factory = resources.session_factory
    if session_factory is None:
        logger.warning("Polling skipped; persistence is disabled so there is no sync cursor")
        return {"events_seen": 0, "skipped": "no_persistence"}

    async with session_factory() as db:
        state = await _ensure_polling_state(db)
        after_version = int(state.last_synced_version or 0)
        state.is_syncing = True
        await db.commit()

    try:
        records = list(await resources.event_source.fetch_events_after(after_version, settings.poll_batch_size))
        result = {
            "after_version": after_version,
            "events_seen": len(records),
            "activities_tracked": 0,
            "notifications_processed": 0,
            "cache_keys_cleared": 0,
            "synced_version": after_version,
        }
        if records:
            result["activities_tracked"] = await resources.recorder.track_batch(records)
            notification_summary = await resources.notifications.process_batch(records)
            result["notifications_processed"] = notification_summary.get("processed", 0)
            result["cache_keys_cleared"] = await resources.read_service.invalidate_read_models()
            result["synced_version"] = _next_cursor(after_version, records, notification_summary.get("failed", ()))
            if notification_summary.get("failed"):
                result["notifications_failed"] = len(notification_summary["failed"])
                logger.warning(
                    "Cursor held back behind events with failed notifications",
                    extra={"after_version": after_version, "synced_version": result["synced_version"]},
                )

        async with session_factory() as db:
            state = await _ensure_polling_state(db)
            state.last_synced_version = result["synced_version"]
            state.last_synced_at = datetime.now(UTC)
            state.is_syncing = False
            state.error_count = 0
            await db.commit()
    except Exception as exc:
        await _record_cycle_failure(session_factory, str(exc) or type(exc).__name__)
        raise

    logger.info("Polling cycle completed", extra=result)
    return result


async def main() -> None:
    setup_logging()
    logger.info(
        "Starting raffle poller",
        extra={
            "active_interval_seconds": settings.poll_interval_seconds,
            "idle_interval_seconds": settings.poll_interval_idle_seconds,
            "error_interval_seconds": settings.poll_interval_error_seconds,
            "batch_size": settings.poll_batch_size,
        },
    )

    resources = await open_resources(settings)
    if resources.redis is None:
        logger.warning("Redis unavailable, poller running without cycle lock")

    try:
        while True:
            cycle_start = time.monotonic()
            cycle_result: dict | None = None
            try:
                async with redis_cycle_lock(
                    resources.redis,
                    POLL_LOCK_KEY,
                    ttl_seconds=settings.poll_lock_ttl_seconds,
                ) as acquired:
                    if acquired:
                        cycle_result = await run_polling_cycle(resources)
                    else:
                        logger.info("Skipping cycle because lock is held")
            except Exception as exc:
                cycle_result = {"failed": True, "error": str(exc)}
                logger.exception("Polling cycle failed")

            target_interval = determine_poll_interval(cycle_result)
            elapsed = time.monotonic() - cycle_start
            await asyncio.sleep(max(1, target_interval - elapsed))
    finally:
        await resources.close()


if __name__ == "__main__":
    asyncio.run(main())
