import logging

from fastapi import APIRouter, Depends, Path, Query

from rafflecache.api.deps import get_resources
from rafflecache.api.errors import load_or_fail
from rafflecache.core.resources import AppResources
from rafflecache.schemas.envelope import Envelope, from_cached
from rafflecache.services.records import ActivityRecord
from rafflecache.services.tiered_cache import CachedResult

router = APIRouter()
logger = logging.getLogger(__name__)


def _records_from(result: CachedResult) -> list[ActivityRecord]:
    records: list[ActivityRecord] = []
    for item in result.value or []:
        try:
            records.append(ActivityRecord.from_dict(item))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping unreadable cached activity item")
    return records


def schedule_side_effects(resources: AppResources, result: CachedResult, *, notify: bool = True) -> None:
    """Queue analytics tracking and notification processing for fresh activity.

    Cached results were already handed off when they were computed.
    """
    if result.cached:
        return
    records = _records_from(result)
    if not records:
        return
    if resources.recorder.enabled:
        resources.background.fire_and_forget(resources.recorder.track_batch(records), name="track-activity")
    if notify and resources.notifications.enabled:
        resources.background.fire_and_forget(
            resources.notifications.process_batch(records),
            name="activity-notifications",
        )


@router.get("/global", response_model=Envelope, response_model_exclude_none=True)
async def global_activity(
    limit: int = Query(50, ge=1, le=1000),
    resources: AppResources = Depends(get_resources),
) -> Envelope:
    result = await load_or_fail(
        resources.read_service.global_activity(limit),
        "Failed to fetch global activity",
    )
    schedule_side_effects(resources, result)
    return from_cached(result)


@router.get("/raffle/{raffle_id}", response_model=Envelope, response_model_exclude_none=True)
async def raffle_activity(
    raffle_id: int = Path(..., ge=0),
    limit: int = Query(50, ge=1, le=1000),
    resources: AppResources = Depends(get_resources),
) -> Envelope:
    result = await load_or_fail(
        resources.read_service.raffle_activity(raffle_id, limit),
        "Failed to fetch raffle activity",
    )
    schedule_side_effects(resources, result)
    return from_cached(result, raffle_id=raffle_id)


@router.get("/user/{address}", response_model=Envelope, response_model_exclude_none=True)
async def user_activity(
    address: str,
    limit: int = Query(50, ge=1, le=1000),
    resources: AppResources = Depends(get_resources),
) -> Envelope:
    result = await load_or_fail(
        resources.read_service.user_activity(address, limit),
        "Failed to fetch user activity",
    )
    return from_cached(result, user_address=address)


@router.get("/user/{address}/history", response_model=Envelope, response_model_exclude_none=True)
async def user_history(
    address: str,
    limit: int = Query(100, ge=1, le=1000),
    resources: AppResources = Depends(get_resources),
) -> Envelope:
    history = await resources.recorder.user_history(address, limit)
    return Envelope(data=history, count=len(history), cached=False, user_address=address)
