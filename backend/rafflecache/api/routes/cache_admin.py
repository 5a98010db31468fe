import logging

from fastapi import APIRouter, Depends

from rafflecache.api.deps import get_resources, require_ops_token
from rafflecache.core.resources import AppResources
from rafflecache.schemas.envelope import CacheClearOut, CacheClearRequest

router = APIRouter(dependencies=[Depends(require_ops_token)])
logger = logging.getLogger(__name__)


async def _flush(resources: AppResources) -> CacheClearOut:
    flushed = await resources.tiered_cache.flush_fast()
    logger.info("Fast tier flush requested", extra={"flushed": flushed})
    return CacheClearOut(
        success=flushed,
        message="All fast-tier cache entries cleared" if flushed else "Failed to clear cache",
    )


@router.post("/clear", response_model=CacheClearOut, response_model_exclude_none=True)
async def clear_cache(
    payload: CacheClearRequest | None = None,
    resources: AppResources = Depends(get_resources),
) -> CacheClearOut:
    pattern = (payload.pattern or "").strip() if payload is not None else ""
    if not pattern:
        return await _flush(resources)

    keys_cleared = await resources.cache_store.clear_by_pattern(pattern)
    slow_cleared = None
    if payload.include_slow_tier and resources.tiered_cache.slow is not None:
        slow_cleared = await resources.tiered_cache.slow.delete_like(pattern)
    logger.info(
        "Cache pattern clear requested",
        extra={"pattern": pattern, "keys_cleared": keys_cleared, "slow_tier_cleared": slow_cleared},
    )
    return CacheClearOut(
        success=True,
        message=f"Cleared {keys_cleared} keys matching pattern: {pattern}",
        keys_cleared=keys_cleared,
        slow_tier_cleared=slow_cleared,
    )


@router.get("/clear", response_model=CacheClearOut, response_model_exclude_none=True)
async def clear_cache_get(resources: AppResources = Depends(get_resources)) -> CacheClearOut:
    return await _flush(resources)
