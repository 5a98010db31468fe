from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text

from rafflecache.api.deps import get_resources
from rafflecache.core.resources import AppResources

router = APIRouter()


async def _database_ok(resources: AppResources) -> bool | None:
    if resources.session_factory is None:
        return None
    try:
        async with resources.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        return False
    return True


@router.get("/health")
async def health(resources: AppResources = Depends(get_resources)) -> dict:
    redis_ok = await resources.cache_store.ping()
    db_ok = await _database_ok(resources)

    def _describe(flag: bool | None) -> str:
        if flag is None:
            return "disabled"
        return "connected" if flag else "unavailable"

    degraded = not redis_ok or db_ok is False
    return {
        "success": True,
        "status": "degraded" if degraded else "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": {
            "api": "running",
            "redis": _describe(redis_ok if resources.cache_store.enabled else None),
            "database": _describe(db_ok),
        },
        "features": {
            "persisted_cache": resources.settings.enable_persisted_cache,
            "analytics": resources.recorder.enabled,
            "notifications": resources.notifications.enabled,
        },
    }
