from fastapi import APIRouter, Depends

from rafflecache.api.deps import get_resources
from rafflecache.core.resources import AppResources
from rafflecache.schemas.envelope import Envelope
from rafflecache.tasks.poller import load_polling_state

router = APIRouter()


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


@router.get("/status", response_model=Envelope, response_model_exclude_none=True)
async def polling_status(resources: AppResources = Depends(get_resources)) -> Envelope:
    state = await load_polling_state(resources.session_factory)
    if state is None:
        return Envelope(data={"initialized": False})
    return Envelope(
        data={
            "initialized": True,
            "lastSyncedVersion": state.last_synced_version,
            "lastSyncedAt": _iso(state.last_synced_at),
            "isSyncing": state.is_syncing,
            "errorCount": state.error_count,
            "lastError": state.last_error,
            "lastErrorAt": _iso(state.last_error_at),
        }
    )
