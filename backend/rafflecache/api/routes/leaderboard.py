from fastapi import APIRouter, Depends, Path, Query

from rafflecache.api.deps import get_read_service
from rafflecache.api.errors import load_or_fail
from rafflecache.schemas.envelope import Envelope, from_cached
from rafflecache.services.raffle_service import RaffleReadService

router = APIRouter()


@router.get("/global", response_model=Envelope, response_model_exclude_none=True)
async def global_leaderboard(
    limit: int = Query(100, ge=1, le=1000),
    service: RaffleReadService = Depends(get_read_service),
) -> Envelope:
    result = await load_or_fail(service.global_leaderboard(limit), "Failed to fetch global leaderboard")
    return from_cached(result)


@router.get("/raffle/{raffle_id}", response_model=Envelope, response_model_exclude_none=True)
async def raffle_leaderboard(
    raffle_id: int = Path(..., ge=0),
    limit: int = Query(100, ge=1, le=1000),
    service: RaffleReadService = Depends(get_read_service),
) -> Envelope:
    result = await load_or_fail(service.raffle_leaderboard(raffle_id, limit), "Failed to fetch raffle leaderboard")
    return from_cached(result, raffle_id=raffle_id)
