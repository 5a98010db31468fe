from fastapi import APIRouter, Depends, Path

from rafflecache.api.deps import get_read_service
from rafflecache.api.errors import load_or_fail
from rafflecache.schemas.envelope import Envelope, from_cached
from rafflecache.services.raffle_service import RaffleReadService

router = APIRouter()


@router.get("/platform", response_model=Envelope, response_model_exclude_none=True)
async def platform_stats(service: RaffleReadService = Depends(get_read_service)) -> Envelope:
    result = await load_or_fail(service.platform_stats(), "Failed to fetch platform stats")
    return from_cached(result)


@router.get("/raffle/{raffle_id}", response_model=Envelope, response_model_exclude_none=True)
async def raffle_stats(
    raffle_id: int = Path(..., ge=0),
    service: RaffleReadService = Depends(get_read_service),
) -> Envelope:
    result = await load_or_fail(service.raffle_stats(raffle_id), "Failed to fetch raffle stats")
    return from_cached(result, raffle_id=raffle_id)
