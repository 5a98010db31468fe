from secrets import compare_digest

from fastapi import Depends, HTTPException, Request, status

from rafflecache.core.resources import AppResources
from rafflecache.services.raffle_service import RaffleReadService

OPS_TOKEN_HEADER = "X-Raffle-Ops-Token"


def get_resources(request: Request) -> AppResources:
    resources = getattr(request.app.state, "resources", None)
    if resources is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
    return resources


def get_read_service(resources: AppResources = Depends(get_resources)) -> RaffleReadService:
    return resources.read_service


async def require_ops_token(
    request: Request,
    resources: AppResources = Depends(get_resources),
) -> None:
    provided = request.headers.get(OPS_TOKEN_HEADER, "").strip()
    expected = resources.settings.ops_internal_token.strip()
    if not provided or not expected or not compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
