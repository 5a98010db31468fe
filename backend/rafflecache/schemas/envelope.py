from typing import Any

from pydantic import BaseModel, Field

from rafflecache.services.tiered_cache import CachedResult


class Envelope(BaseModel):
    success: bool = True
    data: Any = None
    count: int | None = None
    cached: bool | None = None
    source: str | None = None  # fast-tier, slow-tier or computed
    error: str | None = None
    message: str | None = None
    raffle_id: int | None = Field(default=None, serialization_alias="raffleId")
    user_address: str | None = Field(default=None, serialization_alias="userAddress")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def from_cached(result: CachedResult, **extra: Any) -> Envelope:
    value = result.value
    return Envelope(
        data=value,
        count=len(value) if isinstance(value, list) else None,
        cached=result.cached,
        source=result.source,
        **extra,
    )


def error_envelope(message: str) -> Envelope:
    return Envelope(success=False, error=message)


class CacheClearRequest(BaseModel):
    model_config = {"populate_by_name": True}

    pattern: str | None = None
    include_slow_tier: bool = Field(default=False, alias="includeSlowTier")


class CacheClearOut(BaseModel):
    success: bool
    message: str
    keys_cleared: int | None = Field(default=None, serialization_alias="keysCleared")
    slow_tier_cleared: int | None = Field(default=None, serialization_alias="slowTierCleared")

