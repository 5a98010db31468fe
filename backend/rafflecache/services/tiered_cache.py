"""Read-through cache over the fast (Redis) and slow (Postgres) tiers."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from rafflecache.services.cache_store import CacheStore
from rafflecache.services.persisted_cache import SlowTier

logger = logging.getLogger(__name__)

SOURCE_FAST = "fast-tier"
SOURCE_SLOW = "slow-tier"
SOURCE_COMPUTED = "computed"


@dataclass(frozen=True, slots=True)
class TierPolicy:
    fast_ttl_seconds: int
    slow_ttl_seconds: int | None = None
    freshness_seconds: int | None = None

    @property
    def uses_slow_tier(self) -> bool:
        return self.slow_ttl_seconds is not None


@dataclass(frozen=True, slots=True)
class CachedResult:
    value: Any
    source: str

    @property
    def cached(self) -> bool:
        return self.source != SOURCE_COMPUTED


class TieredCache:
    """Fast tier first, then slow tier, then the loader.

    A slow-tier hit is copied back into the fast tier. A computed value is
    written to the slow tier before the fast tier, so a fast-tier entry never
    exists without its slow-tier counterpart for policies that use both.
    Concurrent misses on one key each run the loader; the last write wins.
    """

    def __init__(self, fast: CacheStore, slow: SlowTier | None = None) -> None:
        self.fast = fast
        self.slow = slow

    def _slow_for(self, policy: TierPolicy) -> SlowTier | None:
        if not policy.uses_slow_tier or self.slow is None or not self.slow.enabled:
            return None
        return self.slow

    async def get(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        policy: TierPolicy,
        *,
        resource: str,
        raffle_id: int | None = None,
    ) -> CachedResult:
        value = await self.fast.get(key)
        if value is not None:
            return CachedResult(value, SOURCE_FAST)

        slow = self._slow_for(policy)
        if slow is not None:
            value = await slow.read(key, policy.freshness_seconds)
            if value is not None:
                await self.fast.set(key, value, policy.fast_ttl_seconds)
                return CachedResult(value, SOURCE_SLOW)

        value = await loader()
        if slow is not None:
            await slow.write(
                key,
                value,
                policy.slow_ttl_seconds or policy.fast_ttl_seconds,
                resource=resource,
                raffle_id=raffle_id,
            )
        await self.fast.set(key, value, policy.fast_ttl_seconds)
        logger.debug("Cache miss computed", extra={"cache_key": key, "resource": resource})
        return CachedResult(value, SOURCE_COMPUTED)

    async def invalidate(self, key: str) -> None:
        await self.fast.delete(key)
        if self.slow is not None and self.slow.enabled:
            await self.slow.delete(key)

    async def invalidate_pattern(self, pattern: str, *, include_slow: bool = True) -> int:
        cleared = await self.fast.clear_by_pattern(pattern)
        if include_slow and self.slow is not None and self.slow.enabled:
            cleared += await self.slow.delete_like(pattern)
        return cleared

    async def flush_fast(self) -> bool:
        return await self.fast.flush_all()
