"""Cached read models served by the HTTP API.

Each operation names its cache key, its tier policy and the loader that
recomputes the value from upstream activity on a full miss.
"""

from __future__ import annotations

import logging

from rafflecache.core.config import Settings, get_settings
from rafflecache.services import aggregation
from rafflecache.services.event_source import EventSource
from rafflecache.services.raffle_metadata import RaffleMetadataResolver
from rafflecache.services.records import ActivityRecord
from rafflecache.services.tiered_cache import CachedResult, TieredCache, TierPolicy

logger = logging.getLogger(__name__)

RESOURCE_ACTIVITY = "activity"
RESOURCE_LEADERBOARD = "leaderboard"
RESOURCE_STATS = "stats"

# Fast-tier key families, in the form accepted by CacheStore.clear_by_pattern.
READ_MODEL_PATTERNS = ("activity:*", "leaderboard:*", "stats:*")


def global_activity_key(limit: int) -> str:
    return f"activity:global:{limit}"


def raffle_activity_key(raffle_id: int, limit: int) -> str:
    return f"activity:raffle:{raffle_id}:{limit}"


def user_activity_key(address: str, limit: int) -> str:
    return f"activity:user:{address.lower()}:{limit}"


def global_leaderboard_key(limit: int) -> str:
    return f"leaderboard:global:{limit}"


def raffle_leaderboard_key(raffle_id: int, limit: int) -> str:
    return f"leaderboard:raffle:{raffle_id}:{limit}"


def platform_stats_key() -> str:
    return "stats:platform"


def raffle_stats_key(raffle_id: int) -> str:
    return f"stats:raffle:{raffle_id}"


class RaffleReadService:
    def __init__(
        self,
        event_source: EventSource,
        cache: TieredCache,
        metadata: RaffleMetadataResolver | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._events = event_source
        self._cache = cache
        self._metadata = metadata

    def _check_limit(self, limit: int) -> int:
        if limit < 1:
            raise ValueError("limit must be a positive integer")
        if limit > self._events.max_fetch_limit:
            raise ValueError(f"limit must not exceed {self._events.max_fetch_limit}")
        return limit

    @staticmethod
    def _check_raffle_id(raffle_id: int) -> int:
        if raffle_id < 0:
            raise ValueError("Invalid raffle ID")
        return raffle_id

    def _fast_only(self, ttl_seconds: int) -> TierPolicy:
        return TierPolicy(fast_ttl_seconds=ttl_seconds)

    def _with_slow_tier(self, ttl_seconds: int) -> TierPolicy:
        return TierPolicy(
            fast_ttl_seconds=ttl_seconds,
            slow_ttl_seconds=self._settings.slow_tier_ttl_seconds,
            freshness_seconds=self._settings.slow_tier_freshness_seconds,
        )

    async def _serialize_feed(self, records: list[ActivityRecord], *, with_metadata: bool) -> list[dict]:
        items = [record.to_dict() for record in records]
        if not with_metadata or self._metadata is None or not records:
            return items
        metadata = await self._metadata.get_many(record.raffle_id for record in records)
        for item, record in zip(items, records):
            raffle = metadata.get(record.raffle_id)
            if raffle is not None:
                item["raffle"] = raffle.to_dict()
        return items

    # ── Activity feeds ───────────────────────────────────────────

    async def global_activity(self, limit: int = 50) -> CachedResult:
        limit = self._check_limit(limit)

        async def load() -> list[dict]:
            # Over-fetch so dropped events still leave a full page.
            page = await self._events.fetch_events(min(limit * 2, self._events.max_fetch_limit), 0)
            records = aggregation.filter_activity(page, limit=limit)
            return await self._serialize_feed(records, with_metadata=True)

        return await self._cache.get(
            global_activity_key(limit),
            load,
            self._fast_only(self._settings.activity_global_ttl_seconds),
            resource=RESOURCE_ACTIVITY,
        )

    async def raffle_activity(self, raffle_id: int, limit: int = 50) -> CachedResult:
        raffle_id = self._check_raffle_id(raffle_id)
        limit = self._check_limit(limit)

        async def load() -> list[dict]:
            window = await self._events.fetch_events(self._settings.raffle_activity_window, 0)
            records = aggregation.filter_activity(window, raffle_id=raffle_id, limit=limit)
            return await self._serialize_feed(records, with_metadata=False)

        return await self._cache.get(
            raffle_activity_key(raffle_id, limit),
            load,
            self._fast_only(self._settings.activity_raffle_ttl_seconds),
            resource=RESOURCE_ACTIVITY,
            raffle_id=raffle_id,
        )

    async def user_activity(self, address: str, limit: int = 50) -> CachedResult:
        address = address.strip()
        if not address:
            raise ValueError("User address required")
        limit = self._check_limit(limit)

        async def load() -> list[dict]:
            window = await self._events.fetch_events(self._settings.user_activity_window, 0)
            records = aggregation.filter_activity(window, user_address=address, limit=limit)
            return await self._serialize_feed(records, with_metadata=True)

        return await self._cache.get(
            user_activity_key(address, limit),
            load,
            self._fast_only(self._settings.activity_user_ttl_seconds),
            resource=RESOURCE_ACTIVITY,
        )

    # ── Leaderboards ─────────────────────────────────────────────

    async def global_leaderboard(self, limit: int = 100) -> CachedResult:
        limit = self._check_limit(limit)

        async def load() -> list[dict]:
            records = await self._events.collect_events(self._settings.leaderboard_window)
            return [entry.to_dict() for entry in aggregation.compute_leaderboard(records, limit=limit)]

        return await self._cache.get(
            global_leaderboard_key(limit),
            load,
            self._with_slow_tier(self._settings.leaderboard_global_ttl_seconds),
            resource=RESOURCE_LEADERBOARD,
        )

    async def raffle_leaderboard(self, raffle_id: int, limit: int = 100) -> CachedResult:
        raffle_id = self._check_raffle_id(raffle_id)
        limit = self._check_limit(limit)

        async def load() -> list[dict]:
            records = await self._events.collect_events(self._settings.leaderboard_window)
            entries = aggregation.compute_leaderboard(records, raffle_id=raffle_id, limit=limit)
            return [entry.to_dict() for entry in entries]

        return await self._cache.get(
            raffle_leaderboard_key(raffle_id, limit),
            load,
            self._with_slow_tier(self._settings.leaderboard_raffle_ttl_seconds),
            resource=RESOURCE_LEADERBOARD,
            raffle_id=raffle_id,
        )

    # ── Stats ────────────────────────────────────────────────────

    async def platform_stats(self) -> CachedResult:
        async def load() -> dict:
            records = await self._events.collect_events(self._settings.platform_stats_window)
            return aggregation.compute_stats(records).to_dict()

        return await self._cache.get(
            platform_stats_key(),
            load,
            self._with_slow_tier(self._settings.stats_platform_ttl_seconds),
            resource=RESOURCE_STATS,
        )

    async def raffle_stats(self, raffle_id: int) -> CachedResult:
        raffle_id = self._check_raffle_id(raffle_id)

        async def load() -> dict:
            records = await self._events.collect_events(self._settings.raffle_stats_window)
            return aggregation.compute_stats(records, raffle_id=raffle_id).to_dict()

        return await self._cache.get(
            raffle_stats_key(raffle_id),
            load,
            self._with_slow_tier(self._settings.stats_raffle_ttl_seconds),
            resource=RESOURCE_STATS,
            raffle_id=raffle_id,
        )

    async def invalidate_read_models(self) -> int:
        """Drop cached feeds, leaderboards and stats from the fast tier."""
        cleared = 0
        for pattern in READ_MODEL_PATTERNS:
            cleared += await self._cache.invalidate_pattern(pattern, include_slow=False)
        return cleared
