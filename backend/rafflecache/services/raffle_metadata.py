"""Raffle metadata lookups with a fast-tier cache and bounded fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from rafflecache.adapters.indexer.base import RaffleMetadata, RaffleViewClient
from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.core.config import Settings, get_settings
from rafflecache.services.cache_store import CacheStore

logger = logging.getLogger(__name__)


def metadata_cache_key(raffle_id: int) -> str:
    return f"raffle:metadata:{raffle_id}"


class RaffleMetadataResolver:
    def __init__(
        self,
        view_client: RaffleViewClient | None,
        cache_store: CacheStore,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._view_client = view_client
        self._cache = cache_store
        self._ttl_seconds = settings.metadata_cache_ttl_seconds
        self._concurrency = max(1, settings.metadata_fetch_concurrency)

    @property
    def enabled(self) -> bool:
        return self._view_client is not None

    async def _fetch_one(self, raffle_id: int, semaphore: asyncio.Semaphore) -> RaffleMetadata | None:
        async with semaphore:
            try:
                metadata = await self._view_client.get_raffle(raffle_id)
            except IndexerUpstreamError:
                logger.warning("Raffle metadata fetch failed", exc_info=True, extra={"raffle_id": raffle_id})
                return None
        await self._cache.set(metadata_cache_key(raffle_id), metadata.to_dict(), self._ttl_seconds)
        return metadata

    async def get(self, raffle_id: int) -> RaffleMetadata | None:
        return (await self.get_many([raffle_id])).get(raffle_id)

    async def get_many(self, raffle_ids: Iterable[int]) -> dict[int, RaffleMetadata]:
        """Resolve metadata for each distinct id; ids that fail are left out."""
        result: dict[int, RaffleMetadata] = {}
        uncached: list[int] = []
        for raffle_id in dict.fromkeys(raffle_ids):
            cached = await self._cache.get(metadata_cache_key(raffle_id))
            if isinstance(cached, dict):
                try:
                    result[raffle_id] = RaffleMetadata.from_dict(cached)
                    continue
                except (TypeError, ValueError):
                    logger.warning("Cached raffle metadata unreadable; refetching", extra={"raffle_id": raffle_id})
            uncached.append(raffle_id)

        if not uncached or self._view_client is None:
            return result

        logger.info("Fetching uncached raffle metadata", extra={"count": len(uncached), "concurrency": self._concurrency})
        semaphore = asyncio.Semaphore(self._concurrency)
        fetched = await asyncio.gather(*(self._fetch_one(raffle_id, semaphore) for raffle_id in uncached))
        for raffle_id, metadata in zip(uncached, fetched):
            if metadata is not None:
                result[raffle_id] = metadata
        return result
