"""Processed-event markers kept in the fast cache tier.

Markers expire; the ledger is a best-effort window, not a permanent record.
Side effects gated by it must still be idempotent at the persistence layer.
"""

from __future__ import annotations

from datetime import UTC, datetime

from rafflecache.services.cache_store import CacheStore

PROCESSED_PREFIX = "processed_tx:"


class DedupLedger:
    def __init__(
        self,
        cache_store: CacheStore,
        ttl_seconds: int = 86400,
        prefix: str = PROCESSED_PREFIX,
    ) -> None:
        self._store = cache_store
        self._ttl_seconds = ttl_seconds
        self._prefix = prefix

    @property
    def enabled(self) -> bool:
        return self._store.enabled

    def _key(self, source_version: str) -> str:
        return f"{self._prefix}{source_version}"

    async def is_processed(self, source_version: str) -> bool:
        return await self._store.exists(self._key(source_version))

    async def mark_processed(self, source_version: str) -> bool:
        return await self._store.set(
            self._key(source_version),
            {"processedAt": datetime.now(UTC).isoformat()},
            self._ttl_seconds,
        )
