"""Fast cache tier on Redis.

Every operation degrades instead of raising: a read failure is a miss, a
write failure is logged and dropped. Without a Redis handle the store is
disabled and behaves as an always-empty cache.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

_DELETE_BATCH_SIZE = 500


class CacheStore:
    def __init__(self, redis: Redis | None, key_prefix: str = "") -> None:
        self._redis = redis
        self._prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _strip(self, key: str) -> str:
        return key[len(self._prefix):] if self._prefix and key.startswith(self._prefix) else key

    async def get(self, key: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(self._key(key))
        except Exception:
            logger.warning("Cache get failed", exc_info=True, extra={"cache_key": key})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Cache entry is not valid JSON; treating as miss", extra={"cache_key": key})
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = 30) -> bool:
        if self._redis is None:
            return False
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError):
            logger.warning("Cache value is not serializable; skipping write", exc_info=True, extra={"cache_key": key})
            return False
        try:
            await self._redis.set(self._key(key), payload, ex=max(1, int(ttl_seconds)))
        except Exception:
            logger.warning("Cache set failed", exc_info=True, extra={"cache_key": key})
            return False
        return True

    async def delete(self, key: str) -> bool:
        if self._redis is None:
            return False
        try:
            deleted = await self._redis.delete(self._key(key))
        except Exception:
            logger.warning("Cache delete failed", exc_info=True, extra={"cache_key": key})
            return False
        return bool(deleted)

    async def exists(self, key: str) -> bool:
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.exists(self._key(key)))
        except Exception:
            logger.warning("Cache exists failed", exc_info=True, extra={"cache_key": key})
            return False

    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in seconds, or None for a missing key."""
        if self._redis is None:
            return None
        try:
            remaining = await self._redis.ttl(self._key(key))
        except Exception:
            logger.warning("Cache ttl lookup failed", exc_info=True, extra={"cache_key": key})
            return None
        # -2: no such key, -1: no expiry
        if remaining is None or remaining == -2:
            return None
        return int(remaining)

    async def list_keys(self, pattern: str = "*", limit: int = 1000) -> list[str]:
        if self._redis is None:
            return []
        keys: list[str] = []
        try:
            async for raw_key in self._redis.scan_iter(match=self._key(pattern), count=200):
                keys.append(self._strip(raw_key))
                if len(keys) >= limit:
                    break
        except Exception:
            logger.warning("Cache key scan failed", exc_info=True, extra={"pattern": pattern})
        return sorted(keys)

    async def clear_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob *pattern* (e.g. ``leaderboard:*``)."""
        cleared, _complete = await self._clear_matching(pattern)
        return cleared

    async def _clear_matching(self, pattern: str) -> tuple[int, bool]:
        if self._redis is None:
            return 0, False
        cleared = 0
        batch: list[str] = []
        try:
            async for raw_key in self._redis.scan_iter(match=self._key(pattern), count=200):
                batch.append(raw_key)
                if len(batch) >= _DELETE_BATCH_SIZE:
                    cleared += await self._redis.delete(*batch)
                    batch = []
            if batch:
                cleared += await self._redis.delete(*batch)
        except Exception:
            logger.warning("Cache pattern clear failed", exc_info=True, extra={"pattern": pattern, "cleared": cleared})
            return cleared, False
        logger.info("Cache keys cleared by pattern", extra={"pattern": pattern, "cleared": cleared})
        return cleared, True

    async def flush_all(self) -> bool:
        """Invalidate the whole fast tier.

        With a key prefix the database may be shared, so only prefixed keys
        are removed through SCAN. That path is not atomic: keys written while
        it runs may survive, and a failure partway leaves some keys behind and
        returns False. Without a prefix the database is flushed in one command.
        """
        if self._redis is None:
            return False
        if self._prefix:
            _cleared, complete = await self._clear_matching("*")
            return complete
        try:
            await self._redis.flushdb()
        except Exception:
            logger.warning("Cache flush failed", exc_info=True)
            return False
        logger.info("Fast cache tier flushed")
        return True

    async def ping(self) -> bool:
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False
