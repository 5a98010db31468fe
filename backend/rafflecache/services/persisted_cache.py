"""Slow cache tier on Postgres.

Rows in ``slow_cache_entries`` hold computed read models (leaderboards,
stats) keyed by the same cache key the fast tier uses. A row is served only
while it is both fresh (recently written) and unexpired.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from rafflecache.core.database import SessionFactory
from rafflecache.models.slow_cache_entry import SlowCacheEntry

logger = logging.getLogger(__name__)


class SlowTier(Protocol):
    @property
    def enabled(self) -> bool:
        ...

    async def read(self, key: str, freshness_seconds: int | None = None) -> Any | None:
        ...

    async def write(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        *,
        resource: str,
        raffle_id: int | None = None,
    ) -> bool:
        ...

    async def delete(self, key: str) -> int:
        ...

    async def delete_like(self, pattern: str) -> int:
        ...


def glob_to_like(pattern: str) -> str:
    """Translate a Redis-style ``*`` glob into a SQL LIKE pattern."""
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%")


def build_read_statement(key: str, now: datetime, freshness_seconds: int | None):
    stmt = select(SlowCacheEntry.payload).where(
        SlowCacheEntry.cache_key == key,
        SlowCacheEntry.expires_at > now,
    )
    if freshness_seconds is not None:
        stmt = stmt.where(SlowCacheEntry.updated_at > now - timedelta(seconds=freshness_seconds))
    return stmt.limit(1)


def build_upsert_statement(
    key: str,
    value: Any,
    *,
    resource: str,
    raffle_id: int | None,
    now: datetime,
    ttl_seconds: int,
):
    upsert_stmt = pg_insert(SlowCacheEntry).values(
        cache_key=key,
        resource=resource,
        raffle_id=raffle_id,
        payload=value,
        updated_at=now,
        expires_at=now + timedelta(seconds=max(1, ttl_seconds)),
    )
    return upsert_stmt.on_conflict_do_update(
        index_elements=["cache_key"],
        set_={
            "resource": upsert_stmt.excluded.resource,
            "raffle_id": upsert_stmt.excluded.raffle_id,
            "payload": upsert_stmt.excluded.payload,
            "updated_at": upsert_stmt.excluded.updated_at,
            "expires_at": upsert_stmt.excluded.expires_at,
        },
    )


class SlowTierCache:
    def __init__(
        self,
        session_factory: SessionFactory | None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None

    async def read(self, key: str, freshness_seconds: int | None = None) -> Any | None:
        if self._session_factory is None:
            return None
        stmt = build_read_statement(key, self._clock(), freshness_seconds)
        try:
            async with self._session_factory() as db:
                return (await db.execute(stmt)).scalar_one_or_none()
        except Exception:
            logger.warning("Slow tier read failed; treating as miss", exc_info=True, extra={"cache_key": key})
            return None

    async def write(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        *,
        resource: str,
        raffle_id: int | None = None,
    ) -> bool:
        if self._session_factory is None:
            return False
        stmt = build_upsert_statement(
            key,
            value,
            resource=resource,
            raffle_id=raffle_id,
            now=self._clock(),
            ttl_seconds=ttl_seconds,
        )
        async with self._session_factory() as db:
            try:
                await db.execute(stmt)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.warning(
                    "Slow tier write failed",
                    exc_info=True,
                    extra={"cache_key": key, "resource": resource, "raffle_id": raffle_id},
                )
                return False
        return True

    async def _delete_where(self, *criteria, log_context: dict) -> int:
        if self._session_factory is None:
            return 0
        async with self._session_factory() as db:
            try:
                result = await db.execute(delete(SlowCacheEntry).where(*criteria))
                await db.commit()
            except Exception:
                await db.rollback()
                logger.warning("Slow tier delete failed", exc_info=True, extra=log_context)
                return 0
        return int(result.rowcount or 0)

    async def delete(self, key: str) -> int:
        return await self._delete_where(SlowCacheEntry.cache_key == key, log_context={"cache_key": key})

    async def delete_like(self, pattern: str) -> int:
        return await self._delete_where(
            SlowCacheEntry.cache_key.like(glob_to_like(pattern), escape="\\"),
            log_context={"pattern": pattern},
        )
