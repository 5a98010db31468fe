"""Process-scoped clients and the components built on them.

``open_resources`` is called once at startup (API lifespan, poller, CLI) and
``AppResources.close`` once at shutdown. Components receive their handles
from here; an unavailable collaborator is passed as ``None`` and the
component reports itself disabled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from rafflecache.adapters.indexer import ChainViewClient, IndexerClient
from rafflecache.core.config import Settings, get_settings
from rafflecache.core.database import SessionFactory, create_engine, create_session_factory
from rafflecache.services.analytics import ActivityRecorder
from rafflecache.services.background import BackgroundRunner
from rafflecache.services.cache_store import CacheStore
from rafflecache.services.dedup_ledger import DedupLedger
from rafflecache.services.event_source import EventSource
from rafflecache.services.notification_triggers import NotificationTrigger, SqlNotificationEmitter
from rafflecache.services.persisted_cache import SlowTierCache
from rafflecache.services.raffle_metadata import RaffleMetadataResolver
from rafflecache.services.raffle_service import RaffleReadService
from rafflecache.services.tiered_cache import TieredCache

logger = logging.getLogger(__name__)


@dataclass
class AppResources:
    settings: Settings
    cache_store: CacheStore
    tiered_cache: TieredCache
    event_source: EventSource
    metadata: RaffleMetadataResolver
    read_service: RaffleReadService
    recorder: ActivityRecorder
    notifications: NotificationTrigger
    background: BackgroundRunner = field(default_factory=BackgroundRunner)
    redis: Redis | None = None
    engine: AsyncEngine | None = None
    session_factory: SessionFactory | None = None
    http_client: httpx.AsyncClient | None = None

    @property
    def persistence_enabled(self) -> bool:
        return self.session_factory is not None

    async def close(self) -> None:
        await self.background.drain(timeout=5)
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        if self.redis is not None:
            await self.redis.aclose()


def build_resources(
    settings: Settings,
    *,
    redis: Redis | None,
    session_factory: SessionFactory | None,
    event_client,
    view_client=None,
    engine: AsyncEngine | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AppResources:
    """Wire components from already-open handles; no I/O happens here."""
    cache_store = CacheStore(redis, key_prefix=settings.cache_key_prefix)
    slow_tier = SlowTierCache(session_factory if settings.enable_persisted_cache else None)
    tiered_cache = TieredCache(cache_store, slow_tier)
    event_source = EventSource(event_client, settings)
    metadata = RaffleMetadataResolver(view_client, cache_store, settings)
    emitter = (
        SqlNotificationEmitter(session_factory)
        if settings.enable_notifications and session_factory is not None
        else None
    )
    return AppResources(
        settings=settings,
        cache_store=cache_store,
        tiered_cache=tiered_cache,
        event_source=event_source,
        metadata=metadata,
        read_service=RaffleReadService(event_source, tiered_cache, metadata, settings),
        recorder=ActivityRecorder(session_factory, enabled=settings.enable_analytics),
        notifications=NotificationTrigger(
            DedupLedger(cache_store, ttl_seconds=settings.processed_event_ttl_seconds),
            emitter,
            metadata,
        ),
        redis=redis,
        engine=engine,
        session_factory=session_factory,
        http_client=http_client,
    )


async def connect_redis(settings: Settings) -> Redis | None:
    redis: Redis | None = None
    try:
        redis = Redis.from_url(settings.redis_url, decode_responses=True)
        await redis.ping()
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis connection failed; fast tier disabled")
        if redis is not None:
            await redis.aclose()
        redis = None
    return redis


async def open_resources(settings: Settings | None = None) -> AppResources:
    settings = settings or get_settings()
    redis = await connect_redis(settings)

    engine: AsyncEngine | None = None
    session_factory: SessionFactory | None = None
    if settings.persistence_enabled:
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)

    http_client = httpx.AsyncClient(
        timeout=settings.indexer_timeout_seconds,
        headers={"User-Agent": settings.indexer_user_agent},
    )
    resources = build_resources(
        settings,
        redis=redis,
        session_factory=session_factory,
        event_client=IndexerClient(http_client=http_client, settings=settings),
        view_client=ChainViewClient(http_client=http_client, settings=settings),
        engine=engine,
        http_client=http_client,
    )
    logger.info(
        "Resources ready",
        extra={
            "fast_tier": resources.cache_store.enabled,
            "persistence": resources.persistence_enabled,
            "persisted_cache": settings.enable_persisted_cache,
            "analytics": resources.recorder.enabled,
            "notifications": resources.notifications.enabled,
        },
    )
    return resources
