import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rafflecache.core.config import Settings

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(settings: Settings) -> AsyncEngine:
    source = settings.resolved_database_url_source
    logger.info(
        "Database URL resolved",
        extra={
            "database_url_source": source,
            "database_host": settings.postgres_host if source == "postgres_fallback" else None,
            "database_port": settings.postgres_port if source == "postgres_fallback" else None,
            "database_name": settings.postgres_db if source == "postgres_fallback" else None,
        },
    )
    return create_async_engine(settings.resolved_database_url, future=True, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
