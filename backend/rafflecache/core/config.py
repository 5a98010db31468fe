import os
from functools import lru_cache
from typing import Mapping
from urllib.parse import quote_plus

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DATABASE_URL_PLACEHOLDER = "REPLACE_WITH_STRONG_DB_PASSWORD"

# Monetary fields arrive from the chain in octas (10^-8 of a whole unit).
OCTAS_PER_UNIT = 100_000_000


def resolve_database_url(
    *,
    database_url: str | None,
    postgres_user: str | None,
    postgres_password: str | None,
    postgres_host: str | None = "db",
    postgres_port: int | str | None = "5432",
    postgres_db: str | None = "raffle_cache",
) -> tuple[str, str]:
    raw_database_url = (database_url or "").strip()
    if raw_database_url and DATABASE_URL_PLACEHOLDER not in raw_database_url:
        return raw_database_url, "env"

    user = quote_plus((postgres_user or "raffle").strip())
    password = quote_plus((postgres_password or "raffle").strip())
    host = (postgres_host or "db").strip() or "db"
    port = str(postgres_port or "5432").strip() or "5432"
    db_name = (postgres_db or "raffle_cache").strip() or "raffle_cache"
    constructed = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db_name}"
    return constructed, "postgres_fallback"


def resolve_database_url_from_env(
    env: Mapping[str, str] | None = None,
    *,
    default_database_url: str | None = None,
) -> tuple[str, str]:
    source_env = os.environ if env is None else env
    database_url = source_env.get("DATABASE_URL", default_database_url or "")
    return resolve_database_url(
        database_url=database_url,
        postgres_user=source_env.get("POSTGRES_USER"),
        postgres_password=source_env.get("POSTGRES_PASSWORD"),
        postgres_host=source_env.get("POSTGRES_HOST", "db"),
        postgres_port=source_env.get("POSTGRES_PORT", "5432"),
        postgres_db=source_env.get("POSTGRES_DB", "raffle_cache"),
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @model_validator(mode="after")
    def _check_production_config(self) -> "Settings":
        if self.app_env != "production":
            return self
        if not self.raffle_contract_address.strip():
            raise ValueError("RAFFLE_CONTRACT_ADDRESS must be set in production.")
        if not self.indexer_graphql_url.strip():
            raise ValueError("INDEXER_GRAPHQL_URL must be set in production.")
        if self.ops_internal_token in {"", "dev-ops-token", "change-me-ops-token"}:
            raise ValueError(
                "OPS_INTERNAL_TOKEN must be set to a secure internal token in production. "
                "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )
        return self

    app_env: str = "development"
    app_name: str = "Raffle Cache API"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    cors_origins: str = "http://localhost:8080"

    database_url: str = ""
    postgres_user: str = "raffle"
    postgres_password: str = "raffle"
    postgres_host: str = "db"
    postgres_port: int = 5432
    postgres_db: str = "raffle_cache"
    redis_url: str = "redis://redis:6379/0"
    cache_key_prefix: str = ""

    # ── Upstream indexer / chain ──────────────────────────────────
    indexer_graphql_url: str = "https://indexer.testnet.movementnetwork.xyz/v1/graphql"
    fullnode_rpc_url: str = "https://aptos.testnet.porto.movementlabs.xyz/v1"
    raffle_contract_address: str = "0x139b57d91686291b2b07d827a84fdc6cf81a80d29a8228a941c3b11fc66c59cf"
    raffle_module: str = "draw_v5"
    indexer_user_agent: str = "raffle-cache/1.0"
    indexer_timeout_seconds: float = 25.0
    indexer_max_fetch_limit: int = 10000
    indexer_page_size: int = 1000
    indexer_retry_attempts: int = 3
    indexer_retry_backoff_seconds: float = 1.0
    indexer_retry_backoff_max_seconds: float = 8.0
    indexer_circuit_failures_to_open: int = 5
    indexer_circuit_open_seconds: int = 60
    indexer_resolve_timestamps: bool = False
    metadata_fetch_concurrency: int = 10
    metadata_cache_ttl_seconds: int = 300

    # ── Cache TTLs per data class (seconds) ───────────────────────
    activity_global_ttl_seconds: int = 30
    activity_raffle_ttl_seconds: int = 30
    activity_user_ttl_seconds: int = 60
    leaderboard_global_ttl_seconds: int = 300
    leaderboard_raffle_ttl_seconds: int = 60
    stats_platform_ttl_seconds: int = 300
    stats_raffle_ttl_seconds: int = 60
    slow_tier_ttl_seconds: int = 3600
    slow_tier_freshness_seconds: int = 300

    # ── Fetch windows used by each read model ─────────────────────
    raffle_activity_window: int = 500
    user_activity_window: int = 1000
    leaderboard_window: int = 5000
    platform_stats_window: int = 10000
    raffle_stats_window: int = 5000

    processed_event_ttl_seconds: int = 86400

    enable_persisted_cache: bool = True
    enable_analytics: bool = False
    enable_notifications: bool = False

    poll_interval_seconds: int = 15
    poll_interval_idle_seconds: int = 60
    poll_interval_error_seconds: int = 120
    poll_batch_size: int = 100
    poll_lock_ttl_seconds: int = 55

    ops_internal_token: str = "dev-ops-token"

    @property
    def cors_origins_list(self) -> list[str]:
        return [v.strip() for v in self.cors_origins.split(",") if v.strip()]

    @property
    def resolved_database_url(self) -> str:
        url, _source = resolve_database_url(
            database_url=self.database_url,
            postgres_user=self.postgres_user,
            postgres_password=self.postgres_password,
            postgres_host=self.postgres_host,
            postgres_port=self.postgres_port,
            postgres_db=self.postgres_db,
        )
        return url

    @property
    def resolved_database_url_source(self) -> str:
        _url, source = resolve_database_url(
            database_url=self.database_url,
            postgres_user=self.postgres_user,
            postgres_password=self.postgres_password,
            postgres_host=self.postgres_host,
            postgres_port=self.postgres_port,
            postgres_db=self.postgres_db,
        )
        return source

    @property
    def persistence_enabled(self) -> bool:
        return self.enable_persisted_cache or self.enable_analytics or self.enable_notifications


@lru_cache
def get_settings() -> Settings:
    return Settings()
