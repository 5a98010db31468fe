from helpers import FailingRedis, FakeRedis, FakeSlowTier
from rafflecache.services.cache_store import CacheStore
from rafflecache.services.tiered_cache import TieredCache, TierPolicy

BOTH_TIERS = TierPolicy(fast_ttl_seconds=60, slow_ttl_seconds=3600, freshness_seconds=300)
FAST_ONLY = TierPolicy(fast_ttl_seconds=30)


def _loader(value, calls: list):
    async def load():
        calls.append("loader")
        return value

    return load


async def test_slow_tier_hit_backfills_fast_tier(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier()
    slow.entries["leaderboard:global:100"] = [{"address": "0xA"}]
    cache = TieredCache(CacheStore(fake_redis), slow)
    calls: list = []

    first = await cache.get("leaderboard:global:100", _loader([], calls), BOTH_TIERS, resource="leaderboard")
    second = await cache.get("leaderboard:global:100", _loader([], calls), BOTH_TIERS, resource="leaderboard")

    assert first.source == "slow-tier"
    assert first.cached is True
    assert first.value == [{"address": "0xA"}]
    assert second.source == "fast-tier"
    assert second.value == [{"address": "0xA"}]
    assert calls == []
    assert slow.calls[0] == ("read", "leaderboard:global:100", 300)


async def test_full_miss_runs_loader_and_fills_both_tiers(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier()
    cache = TieredCache(CacheStore(fake_redis), slow)
    calls: list = []

    result = await cache.get(
        "stats:raffle:5",
        _loader({"totalTicketsSold": 5}, calls),
        BOTH_TIERS,
        resource="stats",
        raffle_id=5,
    )

    assert result.source == "computed"
    assert result.cached is False
    assert calls == ["loader"]
    assert ("write", "stats:raffle:5", 3600, "stats", 5) in slow.calls
    assert fake_redis.raw("stats:raffle:5") == {"totalTicketsSold": 5}
    assert await fake_redis.ttl("stats:raffle:5") == 60


async def test_fast_hit_never_consults_slow_tier(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier()
    store = CacheStore(fake_redis)
    await store.set("stats:platform", {"totalRaffles": 1}, 60)
    cache = TieredCache(store, slow)
    calls: list = []

    result = await cache.get("stats:platform", _loader({}, calls), BOTH_TIERS, resource="stats")

    assert result.source == "fast-tier"
    assert slow.calls == []
    assert calls == []


async def test_fast_only_policy_skips_slow_tier(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier()
    slow.entries["activity:global:50"] = ["stale"]
    cache = TieredCache(CacheStore(fake_redis), slow)
    calls: list = []

    result = await cache.get("activity:global:50", _loader(["fresh"], calls), FAST_ONLY, resource="activity")

    assert result.source == "computed"
    assert result.value == ["fresh"]
    assert slow.calls == []


async def test_disabled_slow_tier_is_skipped(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier(enabled=False)
    slow.entries["stats:platform"] = {"old": True}
    cache = TieredCache(CacheStore(fake_redis), slow)
    calls: list = []

    result = await cache.get("stats:platform", _loader({"new": True}, calls), BOTH_TIERS, resource="stats")

    assert result.value == {"new": True}
    assert slow.calls == []


async def test_fast_tier_outage_still_serves_computed_value() -> None:
    cache = TieredCache(CacheStore(FailingRedis()), FakeSlowTier())
    calls: list = []

    result = await cache.get("stats:platform", _loader({"ok": 1}, calls), BOTH_TIERS, resource="stats")

    assert result.source == "computed"
    assert result.value == {"ok": 1}


async def test_invalidate_removes_key_from_both_tiers(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier()
    cache = TieredCache(CacheStore(fake_redis), slow)
    await cache.get("stats:platform", _loader({"v": 1}, []), BOTH_TIERS, resource="stats")

    await cache.invalidate("stats:platform")

    assert await fake_redis.get("stats:platform") is None
    assert "stats:platform" not in slow.entries


async def test_invalidate_pattern_and_flush_fast(fake_redis: FakeRedis) -> None:
    slow = FakeSlowTier()
    cache = TieredCache(CacheStore(fake_redis), slow)
    for key in ("leaderboard:global:100", "leaderboard:raffle:1:100", "stats:platform"):
        await cache.get(key, _loader([1], []), BOTH_TIERS, resource="leaderboard")

    cleared = await cache.invalidate_pattern("leaderboard:*")

    assert cleared == 4
    assert set(slow.entries) == {"stats:platform"}

    assert await cache.flush_fast() is True
    assert await fake_redis.get("stats:platform") is None
    # the slow tier is the fallback of record and survives a flush
    assert "stats:platform" in slow.entries
