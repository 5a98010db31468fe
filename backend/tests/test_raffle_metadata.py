from helpers import FailingRedis, FakeRedis, FakeViewClient, make_metadata, make_settings
from rafflecache.services.cache_store import CacheStore
from rafflecache.services.raffle_metadata import RaffleMetadataResolver, metadata_cache_key


async def test_fan_out_respects_concurrency_limit(fake_redis: FakeRedis) -> None:
    client = FakeViewClient({i: make_metadata(i) for i in range(1, 11)}, delay=0.01)
    resolver = RaffleMetadataResolver(client, CacheStore(fake_redis), make_settings(metadata_fetch_concurrency=3))

    resolved = await resolver.get_many(range(1, 11))

    assert sorted(resolved) == list(range(1, 11))
    assert client.max_in_flight <= 3


async def test_cached_metadata_is_not_refetched(fake_redis: FakeRedis) -> None:
    client = FakeViewClient({4: make_metadata(4, title="Cached")})
    resolver = RaffleMetadataResolver(client, CacheStore(fake_redis), make_settings())

    first = await resolver.get(4)
    second = await resolver.get(4)

    assert first == second
    assert second.title == "Cached"
    assert client.calls == [4]
    assert fake_redis.raw(metadata_cache_key(4))["title"] == "Cached"


async def test_failed_lookups_are_omitted(fake_redis: FakeRedis) -> None:
    client = FakeViewClient({1: make_metadata(1)})
    resolver = RaffleMetadataResolver(client, CacheStore(fake_redis), make_settings())

    resolved = await resolver.get_many([1, 2, 1])

    assert list(resolved) == [1]
    assert client.calls == [1, 2]
    assert fake_redis.raw(metadata_cache_key(2)) is None


async def test_resolver_works_without_fast_tier() -> None:
    client = FakeViewClient({1: make_metadata(1)})
    resolver = RaffleMetadataResolver(client, CacheStore(FailingRedis()), make_settings())

    assert (await resolver.get(1)).id == 1


async def test_resolver_without_view_client_only_reads_cache(fake_redis: FakeRedis) -> None:
    store = CacheStore(fake_redis)
    await store.set(metadata_cache_key(3), make_metadata(3).to_dict(), 60)
    resolver = RaffleMetadataResolver(None, store, make_settings())

    assert resolver.enabled is False
    assert list(await resolver.get_many([3, 4])) == [3]
