import pytest

from helpers import FakeEventClient, make_settings, purchase_event
from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.services.event_source import EventSource


def _events(count: int) -> list[dict]:
    # newest first, like the indexer
    return [purchase_event(v, 1, f"0x{v}", 1, 100_000_000) for v in range(count, 0, -1)]


async def test_fetch_events_returns_single_pass_iterator() -> None:
    source = EventSource(FakeEventClient(_events(3)), make_settings())

    page = await source.fetch_events(limit=10, offset=0)

    assert [r.source_version for r in page] == ["3", "2", "1"]
    assert list(page) == []


async def test_fetch_events_rejects_negative_offset() -> None:
    source = EventSource(FakeEventClient(_events(1)), make_settings())

    with pytest.raises(ValueError):
        await source.fetch_events(limit=10, offset=-1)


async def test_fetch_events_clamps_limit_to_ceiling() -> None:
    client = FakeEventClient(_events(2))
    source = EventSource(client, make_settings(indexer_max_fetch_limit=50))

    await source.fetch_events(limit=1_000_000, offset=0)
    await source.fetch_events(limit=0, offset=0)

    assert client.calls == [{"limit": 50, "offset": 0}, {"limit": 1, "offset": 0}]


async def test_upstream_failure_surfaces_as_empty_page() -> None:
    client = FakeEventClient(error=IndexerUpstreamError("raffle_events", "HTTP 500", status_code=500))
    source = EventSource(client, make_settings())

    assert list(await source.fetch_events(limit=10)) == []
    assert await source.collect_events(100) == []
    assert list(await source.fetch_events_after(0, 10)) == []


async def test_collect_events_pages_until_short_page() -> None:
    client = FakeEventClient(_events(25))
    source = EventSource(client, make_settings(indexer_page_size=10))

    records = await source.collect_events(100)

    assert len(records) == 25
    assert client.calls == [
        {"limit": 10, "offset": 0},
        {"limit": 10, "offset": 10},
        {"limit": 10, "offset": 20},
    ]


async def test_collect_events_stops_at_requested_count() -> None:
    client = FakeEventClient(_events(25))
    source = EventSource(client, make_settings(indexer_page_size=10))

    records = await source.collect_events(15)

    assert [r.source_version for r in records][:2] == ["25", "24"]
    assert len(records) == 15
    assert client.calls[-1] == {"limit": 5, "offset": 10}


async def test_fetch_events_after_returns_newer_events_ascending() -> None:
    source = EventSource(FakeEventClient(_events(5)), make_settings())

    records = list(await source.fetch_events_after(3, 10))

    assert [r.source_version for r in records] == ["4", "5"]
