import asyncio
import json
from fnmatch import fnmatchcase
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError

from rafflecache.adapters.indexer.base import RaffleMetadata
from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.core.config import Settings


def make_settings(**overrides: Any) -> Settings:
    return Settings(_env_file=None, **overrides)


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` with a manual clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self._data: dict[str, tuple[str, float | None]] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.now >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and self._live(key) is not None:
            return None
        self._data[key] = (value, self.now + ex if ex is not None else None)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                deleted += 1
        return deleted

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._live(key) is not None)

    async def ttl(self, key: str) -> int:
        if self._live(key) is None:
            return -2
        _value, expires_at = self._data[key]
        if expires_at is None:
            return -1
        return int(expires_at - self.now)

    async def scan_iter(self, match: str = "*", count: int | None = None):
        for key in list(self._data):
            if self._live(key) is not None and fnmatchcase(key, match):
                yield key

    async def flushdb(self) -> bool:
        self._data.clear()
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    def raw(self, key: str) -> Any:
        value = self._live(key)
        return json.loads(value) if value is not None else None


class FailingRedis:
    """Every command fails as if the server were unreachable."""

    def __getattr__(self, name: str):
        async def _fail(*args: Any, **kwargs: Any) -> Any:
            raise RedisConnectionError("connection refused")

        return _fail

    def scan_iter(self, *args: Any, **kwargs: Any):
        async def _gen():
            raise RedisConnectionError("connection refused")
            yield  # pragma: no cover

        return _gen()


class FakeSlowTier:
    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self.entries: dict[str, Any] = {}
        self.calls: list[tuple] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def read(self, key: str, freshness_seconds: int | None = None) -> Any | None:
        self.calls.append(("read", key, freshness_seconds))
        return self.entries.get(key)

    async def write(self, key, value, ttl_seconds, *, resource, raffle_id=None) -> bool:
        self.calls.append(("write", key, ttl_seconds, resource, raffle_id))
        self.entries[key] = value
        return True

    async def delete(self, key: str) -> int:
        self.calls.append(("delete", key))
        return 1 if self.entries.pop(key, None) is not None else 0

    async def delete_like(self, pattern: str) -> int:
        self.calls.append(("delete_like", pattern))
        matched = [key for key in self.entries if fnmatchcase(key, pattern)]
        for key in matched:
            del self.entries[key]
        return len(matched)


class FakeEventClient:
    """Serves a fixed list of raw indexer events, newest first."""

    def __init__(self, events: list[dict] | None = None, error: Exception | None = None) -> None:
        self.events = list(events or [])
        self.error = error
        self.calls: list[dict] = []

    async def fetch_raw_events(self, *, limit: int, offset: int) -> list[dict]:
        self.calls.append({"limit": limit, "offset": offset})
        if self.error is not None:
            raise self.error
        return self.events[offset : offset + limit]

    async def fetch_raw_events_after(self, *, version: int, limit: int) -> list[dict]:
        self.calls.append({"after": version, "limit": limit})
        if self.error is not None:
            raise self.error
        newer = [e for e in self.events if int(e["transaction_version"]) > version]
        newer.sort(key=lambda e: int(e["transaction_version"]))
        return newer[:limit]

    async def fetch_transaction_timestamps(self, versions: list[str]) -> dict[str, str]:
        return {}


MODULE_TAG = "0xabc::draw_v5"
OPS_TOKEN = "test-ops-token"


def purchase_event(version: int, raffle_id: int, buyer: str, tickets: int, paid_octas: int) -> dict:
    return {
        "type": f"{MODULE_TAG}::BuyTicketEvent",
        "transaction_version": str(version),
        "transaction_block_height": 1000 + version,
        "data": {
            "raffle_id": str(raffle_id),
            "buyer": buyer,
            "ticket_count": str(tickets),
            "total_paid": str(paid_octas),
        },
    }


def created_event(version: int, raffle_id: int, creator: str, target_octas: int = 0) -> dict:
    return {
        "type": f"{MODULE_TAG}::CreateRaffleEvent",
        "transaction_version": str(version),
        "transaction_block_height": 1000 + version,
        "data": {
            "raffle_id": str(raffle_id),
            "creator": creator,
            "ticket_price": "10000000",
            "total_tickets": "100",
            "target_amount": str(target_octas),
        },
    }


def finalized_event(version: int, raffle_id: int, winner: str, prize_octas: int) -> dict:
    return {
        "type": f"{MODULE_TAG}::FinalizeRaffleEvent",
        "transaction_version": str(version),
        "transaction_block_height": 1000 + version,
        "data": {"raffle_id": str(raffle_id), "winner": winner, "prize_amount": str(prize_octas)},
    }



class FakeResult:
    def __init__(self, rowcount: int = 1, scalar: Any = None, rows: list | None = None) -> None:
        self.rowcount = rowcount
        self._scalar = scalar
        self._rows = list(rows or [])

    def scalar_one_or_none(self) -> Any:
        return self._scalar

    def scalars(self) -> "FakeResult":
        return self

    def all(self) -> list:
        return list(self._rows)


class FakeSession:
    """Records statements instead of running them; shared across ``async with`` blocks."""

    def __init__(self, results: list[FakeResult] | None = None, error: Exception | None = None) -> None:
        self.results = list(results or [])
        self.error = error
        self.executed: list = []
        self.objects: dict[tuple, Any] = {}
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def execute(self, stmt: Any) -> FakeResult:
        self.executed.append(stmt)
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return FakeResult()

    async def get(self, model: type, ident: Any) -> Any:
        return self.objects.get((model, ident))

    def add(self, obj: Any) -> None:
        self.objects[(type(obj), obj.id)] = obj

    async def flush(self) -> None:
        return None

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def session_factory_for(session: FakeSession):
    return lambda: session


def make_metadata(raffle_id: int, creator: str = "0xcreator", title: str = "") -> RaffleMetadata:
    return RaffleMetadata(
        id=raffle_id,
        title=title,
        description="",
        image_url="",
        ticket_price=0.1,
        total_tickets=100,
        tickets_sold=0,
        prize_amount=5.0,
        creator=creator,
        status=0,
    )


class FakeViewClient:
    """Serves raffle metadata with an optional delay to observe fan-out."""

    def __init__(self, metadata: dict[int, RaffleMetadata], delay: float = 0.0) -> None:
        self.metadata = metadata
        self.delay = delay
        self.calls: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_raffle(self, raffle_id: int) -> RaffleMetadata:
        self.calls.append(raffle_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if raffle_id not in self.metadata:
                raise IndexerUpstreamError("get_raffle", f"raffle {raffle_id} not found", status_code=404)
            return self.metadata[raffle_id]
        finally:
            self.in_flight -= 1


class RecordingEmitter:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.emitted: list = []
        self.fail_on = fail_on or set()

    async def emit(self, request) -> bool:
        if request.type in self.fail_on:
            raise RuntimeError(f"emit failed for {request.type}")
        self.emitted.append(request)
        return True


# newest first, like the indexer
SAMPLE_EVENTS = [
    finalized_event(5, 1, "0xbob", 40_000_000),
    purchase_event(4, 2, "0xalice", 2, 20_000_000),
    purchase_event(3, 1, "0xbob", 1, 10_000_000),
    purchase_event(2, 1, "0xalice", 3, 30_000_000),
    created_event(1, 1, "0xcreator"),
]
