"""GraphQL client for the blockchain event indexer."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any, AsyncIterator

import httpx

from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Rate-limit and forbidden-class responses are the only ones worth retrying;
# the public indexer answers 403 when it throttles anonymous clients.
RETRYABLE_STATUS = {403, 429}

EVENT_KINDS = ("BuyTicketEvent", "CreateRaffleEvent", "FinalizeRaffleEvent")

_EVENT_FIELDS = """
      sequence_number
      type
      data
      indexed_type
      transaction_version
      transaction_block_height
      account_address
"""

RAFFLE_EVENTS_QUERY = """
  query GetRaffleEvents($contract_address: String!, $limit: Int!, $offset: Int!) {
    events(
      where: {
        account_address: { _eq: $contract_address }
        _or: [__TYPE_FILTERS__]
      }
      order_by: { transaction_version: desc }
      limit: $limit
      offset: $offset
    ) {__FIELDS__}
  }
"""

RAFFLE_EVENTS_AFTER_QUERY = """
  query GetRaffleEventsAfter($contract_address: String!, $version: bigint!, $limit: Int!) {
    events(
      where: {
        account_address: { _eq: $contract_address }
        transaction_version: { _gt: $version }
        _or: [__TYPE_FILTERS__]
      }
      order_by: { transaction_version: asc }
      limit: $limit
    ) {__FIELDS__}
  }
"""

TRANSACTION_TIMESTAMPS_QUERY = """
  query GetTransactionTimestamps($versions: [bigint!]!) {
    transactions(where: { version: { _in: $versions } }) {
      version
      timestamp
      block_height
    }
  }
"""


def _type_filters(module: str) -> str:
    filters: list[str] = []
    for kind in EVENT_KINDS:
        filters.append(f'{{ type: {{ _like: "%{module}::{kind}%" }} }}')
        filters.append(f'{{ indexed_type: {{ _like: "%{module}::{kind}%" }} }}')
    return " ".join(filters)


def build_events_query(template: str, module: str) -> str:
    return template.replace("__TYPE_FILTERS__", _type_filters(module)).replace("__FIELDS__", _EVENT_FIELDS)


def _normalize_timestamp(value: Any) -> str | None:
    """Indexer timestamps are naive UTC ISO strings; return them tz-aware."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC).isoformat()


class IndexerClient:
    _consecutive_failures: int = 0
    _circuit_open_until: datetime | None = None

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._http = http_client
        self._settings = settings or get_settings()

    @classmethod
    def _is_circuit_open(cls, now: datetime) -> bool:
        if cls._circuit_open_until is None:
            return False
        if now >= cls._circuit_open_until:
            cls._circuit_open_until = None
            cls._consecutive_failures = 0
            return False
        return True

    @classmethod
    def _record_success(cls) -> None:
        cls._consecutive_failures = 0
        cls._circuit_open_until = None

    def _record_failure(self) -> None:
        cls = type(self)
        cls._consecutive_failures += 1
        failures_to_open = max(1, self._settings.indexer_circuit_failures_to_open)
        if cls._consecutive_failures < failures_to_open:
            return
        open_seconds = max(5, self._settings.indexer_circuit_open_seconds)
        cls._circuit_open_until = datetime.now(UTC) + timedelta(seconds=open_seconds)
        logger.warning(
            "Indexer circuit opened",
            extra={
                "circuit_open_seconds": open_seconds,
                "consecutive_failures": cls._consecutive_failures,
            },
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=self._settings.indexer_timeout_seconds) as client:
            yield client

    async def _execute(self, operation: str, query: str, variables: dict[str, Any]) -> dict:
        if self._is_circuit_open(datetime.now(UTC)):
            logger.warning(
                "Indexer circuit is open; skipping query",
                extra={
                    "operation": operation,
                    "circuit_open_until": self._circuit_open_until.isoformat()
                    if self._circuit_open_until is not None
                    else None,
                    "consecutive_failures": self._consecutive_failures,
                },
            )
            raise IndexerUpstreamError(operation, "circuit open")

        attempts = max(1, self._settings.indexer_retry_attempts)
        backoff_base = max(0.1, self._settings.indexer_retry_backoff_seconds)
        backoff_cap = max(backoff_base, self._settings.indexer_retry_backoff_max_seconds)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self._settings.indexer_user_agent,
        }
        body = {"query": query, "variables": variables}

        response: httpx.Response | None = None
        for attempt in range(1, attempts + 1):
            try:
                async with self._client() as client:
                    response = await client.post(self._settings.indexer_graphql_url, json=body, headers=headers)
            except httpx.HTTPError as exc:
                self._record_failure()
                raise IndexerUpstreamError(operation, str(exc) or type(exc).__name__) from exc

            if response.status_code not in RETRYABLE_STATUS:
                break
            if attempt >= attempts:
                break
            sleep_seconds = min(backoff_cap, backoff_base * (2 ** (attempt - 1)))
            logger.warning(
                "Indexer throttled request; backing off",
                extra={
                    "operation": operation,
                    "status": response.status_code,
                    "attempt": attempt,
                    "attempts_total": attempts,
                    "sleep_seconds": sleep_seconds,
                },
            )
            await asyncio.sleep(sleep_seconds)

        if response is None or response.status_code != 200:
            status_code = response.status_code if response is not None else None
            self._record_failure()
            raise IndexerUpstreamError(
                operation,
                f"HTTP {status_code}: {response.text[:200] if response is not None else ''}",
                status_code=status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            self._record_failure()
            raise IndexerUpstreamError(operation, "response body is not JSON", status_code=200) from exc

        if not isinstance(payload, dict):
            self._record_failure()
            raise IndexerUpstreamError(operation, f"unexpected payload type {type(payload).__name__}", status_code=200)

        errors = payload.get("errors")
        if errors:
            logger.warning(
                "Indexer returned GraphQL errors",
                extra={"operation": operation, "errors": str(errors)[:500]},
            )
        data = payload.get("data")
        if not isinstance(data, dict):
            self._record_failure()
            raise IndexerUpstreamError(operation, "response carried no data", status_code=200)

        self._record_success()
        return data

    async def fetch_raw_events(self, *, limit: int, offset: int) -> list[dict]:
        query = build_events_query(RAFFLE_EVENTS_QUERY, self._settings.raffle_module)
        data = await self._execute(
            "raffle_events",
            query,
            {
                "contract_address": self._settings.raffle_contract_address,
                "limit": limit,
                "offset": offset,
            },
        )
        events = data.get("events")
        if not isinstance(events, list):
            logger.warning("Indexer response missing events list", extra={"operation": "raffle_events"})
            return []
        logger.info(
            "Indexer events received",
            extra={"limit": limit, "offset": offset, "events_seen": len(events)},
        )
        return events

    async def fetch_raw_events_after(self, *, version: int, limit: int) -> list[dict]:
        query = build_events_query(RAFFLE_EVENTS_AFTER_QUERY, self._settings.raffle_module)
        data = await self._execute(
            "raffle_events_after",
            query,
            {
                "contract_address": self._settings.raffle_contract_address,
                "version": int(version),
                "limit": limit,
            },
        )
        events = data.get("events")
        return events if isinstance(events, list) else []

    async def fetch_transaction_timestamps(self, versions: list[str]) -> dict[str, str]:
        if not versions:
            return {}
        numeric_versions = [int(v) for v in versions if str(v).isdigit()]
        if not numeric_versions:
            return {}
        data = await self._execute(
            "transaction_timestamps",
            TRANSACTION_TIMESTAMPS_QUERY,
            {"versions": numeric_versions},
        )
        resolved: dict[str, str] = {}
        for row in data.get("transactions") or []:
            if not isinstance(row, dict):
                continue
            timestamp = _normalize_timestamp(row.get("timestamp"))
            if timestamp is not None and row.get("version") is not None:
                resolved[str(row["version"])] = timestamp
        return resolved
