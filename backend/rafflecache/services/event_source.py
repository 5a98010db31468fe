"""Paginated access to parsed raffle activity.

Transport failures never escape this module: a failed page is logged and
surfaces as an empty page, so callers cannot distinguish "no data" from
"fetch failed".
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime

from rafflecache.adapters.indexer.base import EventSourceClient
from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.core.config import Settings, get_settings
from rafflecache.services.activity_parser import parse_events
from rafflecache.services.records import ActivityRecord

logger = logging.getLogger(__name__)


class EventSource:
    def __init__(self, client: EventSourceClient, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._client = client
        self._max_fetch_limit = max(1, settings.indexer_max_fetch_limit)
        self._page_size = max(1, min(settings.indexer_page_size, self._max_fetch_limit))
        self._resolve_timestamps = settings.indexer_resolve_timestamps

    @property
    def max_fetch_limit(self) -> int:
        return self._max_fetch_limit

    def _bounded_limit(self, limit: int) -> int:
        return max(1, min(int(limit), self._max_fetch_limit))

    async def _fetch_raw(self, limit: int, offset: int) -> list[dict]:
        try:
            return await self._client.fetch_raw_events(limit=limit, offset=offset)
        except IndexerUpstreamError:
            logger.warning(
                "Indexer fetch failed; continuing with no events",
                exc_info=True,
                extra={"limit": limit, "offset": offset},
            )
            return []

    async def _timestamps_for(self, raw_events: list[dict]) -> dict[str, str]:
        if not self._resolve_timestamps or not raw_events:
            return {}
        versions = [
            str(event.get("transaction_version"))
            for event in raw_events
            if isinstance(event, dict) and event.get("transaction_version") is not None
        ]
        try:
            return await self._client.fetch_transaction_timestamps(versions)
        except IndexerUpstreamError:
            logger.warning(
                "Transaction timestamp lookup failed; using ingestion time",
                exc_info=True,
                extra={"versions": len(versions)},
            )
            return {}

    async def _parse(self, raw_events: list[dict]) -> Iterator[ActivityRecord]:
        timestamps = await self._timestamps_for(raw_events)
        return parse_events(raw_events, ingested_at=datetime.now(UTC), timestamps=timestamps)

    async def fetch_events(self, limit: int, offset: int = 0) -> Iterator[ActivityRecord]:
        """Fetch one page of activity, newest first.

        The returned iterator is lazy and single-pass; nothing about the
        page is retained here, so the caller owns pagination.
        """
        if offset < 0:
            raise ValueError("offset must be non-negative")
        raw_events = await self._fetch_raw(self._bounded_limit(limit), offset)
        return await self._parse(raw_events)

    async def fetch_events_after(self, version: int, limit: int) -> Iterator[ActivityRecord]:
        """Fetch activity strictly newer than *version*, oldest first."""
        bounded = self._bounded_limit(limit)
        try:
            raw_events = await self._client.fetch_raw_events_after(version=max(0, int(version)), limit=bounded)
        except IndexerUpstreamError:
            logger.warning(
                "Indexer incremental fetch failed; continuing with no events",
                exc_info=True,
                extra={"after_version": version, "limit": bounded},
            )
            raw_events = []
        return await self._parse(raw_events)

    async def collect_events(self, max_records: int) -> list[ActivityRecord]:
        """Page through the newest *max_records* raw events and parse them."""
        wanted = self._bounded_limit(max_records)
        raw_events: list[dict] = []
        offset = 0
        while len(raw_events) < wanted:
            page_limit = min(self._page_size, wanted - len(raw_events))
            page = await self._fetch_raw(page_limit, offset)
            raw_events.extend(page)
            if len(page) < page_limit:
                break
            offset += len(page)

        records = list(await self._parse(raw_events))
        logger.info(
            "Collected raffle activity",
            extra={"requested": wanted, "raw_events": len(raw_events), "records": len(records)},
        )
        return records
