"""Typed errors for upstream indexer and fullnode clients."""

from __future__ import annotations


class IndexerUpstreamError(Exception):
    """Raised when an indexer or fullnode request fails.

    Attributes:
        operation: Logical query name (e.g. "raffle_events", "get_raffle").
        status_code: HTTP status of the last response, if one was received.
        reason: Human-readable error description.
    """

    def __init__(self, operation: str, reason: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        self.reason = reason
        status = f" status={status_code}" if status_code is not None else ""
        super().__init__(f"[{operation}]{status}: {reason}")
