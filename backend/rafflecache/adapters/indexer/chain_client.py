"""Fullnode view-function client for raffle metadata."""

from __future__ import annotations

import logging

import httpx

from rafflecache.adapters.indexer.base import RaffleMetadata
from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.core.config import Settings, get_settings
from rafflecache.services.activity_parser import octas_to_units

logger = logging.getLogger(__name__)


def pad_address(address: str) -> str:
    """Left-pad an account address to 64 hex characters."""
    clean = address[2:] if address.startswith("0x") else address
    return "0x" + clean.rjust(64, "0")


class ChainViewClient:
    """Reads raffle state through the fullnode ``/view`` endpoint.

    Configuration is read from the application Settings object:
    - ``fullnode_rpc_url``: base URL of the fullnode REST API.
    - ``raffle_contract_address`` / ``raffle_module``: view function owner.
    - ``indexer_timeout_seconds``: per-request timeout.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._http = http_client
        self._base_url: str = settings.fullnode_rpc_url.rstrip("/")
        self._timeout: float = settings.indexer_timeout_seconds
        self._contract: str = settings.raffle_contract_address
        self._module: str = settings.raffle_module

    async def _post(self, url: str, body: dict) -> httpx.Response:
        if self._http is not None:
            return await self._http.post(url, json=body)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, json=body)

    async def get_raffle(self, raffle_id: int) -> RaffleMetadata:
        """Fetch on-chain metadata for *raffle_id*.

        Raises IndexerUpstreamError on network/HTTP errors or a malformed
        view result.
        """
        url = f"{self._base_url}/view"
        body = {
            "function": f"{self._contract}::{self._module}::get_raffle",
            "type_arguments": [],
            "arguments": [pad_address(self._contract), str(raffle_id)],
        }

        try:
            response = await self._post(url, body)
        except httpx.TimeoutException as exc:
            logger.warning("Fullnode view request timed out", extra={"raffle_id": raffle_id, "timeout": self._timeout})
            raise IndexerUpstreamError("get_raffle", f"Timeout after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.warning("Fullnode view request failed", extra={"raffle_id": raffle_id, "error": str(exc)})
            raise IndexerUpstreamError("get_raffle", str(exc)) from exc

        if response.status_code != 200:
            body_snippet = response.text[:200]
            logger.warning(
                "Fullnode view non-200 response",
                extra={"raffle_id": raffle_id, "status": response.status_code, "body_snippet": body_snippet},
            )
            raise IndexerUpstreamError(
                "get_raffle",
                f"HTTP {response.status_code}: {body_snippet}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise IndexerUpstreamError("get_raffle", "response body is not JSON", status_code=200) from exc

        # get_raffle returns a positional tuple:
        # id, creator, title, description, image_url, ticket_price,
        # total_tickets, tickets_sold, target_amount, prize_amount, end_time,
        # status, winner, prize_pool, is_claimed, asset_in_escrow
        if not isinstance(result, list) or len(result) < 12:
            raise IndexerUpstreamError("get_raffle", f"unexpected view result shape for raffle {raffle_id}", status_code=200)

        try:
            return RaffleMetadata(
                id=int(result[0]),
                creator=str(result[1]),
                title=str(result[2]),
                description=str(result[3]),
                image_url=str(result[4]),
                ticket_price=octas_to_units(result[5]),
                total_tickets=int(result[6]),
                tickets_sold=int(result[7]),
                prize_amount=octas_to_units(result[9]),
                status=int(result[11]),
            )
        except (TypeError, ValueError) as exc:
            raise IndexerUpstreamError("get_raffle", f"malformed view result: {exc}", status_code=200) from exc
