"""Upstream clients: GraphQL event indexer and fullnode view functions."""

from rafflecache.adapters.indexer.base import EventSourceClient, RaffleMetadata, RaffleViewClient
from rafflecache.adapters.indexer.chain_client import ChainViewClient
from rafflecache.adapters.indexer.errors import IndexerUpstreamError
from rafflecache.adapters.indexer.graphql_client import IndexerClient

__all__ = [
    "ChainViewClient",
    "EventSourceClient",
    "IndexerClient",
    "IndexerUpstreamError",
    "RaffleMetadata",
    "RaffleViewClient",
]
