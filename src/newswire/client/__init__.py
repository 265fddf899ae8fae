"""Client-side polling and feed reconciliation."""

from newswire.client.api_client import WireApiClient, WireApiError, WirePayload
from newswire.client.feed import FeedCache, FeedOrder
from newswire.client.sync import FeedMetadata, SyncClient

__all__ = [
    "FeedCache",
    "FeedMetadata",
    "FeedOrder",
    "SyncClient",
    "WireApiClient",
    "WireApiError",
    "WirePayload",
]
