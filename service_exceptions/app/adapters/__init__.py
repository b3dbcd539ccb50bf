"""
Adapters package for the Exceptions Service.

Contains the clients for the two external stores:

- RuleStoreClient: Gateway rules API over HTTP (httpx)
- TrackingStoreClient: tracked rule ids in Redis

Adapters raise shared errors; they never retry and never swallow failures.
"""

from .rule_store_client import RuleStoreClient
from .tracking_store_client import TrackingStoreClient

__all__ = [
    "RuleStoreClient",
    "TrackingStoreClient",
]
