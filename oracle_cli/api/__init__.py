"""
Steam API Layer.

This package handles all communication with the public Steam store and
app-list APIs.
"""

from .catalog import CatalogIndex, QuerySequencer
from .client import SteamStoreClient
from .metadata import MetadataService
from .rate_limiter import AdaptiveRateLimiter

__all__ = [
    "AdaptiveRateLimiter",
    "CatalogIndex",
    "MetadataService",
    "QuerySequencer",
    "SteamStoreClient",
]
