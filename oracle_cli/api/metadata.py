"""
Cache-first access to title metadata.
"""

import logging
from typing import Iterable

from oracle_cli.models.library import placeholder_name
from oracle_cli.models.metadata import TitleMetadata
from oracle_cli.storage.cache import MISS, BatchLookup, DetailsCache
from oracle_cli.utils.batch_fetcher import BatchMetadataFetcher

from .client import SteamStoreClient

log = logging.getLogger(__name__)


class MetadataService:
    """
    Combines the store client with the details cache. Failed lookups are not
    cached, so a later call tries the store again.
    """

    def __init__(
        self,
        client: SteamStoreClient,
        cache: DetailsCache,
        max_concurrent: int = 4,
    ):
        self.client = client
        self.cache = cache
        self.batch_fetcher = BatchMetadataFetcher(client, max_concurrent=max_concurrent)

    async def get_details(self, title_id: int) -> TitleMetadata:
        """
        Raises:
            MetadataError: The store has no usable data for the title.
        """
        cached = self.cache.get(title_id)
        if cached is not MISS:
            log.debug(f"Cache hit for AppID {title_id}")
            return cached
        details = await self.client.fetch_app_details(title_id)
        self.cache.put(title_id, details)
        return details

    async def _lookup(
        self, title_ids: Iterable[int]
    ) -> tuple[BatchLookup, dict[int, TitleMetadata | None]]:
        lookup = self.cache.get_batch(title_ids)
        fetched = await self.batch_fetcher.fetch_details_batch(lookup.missing)
        for title_id, details in fetched.items():
            if details is not None:
                self.cache.put(title_id, details)
        return lookup, fetched

    async def get_details_batch(self, title_ids: Iterable[int]) -> list[TitleMetadata]:
        """
        Details for every id the cache or the store knows, in input order.
        A repeated id is repeated in the result; unknown ids are left out.
        """
        lookup, fetched = await self._lookup(title_ids)
        return lookup.merge(fetched)

    async def resolve_names(self, title_ids: Iterable[int]) -> dict[int, str]:
        """
        Display names keyed by the requested ids, even when the store answers
        with another canonical AppID. Unresolvable ids keep their placeholder.
        """
        lookup, fetched = await self._lookup(title_ids)
        names = {}
        for title_id in lookup.ids:
            details = lookup.found.get(title_id) or fetched.get(title_id)
            names[title_id] = details.name if details else placeholder_name(title_id)
        return names

    def clear_cache(self) -> bool:
        return self.cache.clear()

    async def close(self) -> None:
        await self.client.close()
