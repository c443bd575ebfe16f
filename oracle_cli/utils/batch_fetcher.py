"""
Batch metadata fetching: looks up many titles in parallel without letting one
failed lookup sink the rest.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from oracle_cli.exceptions import MetadataError
from oracle_cli.models.metadata import TitleMetadata

log = logging.getLogger(__name__)


class BatchMetadataFetcher:
    """
    Handles batch fetching of store details with bounded concurrency.
    """

    def __init__(self, api_client, max_concurrent: int = 4):
        """
        Args:
            api_client: Anything with an async `fetch_app_details(title_id)`.
            max_concurrent: Maximum number of concurrent store requests.
        """
        self.api_client = api_client
        self.semaphore = asyncio.Semaphore(max_concurrent)

    async def fetch_details_batch(
        self, title_ids: List[int]
    ) -> Dict[int, Optional[TitleMetadata]]:
        """
        Fetches store details for several titles in parallel.

        Returns:
            Dictionary mapping title id -> metadata (or None if the lookup failed).
        """
        if not title_ids:
            return {}

        log.debug(f"Batch fetching store details for {len(title_ids)} titles...")

        async def fetch_single(title_id: int) -> tuple[int, Optional[TitleMetadata]]:
            async with self.semaphore:
                try:
                    return title_id, await self.api_client.fetch_app_details(title_id)
                except MetadataError as e:
                    log.warning(f"Failed to fetch details for AppID {title_id}: {e}")
                    return title_id, None

        results = await asyncio.gather(*(fetch_single(tid) for tid in title_ids))
        return dict(results)
