"""
Handles the low-level HTTP retrieval of archives, repository listings and raw
files. Each request is made exactly once: falling back to another source is
the caller's job.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from oracle_cli.exceptions import FetchError

log = logging.getLogger(__name__)

USER_AGENT = "oracle-downloader/1.0"


class Downloader:
    """An aiohttp-backed fetcher that converts transport faults into FetchError."""

    CHUNK_SIZE = 131072  # 128 KB

    def __init__(
        self,
        max_workers: int = 8,
        request_timeout: float = 20,
        github_token: str = "",
    ):
        """
        Args:
            max_workers: Concurrent connections per host.
            request_timeout: Default total timeout for a single request, in seconds.
            github_token: Optional token sent to api.github.com to raise rate limits.
        """
        self.max_workers = max_workers
        self.request_timeout = request_timeout
        self.github_token = github_token
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                connector = aiohttp.TCPConnector(
                    limit=self.max_workers * 2,
                    limit_per_host=self.max_workers,
                    ttl_dns_cache=600,
                    enable_cleanup_closed=True,
                )
                self._session = aiohttp.ClientSession(
                    connector=connector,
                    headers={
                        "User-Agent": USER_AGENT,
                        "Accept-Encoding": "gzip, deflate",
                    },
                )
                log.debug(f"Created download session with limit_per_host={self.max_workers}")
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            log.debug("Downloader session closed.")

    def _headers_for(self, url: str) -> dict[str, str]:
        if self.github_token and url.startswith("https://api.github.com/"):
            return {"Authorization": f"Bearer {self.github_token}"}
        return {}

    async def fetch_bytes(self, url: str, timeout: float | None = None) -> bytes:
        """
        Downloads a URL fully into memory.

        Raises:
            FetchError: On any non-200 status, connection error or timeout.
        """
        domain = url.split("/")[2] if url.count("/") >= 2 else url
        client_timeout = aiohttp.ClientTimeout(
            total=timeout or self.request_timeout, sock_connect=15
        )
        session = await self._get_session()
        try:
            async with session.get(
                url,
                timeout=client_timeout,
                headers=self._headers_for(url),
                allow_redirects=True,
            ) as response:
                if response.status != 200:
                    raise FetchError(f"Status {response.status} from {domain}")
                buffer = bytearray()
                async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                    buffer.extend(chunk)
                log.debug(f"[OK] {len(buffer)} bytes from {domain}")
                return bytes(buffer)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"Failed to contact {domain}: {e or type(e).__name__}") from e

    async def fetch_json(self, url: str, timeout: float | None = None) -> Any:
        """Downloads and decodes a JSON document."""
        data = await self.fetch_bytes(url, timeout=timeout)
        try:
            return json.loads(data)
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e
