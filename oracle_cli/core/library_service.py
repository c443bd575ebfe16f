"""
The operation surface the command line (or any other front end) talks to.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, Optional

import aiofiles

from oracle_cli.api.catalog import CatalogIndex
from oracle_cli.api.client import SteamStoreClient
from oracle_cli.api.metadata import MetadataService
from oracle_cli.artifacts.downloader import Downloader
from oracle_cli.exceptions import (
    MetadataError,
    OracleCliError,
    PlacementError,
    SourceExhaustedError,
)
from oracle_cli.models.config import OracleConfig
from oracle_cli.models.library import (
    ArtifactKind,
    DirectoryStatus,
    DownloadOutcome,
    LibraryEntry,
    PlacementResult,
    parse_title_id,
)
from oracle_cli.models.metadata import SearchResults, TitleMetadata
from oracle_cli.storage.cache import DetailsCache
from oracle_cli.storage.placement import PlacementEngine, SteamLayout
from oracle_cli.utils.descriptor import apply_manifest_ids, parse_depot_manifest_name
from oracle_cli.utils.formatting import format_duration, format_size
from oracle_cli.utils.keyed_lock import KeyedLock
from oracle_cli.utils.path import archive_file_name

from .artifact_fetcher import ArtifactFetcher
from .client_actions import restart_client, run_install_helper
from .dlc_sync import DlcSyncEngine
from .library_indexer import LibraryIndexer
from .source_resolver import SourceResolver

log = logging.getLogger(__name__)


class LibraryService:
    """
    Wires the resolver, fetcher, placement engine, indexer, DLC engine and
    metadata collaborators together. Every mutation of a title's files holds
    that title's lock for its whole duration.
    """

    def __init__(
        self,
        config: OracleConfig,
        downloader: Optional[Downloader] = None,
        store_client: Optional[SteamStoreClient] = None,
        cache: Optional[DetailsCache] = None,
    ):
        self.config = config
        self.layout = SteamLayout.from_config_root(config.steam_config_path)
        self.placement = PlacementEngine(
            self.layout, create_missing_dirs=config.create_missing_dirs
        )
        self.resolver = SourceResolver(config.candidate_sources())
        self.downloader = downloader or Downloader(
            max_workers=config.max_workers,
            request_timeout=config.request_timeout,
            github_token=config.github_token,
        )
        self.fetcher = ArtifactFetcher(
            self.downloader,
            self.resolver,
            archive_timeout=config.archive_timeout,
            max_concurrent_files=config.max_workers,
        )
        self.store_client = store_client or SteamStoreClient(
            max_workers=config.max_workers, request_timeout=config.request_timeout
        )

        self.cache_hits = 0
        self.cache_misses = 0

        def cache_stats_callback(is_hit: bool):
            if is_hit:
                self.cache_hits += 1
            else:
                self.cache_misses += 1

        cache_dir = Path(config.config_path) / "cache"
        if cache is None:
            cache = DetailsCache(
                cache_dir,
                max_age_days=config.cache_max_age_days,
                serializer=lambda details: details.model_dump(),
                deserializer=TitleMetadata.model_validate,
            )
        cache._stats_callback = cache_stats_callback
        cache.init()
        self.cache = cache

        self.metadata = MetadataService(self.store_client, self.cache)
        self.catalog = CatalogIndex(self.store_client, cache_dir / "applist.json")
        self.indexer = LibraryIndexer(self.placement, self.metadata.resolve_names)
        self.dlc = DlcSyncEngine(self.placement)
        self.locks = KeyedLock()

    async def __aenter__(self) -> "LibraryService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Library

    def check_directories(
        self,
        descriptor_dir: Optional[Path] = None,
        manifest_dir: Optional[Path] = None,
    ) -> DirectoryStatus:
        if descriptor_dir is None and manifest_dir is None:
            return self.placement.check_directories()
        return DirectoryStatus(
            descriptor_dir_exists=Path(descriptor_dir or self.layout.descriptor_dir).is_dir(),
            manifest_dir_exists=Path(manifest_dir or self.layout.manifest_dir).is_dir(),
        )

    async def list_library(
        self,
        descriptor_dir: Optional[Path] = None,
        manifest_dir: Optional[Path] = None,
        wait_for_names: bool = False,
    ) -> list[LibraryEntry]:
        """
        Raises:
            DestinationMissingError: A scanned directory does not exist.
        """
        entries = await self.indexer.rescan(descriptor_dir, manifest_dir)
        if wait_for_names:
            await self.indexer.wait_for_names()
            entries = self.indexer.snapshot()
        return entries

    # Downloads

    async def install(
        self, title_id, display_name: Optional[str] = None
    ) -> tuple[DownloadOutcome, PlacementResult]:
        """
        Downloads a title from the first working source and places its files.

        Raises:
            SourceExhaustedError: No source produced a valid artifact set.
            NoSourcesConfiguredError: No source is configured.
            DestinationMissingError: A Steam directory is missing.
            PlacementError: A file could not be written.
        """
        title_id = parse_title_id(title_id)
        async with self.locks.hold(title_id):
            start = time.monotonic()
            outcome = await self.fetcher.download_title(title_id)
            placed = await self.placement.place(outcome.artifacts, title_id)

            if display_name:
                self.indexer.remember_name(title_id, display_name)
            self.indexer.apply_update(title_id, outcome.artifacts)

            if self.config.keep_archives and outcome.raw_archive:
                await self._save_archive(title_id, outcome.raw_archive, display_name)

            size = sum(len(a.data) for a in outcome.artifacts)
            log.info(
                f"[bold green]✓ AppID {title_id} installed[/bold green] "
                f"({format_size(size)} in {format_duration(time.monotonic() - start)}, "
                f"source {outcome.source.source_id})"
            )
            return outcome, placed

    async def install_many(
        self, title_ids: Iterable, display_name: Optional[str] = None
    ) -> tuple[list[DownloadOutcome], dict[int, OracleCliError]]:
        """
        Installs several titles concurrently. A failure is recorded against its
        title and never interrupts the installs of the other titles.

        Returns:
            The outcomes of the installed titles, and the error of every title
            that failed.
        """
        outcomes: list[DownloadOutcome] = []
        failures: dict[int, OracleCliError] = {}

        async def _one(title_id: int) -> None:
            try:
                outcome, _ = await self.install(title_id, display_name)
            except OracleCliError as e:
                log.debug(f"AppID {title_id} failed: {e}")
                failures[title_id] = e
            else:
                outcomes.append(outcome)

        ids = list(dict.fromkeys(parse_title_id(t) for t in title_ids))
        await asyncio.gather(*(_one(title_id) for title_id in ids))
        return outcomes, failures

    async def download_and_install(
        self, title_id, display_name: Optional[str] = None
    ) -> bool:
        """False when every source failed; configuration and placement errors propagate."""
        try:
            await self.install(title_id, display_name)
        except SourceExhaustedError as e:
            for failure in e.failures:
                log.debug(f"{failure.source_id} [{failure.category}]: {failure.reason}")
            return False
        return True

    async def _save_archive(
        self, title_id: int, data: bytes, display_name: Optional[str]
    ) -> Optional[Path]:
        name = display_name or self.indexer.get(title_id).display_name
        target_dir = Path(self.config.download_directory).expanduser()
        path = target_dir / archive_file_name(name, title_id)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            log.warning(f"[yellow]Could not keep archive {path}: {e}[/yellow]")
            return None
        log.info(f"Saved archive to [dim]{path}[/dim]")
        return path

    async def remove_title(self, title_id) -> None:
        """
        Raises:
            PlacementError: At least one file could not be deleted.
        """
        title_id = parse_title_id(title_id)
        async with self.locks.hold(title_id):
            result = await self.indexer.remove(title_id)
        if not result.ok:
            raise PlacementError("; ".join(result.failed.values()))
        if not result.removed:
            log.warning(f"[yellow]No files found for AppID {title_id}.[/yellow]")
        else:
            log.info(f"[green]✓ Removed {len(result.removed)} file(s) for AppID {title_id}.[/green]")

    # DLCs and manifests

    async def get_dlc_membership(self, title_id) -> set[int]:
        return await self.dlc.get_dlc_membership(parse_title_id(title_id))

    async def set_dlc_membership(self, main_id, target: Iterable) -> str:
        main_id = parse_title_id(main_id)
        dlc_ids = {parse_title_id(dlc_id) for dlc_id in target}
        async with self.locks.hold(main_id):
            result = await self.dlc.sync_dlcs(main_id, dlc_ids)
        return result.message

    async def _display_name_for(self, title_id: int, display_name: Optional[str]) -> str:
        if display_name:
            return display_name
        entry = self.indexer.get(title_id)
        if entry and entry.name_resolved:
            return entry.display_name
        try:
            return (await self.metadata.get_details(title_id)).name
        except MetadataError:
            return f"AppID {title_id}"

    async def update_title(self, title_id, display_name: Optional[str] = None) -> str:
        """
        Re-downloads a title and points its descriptor at the newest depot
        manifests.

        Raises:
            SourceExhaustedError: No source produced a valid artifact set.
            DescriptorUnreadableError: The title is not installed.
            PlacementError: A file could not be written.
        """
        title_id = parse_title_id(title_id)
        name = await self._display_name_for(title_id, display_name)
        async with self.locks.hold(title_id):
            content = await self.placement.read_descriptor(title_id)
            outcome = await self.fetcher.download_title(title_id)

            manifests = [a for a in outcome.artifacts if a.kind is ArtifactKind.MANIFEST]
            manifest_map = {}
            for artifact in manifests:
                parsed = parse_depot_manifest_name(artifact.destination_name)
                if parsed:
                    depot_id, manifest_id = parsed
                    manifest_map[depot_id] = manifest_id

            new_content, updated, appended = apply_manifest_ids(content, manifest_map)
            if new_content != content:
                await self.placement.write_descriptor(title_id, new_content)
            await self.placement.place(manifests, title_id)
            self.indexer.apply_update(title_id, manifests)

        return f"Update for {name} complete. Updated: {updated}, Appended: {appended}."

    # Metadata

    async def get_details(self, title_id) -> TitleMetadata:
        return await self.metadata.get_details(parse_title_id(title_id))

    async def get_details_batch(self, title_ids: Iterable) -> list[TitleMetadata]:
        return await self.metadata.get_details_batch(parse_title_id(t) for t in title_ids)

    async def search(
        self, query: str, page: int = 1, per_page: int = 20
    ) -> Optional[SearchResults]:
        """
        Returns None when a newer search was started while this one waited
        for the app list.
        """
        seq = self.catalog.sequencer.next()
        await self.catalog.ensure_loaded()
        if not self.catalog.sequencer.is_current(seq):
            log.debug(f"Discarding superseded search '{query}'")
            return None
        return self.catalog.search(query, page=page, per_page=per_page)

    def clear_cache(self) -> None:
        if not self.metadata.clear_cache():
            raise PlacementError(f"Failed to delete file: {self.cache.cache_dir}")

    # Client

    async def restart_client(self) -> bool:
        return await restart_client(self.config.steam_executable)

    async def run_install_helper(self, installer_path: Optional[str] = None) -> bool:
        return await run_install_helper(installer_path or self.config.helper_installer_path)

    async def close(self) -> None:
        self.indexer.cancel_name_resolution()
        await self.downloader.close()
        await self.metadata.close()
