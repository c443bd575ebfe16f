"""
Builds the in-memory view of which titles are installed, from the files in the
descriptor and manifest directories.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path

from oracle_cli.exceptions import DestinationMissingError, MetadataError
from oracle_cli.models.library import (
    Artifact,
    ArtifactKind,
    LibraryEntry,
    RemovalResult,
    placeholder_name,
    title_id_from_stem,
)
from oracle_cli.storage.placement import PlacementEngine

log = logging.getLogger(__name__)

NameResolver = Callable[[list[int]], Awaitable[dict[int, str]]]


def _title_ids_in(directory: Path, extension: str) -> set[int]:
    """Ids of files named `<id><extension>`; depot manifests are skipped."""
    ids = set()
    for path in directory.iterdir():
        if path.suffix.lower() != extension:
            continue
        title_id = title_id_from_stem(path.stem)
        if title_id is not None and path.is_file():
            ids.add(title_id)
    return ids


def scan_directories(
    descriptor_dir: Path, manifest_dir: Path
) -> dict[int, tuple[bool, bool]]:
    """
    Maps every title found in either directory to
    `(has_unlock_descriptor, has_manifest)`.

    Raises:
        DestinationMissingError: If either directory does not exist.
    """
    for directory in (descriptor_dir, manifest_dir):
        if not directory.is_dir():
            raise DestinationMissingError(directory)

    descriptors = _title_ids_in(descriptor_dir, ArtifactKind.UNLOCK_DESCRIPTOR.extension)
    manifests = _title_ids_in(manifest_dir, ArtifactKind.MANIFEST.extension)
    return {
        title_id: (title_id in descriptors, title_id in manifests)
        for title_id in descriptors | manifests
    }


class LibraryIndexer:
    """
    Owns the library entries. Rescanning is the source of truth; incremental
    updates after a download or removal must agree with the next rescan.

    Display names resolve in the background. Resolved names are kept in a
    separate table keyed by id, so a rescan that finishes while a lookup is
    still running never loses a name.
    """

    def __init__(
        self,
        placement: PlacementEngine,
        name_resolver: NameResolver | None = None,
    ):
        self.placement = placement
        self.name_resolver = name_resolver
        self._entries: dict[int, LibraryEntry] = {}
        self._known_names: dict[int, str] = {}
        self._name_tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def _display_name(self, title_id: int) -> str:
        return self._known_names.get(title_id, placeholder_name(title_id))

    async def rescan(
        self,
        descriptor_dir: Path | None = None,
        manifest_dir: Path | None = None,
    ) -> list[LibraryEntry]:
        """
        Rebuilds the library from disk and starts resolving unknown names.

        Raises:
            DestinationMissingError: A directory does not exist.
        """
        descriptor_dir = descriptor_dir or self.placement.layout.descriptor_dir
        manifest_dir = manifest_dir or self.placement.layout.manifest_dir
        found = await asyncio.to_thread(scan_directories, descriptor_dir, manifest_dir)

        self._entries = {
            title_id: LibraryEntry(
                title_id=title_id,
                display_name=self._display_name(title_id),
                has_unlock_descriptor=has_descriptor,
                has_manifest=has_manifest,
            )
            for title_id, (has_descriptor, has_manifest) in found.items()
        }
        partial = sum(1 for entry in self._entries.values() if entry.is_partial)
        log.debug(f"Rescan found {len(self._entries)} titles ({partial} partial).")

        self.resolve_names_in_background(
            title_id for title_id in self._entries if title_id not in self._known_names
        )
        return self.snapshot()

    def apply_update(self, title_id: int, artifacts: Iterable[Artifact]) -> LibraryEntry:
        """Marks the primary files just placed for a title."""
        entry = self._entries.get(title_id)
        if entry is None:
            entry = LibraryEntry(title_id=title_id, display_name=self._display_name(title_id))
            self._entries[title_id] = entry
        for artifact in artifacts:
            if not artifact.is_primary or artifact.title_id != title_id:
                continue
            if artifact.kind is ArtifactKind.UNLOCK_DESCRIPTOR:
                entry.has_unlock_descriptor = True
            elif artifact.kind is ArtifactKind.MANIFEST:
                entry.has_manifest = True
        return dataclasses.replace(entry)

    async def remove(self, title_id: int) -> RemovalResult:
        """Deletes the title's files and drops its entry."""
        result = await self.placement.remove_title_files(title_id)
        entry = self._entries.get(title_id)
        if entry is not None:
            entry.has_unlock_descriptor = ArtifactKind.UNLOCK_DESCRIPTOR in result.failed
            entry.has_manifest = ArtifactKind.MANIFEST in result.failed
            if not entry.has_unlock_descriptor and not entry.has_manifest:
                del self._entries[title_id]
        return result

    def remember_name(self, title_id: int, name: str) -> None:
        if not name or name == placeholder_name(title_id):
            return
        self._known_names[title_id] = name
        if title_id in self._entries:
            self._entries[title_id].display_name = name

    def resolve_names_in_background(self, title_ids: Iterable[int]) -> None:
        ids = sorted(set(title_ids))
        if not ids or self.name_resolver is None:
            return
        task = asyncio.create_task(self._resolve_names(ids))
        self._name_tasks.add(task)
        task.add_done_callback(self._name_tasks.discard)

    async def _resolve_names(self, title_ids: list[int]) -> None:
        try:
            names = await self.name_resolver(title_ids)
        except MetadataError as e:
            log.warning(f"Could not resolve game names: {e}")
            return
        for title_id, name in names.items():
            self.remember_name(title_id, name)
        log.debug(f"Resolved names for {len(names)} titles.")

    async def wait_for_names(self) -> None:
        """Waits for every name lookup started so far."""
        while self._name_tasks:
            await asyncio.gather(*list(self._name_tasks))

    def cancel_name_resolution(self) -> None:
        for task in list(self._name_tasks):
            task.cancel()

    def get(self, title_id: int) -> LibraryEntry | None:
        entry = self._entries.get(title_id)
        return dataclasses.replace(entry) if entry else None

    def snapshot(self) -> list[LibraryEntry]:
        """Copies of all entries, sorted by name."""
        return sorted(
            (dataclasses.replace(entry) for entry in self._entries.values()),
            key=lambda e: (e.display_name.lower(), e.title_id),
        )
