"""
Writes validated artifacts into the Steam config directories.

Every write goes to a hidden temporary file inside the destination directory
and is then renamed over the final name, so a reader of `<id>.lua` or
`<id>.manifest` sees either the old file, the complete new file, or nothing.
"""

import asyncio
import logging
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from oracle_cli.exceptions import (
    DescriptorUnreadableError,
    DestinationMissingError,
    PlacementError,
)
from oracle_cli.models.library import (
    Artifact,
    ArtifactKind,
    DirectoryStatus,
    PlacementResult,
    RemovalResult,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SteamLayout:
    """Fixed directory layout under the Steam `config` directory."""

    descriptor_dir: Path
    manifest_dir: Path
    stats_dir: Path

    @classmethod
    def from_config_root(cls, config_root: Path | str) -> "SteamLayout":
        root = Path(config_root).expanduser()
        return cls(
            descriptor_dir=root / ArtifactKind.UNLOCK_DESCRIPTOR.directory_name,
            manifest_dir=root / ArtifactKind.MANIFEST.directory_name,
            stats_dir=root / ArtifactKind.STATS_EXPORT.directory_name,
        )

    def directory_for(self, kind: ArtifactKind) -> Path:
        return {
            ArtifactKind.UNLOCK_DESCRIPTOR: self.descriptor_dir,
            ArtifactKind.MANIFEST: self.manifest_dir,
            ArtifactKind.STATS_EXPORT: self.stats_dir,
        }[kind]

    def path_for(self, kind: ArtifactKind, title_id: int) -> Path:
        return self.directory_for(kind) / f"{title_id}{kind.extension}"


class PlacementEngine:
    """Owns every mutation of the Steam destination directories."""

    def __init__(self, layout: SteamLayout, create_missing_dirs: bool = False):
        self.layout = layout
        self.create_missing_dirs = create_missing_dirs

    def check_directories(self) -> DirectoryStatus:
        return DirectoryStatus(
            descriptor_dir_exists=self.layout.descriptor_dir.is_dir(),
            manifest_dir_exists=self.layout.manifest_dir.is_dir(),
        )

    async def _ensure_directory(self, directory: Path) -> None:
        if await asyncio.to_thread(directory.is_dir):
            return
        if not self.create_missing_dirs:
            raise DestinationMissingError(directory)
        try:
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            log.info(f"Created missing Steam directory: [dim]{directory}[/dim]")
        except OSError as e:
            raise PlacementError(f"Failed to create directory: {directory} ({e})") from e

    async def _atomic_write(self, final_path: Path, data: bytes) -> None:
        """Writes `data` next to `final_path` and renames it into place."""
        temp_path = final_path.with_name(f".{final_path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await asyncio.to_thread(os.replace, temp_path, final_path)
        except OSError as e:
            raise PlacementError(f"Failed to write file: {final_path} ({e})") from e
        finally:
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    log.debug(f"Could not remove temporary file {temp_path}")

    async def place(self, artifacts: list[Artifact], title_id: int) -> PlacementResult:
        """
        Places every artifact of one title.

        All destination directories are checked before the first write so a
        missing directory never leaves a title half-placed.

        Raises:
            DestinationMissingError: A destination directory does not exist and
            `create_missing_dirs` is off.
            PlacementError: A file could not be written.
        """
        foreign = [a for a in artifacts if a.title_id != title_id]
        if foreign:
            raise ValueError(
                f"Artifacts for AppID {foreign[0].title_id} passed to placement of "
                f"AppID {title_id}."
            )

        directories = {self.layout.directory_for(a.kind) for a in artifacts}
        for directory in sorted(directories):
            await self._ensure_directory(directory)

        result = PlacementResult(title_id=title_id)
        for artifact in artifacts:
            final_path = self.layout.directory_for(artifact.kind) / artifact.destination_name
            await self._atomic_write(final_path, artifact.data)
            result.placed[final_path] = artifact.kind
            log.debug(f"Placed {artifact.destination_name} ({len(artifact.data)} bytes)")

        log.info(
            f"[green]✓ Placed {len(result.placed)} file(s) for AppID {title_id}.[/green]"
        )
        return result

    async def remove_title_files(self, title_id: int) -> RemovalResult:
        """Best-effort delete of a title's descriptor, manifest and stats export."""
        result = RemovalResult(title_id=title_id)
        for kind in ArtifactKind:
            path = self.layout.path_for(kind, title_id)
            try:
                await asyncio.to_thread(path.unlink)
                result.removed.append(kind)
            except FileNotFoundError:
                result.missing.append(kind)
            except OSError as e:
                result.failed[kind] = f"Failed to delete file: {path} ({e})"
                log.warning(result.failed[kind])
        return result

    def _find_descriptor(self, title_id: int) -> Path | None:
        """
        Returns `<id>.lua`, or another descriptor that registers the title with a
        plain `addappid(<id>)` call.
        """
        direct = self.layout.path_for(ArtifactKind.UNLOCK_DESCRIPTOR, title_id)
        if direct.is_file():
            return direct
        if not self.layout.descriptor_dir.is_dir():
            return None

        pattern = re.compile(rf"addappid\s*\(\s*{title_id}\s*\)")
        for candidate in sorted(self.layout.descriptor_dir.glob("*.lua")):
            try:
                if pattern.search(candidate.read_text(encoding="utf-8", errors="replace")):
                    return candidate
            except OSError:
                continue
        return None

    async def locate_descriptor(self, title_id: int) -> Path:
        """
        Raises:
            DescriptorUnreadableError: No descriptor exists for the title.
        """
        path = await asyncio.to_thread(self._find_descriptor, title_id)
        if path is None:
            raise DescriptorUnreadableError(
                f"Could not find a .lua file for AppID: {title_id}"
            )
        return path

    async def load_descriptor(self, title_id: int) -> tuple[Path, str]:
        """
        Returns the located descriptor and its text. The path's stem names the
        title that owns the file, which differs from `title_id` when the title
        is only registered inside another title's descriptor.

        Raises:
            DescriptorUnreadableError: No descriptor exists or it cannot be read.
        """
        path = await self.locate_descriptor(title_id)
        try:
            async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
                return path, await f.read()
        except OSError as e:
            raise DescriptorUnreadableError(f"Failed to read file: {path} ({e})") from e

    async def read_descriptor(self, title_id: int) -> str:
        _, content = await self.load_descriptor(title_id)
        return content

    async def write_descriptor(
        self, title_id: int, content: str, path: Path | None = None
    ) -> Path:
        """
        Atomically replaces `path`, by default the descriptor that
        `read_descriptor` would return.
        """
        if path is None:
            try:
                path = await self.locate_descriptor(title_id)
            except DescriptorUnreadableError:
                await self._ensure_directory(self.layout.descriptor_dir)
                path = self.layout.path_for(ArtifactKind.UNLOCK_DESCRIPTOR, title_id)
        await self._atomic_write(path, content.encode("utf-8"))
        return path
