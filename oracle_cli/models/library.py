"""
Core data structures shared by the resolver, fetcher, placement and indexer layers.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

_DIGITS = re.compile(r"[0-9]+")
_FILE_STEM_ID = re.compile(r"[1-9][0-9]*")


def parse_title_id(value: Any) -> int:
    """
    Normalizes a title identifier given as an int or a string of digits.

    Raises:
        ValueError: If the value is not a positive integer.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid AppID: {value!r}")
    if isinstance(value, int):
        title_id = value
    else:
        text = str(value).strip()
        if not _DIGITS.fullmatch(text):
            raise ValueError(f"Invalid AppID: {value!r}")
        title_id = int(text)
    if title_id <= 0:
        raise ValueError(f"AppID must be a positive integer, got {title_id}")
    return title_id


def title_id_from_stem(stem: str) -> int | None:
    """The title id a file is named after, or None for any other file name."""
    if not _FILE_STEM_ID.fullmatch(stem):
        return None
    return int(stem)


def placeholder_name(title_id: int) -> str:
    """Display name used until the real name has been fetched."""
    return f"unresolved:{title_id}"


class ArtifactKind(Enum):
    """The three file kinds the Steam client reads from its config directory."""

    UNLOCK_DESCRIPTOR = "unlock_descriptor"
    MANIFEST = "manifest"
    STATS_EXPORT = "stats_export"

    @property
    def extension(self) -> str:
        return _KIND_LAYOUT[self][0]

    @property
    def directory_name(self) -> str:
        return _KIND_LAYOUT[self][1]


_KIND_LAYOUT = {
    ArtifactKind.UNLOCK_DESCRIPTOR: (".lua", "stplug-in"),
    ArtifactKind.MANIFEST: (".manifest", "depotcache"),
    ArtifactKind.STATS_EXPORT: (".bin", "StatsExport"),
}

REQUIRED_KINDS = frozenset({ArtifactKind.UNLOCK_DESCRIPTOR, ArtifactKind.MANIFEST})


class SourceType(Enum):
    """How a candidate repository publishes per-title data."""

    BRANCH_ZIP = "branch_zip"
    REPO_TREE = "repo_tree"


@dataclass(frozen=True)
class CandidateSource:
    """One remote repository that may host a title's files."""

    source_id: str
    location: str
    priority: int
    source_type: SourceType = SourceType.BRANCH_ZIP


@dataclass(frozen=True)
class Artifact:
    """
    A validated file ready for placement.

    `file_stem` is only set for depot manifests (`<depot>_<manifest>`); every
    other artifact is named after its title.
    """

    kind: ArtifactKind
    title_id: int
    data: bytes = field(repr=False)
    file_stem: str | None = None

    @property
    def destination_name(self) -> str:
        return f"{self.file_stem or self.title_id}{self.kind.extension}"

    @property
    def is_primary(self) -> bool:
        return self.file_stem is None


@dataclass
class LibraryEntry:
    """One title as currently seen on disk."""

    title_id: int
    display_name: str
    has_unlock_descriptor: bool = False
    has_manifest: bool = False

    @property
    def is_complete(self) -> bool:
        return self.has_unlock_descriptor and self.has_manifest

    @property
    def is_partial(self) -> bool:
        """Only one of the two files exists. Displayable, not an error."""
        return self.has_unlock_descriptor != self.has_manifest

    @property
    def name_resolved(self) -> bool:
        return self.display_name != placeholder_name(self.title_id)


@dataclass
class CacheEntry:
    title_id: int
    payload: Any
    inserted_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class DirectoryStatus:
    descriptor_dir_exists: bool
    manifest_dir_exists: bool


@dataclass(frozen=True)
class CandidateFailure:
    """Why one candidate source did not produce a usable artifact set."""

    source_id: str
    reason: str
    category: str  # "fetch" or "validation"


@dataclass
class DownloadOutcome:
    title_id: int
    source: CandidateSource
    artifacts: list[Artifact]
    failures: list[CandidateFailure] = field(default_factory=list)
    raw_archive: bytes | None = field(default=None, repr=False)

    @property
    def attempts(self) -> int:
        return len(self.failures) + 1


@dataclass
class PlacementResult:
    title_id: int
    placed: dict[Path, ArtifactKind] = field(default_factory=dict)

    @property
    def kinds(self) -> set[ArtifactKind]:
        return set(self.placed.values())


@dataclass
class RemovalResult:
    title_id: int
    removed: list[ArtifactKind] = field(default_factory=list)
    missing: list[ArtifactKind] = field(default_factory=list)
    failed: dict[ArtifactKind, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class SyncResult:
    title_id: int
    to_add: set[int]
    to_remove: set[int]
    dlc_ids: set[int]
    changed: bool

    @property
    def message(self) -> str:
        return f"Successfully synced {len(self.dlc_ids)} DLC(s)."
