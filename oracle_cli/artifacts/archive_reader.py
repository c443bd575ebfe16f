"""
Turns the files found in a repository branch (zipped or fetched one by one)
into the typed artifact set of a title.
"""

import io
import logging
import posixpath
import zipfile

from oracle_cli.exceptions import InvalidArtifactError
from oracle_cli.models.library import REQUIRED_KINDS, Artifact, ArtifactKind
from oracle_cli.utils.descriptor import parse_depot_manifest_name

from .integrity import ArtifactIntegrityChecker

log = logging.getLogger(__name__)

RELEVANT_EXTENSIONS = (".lua", ".manifest", ".bin")

# Members larger than this are not descriptors or manifests
MAX_MEMBER_BYTES = 64 * 1024 * 1024


def is_relevant_file(path: str) -> bool:
    return path.lower().endswith(RELEVANT_EXTENSIONS)


def read_zip_members(data: bytes) -> dict[str, bytes]:
    """
    Returns `{base file name: content}` for every relevant member of a zip.

    GitHub zipballs nest everything under `<owner>-<repo>-<sha>/`, so only the
    base name is kept.

    Raises:
        InvalidArtifactError: If the payload is not a readable zip archive.
    """
    if not ArtifactIntegrityChecker.check_zip(data):
        raise InvalidArtifactError("Downloaded payload is not a zip archive.")

    files: dict[str, bytes] = {}
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                if info.is_dir() or not is_relevant_file(info.filename):
                    continue
                if info.file_size > MAX_MEMBER_BYTES:
                    log.warning(f"Skipping oversized archive member {info.filename}")
                    continue
                name = posixpath.basename(info.filename)
                if name in files:
                    log.debug(f"Duplicate archive member {name}, keeping the first.")
                    continue
                files[name] = archive.read(info)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
        raise InvalidArtifactError(f"Corrupt zip archive: {e}") from e

    log.debug(f"Read {len(files)} relevant files from archive.")
    return files


def _pick(names: list[str], preferred: str) -> str | None:
    if preferred in names:
        return preferred
    return names[0] if names else None


def classify_files(title_id: int, files: dict[str, bytes]) -> list[Artifact]:
    """
    Builds the artifact set of a title from loose files.

    The title's descriptor and manifest are `<id>.lua` / `<id>.manifest` when
    present, otherwise the first file of that type by name. Depot manifests
    (`<depot>_<manifest>.manifest`) are also kept under their own names.

    Raises:
        InvalidArtifactError: If the descriptor or manifest is missing, or any
        artifact fails its integrity check.
    """
    by_ext: dict[str, list[str]] = {ext: [] for ext in RELEVANT_EXTENSIONS}
    for name in sorted(files):
        ext = posixpath.splitext(name)[1].lower()
        if ext in by_ext:
            by_ext[ext].append(name)

    artifacts: list[Artifact] = []

    descriptor = _pick(by_ext[".lua"], f"{title_id}.lua")
    if descriptor:
        artifacts.append(
            Artifact(ArtifactKind.UNLOCK_DESCRIPTOR, title_id, files[descriptor])
        )

    manifest = _pick(by_ext[".manifest"], f"{title_id}.manifest")
    if manifest:
        artifacts.append(Artifact(ArtifactKind.MANIFEST, title_id, files[manifest]))
        for name in by_ext[".manifest"]:
            if parse_depot_manifest_name(name):
                artifacts.append(
                    Artifact(
                        ArtifactKind.MANIFEST,
                        title_id,
                        files[name],
                        file_stem=posixpath.splitext(name)[0],
                    )
                )

    stats = _pick(by_ext[".bin"], f"{title_id}.bin")
    if stats:
        artifacts.append(Artifact(ArtifactKind.STATS_EXPORT, title_id, files[stats]))

    present = {a.kind for a in artifacts}
    missing = REQUIRED_KINDS - present
    if missing:
        names = ", ".join(sorted(kind.value for kind in missing))
        raise InvalidArtifactError(f"Incomplete artifact set for AppID {title_id}: missing {names}")

    ArtifactIntegrityChecker.require_valid(artifacts)
    return artifacts
