"""
Parsing and rewriting of unlock descriptors (`stplug-in/<id>.lua`).

A descriptor is a small Lua script. The lines this module cares about are:

    addappid(<id>)                      the title itself, or one enabled DLC
    addappid(<depot>, 1, "<key>")       a depot with its decryption key
    setManifestid(<depot>, "<id>", 0)   pins a depot to a manifest

Only single-argument `addappid` calls count as DLC membership; depot lines are
never touched by DLC sync.
"""

import re

DLC_SYNC_MARKER = "-- DLCs synced by oracle-cli --"
MANIFEST_UPDATE_MARKER = "-- Manifests appended by oracle-cli --"

_ADDAPPID = re.compile(r"addappid\s*\(\s*([0-9]+)\s*\)")
_ADDAPPID_CALL = re.compile(r"addappid\s*\(\s*([0-9]+)\s*\)\s*;?[ \t]*")
_SET_MANIFEST = re.compile(r'setManifestid\s*\(\s*([0-9]+)\s*,\s*"([0-9]+)"\s*,\s*0\s*\)')
_DEPOT_MANIFEST_NAME = re.compile(r"^([0-9]+)_([0-9]+)\.manifest$")


def extract_dlc_ids(
    content: str, main_id: int, owner_id: int | None = None
) -> set[int]:
    """
    Ids enabled with a plain `addappid(N)` call, excluding the main title and,
    for a descriptor shared with another title, the id that owns the file.
    """
    return {
        int(m.group(1))
        for m in _ADDAPPID.finditer(content)
        if int(m.group(1)) not in (main_id, owner_id)
    }


def _strip_dlc_calls(line: str, keep: tuple[int, ...]) -> str | None:
    """
    Removes every `addappid(N)` call on the line whose N is not in `keep`.
    Returns None when nothing but separators is left.
    """

    def drop(match: re.Match) -> str:
        return match.group(0) if int(match.group(1)) in keep else ""

    stripped = _ADDAPPID_CALL.sub(drop, line)
    if stripped == line:
        return line
    if not stripped.strip(" \t;"):
        return None
    return stripped.rstrip()


def rewrite_dlc_block(
    content: str, main_id: int, dlc_ids: set[int], owner_id: int | None = None
) -> str:
    """
    Returns `content` with its DLC membership replaced by exactly `dlc_ids`.

    Every call that is not a DLC call is kept in order, including the calls of
    the main title and the descriptor's owner that share a line with DLC
    calls. Previous sync markers are dropped so that rewriting with the same
    set twice produces identical text.
    """
    keep = (main_id,) if owner_id is None else (main_id, owner_id)
    kept = []
    for line in content.splitlines():
        if line.strip() == DLC_SYNC_MARKER:
            continue
        line = _strip_dlc_calls(line, keep)
        if line is not None:
            kept.append(line)

    while kept and not kept[-1].strip():
        kept.pop()

    if dlc_ids:
        if kept:
            kept.append("")
        kept.append(DLC_SYNC_MARKER)
        kept.extend(f"addappid({dlc_id})" for dlc_id in sorted(dlc_ids))

    return "\n".join(kept) + "\n" if kept else ""


def parse_depot_manifest_name(file_name: str) -> tuple[int, str] | None:
    """`<depot>_<manifest>.manifest` -> (depot, manifest id)."""
    match = _DEPOT_MANIFEST_NAME.match(file_name)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def extract_manifest_ids(content: str) -> dict[int, str]:
    """Current depot -> manifest id pins of a descriptor."""
    return {int(m.group(1)): m.group(2) for m in _SET_MANIFEST.finditer(content)}


def apply_manifest_ids(
    content: str, manifest_map: dict[int, str]
) -> tuple[str, int, int]:
    """
    Points existing `setManifestid` lines at new manifest ids and appends lines
    for depots the descriptor does not pin yet.

    Returns:
        (new content, number of updated lines, number of appended lines)
    """
    seen: set[int] = set()
    updated = 0

    def replace(match: re.Match) -> str:
        nonlocal updated
        depot_id = int(match.group(1))
        seen.add(depot_id)
        new_id = manifest_map.get(depot_id)
        if new_id is None or new_id == match.group(2):
            return match.group(0)
        updated += 1
        return f'setManifestid({depot_id}, "{new_id}", 0)'

    new_content = _SET_MANIFEST.sub(replace, content)

    to_append = [
        f'setManifestid({depot_id}, "{manifest_id}", 0)'
        for depot_id, manifest_id in sorted(manifest_map.items())
        if depot_id not in seen
    ]
    if to_append:
        if new_content and not new_content.endswith("\n"):
            new_content += "\n"
        new_content += f"\n{MANIFEST_UPDATE_MARKER}\n" + "\n".join(to_append) + "\n"

    return new_content, updated, len(to_append)
