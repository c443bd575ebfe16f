"""
Reads and replaces the set of DLCs a title's unlock descriptor enables.
"""

import logging
from pathlib import Path

from oracle_cli.models.library import SyncResult, title_id_from_stem
from oracle_cli.storage.placement import PlacementEngine
from oracle_cli.utils.descriptor import extract_dlc_ids, rewrite_dlc_block
from oracle_cli.utils.formatting import format_id_list

log = logging.getLogger(__name__)


def _foreign_owner(path: Path, title_id: int) -> int | None:
    """The id of the title owning `path` when that is not `title_id` itself."""
    owner = title_id_from_stem(path.stem)
    return owner if owner != title_id else None


class DlcSyncEngine:
    """
    DLC membership is replaced as a whole set, never patched line by line.
    Callers serialize access per title.

    A title without its own `<id>.lua` may be registered inside another
    title's descriptor. The owner's own `addappid` call is then never treated
    as one of its DLCs.
    """

    def __init__(self, placement: PlacementEngine):
        self.placement = placement

    async def get_dlc_membership(self, title_id: int) -> set[int]:
        """
        Raises:
            DescriptorUnreadableError: The title has no readable descriptor.
        """
        path, content = await self.placement.load_descriptor(title_id)
        return extract_dlc_ids(content, title_id, _foreign_owner(path, title_id))

    async def sync_dlcs(self, main_id: int, target: set[int]) -> SyncResult:
        """
        Makes the descriptor enable exactly `target`.

        Raises:
            ValueError: `target` contains the main title itself or the title
            owning its descriptor.
            DescriptorUnreadableError: The title has no readable descriptor.
            PlacementError: The rewritten descriptor could not be written.
        """
        target = set(target)
        if main_id in target:
            raise ValueError(f"AppID {main_id} cannot be its own DLC.")

        path, content = await self.placement.load_descriptor(main_id)
        owner_id = _foreign_owner(path, main_id)
        if owner_id in target:
            raise ValueError(
                f"AppID {owner_id} owns the descriptor of AppID {main_id} "
                "and cannot be one of its DLCs."
            )

        current = extract_dlc_ids(content, main_id, owner_id)
        to_add = target - current
        to_remove = current - target

        new_content = rewrite_dlc_block(content, main_id, target, owner_id)
        changed = new_content != content
        if changed:
            await self.placement.write_descriptor(main_id, new_content, path)
            log.info(
                f"AppID {main_id}: added {format_id_list(to_add)}, "
                f"removed {format_id_list(to_remove)}"
            )
        else:
            log.debug(f"DLC set of AppID {main_id} already up to date.")

        return SyncResult(
            title_id=main_id,
            to_add=to_add,
            to_remove=to_remove,
            dlc_ids=target,
            changed=changed,
        )
