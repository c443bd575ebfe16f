"""
DLC set replacement and descriptor text handling.
"""

import pytest

from oracle_cli.core.dlc_sync import DlcSyncEngine
from oracle_cli.exceptions import DescriptorUnreadableError
from oracle_cli.utils.descriptor import (
    DLC_SYNC_MARKER,
    apply_manifest_ids,
    extract_dlc_ids,
    extract_manifest_ids,
    parse_depot_manifest_name,
    rewrite_dlc_block,
)

DESCRIPTOR = (
    "-- generated\n"
    "addappid(440)\n"
    'addappid(440001, 1, "deadbeef")\n'
    'setManifestid(440001, "777", 0)\n'
    "addappid(441)\n"
    "addappid(443)\n"
)


class TestSyncDlcs:
    @pytest.mark.asyncio
    async def test_replaces_membership_with_target(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text(DESCRIPTOR)
        engine = DlcSyncEngine(placement)

        result = await engine.sync_dlcs(440, {441, 442})

        assert result.to_add == {442}
        assert result.to_remove == {443}
        assert result.message == "Successfully synced 2 DLC(s)."
        assert await engine.get_dlc_membership(440) == {441, 442}
        content = (layout.descriptor_dir / "440.lua").read_text()
        assert 'addappid(440001, 1, "deadbeef")' in content
        assert 'setManifestid(440001, "777", 0)' in content
        assert "addappid(443)" not in content

    @pytest.mark.asyncio
    async def test_second_sync_is_byte_identical(self, placement, layout):
        path = layout.descriptor_dir / "440.lua"
        path.write_text(DESCRIPTOR)
        engine = DlcSyncEngine(placement)

        await engine.sync_dlcs(440, {441, 442})
        first = path.read_bytes()
        result = await engine.sync_dlcs(440, {441, 442})

        assert path.read_bytes() == first
        assert not result.changed
        assert result.to_add == set()
        assert result.to_remove == set()

    @pytest.mark.asyncio
    async def test_empty_target_removes_every_dlc(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text(DESCRIPTOR)
        engine = DlcSyncEngine(placement)

        await engine.sync_dlcs(440, set())

        content = (layout.descriptor_dir / "440.lua").read_text()
        assert DLC_SYNC_MARKER not in content
        assert "addappid(440)" in content
        assert await engine.get_dlc_membership(440) == set()

    @pytest.mark.asyncio
    async def test_main_title_cannot_be_its_own_dlc(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text(DESCRIPTOR)

        with pytest.raises(ValueError):
            await DlcSyncEngine(placement).sync_dlcs(440, {440, 441})

    @pytest.mark.asyncio
    async def test_dlc_sharing_a_line_with_the_main_title_is_removed(
        self, placement, layout
    ):
        path = layout.descriptor_dir / "440.lua"
        path.write_text("addappid(440); addappid(443)\naddappid(441)\n")
        engine = DlcSyncEngine(placement)

        await engine.sync_dlcs(440, {441, 442})

        assert await engine.get_dlc_membership(440) == {441, 442}
        assert path.read_text().startswith("addappid(440);\n")

    @pytest.mark.asyncio
    async def test_owner_of_a_shared_descriptor_is_not_a_dlc(self, placement, layout):
        path = layout.descriptor_dir / "100.lua"
        path.write_text("addappid(100)\naddappid(200)\naddappid(150)\n")
        engine = DlcSyncEngine(placement)

        assert await engine.get_dlc_membership(200) == {150}

        await engine.sync_dlcs(200, {201})

        content = path.read_text()
        assert "addappid(100)" in content
        assert "addappid(200)" in content
        assert "addappid(150)" not in content
        assert await engine.get_dlc_membership(200) == {201}
        assert not (layout.descriptor_dir / "200.lua").exists()

    @pytest.mark.asyncio
    async def test_owner_of_a_shared_descriptor_cannot_be_targeted(
        self, placement, layout
    ):
        (layout.descriptor_dir / "100.lua").write_text("addappid(100)\naddappid(200)\n")

        with pytest.raises(ValueError, match="owns the descriptor"):
            await DlcSyncEngine(placement).sync_dlcs(200, {100})

    @pytest.mark.asyncio
    async def test_missing_descriptor_raises(self, placement):
        with pytest.raises(DescriptorUnreadableError):
            await DlcSyncEngine(placement).sync_dlcs(440, {441})


class TestDescriptorText:
    def test_depot_lines_are_not_dlcs(self):
        assert extract_dlc_ids(DESCRIPTOR, 440) == {441, 443}

    def test_rewrite_is_idempotent(self):
        once = rewrite_dlc_block(DESCRIPTOR, 440, {442, 441})
        twice = rewrite_dlc_block(once, 440, {441, 442})

        assert once == twice
        assert once.endswith(f"{DLC_SYNC_MARKER}\naddappid(441)\naddappid(442)\n")

    def test_parse_depot_manifest_name(self):
        assert parse_depot_manifest_name("441_7000123.manifest") == (441, "7000123")
        assert parse_depot_manifest_name("441.manifest") is None

    def test_apply_manifest_ids_updates_and_appends(self):
        content = 'addappid(440)\nsetManifestid(441, "100", 0)\nsetManifestid(442, "5", 0)\n'

        new, updated, appended = apply_manifest_ids(content, {441: "200", 442: "5", 443: "9"})

        assert (updated, appended) == (1, 1)
        assert extract_manifest_ids(new) == {441: "200", 442: "5", 443: "9"}

    def test_apply_manifest_ids_without_changes(self):
        content = 'setManifestid(441, "100", 0)\n'

        assert apply_manifest_ids(content, {441: "100"}) == (content, 0, 0)

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("addappid(440); addappid(443)", "addappid(440);"),
            ("addappid(443); addappid(440)", "addappid(440)"),
            ("addappid(443); addappid(444)", None),
            ("addappid(443) -- old dlc", "-- old dlc"),
        ],
    )
    def test_rewrite_removes_each_dlc_call_on_shared_lines(self, line, expected):
        rewritten = rewrite_dlc_block(line + "\n", 440, set())

        assert rewritten == ("" if expected is None else expected + "\n")
        assert extract_dlc_ids(rewritten, 440) == set()
