"""
Library scanning, incremental updates and background name resolution.
"""

import asyncio

import pytest

from oracle_cli.core.library_indexer import LibraryIndexer, scan_directories
from oracle_cli.exceptions import DestinationMissingError, MetadataError
from oracle_cli.models.library import Artifact, ArtifactKind

from .fakes import TF2_DESCRIPTOR, TF2_MANIFEST


class TestScan:
    def test_manifest_only_title_is_a_partial_entry(self, layout):
        (layout.manifest_dir / "730.manifest").write_bytes(b"m")

        found = scan_directories(layout.descriptor_dir, layout.manifest_dir)

        assert found == {730: (False, True)}

    def test_depot_manifests_and_foreign_files_are_ignored(self, layout):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")
        (layout.descriptor_dir / "notes.txt").write_text("x")
        (layout.manifest_dir / "441_123456.manifest").write_bytes(b"m")

        assert scan_directories(layout.descriptor_dir, layout.manifest_dir) == {
            440: (True, False)
        }

    @pytest.mark.parametrize("stem", ["\u00b2", "\u0663", "0", "0440", "-5", "440 "])
    def test_files_not_named_after_a_title_id_are_skipped(self, layout, stem):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")
        (layout.manifest_dir / f"{stem}.manifest").write_bytes(b"m")
        (layout.descriptor_dir / f"{stem}.lua").write_text("addappid(1)")

        assert scan_directories(layout.descriptor_dir, layout.manifest_dir) == {
            440: (True, False)
        }

    @pytest.mark.asyncio
    async def test_rescan_reports_partial_state(self, placement, layout):
        (layout.manifest_dir / "730.manifest").write_bytes(b"m")

        entries = await LibraryIndexer(placement).rescan()

        assert len(entries) == 1
        assert entries[0].is_partial
        assert not entries[0].has_unlock_descriptor
        assert entries[0].display_name == "unresolved:730"

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, placement, layout):
        layout.descriptor_dir.rmdir()

        with pytest.raises(DestinationMissingError):
            await LibraryIndexer(placement).rescan()


class TestIncrementalUpdates:
    @pytest.mark.asyncio
    async def test_apply_update_agrees_with_rescan(self, placement):
        indexer = LibraryIndexer(placement)
        await indexer.rescan()
        artifacts = [
            Artifact(ArtifactKind.UNLOCK_DESCRIPTOR, 440, TF2_DESCRIPTOR),
            Artifact(ArtifactKind.MANIFEST, 440, TF2_MANIFEST),
            Artifact(ArtifactKind.MANIFEST, 440, b"d", file_stem="441_1"),
        ]

        await placement.place(artifacts, 440)
        indexer.apply_update(440, artifacts)
        incremental = indexer.snapshot()

        assert await indexer.rescan() == incremental

    @pytest.mark.asyncio
    async def test_remove_drops_the_entry(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")
        indexer = LibraryIndexer(placement)
        await indexer.rescan()

        result = await indexer.remove(440)

        assert result.ok
        assert indexer.get(440) is None
        assert await indexer.rescan() == []

    @pytest.mark.asyncio
    async def test_snapshot_returns_copies(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")
        indexer = LibraryIndexer(placement)
        entries = await indexer.rescan()

        entries[0].display_name = "tampered"

        assert indexer.get(440).display_name == "unresolved:440"


class TestNameResolution:
    @pytest.mark.asyncio
    async def test_names_survive_a_concurrent_rescan(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")
        (layout.descriptor_dir / "730.lua").write_text("addappid(730)")
        release = asyncio.Event()

        async def slow_resolver(ids):
            await release.wait()
            return {440: "Team Fortress 2", 730: "Counter-Strike 2"}

        indexer = LibraryIndexer(placement, slow_resolver)
        await indexer.rescan()
        await indexer.rescan()
        release.set()
        await indexer.wait_for_names()

        names = [entry.display_name for entry in indexer.snapshot()]
        assert names == ["Counter-Strike 2", "Team Fortress 2"]

        (layout.manifest_dir / "440.manifest").write_bytes(b"m")
        entries = await indexer.rescan()
        assert {e.title_id: e.display_name for e in entries}[440] == "Team Fortress 2"

    @pytest.mark.asyncio
    async def test_known_names_are_not_looked_up_again(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")
        calls = []

        async def resolver(ids):
            calls.append(list(ids))
            return {440: "Team Fortress 2"}

        indexer = LibraryIndexer(placement, resolver)
        await indexer.rescan()
        await indexer.wait_for_names()
        await indexer.rescan()
        await indexer.wait_for_names()

        assert calls == [[440]]

    @pytest.mark.asyncio
    async def test_failed_lookup_keeps_placeholder(self, placement, layout):
        (layout.descriptor_dir / "440.lua").write_text("addappid(440)")

        async def broken_resolver(ids):
            raise MetadataError("store down")

        indexer = LibraryIndexer(placement, broken_resolver)
        await indexer.rescan()
        await indexer.wait_for_names()

        assert indexer.get(440).display_name == "unresolved:440"
