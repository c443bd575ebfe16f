"""
End-to-end behaviour of the operation surface with fake network collaborators.
"""

import pytest

from oracle_cli.core.library_service import LibraryService
from oracle_cli.exceptions import (
    DescriptorUnreadableError,
    DestinationMissingError,
    PlacementError,
    SourceExhaustedError,
)
from oracle_cli.models.metadata import CatalogApp
from oracle_cli.storage.cache import MISS, DetailsCache

from .fakes import (
    TF2_DESCRIPTOR,
    TF2_MANIFEST,
    TF2_ZIP,
    FakeDownloader,
    FakeStoreClient,
    make_zip,
    zipball_url,
)


def make_service(config, downloader=None, names=None, dlcs=None) -> LibraryService:
    return LibraryService(
        config,
        downloader=downloader or FakeDownloader({zipball_url("good/repo", 440): TF2_ZIP}),
        store_client=FakeStoreClient(names or {440: "Team Fortress 2"}, dlcs),
        cache=DetailsCache(),
    )


class TestDownloadAndInstall:
    @pytest.mark.asyncio
    async def test_falls_back_to_good_source_and_installs(self, make_config, layout):
        async with make_service(make_config()) as service:
            assert await service.download_and_install(440)

            entries = await service.list_library(wait_for_names=True)

        assert (layout.descriptor_dir / "440.lua").read_bytes() == TF2_DESCRIPTOR
        assert (layout.manifest_dir / "440.manifest").read_bytes() == TF2_MANIFEST
        assert [(e.title_id, e.display_name, e.is_complete) for e in entries] == [
            (440, "Team Fortress 2", True)
        ]

    @pytest.mark.asyncio
    async def test_returns_false_when_every_source_fails(self, make_config, layout):
        async with make_service(make_config(), downloader=FakeDownloader()) as service:
            assert not await service.download_and_install(440)

        assert list(layout.descriptor_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_directory_propagates(self, make_config, layout):
        layout.descriptor_dir.rmdir()

        async with make_service(make_config()) as service:
            with pytest.raises(DestinationMissingError):
                await service.download_and_install(440)

    @pytest.mark.asyncio
    async def test_title_lock_is_held_while_downloading(self, make_config):
        observed = []
        service = None

        def on_fetch(url):
            observed.append(service.locks.is_locked(440))

        downloader = FakeDownloader({zipball_url("good/repo", 440): TF2_ZIP}, on_fetch=on_fetch)
        async with make_service(make_config(), downloader=downloader) as service:
            await service.download_and_install("440")

            assert observed == [True, True]
            assert not service.locks.is_locked(440)

    @pytest.mark.asyncio
    async def test_keeps_archive_when_enabled(self, make_config, tmp_path):
        config = make_config(keep_archives=True)

        async with make_service(config) as service:
            await service.download_and_install(440, display_name="Team Fortress 2")

        archive = tmp_path / "downloads" / "Team Fortress 2 - 440 (Branch).zip"
        assert archive.read_bytes() == TF2_ZIP

    @pytest.mark.asyncio
    async def test_install_many_keeps_going_after_a_failed_title(
        self, make_config, layout, monkeypatch
    ):
        cs_zip = make_zip({"730.lua": b"addappid(730)\n", "730.manifest": b"m730"})
        downloader = FakeDownloader(
            {
                zipball_url("good/repo", 440): TF2_ZIP,
                zipball_url("good/repo", 730): cs_zip,
            }
        )

        async with make_service(make_config(), downloader=downloader) as service:
            place = service.placement.place

            async def place_or_fail(artifacts, title_id):
                if title_id == 730:
                    raise PlacementError("Failed to write file: 730.lua")
                return await place(artifacts, title_id)

            monkeypatch.setattr(service.placement, "place", place_or_fail)

            outcomes, failures = await service.install_many([730, "440", 730])

        assert [o.title_id for o in outcomes] == [440]
        assert list(failures) == [730]
        assert isinstance(failures[730], PlacementError)
        assert (layout.descriptor_dir / "440.lua").read_bytes() == TF2_DESCRIPTOR
        assert not (layout.descriptor_dir / "730.lua").exists()

    @pytest.mark.asyncio
    async def test_install_many_records_exhausted_sources(self, make_config):
        async with make_service(make_config()) as service:
            outcomes, failures = await service.install_many([440, 999])

        assert [o.title_id for o in outcomes] == [440]
        assert isinstance(failures[999], SourceExhaustedError)

    @pytest.mark.asyncio
    async def test_rejects_invalid_ids(self, make_config):
        async with make_service(make_config()) as service:
            with pytest.raises(ValueError):
                await service.download_and_install("abc")


class TestRemoveTitle:
    @pytest.mark.asyncio
    async def test_remove_deletes_files_and_entry(self, make_config, layout):
        async with make_service(make_config()) as service:
            await service.download_and_install(440)
            await service.remove_title(440)

            assert await service.list_library() == []

    @pytest.mark.asyncio
    async def test_failed_deletion_raises(self, make_config, layout, monkeypatch):
        async with make_service(make_config()) as service:
            await service.download_and_install(440)

            async def broken_remove(title_id):
                from oracle_cli.models.library import ArtifactKind, RemovalResult

                return RemovalResult(
                    title_id,
                    failed={ArtifactKind.MANIFEST: "Failed to delete file: 440.manifest"},
                )

            monkeypatch.setattr(service.placement, "remove_title_files", broken_remove)

            with pytest.raises(PlacementError, match="^Failed to delete file: "):
                await service.remove_title(440)


class TestDlcMembership:
    @pytest.mark.asyncio
    async def test_set_and_get(self, make_config, layout):
        (layout.descriptor_dir / "440.lua").write_text(
            "addappid(440)\naddappid(441)\naddappid(443)\n"
        )

        async with make_service(make_config()) as service:
            message = await service.set_dlc_membership(440, ["441", 442])
            membership = await service.get_dlc_membership(440)

        assert message == "Successfully synced 2 DLC(s)."
        assert membership == {441, 442}

    @pytest.mark.asyncio
    async def test_uninstalled_title(self, make_config):
        async with make_service(make_config()) as service:
            with pytest.raises(DescriptorUnreadableError):
                await service.get_dlc_membership(440)


class TestUpdateTitle:
    @pytest.mark.asyncio
    async def test_rewrites_and_appends_manifest_ids(self, make_config, layout):
        (layout.descriptor_dir / "440.lua").write_bytes(TF2_DESCRIPTOR)
        update_zip = make_zip(
            {
                "440.lua": TF2_DESCRIPTOR,
                "441_200.manifest": b"new 441",
                "442_300.manifest": b"new 442",
            }
        )
        downloader = FakeDownloader({zipball_url("good/repo", 440): update_zip})

        async with make_service(make_config(), downloader=downloader) as service:
            message = await service.update_title(440)

        assert message == "Update for Team Fortress 2 complete. Updated: 1, Appended: 1."
        content = (layout.descriptor_dir / "440.lua").read_text()
        assert 'setManifestid(441, "200", 0)' in content
        assert 'setManifestid(442, "300", 0)' in content
        assert (layout.manifest_dir / "441_200.manifest").read_bytes() == b"new 441"

    @pytest.mark.asyncio
    async def test_requires_installed_title(self, make_config):
        async with make_service(make_config()) as service:
            with pytest.raises(DescriptorUnreadableError):
                await service.update_title(440, display_name="TF2")


class TestMetadataAndSearch:
    @pytest.mark.asyncio
    async def test_clear_cache_forgets_details(self, make_config):
        async with make_service(make_config()) as service:
            await service.get_details(440)
            assert service.cache.get(440) is not MISS

            service.clear_cache()

            assert service.cache.get(440) is MISS

    @pytest.mark.asyncio
    async def test_details_batch(self, make_config):
        names = {440: "Team Fortress 2", 730: "Counter-Strike 2"}
        async with make_service(make_config(), names=names) as service:
            results = await service.get_details_batch([730, 440])

        assert [d.steam_appid for d in results] == [730, 440]

    @pytest.mark.asyncio
    async def test_search_uses_loaded_catalog(self, make_config):
        async with make_service(make_config()) as service:
            service.catalog.load_apps([CatalogApp(appid=440, name="Team Fortress 2")])

            results = await service.search("fortress")

        assert [app.appid for app in results.games] == [440]

    @pytest.mark.asyncio
    async def test_check_directories(self, make_config, layout):
        layout.manifest_dir.rmdir()

        async with make_service(make_config()) as service:
            status = service.check_directories()

        assert status.descriptor_dir_exists
        assert not status.manifest_dir_exists
