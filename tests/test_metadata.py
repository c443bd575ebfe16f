"""
Details cache, store payload mapping and cache-first metadata lookups.
"""

import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from oracle_cli.api.metadata import MetadataService
from oracle_cli.exceptions import MetadataError
from oracle_cli.models.metadata import TitleMetadata
from oracle_cli.storage.cache import MISS, DetailsCache

from .fakes import FakeStoreClient


class TestDetailsCache:
    def test_clear_turns_every_entry_into_a_miss(self):
        cache = DetailsCache()
        cache.put(440, {"name": "Team Fortress 2"})

        cache.clear()

        assert cache.get(440) is MISS
        assert len(cache) == 0

    def test_entries_persist_between_instances(self, tmp_path):
        first = DetailsCache(tmp_path)
        first.init()
        first.put(440, {"name": "Team Fortress 2"})

        second = DetailsCache(tmp_path)

        assert second.init() == 1
        assert second.get(440) == {"name": "Team Fortress 2"}

    def test_clear_also_empties_the_file_store(self, tmp_path):
        cache = DetailsCache(tmp_path)
        cache.init()
        cache.put(440, {"name": "Team Fortress 2"})

        cache.clear()

        reloaded = DetailsCache(tmp_path)
        assert reloaded.init() == 0
        assert reloaded.get(440) is MISS

    def test_entries_expire_only_when_configured(self):
        eternal = DetailsCache()
        expiring = DetailsCache(max_age_days=1)
        for cache in (eternal, expiring):
            cache.put(440, "payload")
            cache._entries[440].inserted_at = time.time() - 3 * 86400

        assert eternal.get(440) == "payload"
        assert expiring.get(440) is MISS

    def test_batch_merge_keeps_input_order(self):
        cache = DetailsCache()
        cache.put(2, "two")
        cache.put(4, "four")

        lookup = cache.get_batch([3, 2, 1, 4, 2])

        assert lookup.ids == [3, 2, 1, 4, 2]
        assert lookup.missing == [3, 1]
        assert lookup.merge({1: "one", 3: None}) == ["two", "one", "four", "two"]

    def test_stats_callback_reports_hits_and_misses(self):
        callback = MagicMock()
        cache = DetailsCache(stats_callback=callback)
        cache.put(440, "payload")

        cache.get(440)
        cache.get(730)

        assert [c.args[0] for c in callback.call_args_list] == [True, False]

    def test_unreadable_cache_files_are_skipped(self, tmp_path):
        details_dir = tmp_path / "details"
        details_dir.mkdir()
        (details_dir / "440.json").write_text("{not json")
        (details_dir / "730.json").write_text(
            json.dumps({"title_id": 730, "inserted_at": time.time(), "payload": "cs"})
        )

        cache = DetailsCache(tmp_path)

        assert cache.init() == 1
        assert cache.get(730) == "cs"


class TestTitleMetadata:
    def test_known_fields_and_passthrough(self):
        details = TitleMetadata.from_api(
            {
                "steam_appid": 440,
                "name": "Team Fortress 2",
                "publishers": None,
                "dlc": {"0": 441, "1": "442", "2": "bogus"},
                "metacritic": {"score": 92},
            }
        )

        assert details.dlc == [441, 442]
        assert details.publishers == []
        assert details.passthrough == {"metacritic": {"score": 92}}

    def test_round_trips_through_cache_serializers(self, tmp_path):
        details = TitleMetadata(steam_appid=440, name="Team Fortress 2", dlc=[441])
        cache = DetailsCache(
            tmp_path,
            serializer=lambda d: d.model_dump(),
            deserializer=TitleMetadata.model_validate,
        )
        cache.init()
        cache.put(440, details)

        reloaded = DetailsCache(
            tmp_path,
            serializer=lambda d: d.model_dump(),
            deserializer=TitleMetadata.model_validate,
        )
        reloaded.init()

        assert reloaded.get(440) == details


class TestMetadataService:
    @pytest.mark.asyncio
    async def test_second_lookup_is_served_from_cache(self):
        client = FakeStoreClient({440: "Team Fortress 2"})
        service = MetadataService(client, DetailsCache())

        first = await service.get_details(440)
        second = await service.get_details(440)

        assert first == second
        assert client.requested == [440]

    @pytest.mark.asyncio
    async def test_failed_lookup_is_not_cached(self):
        client = FakeStoreClient()
        cache = DetailsCache()
        service = MetadataService(client, cache)

        with pytest.raises(MetadataError):
            await service.get_details(999)

        assert cache.get(999) is MISS

    @pytest.mark.asyncio
    async def test_batch_preserves_order_and_skips_unknown_ids(self):
        client = FakeStoreClient({1: "One", 2: "Two", 3: "Three"})
        cache = DetailsCache()
        cache.put(2, TitleMetadata(steam_appid=2, name="Two (cached)"))
        service = MetadataService(client, cache)

        results = await service.get_details_batch([3, 2, 99, 1])

        assert [d.name for d in results] == ["Three", "Two (cached)", "One"]
        assert sorted(client.requested) == [1, 3, 99]
        assert cache.get(3).name == "Three"

    @pytest.mark.asyncio
    async def test_resolve_names_falls_back_to_placeholder(self):
        service = MetadataService(FakeStoreClient({440: "Team Fortress 2"}), DetailsCache())

        names = await service.resolve_names([440, 999])

        assert names == {440: "Team Fortress 2", 999: "unresolved:999"}

    @pytest.mark.asyncio
    async def test_batch_repeats_duplicate_ids(self):
        client = FakeStoreClient({440: "Team Fortress 2", 730: "Counter-Strike 2"})
        service = MetadataService(client, DetailsCache())

        results = await service.get_details_batch([440, 730, 440])

        assert [d.steam_appid for d in results] == [440, 730, 440]
        assert sorted(client.requested) == [440, 730]

    @pytest.mark.asyncio
    async def test_resolve_names_keys_by_requested_id(self):
        client = MagicMock()
        client.fetch_app_details = AsyncMock(
            return_value=TitleMetadata(steam_appid=1000, name="Canonical Name")
        )
        service = MetadataService(client, DetailsCache())

        names = await service.resolve_names([999])

        assert names == {999: "Canonical Name"}

    @pytest.mark.asyncio
    async def test_close_closes_the_client(self):
        client = MagicMock()
        client.close = AsyncMock()

        await MetadataService(client, DetailsCache()).close()

        client.close.assert_awaited_once()
