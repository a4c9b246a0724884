"""Tests for the SQLModel-backed store."""

import pytest

from soulsync.adapters import (
    ActivityLog,
    MemoryStoreAdapter,
    SqlStoreAdapter,
    StoreConnectionError,
    StoreReadError,
    create_store,
)
from soulsync.config.settings import StoreSettings
from soulsync.models import MoodValue


class TestSqlStoreAdapter:

    async def test_round_trip_and_persistence(self, database_url):
        async with SqlStoreAdapter(database_url) as store:
            assert await store.health_check()
            await store.write("soulsync_moods_ana", [{"value": "good"}])
            await store.write("soulsync_moods_ana", [{"value": "okay"}])

        async with SqlStoreAdapter(database_url) as store:
            assert await store.read("soulsync_moods_ana") == [{"value": "okay"}]
            assert await store.list_keys() == ["soulsync_moods_ana"]
            assert await store.read("missing") is None

    async def test_corrupt_payload_raises_read_error(self, database_url):
        async with SqlStoreAdapter(database_url) as store:
            await store.write_raw("soulsync_moods_ana", "not json")
            with pytest.raises(StoreReadError):
                await store.read("soulsync_moods_ana")

    async def test_requires_connection(self, database_url):
        store = SqlStoreAdapter(database_url)
        assert not await store.health_check()
        with pytest.raises(StoreConnectionError):
            await store.read_raw("soulsync_moods_ana")

    async def test_activity_log_over_sqlite(self, database_url):
        async with SqlStoreAdapter(database_url) as store:
            log = ActivityLog(store, "UTC")
            await log.log_mood("ana", MoodValue.AMAZING, note="sunny")

            moods = await log.moods("ana")
            assert moods[0].value == MoodValue.AMAZING
            assert moods[0].note == "sunny"

    async def test_creates_missing_directories(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'nested' / 'dir' / 'store.db'}"
        async with SqlStoreAdapter(url) as store:
            await store.write("soulsync_journal_ana", [])
        assert (tmp_path / "nested" / "dir" / "store.db").exists()


class TestMemoryStoreAdapter:

    async def test_write_requires_connection(self):
        store = MemoryStoreAdapter()
        with pytest.raises(StoreConnectionError):
            await store.write("soulsync_moods_ana", [])


def test_create_store_uses_backend_setting(database_url):
    assert isinstance(create_store(StoreSettings(backend="memory")), MemoryStoreAdapter)

    store = create_store(StoreSettings(backend="sqlite", database_url=database_url))
    assert isinstance(store, SqlStoreAdapter)
    assert store.database_url == database_url
