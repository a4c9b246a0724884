"""Tests for the change channel and the polling fallback."""

import pytest

from conftest import USER
from soulsync.collections import Collection, collection_key
from soulsync.notifications import ChangeChannel
from soulsync.notifications.poller import CollectionPoller

MOODS = collection_key(Collection.MOODS, USER)


class TestChangeChannel:

    async def test_delivers_to_sync_and_async_handlers(self):
        channel = ChangeChannel()
        seen = []

        async def async_handler(key):
            seen.append(("async", key))

        channel.subscribe(lambda key: seen.append(("sync", key)))
        channel.subscribe(async_handler)
        await channel.publish("k")

        assert seen == [("sync", "k"), ("async", "k")]

    async def test_failing_handler_does_not_block_others(self):
        channel = ChangeChannel()
        seen = []

        def broken(key):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        await channel.publish("k")

        assert seen == ["k"]

    async def test_unsubscribe(self):
        channel = ChangeChannel()
        seen = []
        unsubscribe = channel.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        await channel.publish("k")
        assert seen == []
        assert channel.subscriber_count == 0

    async def test_store_writes_publish_recognized_keys(self, store):
        seen = []
        store.channel.subscribe(seen.append)

        await store.write(MOODS, [])
        await store.write("scratch", [])

        assert seen == [MOODS]


class TestCollectionPoller:

    @pytest.fixture
    async def poller(self, store):
        poller = CollectionPoller(store, interval_seconds=1)
        yield poller
        await poller.stop()

    async def test_first_poll_sets_baseline(self, poller, store):
        await store.write_raw(MOODS, "[]")
        assert await poller.poll_once() == []

    async def test_detects_writes_that_bypass_the_channel(self, poller, store):
        seen = []
        store.channel.subscribe(seen.append)
        await poller.poll_once()

        await store.write_raw(MOODS, '[{"value": "good"}]')
        await store.write_raw("scratch", "[]")

        assert await poller.poll_once() == [MOODS]
        assert seen == [MOODS]
        assert await poller.poll_once() == []

    async def test_channel_writes_are_not_republished(self, poller, store):
        await poller.poll_once()
        await store.write(MOODS, [{"value": "good"}])

        assert await poller.poll_once() == []

    async def test_detects_deleted_collections(self, poller, store):
        await store.write_raw(MOODS, "[]")
        await poller.poll_once()

        await store.delete_raw(MOODS)
        assert await poller.poll_once() == [MOODS]
        assert await poller.poll_once() == []

    async def test_start_and_stop(self, poller):
        poller.start()
        assert poller.scheduler.running
        assert poller.scheduler.get_job("collection_poll") is not None

        await poller.stop()
        assert not poller.scheduler.running

    async def test_stop_twice_is_harmless(self, poller, store):
        seen = []
        store.channel.subscribe(seen.append)
        poller.start()
        await poller.stop()
        await poller.stop()

        assert not poller.scheduler.running
        await store.write(MOODS, [{"value": "good"}])
        assert seen == [MOODS]
        assert MOODS not in poller._digests
