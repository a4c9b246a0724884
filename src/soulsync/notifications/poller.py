"""Polling fallback for collection writes that bypass the change channel."""

import asyncio
import hashlib

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from soulsync.adapters.base import BaseStoreAdapter
from soulsync.collections import parse_collection_key
from soulsync.config.settings import settings

logger = structlog.get_logger()


def _digest(payload: str | None) -> str | None:
    if payload is None:
        return None
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CollectionPoller:
    """Periodically fingerprints collections and republishes changed ones.

    Writes made through the store adapter already notify subscribers, so the
    poller records their fingerprints as they are published and only
    announces changes it has not seen: writes from another process sharing
    the same store. Subscribers recompute from the logs, so a notification
    that overlaps with one from the channel is harmless.
    """

    def __init__(
        self,
        store: BaseStoreAdapter,
        interval_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.interval_seconds = interval_seconds or settings.insights.poll_interval_seconds
        self.scheduler = AsyncIOScheduler()
        self._digests: dict[str, str | None] = {}
        self._primed = False
        self._stopped = False
        self._unsubscribe = store.channel.subscribe(self._remember)

    async def _remember(self, collection_key: str) -> None:
        self._digests[collection_key] = _digest(await self.store.read_raw(collection_key))

    async def poll_once(self) -> list[str]:
        """Compare fingerprints and publish every changed collection.

        The first poll only records a baseline.

        Returns:
            Keys that were published.
        """
        current: dict[str, str | None] = {}
        for key in await self.store.list_keys():
            if parse_collection_key(key) is None:
                continue
            current[key] = _digest(await self.store.read_raw(key))

        if not self._primed:
            self._digests.update(current)
            self._primed = True
            return []

        changed = [key for key, digest in current.items() if self._digests.get(key) != digest]
        removed = [key for key in self._digests if key not in current and self._digests[key]]

        for key in removed:
            current[key] = None

        self._digests.update(current)
        published = changed + removed
        for key in published:
            logger.info("Detected external collection change", key=key)
            await self.store.channel.publish(key)
        return published

    async def _poll_job(self) -> None:
        try:
            await self.poll_once()
        except Exception as e:
            logger.warning("Collection poll failed", error=str(e))

    def start(self) -> None:
        """Start polling; must be called with a running event loop."""
        self.scheduler.add_job(
            self._poll_job,
            IntervalTrigger(seconds=self.interval_seconds),
            id="collection_poll",
            name="Collection Poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Collection poller started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop polling and detach from the channel. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # shutdown is queued on the loop; let it run before returning
            await asyncio.sleep(0)
        self._unsubscribe()
        logger.info("Collection poller stopped")
