"""Key-value store adapters for SoulSync."""

from soulsync.adapters.activity import ActivityLog
from soulsync.adapters.base import (
    BaseStoreAdapter,
    StoreConnectionError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)
from soulsync.adapters.memory import MemoryStoreAdapter
from soulsync.adapters.sqlite import SqlStoreAdapter
from soulsync.config.settings import StoreSettings, settings
from soulsync.notifications.channel import ChangeChannel


def create_store(
    store_settings: StoreSettings | None = None,
    channel: ChangeChannel | None = None,
) -> BaseStoreAdapter:
    """Build the configured store backend."""
    store_settings = store_settings or settings.store
    if store_settings.backend == "memory":
        return MemoryStoreAdapter(channel)
    return SqlStoreAdapter(store_settings.database_url, channel)


__all__ = [
    # Base
    "BaseStoreAdapter",
    "StoreError",
    "StoreConnectionError",
    "StoreReadError",
    "StoreWriteError",
    # Backends
    "MemoryStoreAdapter",
    "SqlStoreAdapter",
    # Typed access
    "ActivityLog",
    "create_store",
]
