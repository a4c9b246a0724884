"""In-process key-value store."""

from soulsync.adapters.base import BaseStoreAdapter, StoreConnectionError
from soulsync.notifications.channel import ChangeChannel


class MemoryStoreAdapter(BaseStoreAdapter):
    """Dictionary-backed store for tests and ephemeral runs.

    Payloads are kept as JSON strings so parsing behaves exactly like the
    persistent backends.
    """

    def __init__(self, channel: ChangeChannel | None = None) -> None:
        super().__init__("memory", channel)
        self._data: dict[str, str] = {}

    async def connect(self) -> bool:
        self._connected = True
        return True

    async def disconnect(self) -> None:
        self._connected = False

    async def health_check(self) -> bool:
        return self._connected

    async def read_raw(self, key: str) -> str | None:
        return self._data.get(key)

    async def write_raw(self, key: str, payload: str) -> None:
        if not self._connected:
            raise StoreConnectionError(self.name, "Not connected")
        self._data[key] = payload

    async def delete_raw(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self._data)
