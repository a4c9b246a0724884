"""Base adapter interface for key-value event stores."""

import json
from abc import ABC, abstractmethod
from typing import Any

import structlog

from soulsync.collections import parse_collection_key
from soulsync.notifications.channel import ChangeChannel

logger = structlog.get_logger()


class BaseStoreAdapter(ABC):
    """Abstract base class for all key-value store backends.

    Backends implement raw string storage:
    - connect(): Open the underlying store
    - disconnect(): Release resources
    - health_check(): Verify the store is usable
    - read_raw() / write_raw() / list_keys(): Payload access by key

    The base class turns payloads into record lists and broadcasts a change
    notification for every write to a recognized collection.
    """

    def __init__(self, name: str, channel: ChangeChannel | None = None) -> None:
        """Initialize adapter with a name for logging."""
        self.name = name
        self.channel = channel or ChangeChannel()
        self._connected = False
        self.logger = logger.bind(adapter=name)

    @property
    def is_connected(self) -> bool:
        """Check if adapter is currently connected."""
        return self._connected

    @abstractmethod
    async def connect(self) -> bool:
        """Open the store.

        Returns:
            True if the store is ready for reads and writes.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect and clean up resources."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the adapter is operational."""
        pass

    @abstractmethod
    async def read_raw(self, key: str) -> str | None:
        """Return the stored payload for ``key`` or None if absent."""
        pass

    @abstractmethod
    async def write_raw(self, key: str, payload: str) -> None:
        """Store ``payload`` under ``key`` without notifying subscribers."""
        pass

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """List every key currently stored."""
        pass

    async def read(self, key: str) -> list[dict[str, Any]] | None:
        """Read a collection.

        Returns:
            The stored records, or None when the collection does not exist.

        Raises:
            StoreReadError: If the payload is not a JSON list of objects.
        """
        payload = await self.read_raw(key)
        if payload is None:
            return None

        try:
            records = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise StoreReadError(self.name, f"Corrupt collection {key}: {e}") from e

        if not isinstance(records, list):
            raise StoreReadError(
                self.name, f"Collection {key} holds {type(records).__name__}, expected list"
            )
        return records

    async def write(self, key: str, records: list[dict[str, Any]]) -> None:
        """Replace a collection and broadcast the change."""
        try:
            payload = json.dumps(records, default=str)
        except (TypeError, ValueError) as e:
            raise StoreWriteError(self.name, f"Cannot serialize {key}: {e}") from e

        await self.write_raw(key, payload)
        self.logger.debug("Wrote collection", key=key, records=len(records))

        if parse_collection_key(key) is not None:
            await self.channel.publish(key)

    async def __aenter__(self) -> "BaseStoreAdapter":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()


class StoreError(Exception):
    """Base exception for store adapter errors."""

    def __init__(self, adapter_name: str, message: str) -> None:
        self.adapter_name = adapter_name
        self.message = message
        super().__init__(f"[{adapter_name}] {message}")


class StoreConnectionError(StoreError):
    """Raised when the store cannot be opened."""

    pass


class StoreReadError(StoreError):
    """Raised when a stored collection cannot be parsed."""

    pass


class StoreWriteError(StoreError):
    """Raised when a collection cannot be written."""

    pass
