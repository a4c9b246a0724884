"""SQLModel-backed persistent key-value store."""

from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from soulsync.adapters.base import BaseStoreAdapter, StoreConnectionError, StoreWriteError
from soulsync.config.settings import settings
from soulsync.db import close_db, init_db
from soulsync.db.models import StoredCollection
from soulsync.notifications.channel import ChangeChannel


class SqlStoreAdapter(BaseStoreAdapter):
    """Adapter storing each collection as one row of JSON text.

    Uses:
    - SQLite by default (``STORE_DATABASE_URL``)
    - One row per collection key
    """

    def __init__(
        self,
        database_url: str | None = None,
        channel: ChangeChannel | None = None,
    ) -> None:
        super().__init__("sqlite", channel)
        self.database_url = database_url or settings.store.database_url
        self._engine: Engine | None = None

    async def connect(self) -> bool:
        """Open the database and create tables."""
        try:
            self._engine = init_db(self.database_url)
            self._connected = True
            self.logger.info("Connected to store", url=self.database_url)
            return True
        except Exception as e:
            self.logger.error("Failed to open store", error=str(e))
            raise StoreConnectionError(self.name, f"Open failed: {e}") from e

    async def disconnect(self) -> None:
        """Dispose of the engine."""
        if self._engine is not None:
            close_db(self._engine)
        self._engine = None
        self._connected = False
        self.logger.info("Disconnected from store")

    async def health_check(self) -> bool:
        """Check that a trivial query succeeds."""
        if not self._engine:
            return False
        try:
            with Session(self._engine) as session:
                session.exec(select(StoredCollection.key).limit(1)).first()
            return True
        except Exception:
            return False

    def _require_engine(self) -> Engine:
        if not self._engine:
            raise StoreConnectionError(self.name, "Not connected")
        return self._engine

    async def read_raw(self, key: str) -> str | None:
        with Session(self._require_engine()) as session:
            row = session.get(StoredCollection, key)
            return row.payload if row else None

    async def write_raw(self, key: str, payload: str) -> None:
        try:
            with Session(self._require_engine()) as session:
                row = session.get(StoredCollection, key)
                if row is None:
                    row = StoredCollection(key=key, payload=payload)
                else:
                    row.payload = payload
                    row.updated_at = datetime.now(timezone.utc)
                session.add(row)
                session.commit()
        except StoreConnectionError:
            raise
        except Exception as e:
            self.logger.error("Failed to write collection", key=key, error=str(e))
            raise StoreWriteError(self.name, f"Write failed for {key}: {e}") from e

    async def list_keys(self) -> list[str]:
        with Session(self._require_engine()) as session:
            return list(session.exec(select(StoredCollection.key)).all())
