"""SQLite persistence for the key-value store."""

from pathlib import Path

from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, create_engine

from soulsync.db.models import StoredCollection


def expand_database_url(database_url: str) -> str:
    """Expand ``~`` in sqlite file paths and make sure the folder exists."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return database_url

    path = Path(url.database).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return url.set(database=str(path)).render_as_string(hide_password=False)


def init_db(database_url: str) -> Engine:
    """Create the engine and the tables it needs."""
    engine = create_engine(expand_database_url(database_url))
    SQLModel.metadata.create_all(engine)
    return engine


def close_db(engine: Engine) -> None:
    """Dispose of pooled connections."""
    engine.dispose()


__all__ = ["StoredCollection", "close_db", "expand_database_url", "init_db"]
