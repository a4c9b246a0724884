"""Database models for SoulSync using SQLModel."""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredCollection(SQLModel, table=True):
    """One key-value entry: a collection key and its JSON payload."""

    __tablename__ = "stored_collection"

    key: str = Field(primary_key=True)
    payload: str
    updated_at: datetime = Field(default_factory=_utcnow)
