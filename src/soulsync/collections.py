"""Names of the per-user collections kept in the key-value store."""

from enum import Enum


class Collection(str, Enum):
    """Recognized collection families."""

    MOODS = "soulsync_moods"
    JOURNAL = "soulsync_journal"
    HABITS = "soulsync_habits"
    SESSIONS = "mindful_progress_log"
    PROGRESS = "mindful_progress"
    FAVORITES = "mindful_favorites"


# Longest names first so "mindful_progress_log" wins over "mindful_progress"
_BY_PREFIX = sorted(Collection, key=lambda c: len(c.value), reverse=True)


def collection_key(collection: Collection, user_id: str) -> str:
    """Deterministic store key for a user's collection."""
    if not user_id:
        raise ValueError("user_id must not be empty")
    return f"{collection.value}_{user_id}"


def parse_collection_key(key: str) -> tuple[Collection, str] | None:
    """Split a store key into its collection and user id.

    Returns None for keys that are not SoulSync collections.
    """
    for collection in _BY_PREFIX:
        prefix = f"{collection.value}_"
        if key.startswith(prefix) and len(key) > len(prefix):
            return collection, key[len(prefix):]
    return None
