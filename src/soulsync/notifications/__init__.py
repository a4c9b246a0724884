"""Change notification channel and polling fallback."""

from soulsync.notifications.channel import ChangeChannel, ChangeHandler

__all__ = ["ChangeChannel", "ChangeHandler"]
