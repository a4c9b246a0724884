"""Publish-subscribe channel for "collection changed" signals."""

import inspect
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

ChangeHandler = Callable[[str], Awaitable[None] | None]


class ChangeChannel:
    """Broadcasts collection keys to subscribers.

    A notification only says "this collection changed"; subscribers re-read
    the collection themselves. Handlers run in subscription order and may be
    plain functions or coroutines. A failing handler is logged and does not
    stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: list[ChangeHandler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def publish(self, collection_key: str) -> None:
        """Deliver ``collection_key`` to every subscriber."""
        for handler in list(self._handlers):
            try:
                result = handler(collection_key)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Change handler failed",
                    collection=collection_key,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )
