"""Inbound event channel between the connection and consumers."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog


logger = structlog.get_logger()

MessageHandler = Callable[[Any], None]

_CLOSED = object()


class MessageChannel:
    """Fan-out channel for inbound pub/sub events.

    Handlers are called in subscription order for every published event.
    ``stream()`` gives each consumer its own FIFO queue. A failing handler
    is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        """Initialize an open channel with no subscribers."""
        self._handlers: list[MessageHandler] = []
        self._queues: set[asyncio.Queue[Any]] = set()
        self._closed = False
        self._log = logger.bind(component="channel")

    @property
    def closed(self) -> bool:
        """Whether the channel has been closed."""
        return self._closed

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler.

        Args:
            handler: Called with each published event.

        Returns:
            A function removing the handler.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        """Deliver an event to every handler and stream."""
        if self._closed:
            self._log.debug("publish_after_close")
            return

        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                self._log.warning("message_handler_failed", exc_info=True)

        for queue in self._queues:
            queue.put_nowait(event)

    async def stream(self) -> AsyncIterator[Any]:
        """Iterate over events published after this call until close()."""
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queues.add(queue)
        try:
            while not self._closed or not queue.empty():
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            self._queues.discard(queue)

    def close(self) -> None:
        """Close the channel and end every open stream."""
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._handlers.clear()
