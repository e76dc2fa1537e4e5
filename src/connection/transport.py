"""Contracts for the runtime-loaded pub/sub transport."""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol


TokenProvider = Callable[[], str]
EventCallback = Callable[[Any], None]
CloseCallback = Callable[[BaseException | None], None]


class PubSubConnection(Protocol):
    """One persistent pub/sub connection built by a transport."""

    async def start(self) -> None:
        """Establish the connection; raise if it cannot be established."""
        ...

    async def stop(self) -> None:
        """Close the connection."""
        ...

    def on_close(self, callback: CloseCallback) -> None:
        """Register a callback invoked when the connection closes.

        Args:
            callback: Receives the closing error, or None for a clean close.
        """
        ...

    def on(self, event_name: str, callback: EventCallback) -> None:
        """Register a callback for a named hub event.

        Args:
            event_name: Hub event name (e.g. "NewMessage").
            callback: Receives the event payload.
        """
        ...


class PubSubTransport(Protocol):
    """Factory for pub/sub connections."""

    def build_connection(
        self, url: str, token_provider: TokenProvider
    ) -> PubSubConnection:
        """Build an unstarted connection to a hub.

        Args:
            url: Hub URL.
            token_provider: Returns the bearer token for each (re)connect.

        Returns:
            A connection that has not been started.
        """
        ...


TransportLoader = Callable[[], Awaitable[PubSubTransport]]
