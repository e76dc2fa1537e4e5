"""SignalR transport backed by the ``pysignalr`` package.

The package is imported lazily by ``load_signalr_transport`` so that the
client can be constructed (and calls queued) before it is available.
"""

import asyncio
import importlib
from types import ModuleType
from typing import Any

import structlog

from src.connection.transport import (
    CloseCallback,
    EventCallback,
    PubSubConnection,
    TokenProvider,
)


logger = structlog.get_logger()

SIGNALR_CLIENT_MODULE = "pysignalr.client"

# Reconnects are driven by ConnectionLifecycleManager, not by pysignalr
SIGNALR_RETRY_COUNT = 1


class SignalRConnection:
    """Adapts a ``pysignalr`` client to the ``PubSubConnection`` contract."""

    def __init__(
        self, module: ModuleType, url: str, token_provider: TokenProvider
    ) -> None:
        """Initialize the connection without opening it.

        Args:
            module: The imported ``pysignalr.client`` module.
            url: Hub URL.
            token_provider: Supplies the bearer token.
        """
        self._module = module
        self._url = url
        self._token_provider = token_provider
        self._close_callbacks: list[CloseCallback] = []
        self._handlers: dict[str, EventCallback] = {}
        self._client: Any = None
        self._run_task: asyncio.Task[None] | None = None
        self._opened: asyncio.Event | None = None
        self._closing = False
        self._log = logger.bind(component="signalr")

    def on_close(self, callback: CloseCallback) -> None:
        """Register a close callback."""
        self._close_callbacks.append(callback)

    def on(self, event_name: str, callback: EventCallback) -> None:
        """Register a handler for a hub event."""
        self._handlers[event_name] = callback

    async def start(self) -> None:
        """Open a new hub session, closing any previous one first.

        Raises:
            ConnectionError: The connection ended before it opened.
        """
        await self._shutdown_session()
        self._closing = False
        self._opened = asyncio.Event()
        self._client = self._build_client()

        self._run_task = asyncio.ensure_future(self._client.run())
        opened = asyncio.ensure_future(self._opened.wait())
        try:
            await asyncio.wait(
                {self._run_task, opened}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not opened.done():
                opened.cancel()

        if self._opened.is_set() and not self._run_task.done():
            self._run_task.add_done_callback(self._on_run_finished)
            return

        error = None if self._run_task.cancelled() else self._run_task.exception()
        msg = f"SignalR connection to {self._url} ended before opening"
        if error is not None:
            raise ConnectionError(f"{msg}: {error}") from error
        raise ConnectionError(msg)

    async def stop(self) -> None:
        """Close the hub connection."""
        await self._shutdown_session()

    async def _shutdown_session(self) -> None:
        self._closing = True
        task, self._run_task = self._run_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _build_client(self) -> Any:
        token = self._token_provider()
        client = self._module.SignalRClient(
            self._url,
            headers={"Authorization": f"Bearer {token}"},
            retry_count=SIGNALR_RETRY_COUNT,
        )
        client.on_open(self._handle_open)
        client.on_close(self._handle_close)
        for event_name, callback in self._handlers.items():
            client.on(event_name, self._make_dispatcher(callback))
        return client

    async def _handle_open(self) -> None:
        if self._opened is not None:
            self._opened.set()

    async def _handle_close(self) -> None:
        self._notify_closed(None)

    def _on_run_finished(self, task: asyncio.Task[None]) -> None:
        error = None if task.cancelled() else task.exception()
        self._notify_closed(error)

    def _notify_closed(self, error: BaseException | None) -> None:
        if self._closing or self._opened is None or not self._opened.is_set():
            return
        # One notification per opened session
        self._opened.clear()
        for callback in list(self._close_callbacks):
            callback(error)
        # End pysignalr's own reconnect loop for the dropped session
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()

    @staticmethod
    def _make_dispatcher(callback: EventCallback) -> Any:
        async def dispatch(arguments: list[Any]) -> None:
            payload = arguments[0] if len(arguments) == 1 else arguments
            callback(payload)

        return dispatch


class SignalRTransport:
    """Builds ``SignalRConnection`` objects from a loaded ``pysignalr``."""

    def __init__(self, module: ModuleType) -> None:
        """Initialize the transport.

        Args:
            module: The imported ``pysignalr.client`` module.
        """
        self._module = module

    def build_connection(
        self, url: str, token_provider: TokenProvider
    ) -> PubSubConnection:
        """Build an unstarted SignalR connection."""
        return SignalRConnection(self._module, url, token_provider)


async def load_signalr_transport() -> SignalRTransport:
    """Import ``pysignalr`` off the event loop and wrap it as a transport.

    Returns:
        A ready transport.

    Raises:
        ImportError: The package is not installed or failed to import.
    """
    module = await asyncio.to_thread(importlib.import_module, SIGNALR_CLIENT_MODULE)
    logger.info("transport_loaded", component="signalr", module=SIGNALR_CLIENT_MODULE)
    return SignalRTransport(module)
