"""Persistent pub/sub connection lifecycle management."""

import asyncio
import uuid
from collections.abc import Iterable
from typing import Any

import httpx

from src.connection.channel import MessageChannel
from src.connection.constants import NETWORK_ERROR_MARKERS, NEW_MESSAGE_EVENT
from src.connection.models import ConnectionErrorKind, ConnectionState, ReconnectPolicy
from src.connection.state_machine import ConnectionPhase, ConnectionStateMachine
from src.connection.transport import PubSubTransport, TokenProvider
from src.errors import ConnectionLifecycleError
from src.observability.sink import ConsumerLog, LogSink
from src.retry.backoff import RandomSource


def classify_connection_error(error: BaseException) -> ConnectionErrorKind:
    """Classify a connection start failure.

    Args:
        error: The failure raised by the transport.

    Returns:
        NETWORK for cross-origin / network failures, OTHER otherwise.
    """
    if isinstance(error, OSError | httpx.TransportError):
        return ConnectionErrorKind.NETWORK
    message = str(error)
    if any(marker in message for marker in NETWORK_ERROR_MARKERS):
        return ConnectionErrorKind.NETWORK
    return ConnectionErrorKind.OTHER


class ConnectionLifecycleManager:
    """Owns one persistent pub/sub connection.

    Starts the connection, reconnects with bounded jittered backoff when it
    fails or closes, and forwards inbound events to a message channel.
    At most one start attempt runs at a time and at most one reconnect is
    scheduled at a time. Failures never propagate to callers; they are kept
    in ``state.last_error`` and reported through the log side channel.
    """

    def __init__(
        self,
        transport: PubSubTransport,
        url: str,
        token_provider: TokenProvider,
        policy: ReconnectPolicy | None = None,
        channel: MessageChannel | None = None,
        log: ConsumerLog | None = None,
        rand: RandomSource | None = None,
        event_names: Iterable[str] = (NEW_MESSAGE_EVENT,),
    ) -> None:
        """Initialize the manager and build (but not start) the connection.

        Args:
            transport: Loaded pub/sub transport.
            url: Hub URL.
            token_provider: Supplies the bearer token.
            policy: Reconnect policy.
            channel: Channel receiving inbound events.
            log: Log side channel.
            rand: Random source for backoff jitter.
            event_names: Hub events forwarded to the channel.
        """
        connection_id = uuid.uuid4().hex[:12]
        self._policy = policy or ReconnectPolicy()
        self._channel = channel or MessageChannel()
        self._log = (log or ConsumerLog()).bind(
            component="connection", connection_id=connection_id
        )
        self._rand = rand
        self._machine = ConnectionStateMachine(connection_id)

        self._attempt_count = 0
        self._last_error: BaseException | None = None
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._attempt_in_progress = False
        self._error_logged = False
        self._last_error_kind: ConnectionErrorKind | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        self._connection = transport.build_connection(url, token_provider)
        self._connection.on_close(self._handle_close)
        for event_name in event_names:
            self._connection.on(event_name, self._handle_event)

    @property
    def state(self) -> ConnectionState:
        """Snapshot of the current connection state."""
        return ConnectionState(
            phase=self._machine.state,
            attempt_count=self._attempt_count,
            last_error=self._last_error,
            reconnect_timer=self._reconnect_timer,
        )

    @property
    def phase(self) -> ConnectionPhase:
        """Current lifecycle phase."""
        return self._machine.state

    @property
    def policy(self) -> ReconnectPolicy:
        """Reconnect policy in use."""
        return self._policy

    @property
    def channel(self) -> MessageChannel:
        """Channel receiving inbound events."""
        return self._channel

    def use_sink(self, sink: LogSink | None) -> None:
        """Send later lifecycle log lines to another consumer callback."""
        self._log = self._log.with_sink(sink)

    def start(self) -> asyncio.Task[None] | None:
        """Begin connecting in the background.

        Returns:
            The task running the first attempt, or None if the manager
            is not idle.
        """
        if self._machine.state != ConnectionPhase.IDLE:
            self._log.debug(
                "start_ignored",
                f"Connection already {self._machine.state.name.lower()}",
                phase=self._machine.state.name,
            )
            return None
        self._machine.transition(ConnectionPhase.CONNECTING)
        return self._spawn_attempt()

    def reconnect(self) -> asyncio.Task[None] | None:
        """Trigger a connection attempt now.

        A pending reconnect timer is superseded. The attempt is a logged
        no-op when one is already in flight or the connection is up.

        Returns:
            The task running the attempt, or None once exhausted.
        """
        if self._machine.is_terminal():
            self._log.info(
                "reconnect_ignored",
                "Maximum connection attempts reached; reconnect ignored",
            )
            return None
        self._cancel_reconnect_timer()
        if self._machine.state == ConnectionPhase.IDLE:
            self._machine.transition(ConnectionPhase.CONNECTING)
        return self._spawn_attempt()

    async def stop(self) -> None:
        """Cancel pending work and close the connection."""
        self._cancel_reconnect_timer()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._machine.can_transition(ConnectionPhase.IDLE):
            self._machine.transition(ConnectionPhase.IDLE)
        await self._connection.stop()
        self._log.debug("connection_stopped", "Connection stopped")

    async def _connect_once(self) -> None:
        """Run one start attempt unless another is in flight.

        The in-progress flag is checked and set without suspending.
        """
        if self._attempt_in_progress:
            self._log.info(
                "connect_skipped",
                "Connection attempt already in progress, skipping redundant attempt",
            )
            return

        if self._machine.state == ConnectionPhase.CONNECTED:
            self._log.debug("connect_skipped", "Connection already established")
            return

        max_attempts = self._policy.max_connection_attempts
        if self._machine.is_terminal() or self._attempt_count >= max_attempts:
            self._log.info(
                "connect_exhausted",
                f"Maximum connection attempts ({max_attempts}) reached. "
                "Stopping reconnection attempts.",
            )
            return

        self._attempt_in_progress = True
        try:
            if self._machine.state != ConnectionPhase.CONNECTING:
                self._machine.transition(ConnectionPhase.CONNECTING)
            try:
                await self._connection.start()
            except Exception as e:  # noqa: BLE001
                self._handle_start_failure(e)
            else:
                self._handle_start_success()
        finally:
            self._attempt_in_progress = False

    def _handle_start_success(self) -> None:
        self._attempt_count = 0
        self._error_logged = False
        self._last_error_kind = None
        self._machine.transition(ConnectionPhase.CONNECTED)
        self._log.info(
            "connection_established", "SignalR connection established successfully."
        )

    def _handle_start_failure(self, error: Exception) -> None:
        self._attempt_count += 1
        self._last_error = error
        max_attempts = self._policy.max_connection_attempts

        kind = classify_connection_error(error)
        if kind != self._last_error_kind:
            self._error_logged = False
            self._last_error_kind = kind

        if not self._error_logged:
            if kind == ConnectionErrorKind.NETWORK:
                self._log.warning(
                    "connection_network_error",
                    "SignalR connection CORS error detected. This may be due to "
                    "cross-origin restrictions. "
                    f"Attempts: {self._attempt_count}/{max_attempts}",
                    attempt_count=self._attempt_count,
                    error=str(error),
                )
            else:
                self._log.warning(
                    "connection_error",
                    f"SignalR connection error: {error}. "
                    f"Attempts: {self._attempt_count}/{max_attempts}",
                    attempt_count=self._attempt_count,
                    error=str(error),
                )
            self._error_logged = True

        self._cancel_reconnect_timer()

        if self._attempt_count >= max_attempts:
            self._last_error = ConnectionLifecycleError(
                f"Maximum connection attempts ({max_attempts}) reached: {error}",
                details={"attempts": self._attempt_count},
            )
            self._last_error.__cause__ = error
            self._machine.transition(ConnectionPhase.EXHAUSTED)
            self._log.error(
                "connection_exhausted",
                f"Maximum connection attempts ({max_attempts}) reached. "
                "Stopping reconnection attempts.",
                attempt_count=self._attempt_count,
            )
            return

        delay_ms = self._policy.get_delay_ms(self._attempt_count, self._rand)
        self._machine.transition(ConnectionPhase.RECONNECTING)
        self._log.info(
            "reconnect_scheduled",
            f"Reconnecting in {round(delay_ms / 1000)} seconds "
            f"(attempt {self._attempt_count}/{max_attempts})",
            delay_ms=round(delay_ms),
            attempt_count=self._attempt_count,
        )
        self._schedule_reconnect(delay_ms)

    def _handle_close(self, error: BaseException | None = None) -> None:
        """React to the transport reporting closure."""
        phase = self._machine.state
        if phase in (ConnectionPhase.IDLE, ConnectionPhase.EXHAUSTED):
            self._log.debug(
                "close_ignored", "Connection closed while inactive", phase=phase.name
            )
            return
        if phase == ConnectionPhase.CONNECTING:
            # The in-flight attempt reports its own outcome
            self._log.debug("close_ignored", "Connection closed while connecting")
            return

        self._error_logged = False
        self._last_error_kind = None
        self._log.info(
            "connection_closed",
            "SignalR connection closed. Attempting to reconnect...",
            error=str(error) if error else None,
        )

        self._cancel_reconnect_timer()
        if phase == ConnectionPhase.CONNECTED:
            self._machine.transition(ConnectionPhase.RECONNECTING)
        self._schedule_reconnect(self._policy.close_delay_ms)

    def _handle_event(self, payload: Any) -> None:
        self._log.debug("message_received", "Message received")
        self._channel.publish(payload)

    def _schedule_reconnect(self, delay_ms: float) -> None:
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(
            delay_ms / 1000.0, self._on_reconnect_timer
        )

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        self._spawn_attempt()

    def _spawn_attempt(self) -> asyncio.Task[None]:
        task = asyncio.ensure_future(self._connect_once())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
