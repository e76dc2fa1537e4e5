"""Connection lifecycle state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class ConnectionPhase(Enum):
    """Persistent connection lifecycle phases.

    State transitions:
        IDLE -> CONNECTING: start() requested
        CONNECTING -> CONNECTED: Underlying connection started
        CONNECTING -> RECONNECTING: Start failed, attempts remain
        CONNECTING -> EXHAUSTED: Start failed, no attempts remain
        CONNECTED -> RECONNECTING: Underlying connection closed
        RECONNECTING -> CONNECTING: Backoff delay elapsed
        CONNECTING/CONNECTED/RECONNECTING -> IDLE: stop() requested
    """

    IDLE = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    EXHAUSTED = auto()


class ConnectionStateError(Exception):
    """Raised when an invalid connection state transition is attempted."""

    def __init__(self, from_state: ConnectionPhase, to_state: ConnectionPhase) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid connection state transition: {from_state.name} -> {to_state.name}"
        )


class ConnectionStateMachine:
    """State machine for the persistent connection lifecycle.

    Transitions outside VALID_TRANSITIONS are logged and raise
    ConnectionStateError. EXHAUSTED only leaves through a new manager.
    """

    VALID_TRANSITIONS: ClassVar[dict[ConnectionPhase, set[ConnectionPhase]]] = {
        ConnectionPhase.IDLE: {ConnectionPhase.CONNECTING},
        ConnectionPhase.CONNECTING: {
            ConnectionPhase.CONNECTED,
            ConnectionPhase.RECONNECTING,
            ConnectionPhase.EXHAUSTED,
            ConnectionPhase.IDLE,
        },
        ConnectionPhase.CONNECTED: {
            ConnectionPhase.RECONNECTING,
            ConnectionPhase.IDLE,
        },
        ConnectionPhase.RECONNECTING: {
            ConnectionPhase.CONNECTING,
            ConnectionPhase.IDLE,
        },
        ConnectionPhase.EXHAUSTED: set(),  # Terminal state
    }

    def __init__(self, connection_id: str) -> None:
        self._connection_id = connection_id
        self._state = ConnectionPhase.IDLE
        self._log = logger.bind(connection_id=connection_id, component="connection")

    @property
    def state(self) -> ConnectionPhase:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: ConnectionPhase) -> bool:
        """Whether the table allows moving from the current phase to ``to_state``."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: ConnectionPhase) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            ConnectionStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise ConnectionStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.info(
            "connection_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the current state is terminal (no more transitions allowed)."""
        return self._state == ConnectionPhase.EXHAUSTED

    def is_connected(self) -> bool:
        """Check if the connection is established."""
        return self._state == ConnectionPhase.CONNECTED
