"""Persistent pub/sub connection layer.

This module provides:
- A lifecycle manager with bounded, jittered reconnects
- A table-driven lifecycle state machine
- Transport contracts and a pysignalr-backed transport loader
- A fan-out channel for inbound events
"""

from src.connection.channel import MessageChannel, MessageHandler
from src.connection.constants import DEFAULT_PUBSUB_HOST, NEW_MESSAGE_EVENT
from src.connection.manager import (
    ConnectionLifecycleManager,
    classify_connection_error,
)
from src.connection.models import ConnectionErrorKind, ConnectionState, ReconnectPolicy
from src.connection.signalr import SignalRTransport, load_signalr_transport
from src.connection.state_machine import (
    ConnectionPhase,
    ConnectionStateError,
    ConnectionStateMachine,
)
from src.connection.transport import (
    PubSubConnection,
    PubSubTransport,
    TokenProvider,
    TransportLoader,
)


__all__ = [
    # Manager
    "ConnectionLifecycleManager",
    "classify_connection_error",
    # State
    "ConnectionPhase",
    "ConnectionState",
    "ConnectionStateError",
    "ConnectionStateMachine",
    "ConnectionErrorKind",
    "ReconnectPolicy",
    # Transport
    "PubSubConnection",
    "PubSubTransport",
    "SignalRTransport",
    "TokenProvider",
    "TransportLoader",
    "load_signalr_transport",
    # Channel
    "MessageChannel",
    "MessageHandler",
    # Constants
    "DEFAULT_PUBSUB_HOST",
    "NEW_MESSAGE_EVENT",
]
