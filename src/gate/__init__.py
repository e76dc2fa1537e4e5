"""Call gate for operations issued before the transport dependency loads."""

from src.gate.gate import CallGate, GateState, Operation
from src.gate.queue import DeferredCallQueue, PendingCall, QueueDrainedError


__all__ = [
    "CallGate",
    "DeferredCallQueue",
    "GateState",
    "Operation",
    "PendingCall",
    "QueueDrainedError",
]
