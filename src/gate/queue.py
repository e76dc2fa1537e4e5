"""Deferred-call queue for operations issued before the transport is ready."""

import asyncio
from dataclasses import dataclass
from typing import Any


@dataclass
class PendingCall:
    """An operation invoked before the transport dependency was ready.

    Attributes:
        operation_name: Name of the facade operation.
        args: Positional arguments of the call.
        kwargs: Keyword arguments of the call.
        future: Completion handle returned to the caller.
    """

    operation_name: str
    args: tuple[Any, ...]
    kwargs: dict[str, Any]
    future: asyncio.Future[Any]


class QueueDrainedError(Exception):
    """Raised when appending to a queue that has already been drained."""


class DeferredCallQueue:
    """FIFO of pending calls with drain-once semantics.

    ``drain()`` hands back a snapshot of every queued call and closes the
    queue, so nothing can be appended behind entries that are being replayed.
    """

    def __init__(self) -> None:
        """Initialize an empty, open queue."""
        self._calls: list[PendingCall] = []
        self._drained = False

    def __len__(self) -> int:
        """Number of calls waiting."""
        return len(self._calls)

    @property
    def drained(self) -> bool:
        """Whether the queue has been drained (and is closed)."""
        return self._drained

    def append(self, call: PendingCall) -> None:
        """Append a call in arrival order.

        Raises:
            QueueDrainedError: If the queue has already been drained.
        """
        if self._drained:
            msg = f"Cannot queue '{call.operation_name}': queue already drained"
            raise QueueDrainedError(msg)
        self._calls.append(call)

    def drain(self) -> list[PendingCall]:
        """Take every queued call in FIFO order and close the queue.

        Returns:
            The queued calls; empty on a second drain.
        """
        snapshot = self._calls
        self._calls = []
        self._drained = True
        return snapshot
