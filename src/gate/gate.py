"""Call gate between the facade and a transport dependency that loads late."""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum, auto
from functools import partial
from typing import Any

import structlog

from src.errors import DependencyUnavailableError
from src.gate.queue import DeferredCallQueue, PendingCall


logger = structlog.get_logger()

Operation = Callable[..., Awaitable[Any]]


class GateState(Enum):
    """Transport dependency loading states.

    State transitions:
        LOADING -> READY: Dependency loaded, queued calls replayed
        LOADING -> FAILED: Dependency failed to load, queued calls rejected
    """

    LOADING = auto()
    READY = auto()
    FAILED = auto()


def _settle(future: asyncio.Future[Any], task: asyncio.Future[Any]) -> None:
    """Copy a finished task's outcome onto the caller's future."""
    if future.done():
        return
    if task.cancelled():
        future.cancel()
        return
    error = task.exception()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(task.result())


def _cancel_if_cancelled(task: asyncio.Future[Any], future: asyncio.Future[Any]) -> None:
    if future.cancelled() and not task.done():
        task.cancel()


class CallGate:
    """Queues operation calls until the transport dependency is loaded.

    While loading, ``dispatch`` returns a pending future immediately and
    queues the call. ``mark_ready`` replays the queue in arrival order and
    later calls run directly. ``mark_failed`` rejects the queue with
    ``DependencyUnavailableError``; afterwards only operations with a
    degraded implementation still run, all others are rejected at once.
    """

    def __init__(
        self,
        operations: Mapping[str, Operation],
        degraded_operations: Mapping[str, Operation] | None = None,
    ) -> None:
        """Initialize the gate in LOADING state.

        Args:
            operations: Real implementations keyed by operation name.
            degraded_operations: Implementations used after a load failure.
        """
        self._operations = dict(operations)
        self._degraded = dict(degraded_operations or {})
        self._queue = DeferredCallQueue()
        self._state = GateState.LOADING
        self._load_error: BaseException | None = None
        self._log = logger.bind(component="gate")

    @property
    def state(self) -> GateState:
        """Get the current state."""
        return self._state

    @property
    def pending_count(self) -> int:
        """Number of calls waiting for the dependency."""
        return len(self._queue)

    @property
    def load_error(self) -> BaseException | None:
        """Error reported when the dependency failed to load."""
        return self._load_error

    def dispatch(self, operation_name: str, *args: Any, **kwargs: Any) -> asyncio.Future[Any]:
        """Run, queue, or reject an operation call depending on gate state.

        Must be called from within a running event loop.

        Args:
            operation_name: Name of the operation.
            *args: Positional arguments for the operation.
            **kwargs: Keyword arguments for the operation.

        Returns:
            A future resolving to the operation's result.

        Raises:
            KeyError: If the operation is not registered.
        """
        if operation_name not in self._operations:
            msg = f"Unknown operation: {operation_name}"
            raise KeyError(msg)

        if self._state == GateState.READY:
            return asyncio.ensure_future(self._operations[operation_name](*args, **kwargs))

        if self._state == GateState.FAILED:
            return self._dispatch_after_failure(operation_name, args, kwargs)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.append(
            PendingCall(
                operation_name=operation_name,
                args=args,
                kwargs=kwargs,
                future=future,
            )
        )
        self._log.debug(
            "call_queued", operation=operation_name, queue_size=len(self._queue)
        )
        return future

    def mark_ready(self) -> None:
        """Replay queued calls in FIFO order and open the gate."""
        if self._state != GateState.LOADING:
            self._log.warning("gate_already_settled", state=self._state.name)
            return

        self._state = GateState.READY
        pending = self._queue.drain()
        self._log.info("gate_ready", replayed=len(pending))
        for call in pending:
            self._replay(call)

    def mark_failed(self, error: BaseException | None = None) -> None:
        """Reject queued calls and switch to degraded dispatch.

        Args:
            error: Why the dependency failed to load.
        """
        if self._state != GateState.LOADING:
            self._log.warning("gate_already_settled", state=self._state.name)
            return

        self._state = GateState.FAILED
        self._load_error = error
        pending = self._queue.drain()
        self._log.warning(
            "gate_failed",
            rejected=len(pending),
            error=str(error) if error else None,
        )
        for call in pending:
            if not call.future.done():
                call.future.set_exception(self._unavailable(call.operation_name))

    def _replay(self, call: PendingCall) -> None:
        if call.future.done():
            self._log.debug("replay_skipped", operation=call.operation_name)
            return

        try:
            task = asyncio.ensure_future(
                self._operations[call.operation_name](*call.args, **call.kwargs)
            )
        except Exception as e:  # noqa: BLE001
            call.future.set_exception(e)
            return

        task.add_done_callback(partial(_settle, call.future))
        call.future.add_done_callback(partial(_cancel_if_cancelled, task))

    def _dispatch_after_failure(
        self,
        operation_name: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> asyncio.Future[Any]:
        degraded = self._degraded.get(operation_name)
        if degraded is not None:
            return asyncio.ensure_future(degraded(*args, **kwargs))

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.set_exception(self._unavailable(operation_name))
        return future

    def _unavailable(self, operation_name: str) -> DependencyUnavailableError:
        error = DependencyUnavailableError(operation=operation_name)
        if self._load_error is not None:
            error.__cause__ = self._load_error
        return error
