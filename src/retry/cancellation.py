"""Caller-owned cancellation signal for requests."""

import asyncio

from src.errors import RequestCancelledError


class CancelSignal:
    """One-shot cancellation signal a caller passes into a request.

    Setting the signal aborts the in-flight attempt of every request that
    received it, and interrupts any backoff wait. It can be set at most once.
    """

    def __init__(self) -> None:
        """Initialize an unset signal."""
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether the signal has been set."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason given when the signal was set."""
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Set the signal. Later calls are ignored."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Wait until the signal is set."""
        await self._event.wait()


async def sleep_unless_cancelled(delay_seconds: float, cancel: CancelSignal | None) -> None:
    """Sleep for a delay, waking early if the cancel signal fires.

    Args:
        delay_seconds: How long to sleep.
        cancel: Optional caller cancel signal.

    Raises:
        RequestCancelledError: The signal fired before the delay elapsed.
    """
    if cancel is None:
        await asyncio.sleep(delay_seconds)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay_seconds)
    except TimeoutError:
        return
    raise RequestCancelledError(cancel.reason or "cancelled by caller")
