"""Consumer-facing log side channel.

Every event is written to structlog and, when the consumer supplied a
``log`` callback, forwarded to it as a human-readable line.
"""

from collections.abc import Callable
from typing import Any

import structlog


logger = structlog.get_logger()

LogSink = Callable[[str], None]


class ConsumerLog:
    """Structured logger that mirrors events to a consumer callback."""

    def __init__(self, sink: LogSink | None = None, **context: Any) -> None:
        """Initialize the consumer log.

        Args:
            sink: Consumer callback receiving one line per event.
            **context: Key/value pairs bound to every structlog event.
        """
        self._sink = sink
        self._context = context
        self._log = logger.bind(**context)

    @property
    def sink(self) -> LogSink | None:
        """The consumer callback, if any."""
        return self._sink

    def bind(self, **context: Any) -> "ConsumerLog":
        """Return a logger sharing the sink with extra bound context."""
        return ConsumerLog(self._sink, **{**self._context, **context})

    def with_sink(self, sink: LogSink | None) -> "ConsumerLog":
        """Return a logger with the same context writing to another sink."""
        return ConsumerLog(sink, **self._context)

    def debug(self, event: str, message: str, **fields: Any) -> None:
        """Emit a debug event. Debug events are not forwarded to the sink."""
        self._log.debug(event, message=message, **fields)

    def info(self, event: str, message: str, **fields: Any) -> None:
        """Emit an info event."""
        self._emit("info", event, message, fields)

    def warning(self, event: str, message: str, **fields: Any) -> None:
        """Emit a warning event."""
        self._emit("warning", event, message, fields)

    def error(self, event: str, message: str, **fields: Any) -> None:
        """Emit an error event."""
        self._emit("error", event, message, fields)

    def _emit(
        self, level: str, event: str, message: str, fields: dict[str, Any]
    ) -> None:
        getattr(self._log, level)(event, message=message, **fields)
        if self._sink is None:
            return
        try:
            self._sink(message)
        except Exception:  # noqa: BLE001
            self._log.warning("log_sink_failed", event_name=event, exc_info=True)
