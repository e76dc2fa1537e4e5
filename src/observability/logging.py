"""structlog setup for the client and CLI."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

import structlog

from src.retry.redact import REDACTED_VALUE


# Event keys whose values are masked before rendering
SECRET_FIELDS = frozenset({"token", "access_token", "authorization"})

# Transport libraries that log every frame at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "websockets", "pysignalr")


def mask_secret_fields(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor replacing secret-bearing event values."""
    for key in SECRET_FIELDS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED_VALUE
    return event_dict


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structlog and the standard library loggers.

    Args:
        level: Minimum level for client events (default: INFO).
        output: Stream receiving rendered events (default: stderr).
        json_format: Render JSON lines instead of console output.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        mask_secret_fields,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(name)s %(message)s", stream=output, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_client_context(client_id: str) -> None:
    """Tag every later event in this context with ``client_id``."""
    structlog.contextvars.bind_contextvars(client_id=client_id)
