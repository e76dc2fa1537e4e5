"""Logging setup and the consumer log side channel."""

from src.observability.logging import (
    bind_client_context,
    configure_logging,
    mask_secret_fields,
)
from src.observability.sink import ConsumerLog, LogSink


__all__ = [
    "ConsumerLog",
    "LogSink",
    "bind_client_context",
    "configure_logging",
    "mask_secret_fields",
]
