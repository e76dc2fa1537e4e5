"""Retrying HTTP request layer.

This module provides resilient HTTP request execution with:
- Jittered exponential backoff
- Configurable retryable status codes and per-attempt timeout
- Caller cancellation that is never retried
- Header redaction for logging
- Metrics collection for observability
"""

from src.retry.backoff import compute_delay
from src.retry.cancellation import CancelSignal, sleep_unless_cancelled
from src.retry.constants import (
    AI_REPLY_MAX_RETRIES,
    AI_REPLY_TIMEOUT_SECONDS,
    DEFAULT_RETRYABLE_STATUS_CODES,
    HTTP_STATUS_ACCEPTED,
    UPLOAD_TIMEOUT_SECONDS,
)
from src.retry.executor import RetryingExecutor
from src.retry.metrics import RetryMetrics
from src.retry.models import AttemptOutcome, RequestAttempt, RetryPolicy
from src.retry.redact import redact_headers, redact_url


__all__ = [
    # Executor
    "RetryingExecutor",
    "CancelSignal",
    "sleep_unless_cancelled",
    # Backoff
    "compute_delay",
    # Models
    "AttemptOutcome",
    "RequestAttempt",
    "RetryPolicy",
    # Constants
    "AI_REPLY_MAX_RETRIES",
    "AI_REPLY_TIMEOUT_SECONDS",
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "HTTP_STATUS_ACCEPTED",
    "UPLOAD_TIMEOUT_SECONDS",
    # Metrics
    "RetryMetrics",
    # Redaction
    "redact_headers",
    "redact_url",
]
