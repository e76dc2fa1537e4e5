"""Data models for the retrying request layer."""

import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.retry.backoff import RandomSource, compute_delay
from src.retry.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_EXPONENTIAL_BASE,
    DEFAULT_JITTER_FACTOR,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRYABLE_STATUS_CODES,
    DEFAULT_TIMEOUT_SECONDS,
)


class AttemptOutcome(str, Enum):
    """Outcome of a single request attempt.

    - RESPONSE: A response was returned to the caller
    - RETRYABLE_STATUS: Response status is in the retryable set
    - TRANSPORT_ERROR: Network-level failure
    - TIMEOUT: Attempt timeout fired before a response
    - CANCELLED: Caller cancel signal fired
    """

    RESPONSE = "RESPONSE"
    RETRYABLE_STATUS = "RETRYABLE_STATUS"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"


@dataclass
class RequestAttempt:
    """Record of one attempt inside a retry loop.

    Attributes:
        attempt_number: Attempt number (0-indexed).
        started_at: When the attempt started.
        outcome: How the attempt ended, None while in flight.
        status_code: Response status, if one was received.
    """

    attempt_number: int
    started_at: datetime
    outcome: AttemptOutcome | None = None
    status_code: int | None = None


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Controls how many times to retry, which statuses are transient,
    the per-attempt timeout, and the backoff strategy.
    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = DEFAULT_MAX_RETRIES
    base_delay_ms: Annotated[float, Field(ge=0, le=60000)] = DEFAULT_BASE_DELAY_MS
    max_delay_ms: Annotated[float, Field(ge=0, le=600000)] = DEFAULT_MAX_DELAY_MS
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = (
        DEFAULT_EXPONENTIAL_BASE
    )
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = DEFAULT_JITTER_FACTOR
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    timeout_seconds: Annotated[float, Field(gt=0.0, le=3600.0)] = (
        DEFAULT_TIMEOUT_SECONDS
    )

    @property
    def total_attempts(self) -> int:
        """Total number of attempts allowed (first try plus retries)."""
        return self.max_retries + 1

    def with_overrides(self, **overrides: object) -> "RetryPolicy":
        """Return a validated copy with some fields replaced."""
        return RetryPolicy.model_validate({**self.model_dump(), **overrides})

    def has_attempts_left(self, attempt: int) -> bool:
        """Check whether another attempt may follow ``attempt`` (0-indexed)."""
        return attempt < self.max_retries

    def should_retry_status(self, status_code: int, attempt: int) -> bool:
        """Determine if a response status should be retried.

        Args:
            status_code: HTTP status of the response.
            attempt: Current attempt number (0-indexed).

        Returns:
            True if the request should be retried.
        """
        return (
            status_code in self.retryable_status_codes
            and self.has_attempts_left(attempt)
        )

    def get_delay_ms(self, attempt: int, rand: RandomSource | None = None) -> float:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Attempt number that just failed (0-indexed).
            rand: Optional random source for the jitter.

        Returns:
            Delay in milliseconds.
        """
        return compute_delay(
            attempt,
            self.base_delay_ms,
            self.exponential_base,
            self.max_delay_ms,
            self.jitter_factor,
            rand or random.random,
        )
