"""Metrics collection for the retrying request layer."""

from dataclasses import dataclass, field
from typing import ClassVar

from src.retry.models import AttemptOutcome


@dataclass
class RetryMetrics:
    """Metrics for retried HTTP requests.

    Singleton class that tracks request counts by status,
    retries, failures, and caller cancellations.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_retry_total: int = 0
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_cancelled_total: int = 0
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0

    _instance: ClassVar["RetryMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "RetryMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_response(self, status_code: int, duration_ms: float) -> None:
        """Record a response received from the network.

        Args:
            status_code: HTTP status code.
            duration_ms: Attempt duration in milliseconds.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_request_count += 1
        self.http_duration_ms_total += duration_ms

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.http_retry_total += 1

    def record_failure(self, outcome: AttemptOutcome) -> None:
        """Record a request that failed after its last attempt."""
        key = outcome.value
        self.http_failures_total[key] = self.http_failures_total.get(key, 0) + 1

    def record_cancelled(self) -> None:
        """Record a caller cancellation."""
        self.http_cancelled_total += 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_retry_total": self.http_retry_total,
            "http_failures_total": dict(self.http_failures_total),
            "http_cancelled_total": self.http_cancelled_total,
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Average duration of attempts that produced a response."""
        if self.http_request_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_request_count
