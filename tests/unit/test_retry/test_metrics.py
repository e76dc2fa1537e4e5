"""Unit tests for retry metrics."""

import pytest

from src.retry.metrics import RetryMetrics
from src.retry.models import AttemptOutcome


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Reset the metrics singleton around each test."""
    RetryMetrics.reset()


class TestRetryMetrics:
    """Tests for RetryMetrics."""

    def test_singleton(self) -> None:
        """Test that get_instance returns the same object until reset."""
        first = RetryMetrics.get_instance()

        assert RetryMetrics.get_instance() is first
        RetryMetrics.reset()
        assert RetryMetrics.get_instance() is not first

    def test_records_responses_by_status(self) -> None:
        """Test that responses are counted per status."""
        metrics = RetryMetrics.get_instance()
        metrics.record_response(200, 10.0)
        metrics.record_response(200, 30.0)
        metrics.record_response(503, 5.0)

        assert metrics.http_requests_total == {200: 2, 503: 1}
        assert metrics.avg_duration_ms == pytest.approx(15.0)

    def test_records_failures_by_outcome(self) -> None:
        """Test that failures are counted per outcome."""
        metrics = RetryMetrics.get_instance()
        metrics.record_failure(AttemptOutcome.TIMEOUT)
        metrics.record_failure(AttemptOutcome.TIMEOUT)
        metrics.record_retry()
        metrics.record_cancelled()

        data = metrics.to_dict()
        assert data["http_failures_total"] == {"TIMEOUT": 2}
        assert data["http_retry_total"] == 1
        assert data["http_cancelled_total"] == 1

    def test_average_without_requests(self) -> None:
        """Test that the average is zero before any response."""
        assert RetryMetrics.get_instance().avg_duration_ms == 0.0
