"""Unit tests for the retrying request executor."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest
import pytest_asyncio

from src.errors import RequestCancelledError, TransportFailureError
from src.observability.sink import ConsumerLog
from src.retry.cancellation import CancelSignal
from src.retry.executor import RetryingExecutor
from src.retry.metrics import RetryMetrics
from src.retry.models import AttemptOutcome, RequestAttempt, RetryPolicy


URL = "https://codicent.test/app/Ping"

FAST_POLICY = RetryPolicy(max_retries=3, base_delay_ms=0, timeout_seconds=1.0)


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Reset the metrics singleton around each test."""
    RetryMetrics.reset()


class Recorder:
    """MockTransport handler returning scripted outcomes in order."""

    def __init__(self, *outcomes: int | Exception | Callable[[], object]) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            result = outcome()
            if asyncio.iscoroutine(result):
                result = await result
            return result  # type: ignore[return-value]
        return httpx.Response(outcome, json={"ok": outcome < 400})

    @property
    def calls(self) -> int:
        return len(self.requests)


class ClosingStream(httpx.AsyncByteStream):
    """Response body that records whether it was closed."""

    def __init__(self) -> None:
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield b"{}"

    async def aclose(self) -> None:
        self.closed = True


@pytest_asyncio.fixture
async def make_executor() -> AsyncIterator[Callable[..., RetryingExecutor]]:
    """Build executors over a MockTransport and close their clients afterwards."""
    clients: list[httpx.AsyncClient] = []

    def build(
        handler: Recorder, policy: RetryPolicy = FAST_POLICY, log: ConsumerLog | None = None
    ) -> RetryingExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=None)
        clients.append(client)
        return RetryingExecutor(client, policy=policy, log=log, rand=lambda: 0.5)

    yield build
    for client in clients:
        await client.aclose()


def _get() -> httpx.Request:
    return httpx.Request("GET", URL)


class TestStatusHandling:
    """Tests for response status decisions."""

    @pytest.mark.asyncio
    async def test_success_single_attempt(self, make_executor) -> None:
        """Test that a 200 is returned after one attempt."""
        handler = Recorder(200)
        response = await make_executor(handler).execute(_get())

        assert response.status_code == 200
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_non_retryable_status_single_attempt(self, make_executor) -> None:
        """Test that a 404 is returned immediately without retries."""
        handler = Recorder(404)
        response = await make_executor(handler).execute(_get())

        assert response.status_code == 404
        assert handler.calls == 1
        assert RetryMetrics.get_instance().http_retry_total == 0

    @pytest.mark.asyncio
    async def test_persistent_503_uses_every_attempt(self, make_executor) -> None:
        """Test that a persistent 503 gives max_retries + 1 attempts."""
        handler = Recorder(503)
        response = await make_executor(handler).execute(_get())

        assert response.status_code == 503
        assert handler.calls == FAST_POLICY.max_retries + 1
        assert RetryMetrics.get_instance().http_retry_total == FAST_POLICY.max_retries

    @pytest.mark.asyncio
    async def test_recovers_after_transient_status(self, make_executor) -> None:
        """Test that a retryable status followed by success returns the success."""
        handler = Recorder(503, 429, 200)
        attempts: list[RequestAttempt] = []
        response = await make_executor(handler).execute(_get(), attempts=attempts)

        assert response.status_code == 200
        assert handler.calls == 3
        assert [a.outcome for a in attempts] == [
            AttemptOutcome.RETRYABLE_STATUS,
            AttemptOutcome.RETRYABLE_STATUS,
            AttemptOutcome.RESPONSE,
        ]
        assert [a.status_code for a in attempts] == [503, 429, 200]

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self, make_executor) -> None:
        """Test that max_retries=0 means exactly one attempt."""
        handler = Recorder(503)
        policy = FAST_POLICY.with_overrides(max_retries=0)
        response = await make_executor(handler, policy=policy).execute(_get())

        assert response.status_code == 503
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_per_call_policy_override(self, make_executor) -> None:
        """Test that a policy passed to execute wins over the default."""
        handler = Recorder(500)
        executor = make_executor(handler)
        await executor.execute(_get(), policy=FAST_POLICY.with_overrides(max_retries=1))

        assert handler.calls == 2


class TestTransportFailures:
    """Tests for network-level failures."""

    @pytest.mark.asyncio
    async def test_retries_then_raises(self, make_executor) -> None:
        """Test that persistent network errors raise TransportFailureError."""
        handler = Recorder(httpx.ConnectError("connection refused"))

        with pytest.raises(TransportFailureError) as exc_info:
            await make_executor(handler).execute(_get())

        assert handler.calls == 4
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert RetryMetrics.get_instance().http_failures_total == {"TRANSPORT_ERROR": 1}

    @pytest.mark.asyncio
    async def test_recovers_after_network_error(self, make_executor) -> None:
        """Test that a network error followed by success returns the success."""
        handler = Recorder(httpx.ReadError("reset"), 200)
        response = await make_executor(handler).execute(_get())

        assert response.status_code == 200
        assert handler.calls == 2

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_transport_failure(self, make_executor) -> None:
        """Test that a timeout shorter than latency is retried, then fails."""

        async def slow() -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200)

        handler = Recorder(slow)
        policy = RetryPolicy(max_retries=1, base_delay_ms=0, timeout_seconds=0.05)
        attempts: list[RequestAttempt] = []

        with pytest.raises(TransportFailureError):
            await make_executor(handler, policy=policy).execute(_get(), attempts=attempts)

        assert handler.calls == 2
        assert [a.outcome for a in attempts] == [AttemptOutcome.TIMEOUT] * 2

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self, make_executor) -> None:
        """Test that non-transport exceptions are not retried."""
        handler = Recorder(ValueError("bad handler"))

        with pytest.raises(ValueError, match="bad handler"):
            await make_executor(handler).execute(_get())

        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_body_resent_on_retry(self, make_executor) -> None:
        """Test that a JSON body is replayed on every attempt."""
        handler = Recorder(502, 200)
        request = httpx.Request("POST", URL, json={"content": "hello"})
        await make_executor(handler).execute(request)

        bodies = [json.loads(r.content) for r in handler.requests]
        assert bodies == [{"content": "hello"}, {"content": "hello"}]


class TestCancellation:
    """Tests for caller cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, make_executor) -> None:
        """Test that a pre-set signal fails without touching the network."""
        handler = Recorder(200)
        cancel = CancelSignal()
        cancel.cancel("user navigated away")

        with pytest.raises(RequestCancelledError, match="user navigated away"):
            await make_executor(handler).execute(_get(), cancel=cancel)

        assert handler.calls == 0
        assert RetryMetrics.get_instance().http_cancelled_total == 1

    @pytest.mark.asyncio
    async def test_cancel_in_flight_not_retried(self, make_executor) -> None:
        """Test that cancelling mid-request fails at once without retrying."""
        never = asyncio.Event()

        async def hang() -> httpx.Response:
            await never.wait()
            return httpx.Response(200)

        handler = Recorder(hang)
        cancel = CancelSignal()
        asyncio.get_running_loop().call_later(0.02, cancel.cancel)

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(
                make_executor(handler).execute(_get(), cancel=cancel), timeout=0.5
            )

        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self, make_executor) -> None:
        """Test that cancelling during a backoff wait does not wait it out."""
        handler = Recorder(503)
        policy = RetryPolicy(max_retries=3, base_delay_ms=10_000, timeout_seconds=1.0)
        cancel = CancelSignal()
        asyncio.get_running_loop().call_later(0.02, cancel.cancel)

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(
                make_executor(handler, policy=policy).execute(_get(), cancel=cancel),
                timeout=0.5,
            )

        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_response_closed_when_cancel_wins(self, make_executor) -> None:
        """Test that a response arriving with the cancel signal is released."""
        stream = ClosingStream()
        cancel = CancelSignal()

        def respond_and_cancel() -> httpx.Response:
            cancel.cancel("shutting down")
            return httpx.Response(200, stream=stream)

        handler = Recorder(respond_and_cancel)

        with pytest.raises(RequestCancelledError, match="shutting down"):
            await make_executor(handler).execute(_get(), cancel=cancel)

        assert stream.closed is True
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_signal_is_one_shot(self) -> None:
        """Test that the first reason wins."""
        cancel = CancelSignal()
        cancel.cancel("first")
        cancel.cancel("second")

        assert cancel.cancelled is True
        assert cancel.reason == "first"


class TestLogging:
    """Tests for the log side channel."""

    @pytest.mark.asyncio
    async def test_retry_decisions_forwarded_to_sink(self, make_executor) -> None:
        """Test that each retry decision is reported to the consumer log."""
        lines: list[str] = []
        handler = Recorder(503, 200)
        await make_executor(handler, log=ConsumerLog(lines.append)).execute(_get())

        assert lines == ["HTTP 503 error, retrying in 0ms (attempt 1/3)"]

    @pytest.mark.asyncio
    async def test_network_error_logged(self, make_executor) -> None:
        """Test that network retries mention the error."""
        lines: list[str] = []
        handler = Recorder(httpx.ConnectError("refused"), 200)
        await make_executor(handler, log=ConsumerLog(lines.append)).execute(_get())

        assert len(lines) == 1
        assert lines[0].startswith("Network error: refused, retrying in 0ms")
