"""Retrying HTTP request executor with timeout and caller cancellation."""

import asyncio
import time
from datetime import UTC, datetime

import httpx

from src.errors import RequestCancelledError, TransportFailureError
from src.observability.sink import ConsumerLog
from src.retry.backoff import RandomSource
from src.retry.cancellation import CancelSignal, sleep_unless_cancelled
from src.retry.metrics import RetryMetrics
from src.retry.models import AttemptOutcome, RequestAttempt, RetryPolicy
from src.retry.redact import redact_headers, redact_url


class RetryingExecutor:
    """Executes one logical HTTP request with retries.

    Provides:
    - Per-attempt timeout
    - Caller cancellation composed with the timeout
    - Retry on transport failures and retryable statuses
    - Jittered exponential backoff between attempts
    - Metrics collection
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        log: ConsumerLog | None = None,
        rand: RandomSource | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            client: HTTP client used for every attempt.
            policy: Default retry policy.
            log: Log side channel for retry decisions.
            rand: Random source for backoff jitter.
        """
        self._client = client
        self._policy = policy or RetryPolicy()
        self._log = (log or ConsumerLog()).bind(component="retry")
        self._rand = rand
        self._metrics = RetryMetrics.get_instance()

    @property
    def policy(self) -> RetryPolicy:
        """Default retry policy."""
        return self._policy

    async def execute(
        self,
        request: httpx.Request,
        policy: RetryPolicy | None = None,
        cancel: CancelSignal | None = None,
        attempts: list[RequestAttempt] | None = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Args:
            request: Request to send. Its body is buffered so it can be resent.
            policy: Policy for this call; defaults to the executor's policy.
            cancel: Caller cancel signal. Never retried once set.
            attempts: Optional list receiving a record per attempt.

        Returns:
            The first response with a non-retryable status, or the last
            response once retries are exhausted.

        Raises:
            RequestCancelledError: The cancel signal fired.
            TransportFailureError: Every attempt failed at the transport level.
        """
        policy = policy or self._policy
        log = self._log.bind(
            method=request.method,
            url=redact_url(str(request.url)),
        )
        await request.aread()

        try:
            return await self._run(request, policy, cancel, attempts, log)
        except RequestCancelledError as e:
            self._metrics.record_cancelled()
            log.info("request_cancelled", f"Request cancelled: {e.message}")
            raise
        except asyncio.CancelledError:
            self._metrics.record_cancelled()
            log.debug("request_task_cancelled", "Request task cancelled")
            raise

    async def _run(
        self,
        request: httpx.Request,
        policy: RetryPolicy,
        cancel: CancelSignal | None,
        attempts: list[RequestAttempt] | None,
        log: ConsumerLog,
    ) -> httpx.Response:
        last_error: Exception | None = None
        last_outcome = AttemptOutcome.TRANSPORT_ERROR

        for attempt in range(policy.total_attempts):
            record = RequestAttempt(
                attempt_number=attempt, started_at=datetime.now(UTC)
            )
            if attempts is not None:
                attempts.append(record)

            try:
                response = await self._attempt(request, policy, cancel, log, attempt)
            except RequestCancelledError:
                record.outcome = AttemptOutcome.CANCELLED
                raise
            except (httpx.TransportError, TimeoutError) as e:
                is_timeout = isinstance(e, TimeoutError | httpx.TimeoutException)
                record.outcome = (
                    AttemptOutcome.TIMEOUT
                    if is_timeout
                    else AttemptOutcome.TRANSPORT_ERROR
                )
                last_error = e
                last_outcome = record.outcome
                if not policy.has_attempts_left(attempt):
                    break
                delay_ms = policy.get_delay_ms(attempt, self._rand)
                log.info(
                    "retry_scheduled",
                    f"Network error: {e}, retrying in {round(delay_ms)}ms "
                    f"(attempt {attempt + 1}/{policy.max_retries})",
                    attempt=attempt,
                    delay_ms=round(delay_ms),
                    error_class=record.outcome.value,
                )
                await self._backoff(delay_ms, cancel)
                continue

            record.status_code = response.status_code
            if policy.should_retry_status(response.status_code, attempt):
                record.outcome = AttemptOutcome.RETRYABLE_STATUS
                await response.aclose()
                delay_ms = policy.get_delay_ms(attempt, self._rand)
                log.info(
                    "retry_scheduled",
                    f"HTTP {response.status_code} error, retrying in "
                    f"{round(delay_ms)}ms (attempt {attempt + 1}/{policy.max_retries})",
                    attempt=attempt,
                    delay_ms=round(delay_ms),
                    status_code=response.status_code,
                )
                await self._backoff(delay_ms, cancel)
                continue

            record.outcome = AttemptOutcome.RESPONSE
            return response

        self._metrics.record_failure(last_outcome)
        msg = f"Request failed after {policy.total_attempts} attempts: {last_error}"
        log.warning(
            "request_failed",
            msg,
            attempts=policy.total_attempts,
            error_class=last_outcome.value,
        )
        raise TransportFailureError(msg, attempts=policy.total_attempts) from last_error

    async def _attempt(
        self,
        request: httpx.Request,
        policy: RetryPolicy,
        cancel: CancelSignal | None,
        log: ConsumerLog,
        attempt: int,
    ) -> httpx.Response:
        """Run a single attempt raced against the cancel signal and timeout.

        Raises:
            RequestCancelledError: The cancel signal fired.
            TimeoutError: The attempt timeout fired first.
            httpx.TransportError: The network call failed.
        """
        if cancel is not None and cancel.cancelled:
            raise RequestCancelledError(cancel.reason or "cancelled by caller")

        log.debug(
            "attempt_started",
            f"Sending {request.method} (attempt {attempt + 1})",
            attempt=attempt,
            headers=redact_headers(request.headers.items()),
        )
        start_time_ns = time.perf_counter_ns()
        send = asyncio.ensure_future(self._client.send(request))
        waiters: set[asyncio.Future[object]] = {send}
        watcher: asyncio.Future[None] | None = None
        if cancel is not None:
            watcher = asyncio.ensure_future(cancel.wait())
            waiters.add(watcher)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=policy.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if cancel is not None and cancel.cancelled:
            if send.done() and not send.cancelled() and send.exception() is None:
                # Response raced the cancel signal; release its connection
                await send.result().aclose()
            raise RequestCancelledError(cancel.reason or "cancelled by caller")

        if send not in done:
            msg = f"Request timed out after {policy.timeout_seconds}s"
            raise TimeoutError(msg)

        response = send.result()
        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_response(response.status_code, duration_ms)
        return response

    async def _backoff(self, delay_ms: float, cancel: CancelSignal | None) -> None:
        """Wait before the next attempt, waking early if the caller cancels."""
        self._metrics.record_retry()
        await sleep_unless_cancelled(delay_ms / 1000.0, cancel)
