"""Unit tests for the retry, timeout and batching helpers."""

from __future__ import annotations

import asyncio

import pytest

from docweave.utils.concurrency import maybe_await, run_in_batches, throttled_gather
from docweave.utils.errors import OperationTimeoutError, RetryExhaustedError, ValidationError
from docweave.utils.retry import BackoffPolicy, with_retry, with_timeout

NO_BACKOFF = BackoffPolicy(base_delay=0.0, jitter=0.0)


class TestBackoffPolicy:
    def test_exponential_growth_is_capped(self) -> None:
        policy = BackoffPolicy(base_delay=1.0, max_delay=5.0, jitter=0.0)
        assert [policy.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_bound(self) -> None:
        policy = BackoffPolicy(base_delay=1.0, max_delay=30.0, jitter=0.5)
        assert all(1.0 <= policy.delay_for(0) <= 1.5 for _ in range(20))

    def test_zero_base_disables_sleep(self) -> None:
        assert NO_BACKOFF.delay_for(5) == 0.0


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_returns_first_success(self) -> None:
        attempts: list[int] = []

        async def op() -> str:
            attempts.append(1)
            if len(attempts) < 2:
                raise ConnectionError("flaky")
            return "ok"

        assert await with_retry(op, attempts=3, backoff=NO_BACKOFF) == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_exhaustion_keeps_last_error(self) -> None:
        def op() -> None:
            raise ValueError("always")

        with pytest.raises(RetryExhaustedError) as excinfo:
            await with_retry(op, attempts=3, backoff=NO_BACKOFF, component="test")

        assert excinfo.value.attempts == 3
        assert isinstance(excinfo.value.last_error, ValueError)

    @pytest.mark.asyncio
    async def test_on_retry_called_between_attempts(self) -> None:
        seen: list[int] = []

        def op() -> None:
            raise ValueError("no")

        with pytest.raises(RetryExhaustedError):
            await with_retry(op, attempts=3, backoff=NO_BACKOFF, on_retry=lambda n, exc: seen.append(n))

        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_fatal_errors_are_not_retried(self) -> None:
        calls: list[int] = []

        def op() -> None:
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            await with_retry(op, attempts=5, backoff=NO_BACKOFF, fatal=(ValidationError,))

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_attempts_below_one_still_runs_once(self) -> None:
        assert await with_retry(lambda: 7, attempts=0) == 7

    @pytest.mark.asyncio
    async def test_timeout_per_attempt(self) -> None:
        async def slow() -> None:
            await asyncio.sleep(10)

        with pytest.raises(RetryExhaustedError) as excinfo:
            await with_retry(slow, attempts=2, backoff=NO_BACKOFF, timeout=0.01)

        assert isinstance(excinfo.value.last_error, OperationTimeoutError)


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_none_waits_indefinitely(self) -> None:
        assert await with_timeout(asyncio.sleep(0, result="done"), None) == "done"

    @pytest.mark.asyncio
    async def test_timeout_error_is_also_builtin(self) -> None:
        with pytest.raises(TimeoutError):
            await with_timeout(asyncio.sleep(10), 0.01, component="test")


class TestConcurrencyHelpers:
    @pytest.mark.asyncio
    async def test_maybe_await(self) -> None:
        assert await maybe_await(3) == 3
        assert await maybe_await(asyncio.sleep(0, result=4)) == 4

    @pytest.mark.asyncio
    async def test_throttled_gather_bounds_concurrency(self) -> None:
        in_flight = 0
        peak = 0

        async def work(i: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return i

        results = await throttled_gather([work(i) for i in range(6)], limit=2)

        assert results == list(range(6))
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_run_in_batches_preserves_order(self) -> None:
        batches: list[list[int]] = []

        async def worker(batch: list[int]) -> list[int]:
            batches.append(batch)
            return [n * 10 for n in batch]

        results = await run_in_batches(list(range(5)), worker, batch_size=2, delay=0.0)

        assert results == [0, 10, 20, 30, 40]
        assert batches == [[0, 1], [2, 3], [4]]
