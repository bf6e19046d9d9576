"""Unit tests for RetryPolicy."""

import asyncio
import time

import pytest

from hydra_print.core.connection.retry_policy import RetryOutcome, RetryPolicy


class Flaky:
    """Operation that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, result: str = "ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure {self.calls}")
        return self.result


class TestRetryPolicyConfig:

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_fixed_delay_never_grows(self):
        policy = RetryPolicy.fixed(delay=1.0, max_attempts=30)
        assert policy.get_delay(1) == 0.0
        assert policy.get_delay(2) == 1.0
        assert policy.get_delay(30) == 1.0

    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=10, base_delay=1.0, max_delay=5.0, backoff_factor=2.0)
        assert policy.get_delay(2) == 1.0
        assert policy.get_delay(3) == 2.0
        assert policy.get_delay(4) == 4.0
        assert policy.get_delay(5) == 5.0


class TestExecuteWithResult:

    @pytest.mark.asyncio
    async def test_first_attempt_success(self):
        operation = Flaky(0)
        result = await RetryPolicy.fixed(0.01, 3).execute_with_result(operation)
        assert result.outcome is RetryOutcome.SUCCESS
        assert result.result_data == "ok"
        assert result.attempt_count == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = Flaky(2)
        retries = []
        result = await RetryPolicy.fixed(0.01, 5).execute_with_result(
            operation,
            on_retry=lambda attempt, error: retries.append((attempt, error)),
        )
        assert result.success
        assert operation.calls == 3
        assert retries == [(2, "failure 1"), (3, "failure 2")]

    @pytest.mark.asyncio
    async def test_exhausted_after_cap(self):
        operation = Flaky(10)
        result = await RetryPolicy.fixed(0.01, 3).execute_with_result(operation)
        assert result.outcome is RetryOutcome.EXHAUSTED
        assert operation.calls == 3
        assert result.final_error == "failure 3"

    @pytest.mark.asyncio
    async def test_result_check_failure_counts_as_attempt(self):
        async def operation():
            return None

        result = await RetryPolicy.fixed(0.01, 2).execute_with_result(operation)
        assert result.outcome is RetryOutcome.EXHAUSTED
        assert result.attempt_count == 2

    @pytest.mark.asyncio
    async def test_abort_wakes_pending_delay(self):
        policy = RetryPolicy.fixed(delay=10.0, max_attempts=5)
        operation = Flaky(10)

        task = asyncio.create_task(policy.execute_with_result(operation))
        await asyncio.sleep(0.05)
        started = time.monotonic()
        policy.abort()
        result = await asyncio.wait_for(task, timeout=1.0)

        assert result.outcome is RetryOutcome.ABORTED
        assert operation.calls == 1
        assert time.monotonic() - started < 1.0

    @pytest.mark.asyncio
    async def test_aborted_policy_does_not_run(self):
        policy = RetryPolicy.fixed(0.01, 3)
        policy.abort()
        operation = Flaky(0)
        result = await policy.execute_with_result(operation)
        assert result.outcome is RetryOutcome.ABORTED
        assert operation.calls == 0

    @pytest.mark.asyncio
    async def test_reset_allows_reuse(self):
        policy = RetryPolicy.fixed(0.01, 3)
        policy.abort()
        policy.reset()
        result = await policy.execute_with_result(Flaky(0))
        assert result.success
