"""
Tests for RetryPolicy and retry_async.
"""

import pytest

from pgnfetch.utils.backoff import BackoffConfig
from pgnfetch.utils.retry import RetryExhaustedError, RetryPolicy, retry_async


class SleepRecorder:
    """Sleep replacement recording requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_max_attempts_must_be_positive(self) -> None:
        """Given zero attempts, When created, Then ValueError is raised."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_should_retry_by_type(self) -> None:
        """Given a narrowed exception tuple, When checked, Then only those types retry."""
        policy = RetryPolicy(retryable_exceptions=(ConnectionError,))

        assert policy.should_retry(ConnectionRefusedError())
        assert not policy.should_retry(ValueError())

    def test_delay_after_is_linear_by_default(self) -> None:
        """Given the default backoff, When asked, Then delays are 1, 2, 3."""
        policy = RetryPolicy()
        assert [policy.delay_after(a) for a in range(3)] == [1.0, 2.0, 3.0]


class TestRetryAsync:
    """Tests for retry_async()."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self) -> None:
        """Given a succeeding call, When retried, Then it runs once without sleeping."""
        sleep = SleepRecorder()
        calls: list[int] = []

        async def func(attempt: int) -> str:
            calls.append(attempt)
            return "ok"

        result = await retry_async(func, policy=RetryPolicy(), operation_name="op", sleep=sleep)

        assert result == "ok"
        assert calls == [0]
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_success_after_failures(self) -> None:
        """
        Given: A call failing twice then succeeding, 3 attempts, linear 1s backoff
        When: Retried
        Then: Attempt indices 0..2 are passed and waits are 1s then 2s
        """
        sleep = SleepRecorder()
        calls: list[int] = []

        async def func(attempt: int) -> int:
            calls.append(attempt)
            if attempt < 2:
                raise ConnectionError("refused")
            return attempt

        result = await retry_async(
            func,
            policy=RetryPolicy(max_attempts=3, backoff=BackoffConfig(base_delay=1.0)),
            operation_name="connect",
            sleep=sleep,
        )

        assert result == 2
        assert calls == [0, 1, 2]
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        """
        Given: A call that always fails
        When: Retried with 3 attempts
        Then: RetryExhaustedError carries attempts and the last error; no extra attempt is made
        """
        sleep = SleepRecorder()
        calls: list[int] = []
        errors = [ConnectionError(f"fail {i}") for i in range(3)]

        async def func(attempt: int) -> None:
            calls.append(attempt)
            raise errors[attempt]

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(func, policy=RetryPolicy(max_attempts=3), operation_name="op", sleep=sleep)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is errors[2]
        assert calls == [0, 1, 2]
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self) -> None:
        """Given a non-retryable error, When retried, Then it propagates after one attempt."""
        sleep = SleepRecorder()
        calls: list[int] = []

        async def func(attempt: int) -> None:
            calls.append(attempt)
            raise ValueError("bad input")

        policy = RetryPolicy(max_attempts=3, retryable_exceptions=(ConnectionError,))
        with pytest.raises(ValueError, match="bad input"):
            await retry_async(func, policy=policy, operation_name="op", sleep=sleep)

        assert calls == [0]
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self) -> None:
        """Given a zero-delay backoff, When retried, Then sleep is never called."""
        sleep = SleepRecorder()

        async def func(attempt: int) -> str:
            if attempt == 0:
                raise TimeoutError()
            return "second"

        policy = RetryPolicy(max_attempts=2, backoff=BackoffConfig(base_delay=0.0, max_delay=0.0))
        result = await retry_async(func, policy=policy, operation_name="navigate", sleep=sleep)

        assert result == "second"
        assert sleep.delays == []
