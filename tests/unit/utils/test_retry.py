"""Unit tests for RetryPolicy and execute_with_retry."""

import pytest

from kairo.utils.errors import JobCancelledError, PermanentFailure, TransientFailure
from kairo.utils.retry import RetryPolicy, execute_with_retry


class TestRetryPolicy:
    """Test retry decisions and backoff delays."""

    def test_exponential_delays(self) -> None:
        policy = RetryPolicy()

        assert [policy.get_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_capped(self) -> None:
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)

        assert policy.get_delay(10) == 5.0

    def test_constant_delay(self) -> None:
        policy = RetryPolicy(base_delay=0.5, backoff_multiplier=1.0)

        assert policy.get_delay(0) == policy.get_delay(5) == 0.5

    def test_attempt_limit(self) -> None:
        policy = RetryPolicy(max_retries=2)
        error = TransientFailure("blip")

        assert policy.can_retry(error, 0)
        assert policy.can_retry(error, 1)
        assert not policy.can_retry(error, 2)

    def test_zero_retries(self) -> None:
        assert not RetryPolicy(max_retries=0).can_retry(RuntimeError(), 0)

    def test_permanent_and_cancelled_never_retried(self) -> None:
        policy = RetryPolicy(max_retries=5)

        assert not policy.can_retry(PermanentFailure("bad"), 0)
        assert not policy.can_retry(JobCancelledError(), 0)

    def test_should_retry_predicate(self) -> None:
        policy = RetryPolicy(
            max_retries=3,
            should_retry=lambda error, attempt: isinstance(error, ConnectionError),
        )

        assert policy.can_retry(ConnectionError(), 0)
        assert not policy.can_retry(ValueError(), 0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"base_delay": -0.1},
            {"max_delay": -1.0},
            {"backoff_multiplier": 0.5},
        ],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestExecuteWithRetry:
    """Test the standalone retry loop."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self) -> None:
        calls = []
        retried = []

        async def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise TransientFailure("blip")
            return "ok"

        policy = RetryPolicy(max_retries=3, base_delay=0.001)
        result = await execute_with_retry(
            flaky, policy, on_retry=lambda error, attempt: retried.append(attempt)
        )

        assert result == "ok"
        assert len(calls) == 3
        assert retried == [0, 1]

    @pytest.mark.asyncio
    async def test_raises_last_error(self) -> None:
        attempts = []

        async def always_fails() -> None:
            attempts.append(1)
            raise ConnectionError(f"failure {len(attempts)}")

        policy = RetryPolicy(max_retries=2, base_delay=0.001)

        with pytest.raises(ConnectionError, match="failure 3"):
            await execute_with_retry(always_fails, policy)

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self) -> None:
        attempts = []

        async def invalid() -> None:
            attempts.append(1)
            raise PermanentFailure("bad input")

        with pytest.raises(PermanentFailure):
            await execute_with_retry(invalid, RetryPolicy(base_delay=0.001))

        assert len(attempts) == 1
