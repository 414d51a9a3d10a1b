"""Unit tests for the retry decorator and strategy."""

from __future__ import annotations

import pytest

from event_relay.utils.retry import RetryError, RetryStrategy, retry


@pytest.mark.unit
class TestRetryDecorator:
    async def test_succeeds_first_attempt(self) -> None:
        call_count = 0

        @retry(max_attempts=3)
        async def successful_func() -> str:
            nonlocal call_count
            call_count += 1
            return "success"

        assert await successful_func() == "success"
        assert call_count == 1

    async def test_succeeds_after_retries(self) -> None:
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01, jitter=False)
        async def eventually_successful() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Not yet")
            return "success"

        assert await eventually_successful() == "success"
        assert call_count == 3

    async def test_fails_after_max_attempts(self) -> None:
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01)
        async def always_fails() -> None:
            nonlocal call_count
            call_count += 1
            raise ValueError("Always fails")

        with pytest.raises(RetryError) as exc_info:
            await always_fails()

        assert call_count == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ValueError)
        assert "after 3 attempts" in str(exc_info.value)
        assert exc_info.value.statistics.attempts == 2
        assert exc_info.value.statistics.exceptions == ["ValueError", "ValueError"]

    async def test_non_retryable_exception_propagates(self) -> None:
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01, exceptions=(ConnectionError,))
        async def wrong_error() -> None:
            nonlocal call_count
            call_count += 1
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await wrong_error()
        assert call_count == 1

    async def test_retry_if_predicate(self) -> None:
        call_count = 0

        @retry(
            max_attempts=5,
            initial_delay=0.01,
            retry_if=lambda e: "transient" in str(e),
        )
        async def flaky() -> None:
            nonlocal call_count
            call_count += 1
            raise RuntimeError("transient" if call_count < 2 else "permanent")

        with pytest.raises(RuntimeError, match="permanent"):
            await flaky()
        assert call_count == 2

    async def test_on_retry_callback(self) -> None:
        seen: list[int] = []

        @retry(max_attempts=3, initial_delay=0.01, on_retry=lambda e, n: seen.append(n))
        async def always_fails() -> None:
            raise OSError

        with pytest.raises(RetryError):
            await always_fails()
        assert seen == [1, 2]

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            retry(max_attempts=0)


@pytest.mark.unit
class TestRetryStrategy:
    def test_exponential_delay_without_jitter(self) -> None:
        strategy = RetryStrategy(initial_delay=1.0, max_delay=100.0, jitter=False)

        assert [strategy.calculate_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_capped(self) -> None:
        strategy = RetryStrategy(initial_delay=1.0, max_delay=5.0, jitter=False)

        assert strategy.calculate_delay(10) == 5.0

    def test_negative_initial_delay_rejected(self) -> None:
        with pytest.raises(ValueError, match="initial_delay"):
            RetryStrategy(initial_delay=-1.0)

    def test_should_retry_uses_exception_types(self) -> None:
        strategy = RetryStrategy(exceptions=(OSError,))

        assert strategy.should_retry(ConnectionError())
        assert not strategy.should_retry(ValueError())
