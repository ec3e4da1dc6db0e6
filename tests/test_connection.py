"""Tests for retry utilities."""
import pytest

from mcp_static_lease.errors import AlertAborted, StepFailed, TransportFailure
from mcp_static_lease.utils.connection import with_retry, retry_call

TRANSIENT = (TransportFailure, TimeoutError)


class TestWithRetry:
    """Tests for retry decorator."""

    @pytest.mark.asyncio
    async def test_success_no_retry(self):
        """Successful function doesn't retry."""
        call_count = 0

        @with_retry(TRANSIENT, max_attempts=3)
        async def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await succeeding_func() == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        """Function retries on failure then succeeds."""
        call_count = 0

        @with_retry(TRANSIENT, max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def failing_then_succeeding():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise TransportFailure("page did not load")
            return "success"

        assert await failing_then_succeeding() == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self):
        """Function raises after max retries."""
        call_count = 0

        @with_retry(TRANSIENT, max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def always_failing():
            nonlocal call_count
            call_count += 1
            raise TimeoutError("Always times out")

        with pytest.raises(TimeoutError):
            await always_failing()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_appliance_answers_are_not_retried(self):
        """Alerts come from the appliance and are final."""
        call_count = 0

        @with_retry(TRANSIENT, max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def alerted():
            nonlocal call_count
            call_count += 1
            raise AlertAborted("Duplicate entry")

        with pytest.raises(AlertAborted):
            await alerted()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_non_retryable_exception(self):
        """Non-retryable exceptions are not retried."""
        call_count = 0

        @with_retry((ConnectionRefusedError,), max_attempts=3)
        async def raising_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            await raising_value_error()
        assert call_count == 1


class TestRetryCall:
    """Tests for retry_call with a runtime attempt count."""

    @pytest.mark.asyncio
    async def test_retries_with_arguments(self):
        calls = []

        async def read(mac, *, attempt_ok):
            calls.append(mac)
            if len(calls) < attempt_ok:
                raise ConnectionResetError("reset")
            return mac.upper()

        result = await retry_call(
            read, "aa", attempt_ok=3,
            exceptions=(ConnectionResetError,), max_attempts=5, min_wait=0, max_wait=0,
        )
        assert result == "AA"
        assert calls == ["aa", "aa", "aa"]

    @pytest.mark.asyncio
    async def test_single_attempt(self):
        """max_attempts=1 means no retry."""
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            raise StepFailed("Click(#btn_apply)")

        with pytest.raises(StepFailed):
            await retry_call(failing, exceptions=TRANSIENT, max_attempts=1, min_wait=0, max_wait=0)
        assert calls == 1
