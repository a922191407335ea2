import asyncio
import time

import pytest

from mailpilot.compose.polling import poll_until
from mailpilot.compose.views import TimeoutExhausted


class TestPollUntil:
    @pytest.mark.asyncio
    async def test_returns_first_non_none_value(self):
        answers = iter([None, None, "draft0003", "later"])
        calls = 0

        async def check():
            nonlocal calls
            calls += 1
            return next(answers)

        assert await poll_until(check, attempts=5, interval=0) == "draft0003"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_falsy_values_other_than_none_count_as_observed(self):
        async def check():
            return 0

        assert await poll_until(check, attempts=3, interval=0) == 0

    @pytest.mark.asyncio
    async def test_exhaustion_is_a_value_and_bounded_in_time(self):
        calls = 0

        async def check():
            nonlocal calls
            calls += 1
            return None

        started = time.monotonic()
        result = await poll_until(check, attempts=5, interval=0.2, description="new compose session")
        elapsed = time.monotonic() - started

        assert isinstance(result, TimeoutExhausted)
        assert not result
        assert result.attempts == 5
        assert calls == 5
        assert 0.7 < elapsed < 1.05
        assert "new compose session" in str(result)

    @pytest.mark.asyncio
    async def test_check_exceptions_propagate(self):
        async def check():
            raise RuntimeError("socket gone")

        with pytest.raises(RuntimeError):
            await poll_until(check, attempts=3, interval=0)

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        async def check():
            return None

        with pytest.raises(ValueError):
            await poll_until(check, attempts=0, interval=0)

    @pytest.mark.asyncio
    async def test_single_attempt_does_not_sleep(self):
        async def check():
            return None

        result = await asyncio.wait_for(poll_until(check, attempts=1, interval=10), timeout=1.0)
        assert isinstance(result, TimeoutExhausted)
