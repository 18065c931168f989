"""Tests for the bounded retry helper."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from moment_search.tools.youtube.retry import linear_backoff, retry


class NotYet(Exception):
    pass


class TestRetry:
    """Tests for retry()."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self) -> None:
        """Test that retrying stops at the first successful call."""
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise NotYet()
            return "ready"

        result = await retry(flaky, max_attempts=5, backoff=linear_backoff(0, 0))

        assert result == "ready"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_reraises_after_max_attempts(self) -> None:
        """Test that the last error propagates once attempts run out."""
        calls = 0

        async def never() -> None:
            nonlocal calls
            calls += 1
            raise NotYet()

        with pytest.raises(NotYet):
            await retry(never, max_attempts=4, backoff=linear_backoff(0, 0))

        assert calls == 4

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self) -> None:
        """Test that exceptions outside retry_on propagate immediately."""
        calls = 0

        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await retry(
                broken, max_attempts=5, backoff=linear_backoff(0, 0), retry_on=NotYet
            )

        assert calls == 1

    @pytest.mark.asyncio
    async def test_invalid_attempts(self) -> None:
        """Test that max_attempts below 1 is rejected."""

        async def noop() -> None:
            return None

        with pytest.raises(ValueError):
            await retry(noop, max_attempts=0, backoff=linear_backoff())


class TestLinearBackoff:
    """Tests for the linear wait strategy."""

    def test_waits_grow_linearly(self) -> None:
        """Test base, base + step, base + 2 * step."""
        wait = linear_backoff(base=1.0, step=0.5)
        waits = []
        for attempt in (1, 2, 3):
            state = MagicMock()
            state.attempt_number = attempt
            waits.append(wait(state))

        assert waits == [1.0, 1.5, 2.0]
