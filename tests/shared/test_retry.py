"""Tests for the bounded retry combinator."""

from __future__ import annotations

from unittest.mock import AsyncMock

from medic.shared.retry import retry_bounded


class TestRetryBounded:
    async def test_returns_first_success(self) -> None:
        action = AsyncMock(side_effect=[None, "ok", "late"])
        between = AsyncMock()

        result = await retry_bounded(action, attempts=3, between=between)

        assert result == "ok"
        assert action.await_count == 2
        between.assert_awaited_once()

    async def test_gives_up_after_attempts(self) -> None:
        action = AsyncMock(return_value=None)
        between = AsyncMock()

        result = await retry_bounded(action, attempts=3, between=between)

        assert result is None
        assert [c.args for c in action.await_args_list] == [(1,), (2,), (3,)]
        # Cleanup runs between attempts, not after the last one.
        assert between.await_count == 2

    async def test_without_between(self) -> None:
        action = AsyncMock(return_value=None)
        assert await retry_bounded(action, attempts=2) is None
        assert action.await_count == 2
