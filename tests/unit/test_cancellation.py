"""Tests for core/cancellation.py."""

from __future__ import annotations

import asyncio

import pytest

from controlcheck.core.cancellation import CancellationToken, run_cancellable
from controlcheck.errors import OperationCancelled


async def value_after(delay: float, value: str) -> str:
    await asyncio.sleep(delay)
    return value


class TestCancellationToken:
    def test_cancel_is_one_shot(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        with pytest.raises(OperationCancelled, match="stop"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_sleep_runs_out(self):
        assert await CancellationToken().sleep(0.01) is False

    @pytest.mark.asyncio
    async def test_sleep_interrupted(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        assert await asyncio.wait_for(token.sleep(30), timeout=5) is True

    @pytest.mark.asyncio
    async def test_zero_sleep_reports_state(self):
        token = CancellationToken()
        assert await token.sleep(0) is False
        token.cancel()
        assert await token.sleep(0) is True

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        assert await CancellationToken().run(value_after(0, "done")) == "done"

    @pytest.mark.asyncio
    async def test_run_propagates_errors(self):
        async def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await CancellationToken().run(boom())

    @pytest.mark.asyncio
    async def test_run_abandons_pending_work(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        with pytest.raises(OperationCancelled):
            await asyncio.wait_for(token.run(value_after(30, "late")), timeout=5)

    @pytest.mark.asyncio
    async def test_run_when_already_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            await token.run(value_after(0, "never"))


class TestRunCancellable:
    @pytest.mark.asyncio
    async def test_without_token(self):
        assert await run_cancellable(value_after(0, "x"), None) == "x"
