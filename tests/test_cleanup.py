"""Tests for the background cleanup worker."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from codedrop.cleanup import sweep_loop
from codedrop.drop_service import SweepResult


@pytest.mark.asyncio
async def test_sweep_loop_runs_until_cancelled():
    service = AsyncMock()
    service.sweep.return_value = SweepResult(drops=1, identities=0)

    task = asyncio.create_task(sweep_loop(service, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert service.sweep.await_count >= 2


@pytest.mark.asyncio
async def test_sweep_loop_survives_errors():
    service = AsyncMock()
    calls = []

    async def flaky_sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("disk gone")
        return SweepResult(0, 0)

    service.sweep.side_effect = flaky_sweep

    task = asyncio.create_task(sweep_loop(service, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert service.sweep.await_count >= 2
