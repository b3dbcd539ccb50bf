"""
Unit tests for SweepScheduler.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from service_exceptions.app.models import SweepSummary
from service_exceptions.app.sweep.scheduler import SweepScheduler


def _summary():
    return SweepSummary(started_at=datetime.now(timezone.utc))


class TestSweepScheduler:
    """Test cases for SweepScheduler."""

    @pytest.fixture
    def sweeper(self):
        sweeper = MagicMock()
        sweeper.sweep = AsyncMock(side_effect=lambda: _summary())
        return sweeper

    @pytest.mark.asyncio
    async def test_run_once_returns_summary(self, sweeper):
        scheduler = SweepScheduler(sweeper, interval_seconds=60)

        summary = await scheduler.run_once()

        assert summary is not None
        assert scheduler.last_summary is summary
        sweeper.sweep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_once_logs_and_swallows_errors(self, sweeper):
        sweeper.sweep = AsyncMock(side_effect=RuntimeError("rule store exploded"))
        scheduler = SweepScheduler(sweeper, interval_seconds=60)

        summary = await scheduler.run_once()

        assert summary is None
        assert scheduler.last_summary is None

    @pytest.mark.asyncio
    async def test_loop_triggers_sweeps_on_interval(self, sweeper):
        scheduler = SweepScheduler(sweeper, interval_seconds=0.01)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert sweeper.sweep.await_count >= 2
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_no_sweep_before_first_interval(self, sweeper):
        scheduler = SweepScheduler(sweeper, interval_seconds=60)

        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        sweeper.sweep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_waits_for_inflight_sweep(self, sweeper):
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def slow_sweep():
            started.set()
            await release.wait()
            finished.append(True)
            return _summary()

        sweeper.sweep = AsyncMock(side_effect=slow_sweep)
        scheduler = SweepScheduler(sweeper, interval_seconds=0.01)

        await scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=1)

        stop_task = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.01)
        assert not stop_task.done()

        release.set()
        await asyncio.wait_for(stop_task, timeout=1)

        assert finished == [True]
        assert sweeper.sweep.await_count == 1

    @pytest.mark.asyncio
    async def test_loop_survives_failing_sweep(self, sweeper):
        calls = []

        async def flaky_sweep():
            calls.append(True)
            if len(calls) == 1:
                raise RuntimeError("transient")
            return _summary()

        sweeper.sweep = AsyncMock(side_effect=flaky_sweep)
        scheduler = SweepScheduler(sweeper, interval_seconds=0.01)

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert len(calls) >= 2
        assert scheduler.last_summary is not None

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, sweeper):
        scheduler = SweepScheduler(sweeper, interval_seconds=60)

        await scheduler.stop()
        await scheduler.start()
        await scheduler.start()
        await scheduler.stop()
        await scheduler.stop()

        assert scheduler.running is False
