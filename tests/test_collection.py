"""
Tests for the CollectionWindow timer.
"""

import asyncio

import pytest

from ace_core.calibration import CollectionWindow, WindowOutcome
from tests.conftest import run


class TestCollectionWindow:

    def test_elapses_with_final_tick(self):
        ticks = []
        window = CollectionWindow(0.05, 0.01, on_tick=ticks.append)

        outcome = run(window.run())

        assert outcome == WindowOutcome.ELAPSED
        assert window.outcome == WindowOutcome.ELAPSED
        assert ticks[-1] == 1.0
        assert len(ticks) >= 2
        assert ticks == sorted(ticks)
        assert all(0.0 <= t <= 1.0 for t in ticks)

    def test_stop_before_run(self):
        ticks = []
        window = CollectionWindow(10.0, 0.01, on_tick=ticks.append)
        window.stop()

        assert run(window.run()) == WindowOutcome.STOPPED
        assert ticks == []

    def test_stop_during_run(self):
        window = CollectionWindow(10.0, 0.5)

        async def scenario():
            task = asyncio.ensure_future(window.run())
            await asyncio.sleep(0.02)
            assert window.is_running
            window.stop()
            return await asyncio.wait_for(task, timeout=2.0)

        assert run(scenario()) == WindowOutcome.STOPPED
        assert not window.is_running
        assert window.progress < 1.0

    def test_cancel_wins_over_stop(self):
        window = CollectionWindow(10.0, 0.5)

        async def scenario():
            task = asyncio.ensure_future(window.run())
            await asyncio.sleep(0.02)
            window.stop()
            window.cancel()
            return await asyncio.wait_for(task, timeout=2.0)

        assert run(scenario()) == WindowOutcome.CANCELLED

    @pytest.mark.parametrize("duration,tick", [(0.0, 0.1), (1.0, 0.0), (-1.0, 0.1)])
    def test_rejects_non_positive_durations(self, duration, tick):
        with pytest.raises(ValueError):
            CollectionWindow(duration, tick)

    def test_not_running_before_start(self):
        window = CollectionWindow(1.0, 0.1)
        assert not window.is_running
        assert window.progress == 0.0
