"""
Unit tests for the TickScheduler
"""

import asyncio

from config import GameConfig, SessionConfig
from conftest import FLAT_CATALOG
from persistence import MemorySaveStore
from scheduler import TickScheduler

FAST = GameConfig(session=SessionConfig(cash_tick_interval=0.01, save_interval=0.02))


def fast_store(make_store, saves=None):
    store = make_store(catalog=FLAT_CATALOG, config=FAST, save_store=saves or MemorySaveStore())
    store.state.cash = 100.0
    store.buy_business("x1")
    return store


class TestTickScheduler:
    """Test suite for periodic ticks and teardown"""

    def test_jobs_use_configured_intervals(self, make_store):
        """Each job fires at its own configured interval"""
        scheduler = TickScheduler(fast_store(make_store))
        intervals = {name: interval for name, interval, _ in scheduler.jobs}

        assert intervals["cash"] == 0.01
        assert intervals["stocks"] == 5.0
        assert intervals["macro"] == 30.0
        assert scheduler.save_interval == 0.02

    def test_runs_cash_ticks_and_saves(self, make_store):
        """Cash accrues and the state is saved while running"""
        saves = MemorySaveStore()
        store = fast_store(make_store, saves)
        scheduler = TickScheduler(store)

        async def run():
            assert scheduler.start()
            assert scheduler.running
            assert not scheduler.start()
            await asyncio.sleep(0.15)
            await scheduler.stop()

        asyncio.run(run())

        assert store.state.cash > 0
        assert saves.writes >= 2
        assert not scheduler.running

    def test_stop_without_final_save(self, make_store):
        """Teardown can skip the final save"""
        saves = MemorySaveStore()
        scheduler = TickScheduler(fast_store(make_store, saves))
        scheduler.save_interval = 60.0

        async def run():
            scheduler.start()
            await asyncio.sleep(0.03)
            await scheduler.stop(final_save=False)

        asyncio.run(run())
        assert saves.writes == 0

    def test_failing_tick_keeps_running(self, make_store):
        """An exception inside a tick is logged and the job keeps going"""
        scheduler = TickScheduler(fast_store(make_store))
        calls = []

        def explode(elapsed):
            calls.append(elapsed)
            raise RuntimeError("tick failed")

        scheduler.jobs = [("explode", 0.01, explode)]

        async def run():
            scheduler.start()
            await asyncio.sleep(0.08)
            still_running = scheduler.running
            await scheduler.stop(final_save=False)
            return still_running

        assert asyncio.run(run())
        assert len(calls) >= 2
        assert all(elapsed > 0 for elapsed in calls)
