"""
Tick Scheduler

Runs the store's periodic ticks as independent asyncio tasks. There is no
ordering between jobs; each one calls into the store when it fires, so it
always works on the latest state. Saves run in a worker thread so file I/O
never stalls the loop.
"""

import asyncio
import logging
from typing import Callable, List, Tuple

from economy import GameStateStore

logger = logging.getLogger(__name__)


class TickScheduler:
    def __init__(self, store: GameStateStore):
        self.store = store
        cfg = store.config
        self.jobs: List[Tuple[str, float, Callable[[float], object]]] = [
            ("cash", cfg.session.cash_tick_interval, store.accrue_cash),
            ("stocks", cfg.stocks.tick_interval, lambda elapsed: store.tick_stocks()),
            ("sentiment", cfg.sentiment.update_interval, lambda elapsed: store.tick_sentiment()),
            ("efficiency", cfg.efficiency.update_interval, lambda elapsed: store.tick_efficiency()),
            ("macro", cfg.cycle.update_interval, lambda elapsed: store.tick_macro()),
            ("events", cfg.events.check_interval, lambda elapsed: store.tick_events()),
        ]
        self.save_interval = cfg.session.save_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> bool:
        """Schedule every job on the running event loop."""
        if self.running:
            return False
        self._tasks = [
            asyncio.create_task(self._run_job(name, interval, tick), name=f"tick-{name}")
            for name, interval, tick in self.jobs
        ]
        self._tasks.append(asyncio.create_task(self._run_saves(), name="tick-save"))
        logger.info(f"Tick scheduler started with {len(self._tasks)} jobs")
        return True

    async def stop(self, final_save: bool = True) -> None:
        """Cancel every job and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if final_save:
            await asyncio.to_thread(self.store.save)
        if tasks:
            logger.info("Tick scheduler stopped")

    async def _run_job(self, name: str, interval: float, tick: Callable[[float], object]) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        while True:
            await asyncio.sleep(interval)
            now = loop.time()
            elapsed, last = now - last, now
            try:
                tick(elapsed)
            except Exception:
                logger.exception(f"{name} tick failed")

    async def _run_saves(self) -> None:
        while True:
            await asyncio.sleep(self.save_interval)
            saved = await asyncio.to_thread(self.store.save)
            if not saved and self.store.save_store is not None:
                logger.warning("Periodic save skipped, retrying next interval")
