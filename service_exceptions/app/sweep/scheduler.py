"""
Timer that triggers exception sweeps.
"""

import asyncio
from typing import Optional

from shared.logging import get_logger
from ..models import SweepSummary
from .sweeper import ExceptionSweeper


class SweepScheduler:
    """Runs ``ExceptionSweeper.sweep`` every ``interval_seconds``.

    Stopping never interrupts a sweep that is already running: ``stop`` waits
    for it to finish before the loop exits.
    """

    def __init__(self, sweeper: ExceptionSweeper, interval_seconds: float = 86400.0):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.logger = get_logger("exceptions.sweep_scheduler")
        self.last_summary: Optional[SweepSummary] = None
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def start(self):
        """Start the sweep loop."""
        if self.running:
            return
        self.running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Sweep scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the sweep loop after any in-flight sweep completes."""
        if not self.running:
            return
        self.running = False
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        self.logger.info("Sweep scheduler stopped")

    async def run_once(self) -> Optional[SweepSummary]:
        """Run a single sweep tick; errors are logged and reported as None."""
        try:
            self.last_summary = await self.sweeper.sweep()
        except Exception as e:
            self.logger.error("Sweep run failed", error=str(e), exc_info=True)
            return None
        return self.last_summary

    async def _sweep_loop(self):
        """Main sweep loop."""
        while self.running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

            self.logger.info("Sweep tick")
            await self.run_once()
