"""Weekly indicator refresh scheduler.

Sleeps until the configured weekday and hour (UTC, default Monday 00:00),
then runs the batch over every topic. Uses asyncio tasks, no external
scheduler dependency.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_WEEKDAY = 0  # Monday
DEFAULT_REFRESH_HOUR_UTC = 0


def seconds_until_next_run(now: datetime, weekday: int, hour: int) -> float:
    """Seconds from now until the next weekday/hour boundary, strictly in the future."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    target += timedelta(days=(weekday - now.weekday()) % 7)
    if target <= now:
        target += timedelta(days=7)
    return (target - now).total_seconds()


class IndicatorScheduler:
    """Runs the topic indicator batch once a week."""

    def __init__(self, store_factory=None):
        self._task: asyncio.Task | None = None
        self._running = False
        self._store_factory = store_factory
        self._weekday = int(os.environ.get("REFRESH_WEEKDAY", str(DEFAULT_REFRESH_WEEKDAY)))
        self._hour = int(os.environ.get("REFRESH_HOUR_UTC", str(DEFAULT_REFRESH_HOUR_UTC)))

    async def start(self):
        """Start the background refresh loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Weekly impact update scheduled (weekday %d, %02d:00 UTC)", self._weekday, self._hour)

    async def stop(self):
        """Stop the background refresh loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Indicator scheduler stopped")

    async def run_once(self):
        """Run one batch, logging instead of raising on failure."""
        from .jobs import compute_impact_for_all_topics
        from .store import TopicStore

        store = self._store_factory() if self._store_factory else TopicStore()
        logger.info("Scheduled weekly impact update started")
        try:
            return await compute_impact_for_all_topics(store)
        except Exception as exc:
            logger.error("Scheduled impact update failed: %s", exc, exc_info=True)
            return None

    async def _run_loop(self):
        while self._running:
            try:
                delay = seconds_until_next_run(datetime.now(timezone.utc), self._weekday, self._hour)
                await asyncio.sleep(delay)
                if not self._running:
                    break
                await self.run_once()
            except asyncio.CancelledError:
                break
