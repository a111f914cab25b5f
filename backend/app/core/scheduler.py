"""
Materialization Scheduler

Long-lived background loop that runs the recurrence materializer at a fixed
interval. The caller owns the scheduler instance and drives it through
``start`` / ``stop``; there is no module-level singleton.

- Ticks never overlap: the next one is scheduled only after the current one
  returns.
- Missed ticks are dropped, not caught up. The materialization window is
  wide enough for the next tick to backfill a short gap.
- Every tick runs inside its own error boundary; a failing tick is logged,
  recorded and the loop carries on.
- Across several processes only the holder of the "recurrence-materializer"
  lock runs a given tick.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from app.core import utcnow
from app.core.errors import StoreError
from app.core.materializer import DEFAULT_SKEW, DEFAULT_WINDOW, RecurrenceMaterializer, TickReport
from app.repositories.store import EntityStore

logger = logging.getLogger(__name__)

LOCK_NAME = "recurrence-materializer"
_MIN_LOCK_TTL_SECONDS = 30


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class MaterializationScheduler:
    def __init__(self, store: EntityStore, skew: timedelta = DEFAULT_SKEW, use_lock: bool = True):
        self.store = store
        self.materializer = RecurrenceMaterializer(store, window=DEFAULT_WINDOW, skew=skew)
        self.use_lock = use_lock

        self.state = SchedulerState.STOPPED
        self.interval_seconds: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

        self.ticks = 0
        self.last_tick_at: Optional[datetime] = None
        self.last_report: Optional[TickReport] = None
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0

    @property
    def stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def start(
        self,
        interval: Union[timedelta, float],
        window: timedelta = DEFAULT_WINDOW,
    ) -> None:
        """Start firing ticks every ``interval``, materializing ``window`` ahead."""
        if self.state == SchedulerState.RUNNING:
            logger.warning("Materialization scheduler already running")
            return

        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if seconds <= 0:
            raise ValueError("Scheduler interval must be positive")

        self.interval_seconds = seconds
        self.materializer.window = window
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="recurrence-materializer")
        self.state = SchedulerState.RUNNING
        logger.info(f"Materialization scheduler started (interval={seconds}s, window={window})")

    async def stop(self) -> None:
        """Request a stop and wait for the in-flight tick to finish."""
        if self.state == SchedulerState.STOPPED:
            return
        logger.info("Stopping materialization scheduler...")
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
            self.state = SchedulerState.STOPPED
            logger.info("Materialization scheduler stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time()

        while not self._stop_event.is_set():
            await self.tick()

            next_fire += self.interval_seconds
            now = loop.time()
            if next_fire <= now:
                missed = int((now - next_fire) // self.interval_seconds) + 1
                next_fire += missed * self.interval_seconds
                logger.warning(f"Materialization tick overran; skipping {missed} tick(s)")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=next_fire - loop.time())
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> Optional[TickReport]:
        """Run one materialization pass. Never raises."""
        self.ticks += 1
        self.last_tick_at = utcnow()
        holder_id = None
        try:
            if self.use_lock:
                ttl = max(_MIN_LOCK_TTL_SECONDS, int(2 * (self.interval_seconds or 0)))
                holder_id = await self.store.try_lock(LOCK_NAME, ttl)
                if holder_id is None:
                    logger.info("Materialization tick skipped: another process holds the lock")
                    return None

            report = await self.materializer.run_tick(should_stop=lambda: self.stop_requested)
        except Exception as e:
            self.consecutive_failures += 1
            self.last_error = f"{type(e).__name__}: {e}"
            logger.exception(f"Materialization tick failed ({self.consecutive_failures} in a row)")
            return None
        finally:
            if holder_id is not None:
                try:
                    await self.store.release_lock(LOCK_NAME, holder_id)
                except StoreError as e:
                    logger.warning(f"Could not release {LOCK_NAME} lock: {e}")

        self.last_report = report
        self.last_error = None
        self.consecutive_failures = 0
        logger.info(f"Materialization tick finished: {report.summary()}")
        return report
