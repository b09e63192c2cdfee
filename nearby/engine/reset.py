from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from loguru import logger

from nearby.core.config import RESET_HOUR, RESET_UTC_OFFSET_HOURS
from nearby.schemas.enums import ResetReason

RESET_TZ = timezone(timedelta(hours=RESET_UTC_OFFSET_HOURS))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_reset_boundary(from_: datetime) -> datetime:
    """
    Next daily reset instant strictly after from_.

    The boundary is RESET_HOUR:00 local time in RESET_TZ on from_'s local
    date; once that has passed, it is the same time the following day.
    """
    if from_.tzinfo is None:
        from_ = from_.replace(tzinfo=timezone.utc)
    local = from_.astimezone(RESET_TZ)
    boundary = local.replace(hour=RESET_HOUR, minute=0, second=0, microsecond=0)
    if from_ >= boundary:
        boundary += timedelta(hours=24)
    return boundary.astimezone(timezone.utc)


class DailyResetScheduler:
    """
    Runs store.reset_all("auto") at every reset boundary.

    A single asyncio task sleeps until the next boundary, resets, then
    recomputes the boundary from the clock. stop() cancels the pending
    sleep.
    """

    def __init__(
        self,
        store,
        boundary: Callable[[datetime], datetime] = next_reset_boundary,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._boundary = boundary
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.next_run_at: Optional[datetime] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Daily reset scheduler stopped")

    def fire(self) -> None:
        try:
            self._store.reset_all(ResetReason.auto)
        except Exception:
            logger.exception("Automatic reset failed")
        self.runs += 1

    async def _run(self) -> None:
        while True:
            now = self._clock()
            # sleep() can wake a little before the wall clock reaches the
            # boundary; never schedule the boundary that just fired again
            since = now
            if self.next_run_at is not None and self.next_run_at > since:
                since = self.next_run_at
            self.next_run_at = self._boundary(since)
            delay = max(0.001, (self.next_run_at - now).total_seconds())
            logger.info(f"Next automatic reset at {self.next_run_at.isoformat()} (in {delay:.0f}s)")

            await asyncio.sleep(delay)
            self.fire()
