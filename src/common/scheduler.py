# === MODULE PURPOSE ===
# Daily wall-clock task scheduler.
# Runs registered coroutines once per day at a fixed time (e.g. daily summary).

# === DEPENDENCIES ===
# - None (pure Python, asyncio only)

# === KEY CONCEPTS ===
# - ScheduledTask: task id + hour/minute + coroutine factory + next run time
# - Poll loop: checks due tasks every `check_interval` seconds
# - Isolation: a failing task is logged and rescheduled, the loop keeps going

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# Type alias for scheduled coroutines
TaskFunc = Callable[[], Awaitable[None]]


@dataclass
class ScheduledTask:
    """A task that runs once per day at hour:minute."""

    task_id: str
    hour: int
    minute: int
    func: TaskFunc
    next_run: datetime

    @property
    def time_str(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class DailyScheduler:
    """
    Scheduler for tasks that run every day at a fixed wall-clock time.

    Usage:
        scheduler = DailyScheduler(tz=ZoneInfo("America/New_York"))

        async def send_summary():
            ...
        scheduler.schedule_daily("daily_summary", 16, 0, send_summary)

        scheduler.start()   # inside a running event loop
        ...
        await scheduler.stop()

    Note:
        Missed runs (process down at the scheduled time) are not replayed;
        the next run is always the next future occurrence.
    """

    def __init__(self, tz: ZoneInfo | None = None, check_interval: float = 60.0):
        """
        Args:
            tz: Timezone of the hour/minute values. Defaults to local time.
            check_interval: Seconds between due-task checks.
        """
        self._tz = tz
        self._check_interval = check_interval
        self._tasks: dict[str, ScheduledTask] = {}
        self._loop_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def _now(self) -> datetime:
        return datetime.now(self._tz)

    def next_run_time(self, hour: int, minute: int, now: datetime | None = None) -> datetime:
        """
        Next occurrence of hour:minute strictly after now.

        If the time has already passed today (or is exactly now), the next
        run is tomorrow.
        """
        if now is None:
            now = self._now()

        next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if next_run <= now:
            next_run += timedelta(days=1)
        return next_run

    def schedule_daily(
        self,
        task_id: str,
        hour: int,
        minute: int,
        func: TaskFunc,
        now: datetime | None = None,
    ) -> ScheduledTask:
        """
        Register (or replace) a daily task.

        Raises:
            ValueError: If hour/minute are out of range.
        """
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Invalid schedule time {hour}:{minute}")

        task = ScheduledTask(
            task_id=task_id,
            hour=hour,
            minute=minute,
            func=func,
            next_run=self.next_run_time(hour, minute, now),
        )
        self._tasks[task_id] = task
        logger.info(
            f"Scheduled task {task_id} daily at {task.time_str} "
            f"(next run: {task.next_run.isoformat()})"
        )
        return task

    def cancel(self, task_id: str) -> None:
        """Remove a task if registered."""
        self._tasks.pop(task_id, None)

    async def run_pending(self, now: datetime | None = None) -> list[str]:
        """
        Run every task whose next run time has been reached.

        Returns:
            Ids of tasks that were run (including failed ones).
        """
        if now is None:
            now = self._now()

        ran: list[str] = []
        for task in list(self._tasks.values()):
            if now < task.next_run:
                continue

            logger.info(f"Running task {task.task_id}")
            try:
                await task.func()
            except Exception as e:
                logger.error(f"Error running task {task.task_id}: {e}", exc_info=True)

            task.next_run = self.next_run_time(task.hour, task.minute, now)
            logger.info(f"Next run of task {task.task_id}: {task.next_run.isoformat()}")
            ran.append(task.task_id)

        return ran

    def start(self) -> None:
        """Start the polling loop on the running event loop."""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info("Scheduler started")

    async def stop(self) -> None:
        """Stop the polling loop."""
        if self._loop_task is None:
            return

        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None
        logger.info("Scheduler stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            await self.run_pending()
