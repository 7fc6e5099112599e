# shimekiri/infra/scheduler/loop.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from shimekiri.domain.common.errors import DomainError
from shimekiri.domain.tasks import formatting
from shimekiri.domain.tasks.models import STATUS_PENDING, Task
from shimekiri.domain.tasks.ports import Clock, Notifier
from shimekiri.domain.tasks.service import DEFAULT_UPCOMING_DAYS, TaskService, sort_by_deadline

logger = logging.getLogger(__name__)

# deadline notices go out for tasks due 60..70 minutes from the hourly check
DEADLINE_NOTICE_LEAD = timedelta(minutes=60)
DEADLINE_NOTICE_WINDOW = timedelta(minutes=70)


@dataclass
class SchedulerConfig:
    morning_hour: int = 8
    upcoming_days: int = DEFAULT_UPCOMING_DAYS
    poll_seconds: int = 30


def tasks_due_for_notice(tasks: list[Task], now: datetime) -> list[Task]:
    """Pending tasks with now+60min < deadline <= now+70min."""
    lower = now + DEADLINE_NOTICE_LEAD
    upper = now + DEADLINE_NOTICE_WINDOW
    return [t for t in tasks if t.status == STATUS_PENDING and lower < t.deadline <= upper]


class NotificationScheduler:
    """
    Hour-boundary scheduler:
    - every new local hour: one-hour-before deadline notices
    - at cfg.morning_hour: daily digest (today + upcoming)

    Polls every cfg.poll_seconds and fires when the local hour changes; the
    hour running at startup is not fired. Tick errors are logged, never raised.
    """

    def __init__(
        self,
        service: TaskService,
        notifier: Notifier,
        clock: Clock,
        tz: tzinfo,
        cfg: SchedulerConfig = SchedulerConfig(),
    ) -> None:
        self._service = service
        self._notifier = notifier
        self._clock = clock
        self._tz = tz
        self._cfg = cfg
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._last_hour: Optional[datetime] = None

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever())
        logger.info(
            "Scheduler started: digest daily at %02d:00, deadline check hourly",
            self._cfg.morning_hour,
        )

    async def stop(self) -> None:
        self._stop.set()
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Scheduler stopped")

    async def run_forever(self) -> None:
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception as e:
                # never crash the bot because of scheduler, but log errors
                logger.error(f"Scheduler tick error: {e}", exc_info=True)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=self._cfg.poll_seconds)

    async def tick(self) -> None:
        now = self._clock.now().astimezone(self._tz)
        hour = now.replace(minute=0, second=0, microsecond=0)
        previous, self._last_hour = self._last_hour, hour
        if previous is None or previous == hour:
            # first tick only records the baseline, like a cron that starts mid-hour
            return

        await self.check_deadline_notifications(now)
        if now.hour == self._cfg.morning_hour:
            await self.send_daily_notification(now)

    async def send_daily_notification(self, now: Optional[datetime] = None) -> None:
        now = now or self._clock.now()
        today = sort_by_deadline(await self._service.list_due_today(now))
        upcoming = await self._service.list_upcoming(now, self._cfg.upcoming_days)
        message = formatting.format_daily_notification(today, upcoming, now, self._tz)
        logger.info("Sending daily digest: today=%s upcoming=%s", len(today), len(upcoming))
        await self._notifier.send_message(message)

    async def check_deadline_notifications(self, now: Optional[datetime] = None) -> int:
        """Send one notice per task due in about an hour. Returns how many were sent."""
        now = now or self._clock.now()
        due = tasks_due_for_notice(await self._service.list_tasks(STATUS_PENDING), now)
        sent = 0
        for task in due:
            try:
                await self._notifier.send_message(formatting.format_deadline_notification(task, self._tz))
                sent += 1
                logger.info("Deadline notice sent id=%s", task.short_id)
            except DomainError as e:
                logger.error("Deadline notice failed id=%s: %s", task.short_id, e)
        return sent

    async def send_test_notification(self) -> bool:
        try:
            await self.send_daily_notification()
        except DomainError as e:
            logger.error("Test notification failed: %s", e)
            return False
        return True
