from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Optional, TypeVar

from shimekiri.domain.common.time import ensure_aware
from shimekiri.domain.tasks.models import (
    PRIORITY_NORMAL,
    SHORT_ID_LENGTH,
    STATUS_COMPLETED,
    STATUS_PENDING,
    Task,
    TaskFilter,
)
from shimekiri.domain.tasks.ports import Clock, IdGenerator, TaskRepository
from shimekiri.domain.tasks.resolver import resolve

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_UPCOMING_DAYS = 3


def sort_by_deadline(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: t.deadline)


class TaskService:
    """
    Task lifecycle: create, query, complete, reschedule, edit, delete, sweep.
    No aiogram. No file handling (that's the repository).

    Every mutation is load -> mutate -> save under one asyncio.Lock, so two
    messages handled back to back cannot overwrite each other's change.
    Reads skip the lock; the repository replaces its file atomically, so a read
    sees either the previous or the next complete collection.

    Lookups that miss return None (or False for delete); they do not raise.
    """

    def __init__(self, repo: TaskRepository, clock: Clock, ids: IdGenerator, tz: tzinfo) -> None:
        self._repo = repo
        self._clock = clock
        self._ids = ids
        self._tz = tz
        self._write_lock = asyncio.Lock()

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return ensure_aware(now) if now is not None else self._clock.now()

    async def _mutate(self, fn: Callable[[list[Task]], tuple[Optional[list[Task]], T]]) -> T:
        """
        Run fn on the loaded collection under the write lock.

        fn returns (new collection or None, result). None means nothing changed
        and nothing is written.
        """
        async with self._write_lock:
            tasks = await self._repo.load_all()
            updated, result = fn(tasks)
            if updated is not None:
                await self._repo.save_all(updated)
            return result

    # ---- create ----

    async def create(self, text: str, author_ref: str, deadline: Optional[datetime] = None) -> Task:
        """
        Create a pending task.

        With `deadline` (already resolved by the caller) it is used verbatim and
        priority is normal; otherwise the text goes through the resolver.
        """
        now = self._clock.now()
        if deadline is not None:
            ensure_aware(deadline)
            title, priority = text.strip(), PRIORITY_NORMAL
        else:
            resolution = resolve(text, now, self._tz)
            deadline, title, priority = resolution.deadline, resolution.title, resolution.priority

        task = Task(
            id=self._ids.new_id(),
            title=title,
            deadline=deadline,
            priority=priority,
            status=STATUS_PENDING,
            created_at=now,
            created_by=author_ref,
        )

        def add(tasks: list[Task]) -> tuple[list[Task], Task]:
            return [*tasks, task], task

        created = await self._mutate(add)
        logger.info("Task created id=%s deadline=%s priority=%s", created.short_id, created.deadline.isoformat(), created.priority)
        return created

    # ---- queries ----

    async def list_tasks(self, status: TaskFilter = "all") -> list[Task]:
        tasks = await self._repo.load_all()
        if status == "all":
            return tasks
        return [t for t in tasks if t.status == status]

    async def list_due_today(self, now: Optional[datetime] = None) -> list[Task]:
        """Pending tasks due within the local calendar day of `now`."""
        local_now = self._now(now).astimezone(self._tz)
        start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)
        return [t for t in await self.list_tasks(STATUS_PENDING) if start <= t.deadline < end]

    async def list_upcoming(self, now: Optional[datetime] = None, horizon_days: int = DEFAULT_UPCOMING_DAYS) -> list[Task]:
        """Pending tasks due in [now, now + horizon_days], earliest first."""
        start = self._now(now)
        end = start + timedelta(days=horizon_days)
        tasks = [t for t in await self.list_tasks(STATUS_PENDING) if start <= t.deadline <= end]
        return sort_by_deadline(tasks)

    async def find_by_short_id(self, short_id: str) -> Optional[Task]:
        """
        First task (in collection order) whose id starts with short_id.

        Two ids sharing the same 8-char prefix are not disambiguated; the
        collision is only logged.
        """
        prefix = short_id.strip().lower()[:SHORT_ID_LENGTH]
        if len(prefix) < SHORT_ID_LENGTH:
            return None
        matches = [t for t in await self._repo.load_all() if t.id.lower().startswith(prefix)]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning("Short id %s matches %s tasks; using the first", prefix, len(matches))
        return matches[0]

    async def find_by_index(self, index: int) -> Optional[Task]:
        """1-based position among pending tasks ordered by deadline."""
        pending = sort_by_deadline(await self.list_tasks(STATUS_PENDING))
        if index < 1 or index > len(pending):
            return None
        return pending[index - 1]

    # ---- mutations ----

    async def _update_one(self, task_id: str, change: Callable[[Task], Optional[Task]]) -> Optional[Task]:
        """Apply change to the task with task_id. change returns None for "leave as is"."""

        def apply(tasks: list[Task]) -> tuple[Optional[list[Task]], Optional[Task]]:
            for i, task in enumerate(tasks):
                if task.id != task_id:
                    continue
                new_task = change(task)
                if new_task is None:
                    return None, task
                return [*tasks[:i], new_task, *tasks[i + 1:]], new_task
            return None, None

        return await self._mutate(apply)

    async def complete(self, task_id: str) -> Optional[Task]:
        now = self._clock.now()

        def mark_done(task: Task) -> Optional[Task]:
            if task.status == STATUS_COMPLETED:
                # completed_at is set once; repeat calls leave it alone
                return None
            return replace(task, status=STATUS_COMPLETED, completed_at=now)

        task = await self._update_one(task_id, mark_done)
        if task:
            logger.info("Task completed id=%s", task.short_id)
        return task

    async def delete(self, task_id: str) -> bool:
        def remove(tasks: list[Task]) -> tuple[Optional[list[Task]], bool]:
            kept = [t for t in tasks if t.id != task_id]
            if len(kept) == len(tasks):
                return None, False
            return kept, True

        deleted = await self._mutate(remove)
        if deleted:
            logger.info("Task deleted id=%s", task_id[:SHORT_ID_LENGTH])
        return deleted

    async def update_deadline(
        self,
        task_id: str,
        date_text: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> Optional[Task]:
        """
        Reschedule a task from date text (resolver) or an already-resolved
        deadline. Only the deadline changes; the title stays as it was.
        """
        if deadline is None:
            if date_text is None:
                raise ValueError("date_text or deadline is required")
            deadline = resolve(date_text, self._clock.now(), self._tz).deadline
        else:
            ensure_aware(deadline)

        task = await self._update_one(task_id, lambda t: replace(t, deadline=deadline))
        if task:
            logger.info("Task rescheduled id=%s deadline=%s", task.short_id, deadline.isoformat())
        return task

    async def update_content(self, task_id: str, new_title: str) -> Optional[Task]:
        return await self._update_one(task_id, lambda t: replace(t, title=new_title))

    async def archive_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every pending task whose deadline is before `now`.

        Despite the name nothing is kept elsewhere: expired tasks are removed.
        Returns the number removed.
        """
        cutoff = self._now(now)

        def sweep(tasks: list[Task]) -> tuple[Optional[list[Task]], int]:
            kept = [t for t in tasks if not (t.is_pending and t.deadline < cutoff)]
            removed = len(tasks) - len(kept)
            return (kept if removed else None), removed

        count = await self._mutate(sweep)
        if count:
            logger.info("Archived %s expired tasks", count)
        return count
