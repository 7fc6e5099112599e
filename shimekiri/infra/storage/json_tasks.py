# shimekiri/infra/storage/json_tasks.py
from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Optional, Sequence

from shimekiri.domain.common.errors import StoreWriteError
from shimekiri.domain.common.time import from_iso, to_iso
from shimekiri.domain.tasks.models import PRIORITY_NORMAL, STATUS_PENDING, Task
from shimekiri.domain.tasks.ports import TaskRepository

logger = logging.getLogger(__name__)


class CorruptStoreFile(Exception):
    """A store file exists but does not hold a valid task collection."""


def backup_path_for(path: Path) -> Path:
    # data/tasks.json -> data/tasks.backup.json
    return path.with_name(f"{path.stem}.backup{path.suffix}")


def task_to_record(task: Task) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "deadline": to_iso(task.deadline),
        "priority": task.priority,
        "status": task.status,
        "createdAt": to_iso(task.created_at),
        "createdBy": task.created_by,
    }
    if task.completed_at is not None:
        record["completedAt"] = to_iso(task.completed_at)
    return record


def record_to_task(record: dict[str, Any]) -> Task:
    completed_raw = record.get("completedAt")
    return Task(
        id=str(record["id"]),
        title=str(record.get("title") or ""),
        deadline=from_iso(record["deadline"]),
        priority=record.get("priority") or PRIORITY_NORMAL,
        status=record.get("status") or STATUS_PENDING,
        created_at=from_iso(record["createdAt"]),
        created_by=str(record.get("createdBy") or ""),
        completed_at=from_iso(completed_raw) if completed_raw else None,
    )


class JsonTaskRepository(TaskRepository):
    """
    Flat JSON file holding {"tasks": [...]}, with a one-generation backup.

    Load:
    - primary missing            -> empty collection
    - primary corrupt            -> backup
    - backup missing or corrupt  -> empty collection (the bad primary is left
                                    as is and overwritten by the next save)

    Save:
    - copy primary -> backup (best effort)
    - write tmp sibling, fsync, os.replace over primary

    Blocking file work runs in a worker thread.
    """

    def __init__(self, path: str | Path, backup_path: Optional[str | Path] = None) -> None:
        self._path = Path(path)
        self._backup_path = Path(backup_path) if backup_path else backup_path_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backup_path(self) -> Path:
        return self._backup_path

    async def load_all(self) -> list[Task]:
        return await asyncio.to_thread(self._load_sync)

    async def save_all(self, tasks: Sequence[Task]) -> None:
        payload = {"tasks": [task_to_record(t) for t in tasks]}
        await asyncio.to_thread(self._save_sync, payload)

    # ---- sync internals ----

    @staticmethod
    def _read_file(path: Path) -> list[Task]:
        try:
            # undecodable bytes (UnicodeDecodeError) count as corruption too
            data = json.loads(path.read_text(encoding="utf-8"))
            records = data["tasks"]
            if not isinstance(records, list):
                raise TypeError("'tasks' is not a list")
            return [record_to_task(r) for r in records]
        except (ValueError, KeyError, TypeError) as e:
            raise CorruptStoreFile(f"{path}: {e}") from e

    def _load_sync(self) -> list[Task]:
        try:
            return self._read_file(self._path)
        except FileNotFoundError:
            return []
        except (CorruptStoreFile, OSError) as e:
            logger.warning("Task file unreadable, restoring from backup: %s", e)

        try:
            tasks = self._read_file(self._backup_path)
        except (CorruptStoreFile, OSError) as e:
            logger.error("Backup file unreadable too, starting with an empty task list: %s", e)
            return []
        logger.info("Restored %s tasks from backup %s", len(tasks), self._backup_path)
        return tasks

    def _backup_primary(self) -> None:
        """Copy the primary over the backup, unless the primary is missing or corrupt."""
        try:
            self._read_file(self._path)
        except FileNotFoundError:
            return
        except (CorruptStoreFile, OSError) as e:
            # keep the older good generation instead of backing up garbage
            logger.warning("Skipping backup of unreadable task file: %s", e)
            return
        try:
            shutil.copyfile(self._path, self._backup_path)
        except OSError as e:
            logger.warning("Task file backup failed: %s", e)

    def _save_sync(self, payload: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._backup_primary()

            tmp_path = self._path.with_name(self._path.name + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.error("Failed to save tasks to %s", self._path, exc_info=True)
            raise StoreWriteError(f"could not write {self._path}: {e}") from e
