"""
Unit tests for the JSON task file: layout, backup generation, corruption recovery.

Run with: python -m pytest tests/test_json_tasks.py -v
"""
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from shimekiri.domain.common.errors import StoreWriteError
from shimekiri.domain.tasks.models import Task
from shimekiri.infra.storage.json_tasks import JsonTaskRepository, backup_path_for, record_to_task
from tests.fakes import TOKYO


def _task(n: int, **overrides) -> Task:
    values = dict(
        id=f"{n:08x}-0000-4000-8000-000000000000",
        title=f"task {n}",
        deadline=datetime(2025, 6, 11, 15, 0, tzinfo=TOKYO),
        priority="normal",
        status="pending",
        created_at=datetime(2025, 6, 10, 9, 0, tzinfo=TOKYO),
        created_by="tg:1",
    )
    values.update(overrides)
    return Task(**values)


def test_backup_path_sits_next_to_primary():
    assert backup_path_for(Path("data/tasks.json")) == Path("data/tasks.backup.json")


def test_missing_file_loads_empty():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            assert await repo.load_all() == []

    asyncio.run(run())


def test_first_save_creates_parent_dir_and_no_backup():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "data", "tasks.json"))
            await repo.save_all([_task(1)])
            assert repo.path.exists()
            assert not repo.backup_path.exists()
            assert not repo.path.with_name("tasks.json.tmp").exists()

    asyncio.run(run())


def test_file_layout_uses_camel_case_and_utc_iso():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            completed = _task(
                2,
                status="completed",
                completed_at=datetime(2025, 6, 10, 12, 0, tzinfo=TOKYO),
                title="完了済み",
            )
            await repo.save_all([_task(1), completed])

            data = json.loads(repo.path.read_text(encoding="utf-8"))
            first, second = data["tasks"]
            assert first == {
                "id": "00000001-0000-4000-8000-000000000000",
                "title": "task 1",
                "deadline": "2025-06-11T06:00:00+00:00",
                "priority": "normal",
                "status": "pending",
                "createdAt": "2025-06-10T00:00:00+00:00",
                "createdBy": "tg:1",
            }
            assert second["completedAt"] == "2025-06-10T03:00:00+00:00"
            # non-ASCII is written as is
            assert "完了済み" in repo.path.read_text(encoding="utf-8")

    asyncio.run(run())


def test_save_then_load_returns_equal_tasks():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            tasks = [_task(1), _task(2, priority="urgent")]
            await repo.save_all(tasks)
            assert await repo.load_all() == tasks

    asyncio.run(run())


def test_second_save_keeps_previous_generation_as_backup():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            await repo.save_all([_task(1)])
            await repo.save_all([_task(1), _task(2)])

            backup = json.loads(repo.backup_path.read_text(encoding="utf-8"))
            assert [r["title"] for r in backup["tasks"]] == ["task 1"]
            assert len(await repo.load_all()) == 2

    asyncio.run(run())


def test_corrupt_primary_falls_back_to_backup():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            await repo.save_all([_task(1)])
            await repo.save_all([_task(1), _task(2)])
            repo.path.write_text("{not json", encoding="utf-8")

            restored = await repo.load_all()
            assert [t.title for t in restored] == ["task 1"]

            # next mutation writes a good primary and keeps the good backup
            await repo.save_all([*restored, _task(3)])
            primary = json.loads(repo.path.read_text(encoding="utf-8"))
            backup = json.loads(repo.backup_path.read_text(encoding="utf-8"))
            assert [r["title"] for r in primary["tasks"]] == ["task 1", "task 3"]
            assert [r["title"] for r in backup["tasks"]] == ["task 1"]

    asyncio.run(run())


def test_wrong_shape_counts_as_corrupt():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            repo.path.write_text(json.dumps({"tasks": {"id": "x"}}), encoding="utf-8")
            assert await repo.load_all() == []

    asyncio.run(run())


def test_corrupt_primary_and_backup_load_empty():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            repo.path.write_text("garbage", encoding="utf-8")
            repo.backup_path.write_text("[]", encoding="utf-8")
            assert await repo.load_all() == []

    asyncio.run(run())


def test_unwritable_location_raises_store_write_error():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "blocker"
            blocker.write_text("a file, not a directory", encoding="utf-8")
            repo = JsonTaskRepository(blocker / "tasks.json")
            with pytest.raises(StoreWriteError):
                await repo.save_all([_task(1)])

    asyncio.run(run())


def test_record_without_optional_fields_gets_defaults():
    task = record_to_task({
        "id": "abc",
        "deadline": "2025-06-11T06:00:00",
        "createdAt": "2025-06-10T00:00:00Z",
    })
    assert task.priority == "normal"
    assert task.status == "pending"
    assert task.title == ""
    assert task.completed_at is None
    assert task.deadline == datetime(2025, 6, 11, 6, 0, tzinfo=timezone.utc)


def test_undecodable_primary_falls_back_to_backup():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            await repo.save_all([_task(1)])
            await repo.save_all([_task(1), _task(2)])
            repo.path.write_bytes(b'{"tasks": [\xff\xfe garbage')

            restored = await repo.load_all()
            assert [t.title for t in restored] == ["task 1"]

            # saving over the bad primary leaves the good backup alone
            await repo.save_all([*restored, _task(3)])
            backup = json.loads(repo.backup_path.read_text(encoding="utf-8"))
            assert [r["title"] for r in backup["tasks"]] == ["task 1"]
            assert [t.title for t in await repo.load_all()] == ["task 1", "task 3"]

    asyncio.run(run())


def test_undecodable_primary_without_backup_loads_empty():
    async def run():
        with tempfile.TemporaryDirectory() as tmp:
            repo = JsonTaskRepository(os.path.join(tmp, "tasks.json"))
            repo.path.write_bytes(b"\xff\xfe\x00")
            assert await repo.load_all() == []

    asyncio.run(run())
