"""
Command routing for inbound chat text.

ROUTER MAP (keyword routing, checked in this order):
- "リスト" / "一覧"            -> list   (pending tasks by deadline)
- "今日"                        -> today  (pending tasks due today)
- "ヘルプ" / "help"             -> help
- contains 削除 + 8-hex id      -> delete
- contains 完了 + 8-hex id      -> complete
- contains 変更 + 8-hex id      -> update (rest of the message is the new date)
- anything else                 -> add    (whole message is the task)

When an intent classifier is configured it is asked first; it can also
produce "edit". If it returns None, keyword routing is used.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from shimekiri.domain.common.errors import DomainError
from shimekiri.domain.tasks import formatting
from shimekiri.domain.tasks.models import STATUS_PENDING, Task
from shimekiri.domain.tasks.ports import Clock, Notifier
from shimekiri.domain.tasks.resolver import resolve
from shimekiri.domain.tasks.service import TaskService, sort_by_deadline

logger = logging.getLogger(__name__)

SHORT_ID_RE = re.compile(r"(?<![0-9a-f])[0-9a-f]{8}(?![0-9a-f])", re.IGNORECASE)
UPDATE_NOISE_RE = re.compile(r"変更|を|に")

LIST_WORDS = ("リスト", "一覧")
TODAY_WORDS = ("今日",)
HELP_WORDS = ("ヘルプ", "help")

# (keyword, action); first keyword present wins
ID_COMMANDS = (
    ("削除", "delete"),
    ("完了", "complete"),
    ("変更", "update"),
)

ACTIONS_NEEDING_ID = ("delete", "complete", "update", "edit")

NOT_FOUND_TEXT = "指定されたIDのタスクが見つかりません。"
ERROR_TEXT = "エラーが発生しました。もう一度お試しください。"
ADD_FAILED_TEXT = "タスクの登録に失敗しました。日付の形式を確認してください。"

USAGE_TEXTS = {
    "delete": "使い方: `削除 [ID]` または `[ID]削除`\nIDはリスト表示時の[]内の文字列です",
    "complete": "使い方: `完了 [ID]` または `[ID]完了`\nIDはリスト表示時の[]内の文字列です",
    "update": "使い方: `[ID] 10/25に変更` または `[ID]を明日に変更`\nIDはリスト表示時の[]内の文字列です",
    "edit": "使い方: `[ID] 編集 新しい内容`\nIDはリスト表示時の[]内の文字列です",
}


class IntentClassifier(Protocol):
    async def classify(self, message: str): ...


@dataclass(frozen=True)
class Command:
    action: str
    short_id: Optional[str] = None
    content: Optional[str] = None
    date_text: Optional[str] = None
    # classifier output: dates are resolved here and passed to the store as instants
    pre_resolved: bool = False


def parse_command(text: str) -> Command:
    content = text.strip()

    if content in LIST_WORDS:
        return Command("list")
    if content in TODAY_WORDS:
        return Command("today")
    if content in HELP_WORDS:
        return Command("help")

    id_match = SHORT_ID_RE.search(content)
    if id_match:
        short_id = id_match.group(0).lower()
        for keyword, action in ID_COMMANDS:
            if keyword not in content:
                continue
            if action == "update":
                date_text = UPDATE_NOISE_RE.sub("", content.replace(id_match.group(0), "")).strip()
                return Command(action, short_id=short_id, date_text=date_text or None)
            return Command(action, short_id=short_id)

    return Command("add", content=content)


class TaskCommandHandler:
    """
    Turns one inbound message into one reply string.

    New tasks are also announced through the notifier; a failed announcement
    is logged and does not change the reply.
    """

    def __init__(
        self,
        service: TaskService,
        clock: Clock,
        notifier: Optional[Notifier] = None,
        classifier: Optional[IntentClassifier] = None,
    ) -> None:
        self._service = service
        self._clock = clock
        self._notifier = notifier
        self._classifier = classifier

    async def route(self, text: str) -> Command:
        if self._classifier is not None:
            intent = await self._classifier.classify(text)
            if intent is not None:
                return Command(
                    action=intent.action,
                    short_id=intent.short_id,
                    content=intent.content,
                    date_text=intent.date_text,
                    pre_resolved=True,
                )
        return parse_command(text)

    async def handle(self, text: str, author_ref: str) -> str:
        cmd = await self.route(text)
        try:
            if cmd.action == "list":
                return await self._list()
            if cmd.action == "today":
                return await self._today()
            if cmd.action == "help":
                return formatting.format_help()
            if cmd.action == "add":
                return await self._add(cmd, text, author_ref)
            return await self._with_task(cmd)
        except DomainError:
            logger.error("Command failed action=%s", cmd.action, exc_info=True)
            return ADD_FAILED_TEXT if cmd.action == "add" else ERROR_TEXT

    # ---- actions ----

    def _deadline_from(self, date_text: str) -> datetime:
        return resolve(date_text, self._clock.now(), self._service.tz).deadline

    async def _list(self) -> str:
        tasks = sort_by_deadline(await self._service.list_tasks(STATUS_PENDING))
        return "📋 タスク一覧\n" + formatting.format_task_list(tasks, self._service.tz)

    async def _today(self) -> str:
        tasks = sort_by_deadline(await self._service.list_due_today())
        return "📅 今日のタスク\n" + formatting.format_task_list(tasks, self._service.tz)

    async def _add(self, cmd: Command, text: str, author_ref: str) -> str:
        body = cmd.content or text.strip()
        if cmd.pre_resolved and cmd.date_text:
            task = await self._service.create(body, author_ref, deadline=self._deadline_from(cmd.date_text))
        else:
            task = await self._service.create(body, author_ref)

        await self._announce(task)
        tz = self._service.tz
        return (
            "✅ タスクを登録しました!\n"
            f"タスクID: {task.short_id}\n"
            f"タスク: {task.title}\n"
            f"期限: {formatting.format_japanese_date(task.deadline, tz)}"
        )

    async def _announce(self, task: Task) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.send_message(formatting.format_new_task_notification(task, self._service.tz))
            logger.info("New task announced id=%s", task.short_id)
        except DomainError as e:
            logger.error("New task announcement failed id=%s: %s", task.short_id, e)

    async def _with_task(self, cmd: Command) -> str:
        if cmd.action not in ACTIONS_NEEDING_ID:
            return ERROR_TEXT
        if not cmd.short_id:
            return USAGE_TEXTS[cmd.action]

        task = await self._service.find_by_short_id(cmd.short_id)
        if task is None:
            return NOT_FOUND_TEXT

        if cmd.action == "delete":
            if await self._service.delete(task.id):
                return f"✅ タスクを削除しました: {task.title}"
            return "タスクの削除に失敗しました。"

        if cmd.action == "complete":
            if await self._service.complete(task.id):
                return f"✅ タスクを完了しました: {task.title}"
            return "タスクの完了処理に失敗しました。"

        if cmd.action == "edit":
            if not cmd.content:
                return USAGE_TEXTS["edit"]
            updated = await self._service.update_content(task.id, cmd.content)
            if updated is None:
                return "タスクの編集に失敗しました。"
            return f"✅ タスクの内容を変更しました: {updated.title}"

        # update
        if not cmd.date_text:
            return (
                "新しい日付を指定してください。\n"
                f"例: `{cmd.short_id} 10/25に変更` または `{cmd.short_id}を明日に変更`"
            )
        if cmd.pre_resolved:
            updated = await self._service.update_deadline(task.id, deadline=self._deadline_from(cmd.date_text))
        else:
            updated = await self._service.update_deadline(task.id, date_text=cmd.date_text)
        if updated is None:
            return "タスクの期限変更に失敗しました。"
        return (
            f"✅ タスクの期限を変更しました: {updated.title}\n"
            f"新しい期限: {formatting.format_japanese_date(updated.deadline, self._service.tz)}"
        )
