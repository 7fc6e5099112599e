# -*- coding: utf-8 -*-
"""
Fixed-template text for chat replies and Chatwork notifications.

All datetimes are shown in the configured timezone. Chatwork markup
([info], [title]) is used for outbound notifications only.
"""
from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Sequence

from shimekiri.domain.tasks.models import PRIORITY_URGENT, Task

EMPTY_LIST_TEXT = "タスクはありません。"

ICON_URGENT = "🔴"
ICON_NORMAL = "⚪"
ICON_UPCOMING = "🟡"

HELP_TEXT = """\
タスク管理Bot - 使い方

📝 タスク登録
自然言語でタスクを入力してください。
例:
- 明日レポート提出
- 3日後に会議
- 来週月曜に資料作成
- 今週金曜15時に打ち合わせ
- 月末までに請求書

📋 コマンド
`リスト` または `一覧` - 全タスクを表示
`今日` - 今日期限のタスクを表示
`削除 [ID]` - タスクを削除
`完了 [ID]` - タスクを完了にする
`[ID] 10/25に変更` または `[ID]を明日に変更` - タスクの期限を変更
`ヘルプ` - このヘルプを表示

🔔 通知
- タスク登録時: 即時通知
- 毎朝: 今日と数日以内のタスク
- 期限1時間前: 個別タスク通知"""


def format_japanese_date(dt: datetime, tz: tzinfo) -> str:
    return dt.astimezone(tz).strftime("%Y年%m月%d日 %H:%M")


def format_task_date(dt: datetime, tz: tzinfo) -> str:
    return dt.astimezone(tz).strftime("%m/%d %H:%M")


def _hm(dt: datetime, tz: tzinfo) -> str:
    return dt.astimezone(tz).strftime("%H:%M")


def priority_icon(task: Task) -> str:
    return ICON_URGENT if task.priority == PRIORITY_URGENT else ICON_NORMAL


def format_task_list(tasks: Sequence[Task], tz: tzinfo) -> str:
    """Numbered list: `1. 🔴 [abcd1234] title (2025年06月11日 15:00)`."""
    if not tasks:
        return EMPTY_LIST_TEXT
    return "\n".join(
        f"{i}. {priority_icon(t)} [{t.short_id}] {t.title} ({format_japanese_date(t.deadline, tz)})"
        for i, t in enumerate(tasks, start=1)
    )


def format_daily_notification(
    today_tasks: Sequence[Task],
    upcoming_tasks: Sequence[Task],
    now: datetime,
    tz: tzinfo,
) -> str:
    """
    Morning digest. Upcoming tasks that are already listed under today
    (deadline before tomorrow 00:00 local) are left out of the second section.
    """
    local_now = now.astimezone(tz)
    date_str = f"{local_now.year}年{local_now.month}月{local_now.day}日"
    lines = [f"[info][title]📋 タスク通知 - {date_str}[/title]", "", "【今日期限のタスク】"]

    if today_tasks:
        lines.extend(f"{ICON_URGENT} {t.title} ({_hm(t.deadline, tz)})" for t in today_tasks)
    else:
        lines.append("なし")

    tomorrow = local_now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    upcoming = [t for t in upcoming_tasks if t.deadline >= tomorrow]
    if upcoming:
        lines.extend(["", "【数日以内のタスク】"])
        for t in upcoming:
            d = t.deadline.astimezone(tz)
            lines.append(f"{ICON_UPCOMING} {t.title} ({d.month}/{d.day} {_hm(d, tz)})")

    return "\n".join(lines) + "\n[/info]"


def format_new_task_notification(task: Task, tz: tzinfo) -> str:
    d = task.deadline.astimezone(tz)
    return (
        "[info][title]📝 新規タスク登録[/title]\n"
        f"タスクID: {task.short_id}\n"
        f"タスク: {task.title}\n"
        f"期限: {d.month}月{d.day}日 {_hm(d, tz)}\n\n"
        f"完了する場合は「完了 {task.short_id}」または「{task.short_id}完了」と送信してください。\n"
        "[/info]"
    )


def format_deadline_notification(task: Task, tz: tzinfo) -> str:
    return (
        "[info][title]⏰ タスク期限通知[/title]\n"
        f"タスク: {task.title}\n"
        f"期限: あと1時間 ({_hm(task.deadline, tz)})\n"
        "[/info]"
    )


def format_help() -> str:
    return HELP_TEXT
