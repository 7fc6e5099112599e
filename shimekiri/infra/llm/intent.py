# -*- coding: utf-8 -*-
"""
Intent classification for inbound messages using the OpenAI Chat Completions API.
Optional: without OPENAI_API_KEY the router uses keyword routing only.
Do not log the API key.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

INTENT_MODEL = "gpt-4o-mini"
INTENT_MAX_TOKENS = 200
INTENT_TEMPERATURE = 0.1

ACTIONS = ("list", "today", "help", "complete", "delete", "edit", "update", "add")

_SHORT_ID_RE = re.compile(r"^[0-9a-fA-F]{8}$")

SYSTEM_PROMPT_JA = """あなたはタスク管理Botのメッセージ解析アシスタントです。
ユーザーのメッセージから以下の情報を抽出してJSON形式で返してください：

- action: ユーザーの意図（以下のいずれか）
  * "list": タスク一覧を表示
  * "today": 今日のタスクを表示
  * "help": ヘルプを表示
  * "complete": タスクを完了にする
  * "delete": タスクを削除
  * "edit": タスクの内容を編集
  * "update": タスクの期限を変更
  * "add": 新しいタスクを追加（デフォルト）

- taskId: タスクID（8文字の英数字）が含まれる場合は抽出、なければnull
- content: 編集後のタスク内容、または新規タスクの内容（actionがeditまたはaddの場合）
- dateText: 期限の日付表現（actionがupdateまたはaddの場合）

必ずJSON形式のみを返してください。説明文は不要です。

例1: "be4bc269 編集 楽天CSV対応 https://example.com"
→ {"action":"edit","taskId":"be4bc269","content":"楽天CSV対応 https://example.com","dateText":null}

例2: "be4bc269を削除"
→ {"action":"delete","taskId":"be4bc269","content":null,"dateText":null}

例3: "be4bc269を明日に変更"
→ {"action":"update","taskId":"be4bc269","content":null,"dateText":"明日"}

例4: "明日レポート提出"
→ {"action":"add","taskId":null,"content":"レポート提出","dateText":"明日"}

例5: "リスト"
→ {"action":"list","taskId":null,"content":null,"dateText":null}"""


@dataclass(frozen=True)
class Intent:
    action: str
    short_id: Optional[str] = None
    content: Optional[str] = None
    date_text: Optional[str] = None


def _opt_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_intent_reply(raw: str) -> Optional[Intent]:
    """
    Parse the model's JSON reply. Returns None when the reply is not a JSON
    object with a known action. A taskId that is not 8 hex chars is dropped.
    """
    text = raw.strip()
    # models sometimes wrap JSON in a ```json fence
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    action = data.get("action")
    if action not in ACTIONS:
        return None

    short_id = _opt_str(data.get("taskId"))
    if short_id and not _SHORT_ID_RE.match(short_id):
        short_id = None

    return Intent(
        action=action,
        short_id=short_id.lower() if short_id else None,
        content=_opt_str(data.get("content")),
        date_text=_opt_str(data.get("dateText")),
    )


class OpenAIIntentClassifier:
    def __init__(self, api_key: str, model: str = INTENT_MODEL, client: Optional[AsyncOpenAI] = None) -> None:
        self._model = model
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def classify(self, message: str) -> Optional[Intent]:
        """Return the parsed intent, or None on any API or parse failure."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT_JA},
                    {"role": "user", "content": message},
                ],
                temperature=INTENT_TEMPERATURE,
                max_tokens=INTENT_MAX_TOKENS,
            )
        except openai.OpenAIError as e:
            logger.warning("Intent classification failed: %s", e)
            return None

        if not response.choices:
            return None
        content = response.choices[0].message.content or ""
        intent = parse_intent_reply(content)
        if intent is None:
            logger.warning("Intent classifier returned an unusable reply")
        else:
            logger.debug("Intent action=%s short_id=%s", intent.action, intent.short_id)
        return intent
