"""
Inbound chat messages -> TaskCommandHandler -> reply.

ROUTER MAP:
- /start, /help  - help text
- any other text - routed by TaskCommandHandler (list/today/help/delete/complete/update/edit/add)
"""
from __future__ import annotations

import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from shimekiri.domain.tasks import formatting
from shimekiri.ui.commands import ERROR_TEXT, TaskCommandHandler

logger = logging.getLogger(__name__)

router = Router()


def author_ref(message: Message) -> str:
    return str(message.from_user.id) if message.from_user else "unknown"


@router.message(CommandStart())
@router.message(Command("help"))
async def help_cmd(message: Message) -> None:
    await message.answer(formatting.format_help())


@router.message(F.text)
async def msg_text_handler(message: Message, commands: TaskCommandHandler) -> None:
    # ignore other bots, and slash commands nobody handled above
    if message.from_user and message.from_user.is_bot:
        return
    text = (message.text or "").strip()
    if not text or text.startswith("/"):
        return

    try:
        reply = await commands.handle(text, author_ref(message))
    except Exception:
        logger.error("Message handling failed", exc_info=True)
        reply = ERROR_TEXT
    await message.reply(reply)
