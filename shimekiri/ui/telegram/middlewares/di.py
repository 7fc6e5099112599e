from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from shimekiri.ui.commands import TaskCommandHandler


class DIMiddleware(BaseMiddleware):
    """
    Puts the command handler into aiogram's `data`, so handlers receive it
    as the `commands` keyword argument.
    """

    def __init__(self, commands: TaskCommandHandler) -> None:
        self._commands = commands

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        data["commands"] = self._commands
        return await handler(event, data)
