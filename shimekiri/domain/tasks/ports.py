from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Sequence

from shimekiri.domain.tasks.models import Task


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class IdGenerator(ABC):
    @abstractmethod
    def new_id(self) -> str: ...


class TaskRepository(ABC):
    """
    Whole-collection persistence. The service reads everything, mutates in
    memory and writes everything back.
    """

    @abstractmethod
    async def load_all(self) -> list[Task]: ...

    @abstractmethod
    async def save_all(self, tasks: Sequence[Task]) -> None: ...


class Notifier(ABC):
    @abstractmethod
    async def send_message(self, body: str) -> None: ...
