from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

Priority = Literal["normal", "urgent"]
TaskStatus = Literal["pending", "completed"]
TaskFilter = Literal["pending", "completed", "all"]

PRIORITY_NORMAL: Priority = "normal"
PRIORITY_URGENT: Priority = "urgent"

STATUS_PENDING: TaskStatus = "pending"
STATUS_COMPLETED: TaskStatus = "completed"

SHORT_ID_LENGTH = 8


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    deadline: datetime
    priority: Priority
    status: TaskStatus
    created_at: datetime
    created_by: str
    completed_at: Optional[datetime] = None

    @property
    def short_id(self) -> str:
        return self.id[:SHORT_ID_LENGTH]

    @property
    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING


@dataclass(frozen=True)
class Resolution:
    """Result of resolving free text: absolute deadline, priority tag, title."""

    deadline: datetime
    priority: Priority
    title: str
