from __future__ import annotations

import uuid

from shimekiri.domain.tasks.ports import IdGenerator


class UuidGenerator(IdGenerator):
    # users address tasks by the first 8 hex chars (Task.short_id)
    def new_id(self) -> str:
        return str(uuid.uuid4())
