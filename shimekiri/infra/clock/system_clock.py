from __future__ import annotations

from datetime import datetime, tzinfo

from shimekiri.domain.tasks.ports import Clock


class SystemClock(Clock):
    """Wall clock in the bot's configured zone; `now()` is always aware."""

    def __init__(self, tz: tzinfo) -> None:
        self._tz = tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)
