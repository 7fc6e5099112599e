from __future__ import annotations

from datetime import datetime, timezone

from shimekiri.domain.common.errors import ValidationError


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValidationError("datetime must be timezone-aware")
    return dt


def to_iso(dt: datetime) -> str:
    ensure_aware(dt)
    # stored as UTC ISO 8601 with offset
    return dt.astimezone(timezone.utc).isoformat()


def from_iso(s: str) -> datetime:
    dt = datetime.fromisoformat(s)
    # legacy files may hold naive values; read them as UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
