from dataclasses import dataclass
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    bot_token: str
    chatwork_api_token: str
    chatwork_room_id: str
    timezone: str
    tasks_path: Path
    morning_notify_hour: int
    upcoming_days: int
    openai_api_key: str
    openai_model: str
    log_level: str


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"{name} missing in .env")
    return value


def _int_env(name: str, default: int, lo: int, hi: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None
    if not lo <= value <= hi:
        raise RuntimeError(f"{name} must be between {lo} and {hi}, got {value}")
    return value


def load_settings() -> Settings:
    tz = os.getenv("TIMEZONE", "Asia/Tokyo").strip() or "Asia/Tokyo"
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise RuntimeError(f"TIMEZONE {tz!r} is not a known timezone") from None

    # tasks_path may be relative; the composition root anchors it
    return Settings(
        bot_token=_required("BOT_TOKEN"),
        chatwork_api_token=_required("CHATWORK_API_TOKEN"),
        chatwork_room_id=_required("CHATWORK_ROOM_ID"),
        timezone=tz,
        tasks_path=Path(os.getenv("TASKS_PATH", "data/tasks.json").strip()),
        morning_notify_hour=_int_env("MORNING_NOTIFY_HOUR", 8, 0, 23),
        upcoming_days=_int_env("UPCOMING_DAYS", 3, 1, 365),
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini",
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
