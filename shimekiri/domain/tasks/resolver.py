"""
Temporal expression resolver for Japanese free text.

Two independent passes run over the same text. Each pass is an ordered tuple
of rules evaluated first-match-wins; the order of DATE_RULES and TIME_RULES is
part of the contract (tests pin it):

    DATE_RULES -> calendar date   (no match: today)
    TIME_RULES -> (hour, minute)  (no match: 23:59)

The resolver is pure: `now` and the timezone are always passed in.

A rule whose match does not form a valid calendar date (e.g. "2/30") counts as
no match and evaluation continues with the next rule, so resolve() never fails
for aware input.

Some patterns carry lookbehinds so that a broad rule does not claim a phrase
owned by a more specific later rule: bare 月末 skips 来月末, bare weekdays skip
来週, and H時 skips 午前/午後.
"""
from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Optional

from shimekiri.domain.common.time import ensure_aware
from shimekiri.domain.tasks.models import PRIORITY_NORMAL, PRIORITY_URGENT, Priority, Resolution

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ("重要", "緊急", "至急")

DEFAULT_HOUR = 23
DEFAULT_MINUTE = 59

DateFn = Callable[[re.Match[str], date], Optional[date]]
TimeFn = Callable[[re.Match[str]], tuple[int, int]]


@dataclass(frozen=True)
class DateRule:
    name: str
    pattern: re.Pattern[str]
    resolve: DateFn


@dataclass(frozen=True)
class TimeRule:
    name: str
    pattern: re.Pattern[str]
    resolve: TimeFn


# ---- date helpers ----

def add_months(d: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    years, month_index = divmod(d.month - 1 + months, 12)
    year = d.year + years
    month = month_index + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def start_of_month(d: date) -> date:
    return d.replace(day=1)


def end_of_month(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def next_weekday(today: date, weekday: int, weeks_ahead: int = 0) -> date:
    """Next date with the given weekday (Monday=0) on or after today, plus whole weeks."""
    delta = (weekday - today.weekday()) % 7
    return today + timedelta(days=delta + 7 * weeks_ahead)


def month_day_rolling(month: int, day: int, today: date) -> Optional[date]:
    """
    Month/day without a year: this year, or next year when this year's date is
    already past (or does not exist, e.g. 2/29).
    """
    try:
        candidate = date(today.year, month, day)
    except ValueError:
        candidate = None
    if candidate is None or candidate < today:
        try:
            candidate = date(today.year + 1, month, day)
        except ValueError:
            return None
    return candidate


# ---- date rules ----

def _full_date(m: re.Match[str], today: date) -> Optional[date]:
    return date(int(m[1]), int(m[2]), int(m[3]))


def _month_day(m: re.Match[str], today: date) -> Optional[date]:
    return month_day_rolling(int(m[1]), int(m[2]), today)


def _offset_days(days: int) -> DateFn:
    return lambda m, today: today + timedelta(days=days)


def _weekday(weekday: int, weeks_ahead: int) -> DateFn:
    return lambda m, today: next_weekday(today, weekday, weeks_ahead)


_WEEKDAYS = "月火水木金土日"  # index == date.weekday()

DATE_RULES: tuple[DateRule, ...] = (
    # 1. absolute date
    DateRule("full_date", re.compile(r"(?<!\d)(\d{4})/(\d{1,2})/(\d{1,2})(?!\d)"), _full_date),
    # 2-3. month/day, rolled to next year when already past
    DateRule("slash_month_day", re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})(?!\d)"), _month_day),
    DateRule("kanji_month_day", re.compile(r"(?<!\d)(\d{1,2})月(\d{1,2})日"), _month_day),
    # 4. single-day keywords
    DateRule("today", re.compile(r"今日"), _offset_days(0)),
    DateRule("tomorrow", re.compile(r"明日"), _offset_days(1)),
    DateRule("day_after_tomorrow", re.compile(r"明後日"), _offset_days(2)),
    DateRule("yesterday", re.compile(r"昨日"), _offset_days(-1)),
    # 5. relative offsets
    DateRule(
        "days_later",
        re.compile(r"(\d+)日後"),
        lambda m, today: today + timedelta(days=int(m[1])),
    ),
    DateRule(
        "weeks_later",
        re.compile(r"(\d+)週間?後"),
        lambda m, today: today + timedelta(weeks=int(m[1])),
    ),
    DateRule(
        "months_later",
        re.compile(r"(\d+)[ヶかカケヵ]?月後"),
        lambda m, today: add_months(today, int(m[1])),
    ),
    # 6. month boundaries
    DateRule("this_month_end", re.compile(r"今月末|(?<!来)月末"), lambda m, today: end_of_month(today)),
    DateRule("next_month_end", re.compile(r"来月末"), lambda m, today: end_of_month(add_months(today, 1))),
    DateRule("this_month_start", re.compile(r"今月初|(?<!来)月初"), lambda m, today: start_of_month(today)),
    DateRule("next_month_start", re.compile(r"来月初"), lambda m, today: start_of_month(add_months(today, 1))),
    # 7. weekdays: this week (also bare), then next week
    *(
        DateRule(f"this_week_{i}", re.compile(rf"(?<!来週)(?<!来週の){k}曜"), _weekday(i, 0))
        for i, k in enumerate(_WEEKDAYS)
    ),
    *(
        DateRule(f"next_week_{i}", re.compile(rf"来週の?{k}曜"), _weekday(i, 1))
        for i, k in enumerate(_WEEKDAYS)
    ),
)

TIME_RULES: tuple[TimeRule, ...] = (
    TimeRule(
        "hour_minute",
        re.compile(r"(?<!午前)(?<!午後)(?<!\d)(\d{1,2})時(?:(\d{1,2})分?)?"),
        lambda m: (int(m[1]), int(m[2] or 0)),
    ),
    TimeRule("am", re.compile(r"午前(\d{1,2})時"), lambda m: (int(m[1]), 0)),
    TimeRule("pm", re.compile(r"午後(\d{1,2})時"), lambda m: (int(m[1]) + 12, 0)),
    TimeRule(
        "colon",
        re.compile(r"(?<!\d)(\d{1,2}):(\d{2})(?!\d)"),
        lambda m: (int(m[1]), int(m[2])),
    ),
)


# ---- passes ----

def resolve_date(text: str, today: date) -> tuple[date, str]:
    """Return (date, rule name). Falls back to today with rule name 'default'."""
    for rule in DATE_RULES:
        m = rule.pattern.search(text)
        if not m:
            continue
        try:
            resolved = rule.resolve(m, today)
        except (ValueError, OverflowError):
            resolved = None
        if resolved is not None:
            return resolved, rule.name
    return today, "default"


def resolve_time(text: str) -> tuple[int, int, str]:
    """Return (hour, minute, rule name). Falls back to 23:59."""
    for rule in TIME_RULES:
        m = rule.pattern.search(text)
        if m:
            hour, minute = rule.resolve(m)
            return hour, minute, rule.name
    return DEFAULT_HOUR, DEFAULT_MINUTE, "default"


def detect_priority(text: str) -> Priority:
    if any(k in text for k in URGENT_KEYWORDS):
        return PRIORITY_URGENT
    return PRIORITY_NORMAL


def resolve(text: str, now: datetime, tz: tzinfo) -> Resolution:
    """
    Resolve free text into a deadline, priority and title.

    The deadline is the resolved date at the resolved wall-clock time in `tz`.
    Hours or minutes past the end of the day roll into the next day
    (午後12時 -> 00:00 of the following day).

    The title is the trimmed input; matched date/time phrases stay in it.
    """
    ensure_aware(now)
    today = now.astimezone(tz).date()

    target, date_rule = resolve_date(text, today)
    hour, minute, time_rule = resolve_time(text)

    try:
        wall = datetime.combine(target, time()) + timedelta(hours=hour, minutes=minute)
    except OverflowError:
        # rolling past 9999-12-31; keep the resolved date at the default time
        wall = datetime.combine(target, time(DEFAULT_HOUR, DEFAULT_MINUTE))
        time_rule = "default"
    deadline = wall.replace(tzinfo=tz)

    logger.debug("Resolved deadline=%s date_rule=%s time_rule=%s", deadline.isoformat(), date_rule, time_rule)
    return Resolution(deadline=deadline, priority=detect_priority(text), title=text.strip())
