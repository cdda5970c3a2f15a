"""Calendar bucketing helpers.

All bucketing happens in UTC. Week keys are ISO 8601 week identifiers
(``"2026-W06"``): weeks start on Monday and the week containing
Dec 29 - Jan 4 belongs to whichever year owns its Thursday. Zero-padded
keys sort lexicographically in chronological order.
"""

from __future__ import annotations

import math
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum


class DayOfWeek(StrEnum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


# date.weekday(): Monday == 0
_WEEKDAYS: tuple[DayOfWeek, ...] = tuple(DayOfWeek)

_SECONDS_PER_DAY = 24 * 3600


def to_utc(ts: datetime) -> datetime:
    """Return *ts* in UTC; naive datetimes are taken to already be UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def week_key_for_date(day: date) -> str:
    iso = day.isocalendar()
    return f"{iso.year:04d}-W{iso.week:02d}"


def week_key_of(ts: datetime) -> str:
    """ISO week key of the UTC calendar day *ts* falls on."""
    return week_key_for_date(to_utc(ts).date())


def day_of_week_of(ts: datetime) -> DayOfWeek:
    """Day-of-week label of the UTC calendar day *ts* falls on."""
    return _WEEKDAYS[to_utc(ts).weekday()]


def date_key_of(ts: datetime) -> str:
    """``YYYY-MM-DD`` of the UTC calendar day *ts* falls on."""
    return to_utc(ts).date().isoformat()


def parse_week_key(key: str) -> tuple[int, int]:
    """Split ``"YYYY-Www"`` into ``(year, week)``.

    Raises :class:`ValueError` for malformed keys.
    """
    year_part, sep, week_part = key.partition("-W")
    if not sep or len(year_part) != 4 or len(week_part) != 2:
        raise ValueError(f"invalid ISO week key: {key!r}")
    year, week = int(year_part), int(week_part)
    # fromisocalendar validates week 53 against the year
    date.fromisocalendar(year, week, 1)
    return year, week


def week_start_of(key: str) -> date:
    """Monday of the ISO week identified by *key*."""
    year, week = parse_week_key(key)
    return date.fromisocalendar(year, week, 1)


def week_bounds(key: str) -> tuple[date, date]:
    """``(monday, sunday)`` of the ISO week identified by *key*."""
    start = week_start_of(key)
    return start, start + timedelta(days=6)


def recent_week_keys(now: datetime, num_weeks: int) -> list[str]:
    """The *num_weeks* calendar weeks ending with *now*'s week, oldest first."""
    if num_weeks <= 0:
        return []
    today = to_utc(now).date()
    monday = today - timedelta(days=today.weekday())
    return [week_key_for_date(monday - timedelta(weeks=offset)) for offset in range(num_weeks - 1, -1, -1)]


def recent_date_keys(now: datetime, num_days: int) -> list[str]:
    """The *num_days* calendar days ending with *now*'s day, oldest first."""
    if num_days <= 0:
        return []
    today = to_utc(now).date()
    return [(today - timedelta(days=offset)).isoformat() for offset in range(num_days - 1, -1, -1)]


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for non-negative values (``2.5 -> 3``)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from *start* to *end*, rounded to the nearest day."""
    seconds = (to_utc(end) - to_utc(start)).total_seconds()
    return int(math.copysign(round_half_up(abs(seconds) / _SECONDS_PER_DAY), seconds))
