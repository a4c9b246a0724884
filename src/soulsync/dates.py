"""Calendar helpers shared by the streak and insight calculations."""

import math
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Literal
from zoneinfo import ZoneInfo

WeekStart = Literal["sunday", "monday"]

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def resolve_timezone(name: str | tzinfo) -> tzinfo:
    if isinstance(name, tzinfo):
        return name
    return ZoneInfo(name)


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of ``moment`` in the user's timezone."""
    return moment.astimezone(tz).date()


def start_of_week(now: datetime, tz: tzinfo, week_start: WeekStart = "sunday") -> datetime:
    """Midnight at the beginning of the calendar week containing ``now``."""
    today = local_date(now, tz)
    # date.weekday(): Monday == 0
    if week_start == "sunday":
        offset = (today.weekday() + 1) % 7
    else:
        offset = today.weekday()
    first_day = today - timedelta(days=offset)
    return datetime.combine(first_day, time.min, tzinfo=tz)


def end_of_week(now: datetime, tz: tzinfo, week_start: WeekStart = "sunday") -> datetime:
    """Last instant of the calendar week containing ``now``."""
    return start_of_week(now, tz, week_start) + timedelta(days=7) - timedelta(microseconds=1)


def round_half_up(value: float) -> int:
    """Round halves towards positive infinity."""
    return math.floor(value + 0.5)


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))
