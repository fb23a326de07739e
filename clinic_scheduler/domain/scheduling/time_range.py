"""
Time-range utilities for the scheduling engine

Minute-of-day conversion, the half-open overlap predicate and the single
"local calendar day" extraction used everywhere a date enters the engine.

Dates are stored either as bare "YYYY-MM-DD" strings or as full ISO
timestamps. Truncating a timestamp in UTC can move it to the previous or next
day, so aware values are always converted to the clinic's local timezone
before the date is taken.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import NamedTuple, Optional, Union

from dateutil import tz

from ...config import LOCAL_TIMEZONE
from .errors import InvalidFormat

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, datetime, str]
TimeLike = Union[str, time]


def local_timezone(name: Optional[str] = None) -> tzinfo:
    """Resolve the configured clinic timezone"""
    zone_name = name or LOCAL_TIMEZONE
    zone = tz.gettz(zone_name)
    if zone is None:
        logger.warning(f"⚠️ Unknown timezone '{zone_name}', falling back to system local time")
        return tz.tzlocal()
    return zone


def to_local_naive(value: datetime, zone: Optional[tzinfo] = None) -> datetime:
    """Convert a datetime to naive local wall-clock time.

    Naive datetimes are assumed to already be local and are returned as-is.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(zone or local_timezone()).replace(tzinfo=None)


def local_calendar_day(value: DateLike, zone: Optional[tzinfo] = None) -> date:
    """
    Extract the local calendar day from any stored date representation.

    Args:
        value: date, datetime, "YYYY-MM-DD" or ISO-8601 timestamp
        zone: local timezone override (defaults to LOCAL_TIMEZONE)

    Returns:
        The calendar day as seen on the clinic's wall clock

    Raises:
        InvalidFormat: If the value cannot be parsed
    """
    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        return to_local_naive(value, zone).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidFormat(f"Unsupported date value: {value!r}")

    text = value.strip()
    try:
        if _DATE_PATTERN.match(text):
            return date.fromisoformat(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidFormat(f"Invalid date '{value}'. Expected YYYY-MM-DD or ISO timestamp") from None

    return to_local_naive(parsed, zone).date()


def to_minutes(value: TimeLike) -> int:
    """Convert "HH:MM" (24h) to minutes since midnight"""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise InvalidFormat(f"Invalid time {value!r}. Expected HH:MM")

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidFormat(f"Invalid time '{value}'. Expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight back to HH:MM"""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidFormat(f"{minutes} minutes is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(start: TimeLike, minutes: int) -> str:
    """Derive an end time from a start time and a duration"""
    total = to_minutes(start) + minutes
    if total >= MINUTES_PER_DAY:
        raise InvalidFormat(f"{start} plus {minutes} minutes crosses midnight")
    return minutes_to_time(total)


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """
    Half-open interval overlap test: [a_start, a_end) vs [b_start, b_end).

    Ranges that only touch (a_end == b_start) do not overlap, so
    back-to-back appointments are legal.
    """
    return a_start < b_end and b_start < a_end


def combine_date_and_time(day: DateLike, value: TimeLike) -> datetime:
    """Build a naive local datetime from a calendar day and an HH:MM time"""
    minutes = to_minutes(value)
    return datetime.combine(local_calendar_day(day), time.min) + timedelta(minutes=minutes)


class TimeRange(NamedTuple):
    """A [start, end) range in minutes since midnight"""

    start: int
    end: int

    @classmethod
    def parse(cls, start: TimeLike, end: TimeLike) -> "TimeRange":
        start_minutes = to_minutes(start)
        end_minutes = to_minutes(end)
        if start_minutes >= end_minutes:
            raise InvalidFormat(f"Start time {start} must be before end time {end}")
        return cls(start_minutes, end_minutes)

    def overlaps(self, other: "TimeRange") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)

    def __str__(self) -> str:
        return f"{self.start_time}-{self.end_time}"
