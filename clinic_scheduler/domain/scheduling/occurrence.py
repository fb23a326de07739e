"""
Occurrence resolution for blocked time windows

Decides whether a (possibly recurring) blocked slot applies on a calendar
date. Exception dates always win over the recurrence pattern.
"""

import calendar
import enum
import logging
from datetime import date
from typing import Iterable, Optional

from ...config import MONTHLY_OVERFLOW_POLICY
from .entities import BlockedSlot, BlockedSlotRecurrence, Occurrence, OccurrenceSource
from .errors import SchedulingError
from .time_range import DateLike, local_calendar_day

logger = logging.getLogger(__name__)


class MonthlyOverflowPolicy(str, enum.Enum):
    """What a monthly item anchored on day 29-31 does in a shorter month"""

    SKIP = "skip"  # no occurrence that month
    CLAMP = "clamp"  # occurs on the month's last day


def default_monthly_policy() -> MonthlyOverflowPolicy:
    try:
        return MonthlyOverflowPolicy(MONTHLY_OVERFLOW_POLICY.lower())
    except ValueError:
        logger.warning(
            f"⚠️ Unknown MONTHLY_OVERFLOW_POLICY '{MONTHLY_OVERFLOW_POLICY}', using 'skip'"
        )
        return MonthlyOverflowPolicy.SKIP


def monthly_day_matches(anchor_day: int, day: date, policy: MonthlyOverflowPolicy) -> bool:
    """Check whether `day` carries the monthly occurrence of an item anchored on `anchor_day`"""
    if day.day == anchor_day:
        return True
    if policy is MonthlyOverflowPolicy.CLAMP:
        last_day = calendar.monthrange(day.year, day.month)[1]
        return anchor_day > last_day and day.day == last_day
    return False


def is_active_on(
    slot: BlockedSlot,
    day: DateLike,
    policy: Optional[MonthlyOverflowPolicy] = None,
) -> bool:
    """Return True if the blocked slot applies on the given calendar day"""
    day = local_calendar_day(day)

    if day in slot.exceptions:
        return False

    if slot.recurrence is BlockedSlotRecurrence.NONE:
        return day == slot.date
    if slot.recurrence is BlockedSlotRecurrence.WEEKLY:
        return day.weekday() == slot.date.weekday()
    if slot.recurrence is BlockedSlotRecurrence.MONTHLY:
        return monthly_day_matches(slot.date.day, day, policy or default_monthly_policy())

    raise SchedulingError(f"Unhandled blocked slot recurrence: {slot.recurrence}")


def occurrences_on(
    slots: Iterable[BlockedSlot],
    day: DateLike,
    policy: Optional[MonthlyOverflowPolicy] = None,
) -> list[Occurrence]:
    """Materialize the blocked slots active on one day as occurrences"""
    day = local_calendar_day(day)
    return [
        Occurrence(
            source=OccurrenceSource.BLOCKED_SLOT,
            source_id=slot.id,
            date=day,
            start_time=slot.start_time,
            end_time=slot.end_time,
            label=slot.reason,
        )
        for slot in slots
        if is_active_on(slot, day, policy)
    ]
