"""
Overlap Detection

Finds the appointments and blocked slots of one professional that conflict
with a proposed range on a given day. Every comparison goes through the
half-open `overlaps` predicate, so touching ranges never conflict.
"""

import logging
from typing import Iterable, Optional

from .entities import Appointment, AppointmentStatus, BlockedSlot
from .occurrence import MonthlyOverflowPolicy, is_active_on
from .time_range import DateLike, TimeLike, TimeRange, local_calendar_day

logger = logging.getLogger(__name__)


def find_conflicts(
    appointments: Iterable[Appointment],
    professional_id: str,
    day: DateLike,
    start: TimeLike,
    end: TimeLike,
    exclude_id: Optional[str] = None,
) -> list[Appointment]:
    """
    Find appointments that overlap a proposed range.

    Args:
        appointments: snapshot of stored appointments
        professional_id: owner of the calendar being checked
        day: calendar day of the proposed range
        start: proposed start ("HH:MM")
        end: proposed end ("HH:MM")
        exclude_id: appointment being edited or moved, ignored so it never
            conflicts with itself. An unknown id means no exclusion.

    Returns:
        Every conflicting appointment, ordered by start time. Cancelled
        appointments never conflict.
    """
    day = local_calendar_day(day)
    requested = TimeRange.parse(start, end)

    candidates = [appt for appt in appointments if appt.professional_id == professional_id]

    if exclude_id and not any(appt.id == exclude_id for appt in candidates):
        logger.debug(f"Excluded appointment {exclude_id} not found, checking without exclusion")

    conflicts = [
        appt
        for appt in candidates
        if appt.id != exclude_id
        and appt.status is not AppointmentStatus.CANCELLED
        and local_calendar_day(appt.date) == day
        and requested.overlaps(appt.time_range)
    ]
    return sorted(conflicts, key=lambda appt: appt.time_range.start)


def find_blocked_conflicts(
    blocked_slots: Iterable[BlockedSlot],
    professional_id: str,
    day: DateLike,
    start: TimeLike,
    end: TimeLike,
    policy: Optional[MonthlyOverflowPolicy] = None,
) -> list[BlockedSlot]:
    """Find blocked slots active on `day` that overlap a proposed range"""
    day = local_calendar_day(day)
    requested = TimeRange.parse(start, end)

    conflicts = [
        slot
        for slot in blocked_slots
        if slot.professional_id == professional_id
        and is_active_on(slot, day, policy)
        and requested.overlaps(slot.time_range)
    ]
    return sorted(conflicts, key=lambda slot: slot.time_range.start)
