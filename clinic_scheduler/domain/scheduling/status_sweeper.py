"""
Automated status transitions for appointments
Handles scheduled/confirmed -> completed once an appointment has ended
"""

import logging
from datetime import datetime
from typing import Iterable

from .entities import Appointment, AppointmentStatus
from .errors import InvalidStatusTransition
from .time_range import to_local_naive

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Manual transitions; terminal states only move with an admin override
VALID_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.NO_SHOW: set(),
}


def sweep(now: datetime, appointments: Iterable[Appointment]) -> list[str]:
    """
    Mark every past, non-terminal appointment as completed.

    Args:
        now: current instant; aware values are converted to local wall-clock
        appointments: snapshot to reconcile, mutated in place

    Returns:
        Ids of the appointments flipped to completed. Running again with the
        same `now` returns an empty list.
    """
    now = to_local_naive(now)
    flipped = []

    for appt in appointments:
        if appt.status in TERMINAL_STATUSES:
            continue
        if appt.ends_at < now:
            logger.info(f"✅ Appointment {appt.id} transitioned: {appt.status.value} → completed")
            appt.status = AppointmentStatus.COMPLETED
            flipped.append(appt.id)

    return flipped


def validate_status_transition(
    current: AppointmentStatus,
    new: AppointmentStatus,
    admin_override: bool = False,
) -> bool:
    """
    Validate a manual appointment status change.

    Raises:
        InvalidStatusTransition: If the change moves backwards without an override
    """
    if current == new or admin_override:
        return True
    if new in VALID_TRANSITIONS[current]:
        return True
    raise InvalidStatusTransition(current.value, new.value)
