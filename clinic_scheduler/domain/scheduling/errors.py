"""Scheduling domain errors"""


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling engine"""


class InvalidFormat(SchedulingError, ValueError):
    """Malformed time or date input. Never silently coerced."""


class NotFound(SchedulingError, LookupError):
    """Referenced professional, appointment or blocked slot does not exist"""


class InvalidStatusTransition(SchedulingError):
    """Appointment status change that would move backwards without an override"""

    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Cannot change appointment status from '{current}' to '{new}'")


class LockTimeout(SchedulingError):
    """Another booking for the same professional held the calendar lock too long"""
