"""
Booking Validator

Accepts or rejects a create, edit or drag-reschedule request for one
professional's calendar:

    BookingRequest --build_candidate--> BookingCandidate --validate--> Accepted | Rejected

The request is the draft; the resolved candidate is the checked draft.
Only the terminal outcome is carried by `BookingState`.

Checks run in a fixed order: business-day policy, blocked slots, then
competing appointments. Blocked-slot entries always come first in the
conflict report so the administrative reason surfaces before an overlap.
A rejection is a returned value, never an exception.
"""

import enum
import logging
from datetime import date
from typing import Callable, Iterable, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .entities import Appointment, BlockedSlot, normalize_time
from .errors import InvalidFormat
from .occurrence import MonthlyOverflowPolicy
from .overlap import find_blocked_conflicts, find_conflicts
from .time_range import TimeRange, add_minutes, local_calendar_day

logger = logging.getLogger(__name__)

BusinessDayPolicy = Callable[[date], bool]
SubjectResolver = Callable[[Appointment], str]

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class BookingState(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ConflictSource(str, enum.Enum):
    POLICY = "policy"
    BLOCKED_SLOT = "blocked_slot"
    APPOINTMENT = "appointment"


class BookingRequest(BaseModel):
    """Raw candidate built from a booking form or a drag-and-drop gesture"""

    professional_id: str
    date: date
    start_time: str
    end_time: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    exclude_id: Optional[str] = None  # appointment being edited or moved

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return local_calendar_day(v)

    @field_validator("start_time", mode="before")
    @classmethod
    def validate_start(cls, v):
        return normalize_time(v)

    @field_validator("end_time", mode="before")
    @classmethod
    def validate_end(cls, v):
        if v is None or v == "":
            return None
        return normalize_time(v)


class BookingCandidate(BaseModel):
    """Draft with a resolved end time"""

    professional_id: str
    date: date
    start_time: str
    end_time: str
    exclude_id: Optional[str] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange.parse(self.start_time, self.end_time)


class ConflictEntry(BaseModel):
    source: ConflictSource
    source_id: Optional[str] = None
    date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    label: str

    def describe(self) -> str:
        if self.source is ConflictSource.POLICY:
            return self.label
        kind = "Blocked" if self.source is ConflictSource.BLOCKED_SLOT else "Appointment"
        return f"{kind} {self.start_time}-{self.end_time}: {self.label}"


class ConflictReport(BaseModel):
    entries: list[ConflictEntry] = Field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.entries)

    def summary(self) -> str:
        """Human-readable report, one conflict per line"""
        if not self.entries:
            return "No conflicts"
        lines = [f"{len(self.entries)} conflict(s) found:"]
        lines.extend(f"- {entry.describe()}" for entry in self.entries)
        return "\n".join(lines)


class BookingDecision(BaseModel):
    state: BookingState
    candidate: BookingCandidate
    report: ConflictReport = Field(default_factory=ConflictReport)

    @property
    def accepted(self) -> bool:
        return self.state is BookingState.ACCEPTED


def build_candidate(request: BookingRequest) -> BookingCandidate:
    """Resolve the Draft: derive the end time from the duration when missing"""
    end_time = request.end_time
    if end_time is None:
        if request.duration_minutes is None:
            raise InvalidFormat("Either an end time or a duration is required")
        end_time = add_minutes(request.start_time, request.duration_minutes)

    TimeRange.parse(request.start_time, end_time)

    return BookingCandidate(
        professional_id=request.professional_id,
        date=request.date,
        start_time=request.start_time,
        end_time=end_time,
        exclude_id=request.exclude_id,
    )


def weekday_policy(weekdays: Iterable[int]) -> Optional[BusinessDayPolicy]:
    """Business-day predicate allowing only the given weekdays (Monday=0).

    Returns None (no restriction) when every weekday is allowed.
    """
    allowed = frozenset(weekdays)
    if not allowed or allowed >= set(range(7)):
        return None
    return lambda day: day.weekday() in allowed


def default_subject(appointment: Appointment) -> str:
    return appointment.subject_ref or appointment.kind.value


class BookingValidator:
    """Runs the ordered conflict checks against an in-memory snapshot"""

    def __init__(
        self,
        business_day_policy: Optional[BusinessDayPolicy] = None,
        monthly_policy: Optional[MonthlyOverflowPolicy] = None,
        subject_resolver: Optional[SubjectResolver] = None,
    ):
        self.business_day_policy = business_day_policy
        self.monthly_policy = monthly_policy
        self.subject_resolver = subject_resolver or default_subject

    def validate(
        self,
        request: Union[BookingRequest, BookingCandidate],
        appointments: Iterable[Appointment],
        blocked_slots: Iterable[BlockedSlot],
    ) -> BookingDecision:
        candidate = request if isinstance(request, BookingCandidate) else build_candidate(request)
        logger.debug(
            f"Checking {candidate.date} {candidate.start_time}-{candidate.end_time} "
            f"for professional {candidate.professional_id}"
        )

        if self.business_day_policy and not self.business_day_policy(candidate.date):
            entry = ConflictEntry(
                source=ConflictSource.POLICY,
                date=candidate.date,
                label=f"{WEEKDAY_NAMES[candidate.date.weekday()]} {candidate.date} is not a business day",
            )
            return self._reject(candidate, [entry])

        blocked = find_blocked_conflicts(
            blocked_slots,
            candidate.professional_id,
            candidate.date,
            candidate.start_time,
            candidate.end_time,
            self.monthly_policy,
        )
        overlapping = find_conflicts(
            appointments,
            candidate.professional_id,
            candidate.date,
            candidate.start_time,
            candidate.end_time,
            candidate.exclude_id,
        )

        entries = [
            ConflictEntry(
                source=ConflictSource.BLOCKED_SLOT,
                source_id=slot.id,
                date=candidate.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                label=slot.reason or "Blocked time",
            )
            for slot in blocked
        ]
        entries.extend(
            ConflictEntry(
                source=ConflictSource.APPOINTMENT,
                source_id=appt.id,
                date=appt.date,
                start_time=appt.start_time,
                end_time=appt.end_time,
                label=self.subject_resolver(appt),
            )
            for appt in overlapping
        )

        if entries:
            return self._reject(candidate, entries)

        return BookingDecision(state=BookingState.ACCEPTED, candidate=candidate)

    @staticmethod
    def _reject(candidate: BookingCandidate, entries: list[ConflictEntry]) -> BookingDecision:
        report = ConflictReport(entries=entries)
        logger.info(
            f"🚫 Booking rejected for professional {candidate.professional_id} on {candidate.date} "
            f"{candidate.start_time}-{candidate.end_time}: {len(entries)} conflict(s)"
        )
        return BookingDecision(state=BookingState.REJECTED, candidate=candidate, report=report)
