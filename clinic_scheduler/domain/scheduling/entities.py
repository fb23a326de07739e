"""Scheduling entities - the in-memory snapshot the engine works on"""

import enum
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .time_range import TimeRange, combine_date_and_time, local_calendar_day, minutes_to_time, to_minutes


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class AppointmentKind(str, enum.Enum):
    PATIENT = "patient"
    PERSONAL = "personal"  # free-title event, no patient attached


class BlockedSlotRecurrence(str, enum.Enum):
    NONE = "none"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecurrenceFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class CalendarSyncOp(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OccurrenceSource(str, enum.Enum):
    APPOINTMENT = "appointment"
    BLOCKED_SLOT = "blocked_slot"


def normalize_time(value):
    """Validate HH:MM and zero-pad it ("9:00" -> "09:00")"""
    return minutes_to_time(to_minutes(value))


class RecurrenceRule(BaseModel):
    """Rule used to generate a series of appointments from a template"""

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    end_date: Optional[date] = None
    count: Optional[int] = Field(default=None, ge=1)

    @field_validator("end_date", mode="before")
    @classmethod
    def normalize_end_date(cls, v):
        if v is None or v == "":
            return None
        return local_calendar_day(v)

    class Config:
        from_attributes = True


class Appointment(BaseModel):
    id: str
    professional_id: str
    date: date
    start_time: str
    end_time: str
    duration_minutes: Optional[int] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    kind: AppointmentKind = AppointmentKind.PATIENT
    subject_ref: str = ""  # patient id, patient name or free title
    notes: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None
    series_id: Optional[str] = None
    external_event_id: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return local_calendar_day(v)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_time(cls, v):
        return normalize_time(v)

    @model_validator(mode="after")
    def check_range(self):
        time_range = TimeRange.parse(self.start_time, self.end_time)
        if self.duration_minutes is None:
            self.duration_minutes = time_range.end - time_range.start
        return self

    @property
    def time_range(self) -> TimeRange:
        return TimeRange.parse(self.start_time, self.end_time)

    @property
    def ends_at(self) -> datetime:
        """Local wall-clock instant at which the appointment ends"""
        return combine_date_and_time(self.date, self.end_time)

    class Config:
        from_attributes = True


class BlockedSlot(BaseModel):
    id: str
    professional_id: str
    date: date  # anchor date for recurring slots
    start_time: str
    end_time: str
    reason: str = ""
    recurrence: BlockedSlotRecurrence = BlockedSlotRecurrence.NONE
    exceptions: list[date] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v):
        return local_calendar_day(v)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_time(cls, v):
        return normalize_time(v)

    @field_validator("exceptions", mode="before")
    @classmethod
    def normalize_exceptions(cls, v):
        days = []
        for value in v or []:
            day = local_calendar_day(value)
            if day not in days:
                days.append(day)
        return days

    @model_validator(mode="after")
    def check_range(self):
        TimeRange.parse(self.start_time, self.end_time)
        return self

    @property
    def time_range(self) -> TimeRange:
        return TimeRange.parse(self.start_time, self.end_time)

    class Config:
        from_attributes = True


class Occurrence(BaseModel):
    """A concrete (date, start, end) instance computed on demand, never stored"""

    source: OccurrenceSource
    source_id: str
    date: date
    start_time: str
    end_time: str
    label: str = ""
