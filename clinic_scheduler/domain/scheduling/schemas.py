"""Scheduling domain schemas - Pydantic models for request/response validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .entities import (
    Appointment,
    AppointmentKind,
    AppointmentStatus,
    BlockedSlot,
    BlockedSlotRecurrence,
    Occurrence,
    OccurrenceSource,
    RecurrenceFrequency,
    normalize_time,
)
from .validator import BookingDecision, ConflictReport


def _optional_time(v):
    if v is None or v == "":
        return None
    return normalize_time(v)


class RecurrenceRuleIn(BaseModel):
    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    endDate: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=1)


class BookingCheckRequest(BaseModel):
    """Schema for a validation-only booking check"""

    date: str  # YYYY-MM-DD or ISO timestamp
    startTime: str
    endTime: Optional[str] = None
    durationMinutes: Optional[int] = Field(default=None, ge=1)
    excludeId: Optional[str] = None

    @field_validator("startTime")
    @classmethod
    def validate_start(cls, v):
        return normalize_time(v)

    @field_validator("endTime")
    @classmethod
    def validate_end(cls, v):
        return _optional_time(v)


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment"""

    date: str
    startTime: str
    endTime: Optional[str] = None
    durationMinutes: Optional[int] = Field(default=None, ge=1)
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    kind: AppointmentKind = AppointmentKind.PATIENT
    subjectRef: str = ""
    notes: Optional[str] = None

    @field_validator("startTime")
    @classmethod
    def validate_start(cls, v):
        return normalize_time(v)

    @field_validator("endTime")
    @classmethod
    def validate_end(cls, v):
        return _optional_time(v)


class AppointmentUpdate(BaseModel):
    """Schema for editing an existing appointment"""

    date: Optional[str] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    durationMinutes: Optional[int] = Field(default=None, ge=1)
    status: Optional[AppointmentStatus] = None
    kind: Optional[AppointmentKind] = None
    subjectRef: Optional[str] = None
    notes: Optional[str] = None
    adminOverride: bool = False

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return _optional_time(v)


class RescheduleRequest(BaseModel):
    """Drag-and-drop move: new day and start, duration is kept"""

    date: str
    startTime: str

    @field_validator("startTime")
    @classmethod
    def validate_start(cls, v):
        return normalize_time(v)


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus
    adminOverride: bool = False


class SeriesCreate(AppointmentCreate):
    """Schema for booking a recurring series of appointments"""

    recurrenceRule: RecurrenceRuleIn
    skipConflicts: bool = False  # commit the non-conflicting occurrences only
    maxOccurrences: Optional[int] = Field(default=None, ge=1)


class BlockedSlotCreate(BaseModel):
    date: str
    startTime: str
    endTime: str
    reason: str = ""
    recurrence: BlockedSlotRecurrence = BlockedSlotRecurrence.NONE
    exceptions: list[str] = Field(default_factory=list)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return normalize_time(v)


class BlockedSlotExceptionCreate(BaseModel):
    date: str


class SweepRequest(BaseModel):
    now: Optional[str] = None  # ISO timestamp, defaults to the current time


class SeriesRejection(BaseModel):
    occurrenceId: str
    date: date
    report: ConflictReport


class BookingOutcome(BaseModel):
    decision: BookingDecision
    appointment: Optional[Appointment] = None

    @property
    def accepted(self) -> bool:
        return self.decision.accepted


class SeriesOutcome(BaseModel):
    created: list[Appointment] = Field(default_factory=list)
    rejected: list[SeriesRejection] = Field(default_factory=list)
    truncated: bool = False  # safety cap reached, series shorter than requested
    committed: bool = False


class BookingCheckResponse(BaseModel):
    state: str
    accepted: bool
    startTime: str
    endTime: str
    report: ConflictReport
    summary: str


class AppointmentResponse(BaseModel):
    id: str
    professionalId: str
    date: date
    startTime: str
    endTime: str
    durationMinutes: Optional[int]
    status: AppointmentStatus
    kind: AppointmentKind
    subjectRef: str
    notes: Optional[str] = None
    seriesId: Optional[str] = None
    externalEventId: Optional[str] = None

    @classmethod
    def from_entity(cls, appt: Appointment) -> "AppointmentResponse":
        return cls(
            id=appt.id,
            professionalId=appt.professional_id,
            date=appt.date,
            startTime=appt.start_time,
            endTime=appt.end_time,
            durationMinutes=appt.duration_minutes,
            status=appt.status,
            kind=appt.kind,
            subjectRef=appt.subject_ref,
            notes=appt.notes,
            seriesId=appt.series_id,
            externalEventId=appt.external_event_id,
        )


class BlockedSlotResponse(BaseModel):
    id: str
    professionalId: str
    date: date
    startTime: str
    endTime: str
    reason: str
    recurrence: BlockedSlotRecurrence
    exceptions: list[date]

    @classmethod
    def from_entity(cls, slot: BlockedSlot) -> "BlockedSlotResponse":
        return cls(
            id=slot.id,
            professionalId=slot.professional_id,
            date=slot.date,
            startTime=slot.start_time,
            endTime=slot.end_time,
            reason=slot.reason,
            recurrence=slot.recurrence,
            exceptions=slot.exceptions,
        )


class SeriesResponse(BaseModel):
    created: list[AppointmentResponse]
    rejected: list[SeriesRejection]
    truncated: bool
    committed: bool


class SweepResponse(BaseModel):
    completed: list[str]


class BusyIntervalResponse(BaseModel):
    source: OccurrenceSource
    sourceId: str
    date: date
    startTime: str
    endTime: str
    label: str

    @classmethod
    def from_occurrence(cls, occurrence: Occurrence) -> "BusyIntervalResponse":
        return cls(
            source=occurrence.source,
            sourceId=occurrence.source_id,
            date=occurrence.date,
            startTime=occurrence.start_time,
            endTime=occurrence.end_time,
            label=occurrence.label,
        )
