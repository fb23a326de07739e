"""Scheduling service - orchestrates snapshot, validation and persistence"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from ...config import (
    BUSINESS_WEEKDAYS,
    CALENDAR_SYNC_MAX_RETRIES,
    CALENDAR_SYNC_RETRY_DELAY,
    RECURRENCE_MAX_OCCURRENCES,
)
from ...locks import booking_lock
from ...models import generate_id
from .entities import (
    Appointment,
    AppointmentKind,
    AppointmentStatus,
    BlockedSlot,
    BlockedSlotRecurrence,
    CalendarSyncOp,
    Occurrence,
    OccurrenceSource,
    RecurrenceRule,
)
from .errors import InvalidFormat, NotFound, SchedulingError
from .occurrence import default_monthly_policy, occurrences_on
from .recurrence import expand_with_cap
from .repository import AppointmentStore, BlockedSlotStore, DirectoryLookup
from .schemas import (
    AppointmentCreate,
    AppointmentUpdate,
    BlockedSlotCreate,
    BookingCheckRequest,
    BookingOutcome,
    RescheduleRequest,
    SeriesCreate,
    SeriesOutcome,
    SeriesRejection,
    StatusChangeRequest,
)
from .status_sweeper import sweep, validate_status_transition
from .time_range import add_minutes, local_calendar_day, local_timezone
from .validator import (
    BookingCandidate,
    BookingDecision,
    BookingRequest,
    BookingState,
    BookingValidator,
    build_candidate,
    weekday_policy,
)

logger = logging.getLogger(__name__)


class CalendarSync(Protocol):
    """External calendar collaborator, invoked only after a booking is committed"""

    async def sync(
        self,
        appointment: Appointment,
        op: CalendarSyncOp,
        external_event_id: Optional[str] = None,
    ) -> Optional[str]: ...


def build(model, **fields):
    """Construct an entity, surfacing validation problems as InvalidFormat"""
    try:
        return model(**fields)
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise InvalidFormat(messages) from None


class BookingService:
    """Service layer for booking, blocked-slot and status operations"""

    def __init__(
        self,
        appointments: AppointmentStore,
        blocked_slots: BlockedSlotStore,
        validator: Optional[BookingValidator] = None,
        directory: Optional[DirectoryLookup] = None,
        lock: Callable = booking_lock,
        retry_delay: float = CALENDAR_SYNC_RETRY_DELAY,
    ):
        self.appointments = appointments
        self.blocked_slots = blocked_slots
        self.directory = directory
        self.validator = validator or BookingValidator(
            business_day_policy=weekday_policy(BUSINESS_WEEKDAYS),
            monthly_policy=default_monthly_policy(),
            subject_resolver=self.subject_label,
        )
        self.lock = lock
        self.retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def subject_label(self, appointment: Appointment) -> str:
        """Display label for an appointment: patient name when known"""
        if appointment.kind is AppointmentKind.PATIENT and self.directory and appointment.subject_ref:
            name = self.directory.patient_name(appointment.subject_ref)
            if name:
                return name
        return appointment.subject_ref or appointment.kind.value

    def snapshot(self, professional_id: str) -> tuple[list[Appointment], list[BlockedSlot]]:
        return (
            self.appointments.list_appointments(professional_id),
            self.blocked_slots.list_blocked_slots(professional_id),
        )

    def get_appointment(self, professional_id: str, appointment_id: str) -> Appointment:
        appointment = self.appointments.get_appointment(appointment_id)
        if not appointment or appointment.professional_id != professional_id:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    def get_blocked_slot(self, professional_id: str, slot_id: str) -> BlockedSlot:
        slot = self.blocked_slots.get_blocked_slot(slot_id)
        if not slot or slot.professional_id != professional_id:
            raise NotFound(f"Blocked slot {slot_id} not found")
        return slot

    def list_appointments(self, professional_id: str) -> list[Appointment]:
        return self.appointments.list_appointments(professional_id)

    def list_blocked_slots(self, professional_id: str) -> list[BlockedSlot]:
        return self.blocked_slots.list_blocked_slots(professional_id)

    def _validate_and_save(self, appointment: Appointment, exclude_id: Optional[str] = None) -> BookingOutcome:
        """Check one appointment against a fresh snapshot and persist it if accepted.

        Must be called while holding the professional's booking lock.
        """
        candidate = BookingCandidate(
            professional_id=appointment.professional_id,
            date=appointment.date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            exclude_id=exclude_id,
        )
        decision = self.validator.validate(candidate, *self.snapshot(appointment.professional_id))
        if not decision.accepted:
            return BookingOutcome(decision=decision)

        saved = self.appointments.save_appointment(appointment)
        return BookingOutcome(decision=decision, appointment=saved)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def check(self, professional_id: str, data: BookingCheckRequest) -> BookingDecision:
        """Validate a candidate range without writing anything"""
        request = build(
            BookingRequest,
            professional_id=professional_id,
            date=data.date,
            start_time=data.startTime,
            end_time=data.endTime,
            duration_minutes=data.durationMinutes,
            exclude_id=data.excludeId,
        )
        return self.validator.validate(request, *self.snapshot(professional_id))

    def create_appointment(self, professional_id: str, data: AppointmentCreate) -> BookingOutcome:
        """Create an appointment if it passes validation"""
        request = build(
            BookingRequest,
            professional_id=professional_id,
            date=data.date,
            start_time=data.startTime,
            end_time=data.endTime,
            duration_minutes=data.durationMinutes,
        )
        candidate = build_candidate(request)
        appointment = build(
            Appointment,
            id=generate_id(),
            professional_id=professional_id,
            date=candidate.date,
            start_time=candidate.start_time,
            end_time=candidate.end_time,
            status=data.status,
            kind=data.kind,
            subject_ref=data.subjectRef,
            notes=data.notes,
        )

        with self.lock(professional_id):
            outcome = self._validate_and_save(appointment)

        if outcome.accepted:
            logger.info(
                f"✅ Appointment {appointment.id} created for professional {professional_id} "
                f"on {appointment.date} {appointment.start_time}-{appointment.end_time}"
            )
        return outcome

    def update_appointment(
        self, professional_id: str, appointment_id: str, data: AppointmentUpdate
    ) -> BookingOutcome:
        """Edit an appointment; timing changes and reactivations are re-validated"""
        with self.lock(professional_id):
            current = self.get_appointment(professional_id, appointment_id)

            start_time = data.startTime or current.start_time
            if data.endTime:
                end_time = data.endTime
            elif data.durationMinutes:
                end_time = add_minutes(start_time, data.durationMinutes)
            elif data.startTime:
                end_time = add_minutes(start_time, current.duration_minutes)
            else:
                end_time = current.end_time

            status = data.status or current.status
            validate_status_transition(current.status, status, data.adminOverride)

            updated = build(
                Appointment,
                **{
                    **current.model_dump(),
                    "date": data.date or current.date,
                    "start_time": start_time,
                    "end_time": end_time,
                    "duration_minutes": None,
                    "status": status,
                    "kind": data.kind or current.kind,
                    "subject_ref": current.subject_ref if data.subjectRef is None else data.subjectRef,
                    "notes": current.notes if data.notes is None else data.notes,
                },
            )

            timing_changed = (updated.date, updated.start_time, updated.end_time) != (
                current.date,
                current.start_time,
                current.end_time,
            )
            reactivated = (
                current.status is AppointmentStatus.CANCELLED
                and updated.status is not AppointmentStatus.CANCELLED
            )
            if (timing_changed or reactivated) and updated.status is not AppointmentStatus.CANCELLED:
                outcome = self._validate_and_save(updated, exclude_id=appointment_id)
            else:
                # Same slot (or a cancellation): nothing new to check
                saved = self.appointments.save_appointment(updated)
                candidate = BookingCandidate(
                    professional_id=professional_id,
                    date=saved.date,
                    start_time=saved.start_time,
                    end_time=saved.end_time,
                    exclude_id=appointment_id,
                )
                outcome = BookingOutcome(
                    decision=BookingDecision(state=BookingState.ACCEPTED, candidate=candidate),
                    appointment=saved,
                )

        if outcome.accepted:
            logger.info(f"✅ Appointment {appointment_id} updated")
        return outcome

    def reschedule_appointment(
        self, professional_id: str, appointment_id: str, data: RescheduleRequest
    ) -> BookingOutcome:
        """Drag-and-drop move to a new day/start, keeping the duration"""
        current = self.get_appointment(professional_id, appointment_id)
        return self.update_appointment(
            professional_id,
            appointment_id,
            AppointmentUpdate(
                date=data.date,
                startTime=data.startTime,
                durationMinutes=current.duration_minutes,
            ),
        )

    def change_status(
        self, professional_id: str, appointment_id: str, data: StatusChangeRequest
    ) -> BookingOutcome:
        return self.update_appointment(
            professional_id,
            appointment_id,
            AppointmentUpdate(status=data.status, adminOverride=data.adminOverride),
        )

    def delete_appointment(self, professional_id: str, appointment_id: str) -> Appointment:
        appointment = self.get_appointment(professional_id, appointment_id)
        self.appointments.delete_appointment(appointment_id)
        logger.info(f"🗑️ Appointment {appointment_id} deleted")
        return appointment

    def book_series(self, professional_id: str, data: SeriesCreate) -> SeriesOutcome:
        """
        Expand a recurring template and book its occurrences.

        Each occurrence is validated against the stored snapshot plus the
        occurrences accepted before it. Unless `skipConflicts` is set, a
        single rejected occurrence means nothing is committed.
        """
        request = build(
            BookingRequest,
            professional_id=professional_id,
            date=data.date,
            start_time=data.startTime,
            end_time=data.endTime,
            duration_minutes=data.durationMinutes,
        )
        candidate = build_candidate(request)
        rule = build(
            RecurrenceRule,
            frequency=data.recurrenceRule.frequency,
            interval=data.recurrenceRule.interval,
            end_date=data.recurrenceRule.endDate,
            count=data.recurrenceRule.count,
        )
        template = build(
            Appointment,
            id=generate_id(),
            professional_id=professional_id,
            date=candidate.date,
            start_time=candidate.start_time,
            end_time=candidate.end_time,
            status=data.status,
            kind=data.kind,
            subject_ref=data.subjectRef,
            notes=data.notes,
            recurrence_rule=rule,
        )

        occurrences, truncated = expand_with_cap(
            template,
            data.maxOccurrences or RECURRENCE_MAX_OCCURRENCES,
            self.validator.monthly_policy,
        )
        if not occurrences:
            raise InvalidFormat(f"Recurrence starting {template.date} produces no occurrences")

        with self.lock(professional_id):
            existing, slots = self.snapshot(professional_id)
            accepted: list[Appointment] = []
            rejected: list[SeriesRejection] = []

            for occurrence in occurrences:
                occurrence = occurrence.model_copy(update={"series_id": template.id, "recurrence_rule": None})
                decision = self.validator.validate(
                    BookingCandidate(
                        professional_id=professional_id,
                        date=occurrence.date,
                        start_time=occurrence.start_time,
                        end_time=occurrence.end_time,
                    ),
                    existing + accepted,
                    slots,
                )
                if decision.accepted:
                    accepted.append(occurrence)
                else:
                    rejected.append(
                        SeriesRejection(occurrenceId=occurrence.id, date=occurrence.date, report=decision.report)
                    )

            if rejected and not data.skipConflicts:
                logger.warning(
                    f"⚠️ Series {template.id} rejected: {len(rejected)} of {len(occurrences)} occurrences conflict"
                )
                return SeriesOutcome(rejected=rejected, truncated=truncated, committed=False)

            created = [self.appointments.save_appointment(occurrence) for occurrence in accepted]

        logger.info(f"✅ Series {template.id} booked: {len(created)} created, {len(rejected)} skipped")
        return SeriesOutcome(created=created, rejected=rejected, truncated=truncated, committed=True)

    # ------------------------------------------------------------------
    # Blocked slots
    # ------------------------------------------------------------------

    def create_blocked_slot(self, professional_id: str, data: BlockedSlotCreate) -> BlockedSlot:
        if data.exceptions and data.recurrence is BlockedSlotRecurrence.NONE:
            raise SchedulingError("Exception dates only apply to recurring blocked slots")

        slot = build(
            BlockedSlot,
            id=generate_id(),
            professional_id=professional_id,
            date=data.date,
            start_time=data.startTime,
            end_time=data.endTime,
            reason=data.reason,
            recurrence=data.recurrence,
            exceptions=data.exceptions,
        )
        saved = self.blocked_slots.save_blocked_slot(slot)
        logger.info(
            f"⛔ Blocked slot {saved.id} created for professional {professional_id}: "
            f"{saved.date} {saved.start_time}-{saved.end_time} ({saved.recurrence.value})"
        )
        return saved

    def delete_blocked_slot(self, professional_id: str, slot_id: str) -> None:
        self.get_blocked_slot(professional_id, slot_id)
        self.blocked_slots.delete_blocked_slot(slot_id)
        logger.info(f"🗑️ Blocked slot {slot_id} deleted")

    def add_blocked_slot_exception(self, professional_id: str, slot_id: str, day) -> BlockedSlot:
        """Suppress a recurring blocked slot on one date. Appending twice is a no-op."""
        slot = self.get_blocked_slot(professional_id, slot_id)
        if slot.recurrence is BlockedSlotRecurrence.NONE:
            raise SchedulingError("Exception dates only apply to recurring blocked slots")

        day = local_calendar_day(day)
        if day in slot.exceptions:
            return slot

        slot.exceptions.append(day)
        saved = self.blocked_slots.save_blocked_slot(slot)
        logger.info(f"📅 Blocked slot {slot_id} suppressed on {day}")
        return saved

    # ------------------------------------------------------------------
    # Day view and status reconciliation
    # ------------------------------------------------------------------

    def busy_intervals(self, professional_id: str, day) -> list[Occurrence]:
        """Appointments and active blocked occurrences of one day, by start time"""
        day = local_calendar_day(day)
        appointments, slots = self.snapshot(professional_id)

        busy = [
            Occurrence(
                source=OccurrenceSource.APPOINTMENT,
                source_id=appt.id,
                date=day,
                start_time=appt.start_time,
                end_time=appt.end_time,
                label=self.subject_label(appt),
            )
            for appt in appointments
            if appt.date == day and appt.status is not AppointmentStatus.CANCELLED
        ]
        busy.extend(occurrences_on(slots, day, self.validator.monthly_policy))
        return sorted(busy, key=lambda o: (o.start_time, o.end_time))

    def sweep_statuses(self, professional_id: str, now: Optional[datetime] = None) -> list[str]:
        """Mark past appointments as completed and persist the changes"""
        now = now or datetime.now(local_timezone())
        with self.lock(professional_id):
            appointments = self.appointments.list_appointments(professional_id)
            flipped = set(sweep(now, appointments))
            for appt in appointments:
                if appt.id in flipped:
                    self.appointments.save_appointment(appt)

        if flipped:
            logger.info(f"📊 Status sweep for professional {professional_id}: {len(flipped)} completed")
        return [appt.id for appt in appointments if appt.id in flipped]

    # ------------------------------------------------------------------
    # Calendar sync (after commit only)
    # ------------------------------------------------------------------

    async def sync_calendar(
        self,
        appointment: Appointment,
        op: CalendarSyncOp,
        calendar_sync: CalendarSync,
    ) -> Optional[str]:
        """
        Push a committed change to the external calendar.
        Best effort: failures are logged and retried, never raised, and never
        roll back the booking.
        """
        event_id = None
        attempts = CALENDAR_SYNC_MAX_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                event_id = await calendar_sync.sync(appointment, op, appointment.external_event_id)
            except Exception as e:
                logger.error(f"❌ Calendar sync {op.value} failed for {appointment.id}: {str(e)}")
                event_id = None
            if event_id:
                break
            if attempt < attempts:
                await asyncio.sleep(self.retry_delay * attempt)

        if not event_id:
            logger.warning(f"⚠️ Calendar sync {op.value} gave up for appointment {appointment.id}")
            return None

        if op is not CalendarSyncOp.DELETE and event_id != appointment.external_event_id:
            stored = self.appointments.get_appointment(appointment.id)
            if stored:
                stored.external_event_id = event_id
                self.appointments.save_appointment(stored)
        return event_id


def parse_now(value: Optional[str]) -> Optional[datetime]:
    """Parse an optional ISO timestamp supplied by a caller"""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidFormat(f"Invalid timestamp '{value}'") from None
