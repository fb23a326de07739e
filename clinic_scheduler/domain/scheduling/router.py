"""Scheduling router - FastAPI endpoints for a professional's calendar"""

import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ...database import SessionLocal, get_db
from ...services.google_calendar_service import GoogleCalendarSync
from ...services.ics_export import build_calendar_ics
from .entities import Appointment, CalendarSyncOp
from .errors import InvalidFormat, InvalidStatusTransition, LockTimeout, NotFound, SchedulingError
from .repository import SqlAppointmentStore, SqlBlockedSlotStore, SqlDirectory
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    BlockedSlotCreate,
    BlockedSlotExceptionCreate,
    BlockedSlotResponse,
    BookingCheckRequest,
    BookingCheckResponse,
    BookingOutcome,
    BusyIntervalResponse,
    RescheduleRequest,
    SeriesCreate,
    SeriesResponse,
    StatusChangeRequest,
    SweepRequest,
    SweepResponse,
)
from .service import BookingService, parse_now
from .time_range import local_calendar_day

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/professionals/{professional_id}", tags=["Scheduling"])


def get_booking_service(professional_id: str, db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    directory = SqlDirectory(db)
    if not directory.professional_exists(professional_id):
        raise HTTPException(status_code=404, detail=f"Professional {professional_id} not found")
    return BookingService(SqlAppointmentStore(db), SqlBlockedSlotStore(db), directory=directory)


@contextmanager
def scheduling_errors():
    """Translate engine errors into HTTP errors"""
    try:
        yield
    except InvalidFormat as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LockTimeout as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SchedulingError as e:
        raise HTTPException(status_code=400, detail=str(e))


def rejected(outcome: BookingOutcome) -> HTTPException:
    report = outcome.decision.report
    return HTTPException(
        status_code=409,
        detail={
            "message": report.summary(),
            "report": report.model_dump(mode="json"),
        },
    )


# ============================================================================
# CALENDAR SYNC (after commit only)
# ============================================================================


async def run_calendar_sync(appointment: Appointment, op: CalendarSyncOp):
    """Background task: sync one committed change with its own session"""
    db = SessionLocal()
    try:
        service = BookingService(SqlAppointmentStore(db), SqlBlockedSlotStore(db))
        await service.sync_calendar(appointment, op, GoogleCalendarSync(db))
    finally:
        db.close()


def schedule_calendar_sync(
    background_tasks: BackgroundTasks, db: Session, appointment: Appointment, op: CalendarSyncOp
):
    if not GoogleCalendarSync(db).is_connected(appointment.professional_id):
        return
    background_tasks.add_task(run_calendar_sync, appointment, op)


# ============================================================================
# BOOKING CHECK
# ============================================================================


@router.post("/bookings/check", response_model=BookingCheckResponse)
async def check_booking(
    professional_id: str,
    data: BookingCheckRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Validate a proposed range without booking it"""
    with scheduling_errors():
        decision = service.check(professional_id, data)
    return BookingCheckResponse(
        state=decision.state.value,
        accepted=decision.accepted,
        startTime=decision.candidate.start_time,
        endTime=decision.candidate.end_time,
        report=decision.report,
        summary=decision.report.summary(),
    )


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.get("/appointments", response_model=list[AppointmentResponse])
async def list_appointments(
    professional_id: str,
    date: Optional[str] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """Get all appointments of the professional, optionally for one day"""
    with scheduling_errors():
        appointments = service.list_appointments(professional_id)
        if date:
            day = local_calendar_day(date)
            appointments = [a for a in appointments if a.date == day]
    return [AppointmentResponse.from_entity(a) for a in appointments]


@router.get("/appointments.ics")
async def export_appointments_ics(
    professional_id: str,
    service: BookingService = Depends(get_booking_service),
):
    """Export the professional's appointments as an iCalendar file"""
    content = build_calendar_ics(service.list_appointments(professional_id), service.subject_label)
    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="appointments.ics"'},
    )


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    professional_id: str,
    data: AppointmentCreate,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    db: Session = Depends(get_db),
):
    """Book an appointment; 409 with a conflict report when rejected"""
    with scheduling_errors():
        outcome = service.create_appointment(professional_id, data)
    if not outcome.accepted:
        raise rejected(outcome)

    schedule_calendar_sync(background_tasks, db, outcome.appointment, CalendarSyncOp.CREATE)
    return AppointmentResponse.from_entity(outcome.appointment)


@router.post("/appointments/series", response_model=SeriesResponse, status_code=201)
async def create_appointment_series(
    professional_id: str,
    data: SeriesCreate,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    db: Session = Depends(get_db),
):
    """Book a recurring series; all-or-nothing unless skipConflicts is set"""
    with scheduling_errors():
        outcome = service.book_series(professional_id, data)

    response = SeriesResponse(
        created=[AppointmentResponse.from_entity(a) for a in outcome.created],
        rejected=outcome.rejected,
        truncated=outcome.truncated,
        committed=outcome.committed,
    )
    if not outcome.committed:
        raise HTTPException(status_code=409, detail=response.model_dump(mode="json"))

    for appointment in outcome.created:
        schedule_calendar_sync(background_tasks, db, appointment, CalendarSyncOp.CREATE)
    return response


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    professional_id: str,
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors():
        appointment = service.get_appointment(professional_id, appointment_id)
    return AppointmentResponse.from_entity(appointment)


@router.patch("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    professional_id: str,
    appointment_id: str,
    data: AppointmentUpdate,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    db: Session = Depends(get_db),
):
    """Edit an appointment; time changes are re-validated"""
    with scheduling_errors():
        outcome = service.update_appointment(professional_id, appointment_id, data)
    if not outcome.accepted:
        raise rejected(outcome)

    schedule_calendar_sync(background_tasks, db, outcome.appointment, CalendarSyncOp.UPDATE)
    return AppointmentResponse.from_entity(outcome.appointment)


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    professional_id: str,
    appointment_id: str,
    data: RescheduleRequest,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    db: Session = Depends(get_db),
):
    """Drag-and-drop move, keeping the appointment's duration"""
    with scheduling_errors():
        outcome = service.reschedule_appointment(professional_id, appointment_id, data)
    if not outcome.accepted:
        raise rejected(outcome)

    schedule_calendar_sync(background_tasks, db, outcome.appointment, CalendarSyncOp.UPDATE)
    return AppointmentResponse.from_entity(outcome.appointment)


@router.post("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def change_appointment_status(
    professional_id: str,
    appointment_id: str,
    data: StatusChangeRequest,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    db: Session = Depends(get_db),
):
    with scheduling_errors():
        outcome = service.change_status(professional_id, appointment_id, data)
    if not outcome.accepted:
        raise rejected(outcome)

    schedule_calendar_sync(background_tasks, db, outcome.appointment, CalendarSyncOp.UPDATE)
    return AppointmentResponse.from_entity(outcome.appointment)


@router.delete("/appointments/{appointment_id}")
async def delete_appointment(
    professional_id: str,
    appointment_id: str,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    db: Session = Depends(get_db),
):
    with scheduling_errors():
        appointment = service.delete_appointment(professional_id, appointment_id)

    if appointment.external_event_id:
        schedule_calendar_sync(background_tasks, db, appointment, CalendarSyncOp.DELETE)
    return {"message": "Appointment deleted successfully"}


# ============================================================================
# BLOCKED SLOTS
# ============================================================================


@router.get("/blocked-slots", response_model=list[BlockedSlotResponse])
async def list_blocked_slots(
    professional_id: str,
    service: BookingService = Depends(get_booking_service),
):
    return [BlockedSlotResponse.from_entity(s) for s in service.list_blocked_slots(professional_id)]


@router.post("/blocked-slots", response_model=BlockedSlotResponse, status_code=201)
async def create_blocked_slot(
    professional_id: str,
    data: BlockedSlotCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Block a one-off or recurring time window"""
    with scheduling_errors():
        slot = service.create_blocked_slot(professional_id, data)
    return BlockedSlotResponse.from_entity(slot)


@router.delete("/blocked-slots/{slot_id}")
async def delete_blocked_slot(
    professional_id: str,
    slot_id: str,
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors():
        service.delete_blocked_slot(professional_id, slot_id)
    return {"message": "Blocked slot deleted successfully"}


@router.post("/blocked-slots/{slot_id}/exceptions", response_model=BlockedSlotResponse)
async def add_blocked_slot_exception(
    professional_id: str,
    slot_id: str,
    data: BlockedSlotExceptionCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Suppress a recurring blocked slot on one date"""
    with scheduling_errors():
        slot = service.add_blocked_slot_exception(professional_id, slot_id, data.date)
    return BlockedSlotResponse.from_entity(slot)


# ============================================================================
# DAY VIEW AND STATUS RECONCILIATION
# ============================================================================


@router.get("/busy", response_model=list[BusyIntervalResponse])
async def get_busy_intervals(
    professional_id: str,
    date: str = Query(..., description="YYYY-MM-DD or ISO timestamp"),
    service: BookingService = Depends(get_booking_service),
):
    """Appointments and active blocked time of one day, by start time"""
    with scheduling_errors():
        busy = service.busy_intervals(professional_id, date)
    return [BusyIntervalResponse.from_occurrence(o) for o in busy]


@router.post("/sweep", response_model=SweepResponse, status_code=status.HTTP_200_OK)
async def sweep_statuses(
    professional_id: str,
    data: Optional[SweepRequest] = None,
    service: BookingService = Depends(get_booking_service),
):
    """Mark past appointments as completed"""
    with scheduling_errors():
        now = parse_now(data.now if data else None)
        completed = service.sweep_statuses(professional_id, now)
    return SweepResponse(completed=completed)
