"""Scheduling repository - storage interfaces and their SQLAlchemy implementations"""

import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import models
from .entities import Appointment, BlockedSlot

logger = logging.getLogger(__name__)


class AppointmentStore(Protocol):
    def list_appointments(self, professional_id: str) -> list[Appointment]: ...

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]: ...

    def save_appointment(self, appointment: Appointment) -> Appointment: ...

    def delete_appointment(self, appointment_id: str) -> None: ...


class BlockedSlotStore(Protocol):
    def list_blocked_slots(self, professional_id: str) -> list[BlockedSlot]: ...

    def get_blocked_slot(self, slot_id: str) -> Optional[BlockedSlot]: ...

    def save_blocked_slot(self, slot: BlockedSlot) -> BlockedSlot: ...

    def delete_blocked_slot(self, slot_id: str) -> None: ...


class DirectoryLookup(Protocol):
    """Read-only display metadata. Never affects validation."""

    def professional_name(self, professional_id: str) -> Optional[str]: ...

    def patient_name(self, patient_id: str) -> Optional[str]: ...


def _commit(db: Session, record=None):
    try:
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"❌ Database commit failed: {str(e)}")
        db.rollback()
        raise
    if record is not None:
        db.refresh(record)


class SqlAppointmentStore:
    """Repository for appointment database operations"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_entity(record: models.Appointment) -> Appointment:
        return Appointment(
            id=record.id,
            professional_id=record.professional_id,
            date=record.date,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_minutes=record.duration_minutes,
            status=record.status or "scheduled",
            kind=record.kind or "patient",
            subject_ref=record.subject_ref or "",
            notes=record.notes,
            recurrence_rule=record.recurrence_rule,
            series_id=record.series_id,
            external_event_id=record.google_calendar_event_id,
        )

    def list_appointments(self, professional_id: str) -> list[Appointment]:
        records = (
            self.db.query(models.Appointment)
            .filter(models.Appointment.professional_id == professional_id)
            .order_by(models.Appointment.date, models.Appointment.start_time)
            .all()
        )
        return [self.to_entity(r) for r in records]

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        record = self.db.get(models.Appointment, appointment_id)
        return self.to_entity(record) if record else None

    def save_appointment(self, appointment: Appointment) -> Appointment:
        record = self.db.get(models.Appointment, appointment.id)
        if record is None:
            record = models.Appointment(id=appointment.id)
            self.db.add(record)

        record.professional_id = appointment.professional_id
        record.date = appointment.date
        record.start_time = appointment.start_time
        record.end_time = appointment.end_time
        record.duration_minutes = appointment.duration_minutes
        record.status = appointment.status.value
        record.kind = appointment.kind.value
        record.subject_ref = appointment.subject_ref
        record.notes = appointment.notes
        record.recurrence_rule = (
            appointment.recurrence_rule.model_dump(mode="json") if appointment.recurrence_rule else None
        )
        record.series_id = appointment.series_id
        record.google_calendar_event_id = appointment.external_event_id

        _commit(self.db, record)
        return self.to_entity(record)

    def delete_appointment(self, appointment_id: str) -> None:
        record = self.db.get(models.Appointment, appointment_id)
        if record is None:
            return
        self.db.delete(record)
        _commit(self.db)


class SqlBlockedSlotStore:
    """Repository for blocked slot database operations"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_entity(record: models.BlockedSlot) -> BlockedSlot:
        return BlockedSlot(
            id=record.id,
            professional_id=record.professional_id,
            date=record.date,
            start_time=record.start_time,
            end_time=record.end_time,
            reason=record.reason or "",
            recurrence=record.recurrence or "none",
            exceptions=record.exceptions or [],
        )

    def list_blocked_slots(self, professional_id: str) -> list[BlockedSlot]:
        records = (
            self.db.query(models.BlockedSlot)
            .filter(models.BlockedSlot.professional_id == professional_id)
            .order_by(models.BlockedSlot.date, models.BlockedSlot.start_time)
            .all()
        )
        return [self.to_entity(r) for r in records]

    def get_blocked_slot(self, slot_id: str) -> Optional[BlockedSlot]:
        record = self.db.get(models.BlockedSlot, slot_id)
        return self.to_entity(record) if record else None

    def save_blocked_slot(self, slot: BlockedSlot) -> BlockedSlot:
        record = self.db.get(models.BlockedSlot, slot.id)
        if record is None:
            record = models.BlockedSlot(id=slot.id)
            self.db.add(record)

        record.professional_id = slot.professional_id
        record.date = slot.date
        record.start_time = slot.start_time
        record.end_time = slot.end_time
        record.reason = slot.reason
        record.recurrence = slot.recurrence.value
        # Assign a fresh list so the JSON column is flagged dirty
        record.exceptions = [day.isoformat() for day in slot.exceptions]

        _commit(self.db, record)
        return self.to_entity(record)

    def delete_blocked_slot(self, slot_id: str) -> None:
        record = self.db.get(models.BlockedSlot, slot_id)
        if record is None:
            return
        self.db.delete(record)
        _commit(self.db)


class SqlDirectory:
    """Professional and patient display lookups"""

    def __init__(self, db: Session):
        self.db = db

    def professional_name(self, professional_id: str) -> Optional[str]:
        record = self.db.get(models.Professional, professional_id)
        return record.full_name if record else None

    def patient_name(self, patient_id: str) -> Optional[str]:
        record = self.db.get(models.Patient, patient_id)
        return record.full_name if record else None

    def professional_exists(self, professional_id: str) -> bool:
        return self.db.get(models.Professional, professional_id) is not None

    def professional_ids(self) -> list[str]:
        return [row.id for row in self.db.query(models.Professional.id).all()]
