"""Shared test fixtures for clinic_scheduler tests."""

import os

# Deterministic configuration before the package reads its environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOCAL_TIMEZONE"] = "America/Argentina/Buenos_Aires"
os.environ["MONTHLY_OVERFLOW_POLICY"] = "skip"
os.environ["BUSINESS_WEEKDAYS"] = "0,1,2,3,4,5,6"
os.environ["CALENDAR_SYNC_MAX_RETRIES"] = "2"
os.environ["SECRET_KEY"] = "A" * 43 + "="
os.environ.pop("REDIS_URL", None)
os.environ.pop("REDIS_HOST", None)

from contextlib import contextmanager  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402

from clinic_scheduler.domain.scheduling.entities import (  # noqa: E402
    Appointment,
    BlockedSlot,
)
from clinic_scheduler.domain.scheduling.service import BookingService  # noqa: E402
from clinic_scheduler.domain.scheduling.validator import BookingValidator  # noqa: E402

PROFESSIONAL_ID = "pro-1"


class InMemoryAppointmentStore:
    """AppointmentStore fake; hands out copies like a real database would."""

    def __init__(self, appointments=()):
        self.items: dict[str, Appointment] = {a.id: a.model_copy(deep=True) for a in appointments}
        self.saves = 0

    def list_appointments(self, professional_id: str) -> list[Appointment]:
        return [
            a.model_copy(deep=True)
            for a in sorted(self.items.values(), key=lambda a: (a.date, a.start_time))
            if a.professional_id == professional_id
        ]

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        item = self.items.get(appointment_id)
        return item.model_copy(deep=True) if item else None

    def save_appointment(self, appointment: Appointment) -> Appointment:
        self.saves += 1
        self.items[appointment.id] = appointment.model_copy(deep=True)
        return appointment.model_copy(deep=True)

    def delete_appointment(self, appointment_id: str) -> None:
        self.items.pop(appointment_id, None)


class InMemoryBlockedSlotStore:
    """BlockedSlotStore fake."""

    def __init__(self, slots=()):
        self.items: dict[str, BlockedSlot] = {s.id: s.model_copy(deep=True) for s in slots}

    def list_blocked_slots(self, professional_id: str) -> list[BlockedSlot]:
        return [s.model_copy(deep=True) for s in self.items.values() if s.professional_id == professional_id]

    def get_blocked_slot(self, slot_id: str) -> Optional[BlockedSlot]:
        item = self.items.get(slot_id)
        return item.model_copy(deep=True) if item else None

    def save_blocked_slot(self, slot: BlockedSlot) -> BlockedSlot:
        self.items[slot.id] = slot.model_copy(deep=True)
        return slot.model_copy(deep=True)

    def delete_blocked_slot(self, slot_id: str) -> None:
        self.items.pop(slot_id, None)


class InMemoryDirectory:
    """DirectoryLookup fake."""

    def __init__(self, professionals=None, patients=None):
        self.professionals = professionals or {PROFESSIONAL_ID: "Dr. Test"}
        self.patients = patients or {}

    def professional_name(self, professional_id: str) -> Optional[str]:
        return self.professionals.get(professional_id)

    def patient_name(self, patient_id: str) -> Optional[str]:
        return self.patients.get(patient_id)


class RecordingLock:
    """Lock stand-in that records which professional calendars were locked."""

    def __init__(self):
        self.acquired: list[str] = []
        self.held = False

    @contextmanager
    def __call__(self, professional_id: str):
        self.acquired.append(professional_id)
        self.held = True
        try:
            yield
        finally:
            self.held = False


def make_appointment(
    id: str = "a1",
    date: str = "2024-03-04",
    start_time: str = "10:00",
    end_time: str = "11:00",
    professional_id: str = PROFESSIONAL_ID,
    **fields,
) -> Appointment:
    """Build an appointment entity with sensible defaults."""
    return Appointment(
        id=id,
        professional_id=professional_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        **fields,
    )


def make_blocked_slot(
    id: str = "b1",
    date: str = "2024-03-04",
    start_time: str = "12:00",
    end_time: str = "13:00",
    professional_id: str = PROFESSIONAL_ID,
    **fields,
) -> BlockedSlot:
    """Build a blocked slot entity with sensible defaults."""
    return BlockedSlot(
        id=id,
        professional_id=professional_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        **fields,
    )


@pytest.fixture
def appointment_store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def blocked_slot_store() -> InMemoryBlockedSlotStore:
    return InMemoryBlockedSlotStore()


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(patients={"pat-1": "Ana Gomez"})


@pytest.fixture
def recording_lock() -> RecordingLock:
    return RecordingLock()


@pytest.fixture
def service(appointment_store, blocked_slot_store, directory, recording_lock) -> BookingService:
    """BookingService over in-memory stores with no business-day restriction."""
    svc = BookingService(
        appointment_store,
        blocked_slot_store,
        directory=directory,
        lock=recording_lock,
        retry_delay=0,
    )
    svc.validator = BookingValidator(subject_resolver=svc.subject_label)
    return svc
