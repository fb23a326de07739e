import uuid

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a unique string id for new records"""
    return str(uuid.uuid4())


class Professional(Base):
    """Calendar owner. Every appointment and blocked slot belongs to exactly one."""

    __tablename__ = "professionals"

    id = Column(String(64), primary_key=True, default=generate_id)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    specialty = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patients = relationship("Patient", back_populates="professional")
    appointments = relationship("Appointment", back_populates="professional")
    blocked_slots = relationship("BlockedSlot", back_populates="professional")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(64), primary_key=True, default=generate_id)
    professional_id = Column(String(64), ForeignKey("professionals.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    professional = relationship("Professional", back_populates="patients")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(64), primary_key=True, default=generate_id)
    professional_id = Column(String(64), ForeignKey("professionals.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)  # local calendar day
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    duration_minutes = Column(Integer, nullable=True)
    status = Column(String(20), default="scheduled")  # scheduled, confirmed, completed, cancelled, no-show
    kind = Column(String(20), default="patient")  # patient, personal
    subject_ref = Column(String(255), nullable=True)  # patient id/name or free title
    notes = Column(String(1000), nullable=True)
    recurrence_rule = Column(JSON, nullable=True)  # {frequency, interval, end_date, count}
    series_id = Column(String(64), nullable=True, index=True)  # template id for expanded series

    # Google Calendar integration fields
    google_calendar_event_id = Column(String(500), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    professional = relationship("Professional", back_populates="appointments")


class BlockedSlot(Base):
    __tablename__ = "blocked_slots"

    id = Column(String(64), primary_key=True, default=generate_id)
    professional_id = Column(String(64), ForeignKey("professionals.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)  # anchor date
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    reason = Column(String(255), nullable=True)
    recurrence = Column(String(20), default="none")  # none, weekly, monthly
    exceptions = Column(JSON, nullable=False, default=list)  # ISO dates the slot does not apply
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    professional = relationship("Professional", back_populates="blocked_slots")
