import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_object_id():
    """Generate an opaque string identifier for documents"""
    return uuid.uuid4().hex


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(String(64), primary_key=True, default=generate_object_id)
    name = Column(String(255), nullable=False)  # Display name, usually "Dr. <Full Name>"
    email = Column(String(255), unique=True, index=True, nullable=False)
    speciality = Column(String(100), nullable=True)
    available = Column(Boolean, default=True, nullable=False)
    fees = Column(Float, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="doctor")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(64), primary_key=True, default=generate_object_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    appointments = relationship("Appointment", back_populates="patient")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(64), primary_key=True, default=generate_object_id)
    doctor_id = Column(String(64), ForeignKey("doctors.id"), nullable=False, index=True)
    patient_id = Column(String(64), ForeignKey("patients.id"), nullable=False, index=True)
    # Denormalized for calendar titles; hydrated from the patient row when missing
    patient_name = Column(String(255), nullable=True)
    amount = Column(Float, nullable=True)

    slot_date = Column(String(20), nullable=False)  # DD_MM_YYYY
    slot_time = Column(String(20), nullable=False)  # e.g. "10:30 AM"

    cancelled = Column(Boolean, default=False, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    payment = Column(Boolean, default=False, nullable=False)

    # Google linkage, written only by the calendar sync engine
    provider_task_id = Column(String(255), nullable=True)
    provider_event_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="appointments")
    patient = relationship("Patient", back_populates="appointments")

    __table_args__ = (Index("ix_appointments_doctor_slot", "doctor_id", "slot_date", "slot_time"),)

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.is_completed:
            return "completed"
        return "pending"
