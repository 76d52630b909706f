"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_slot_date, validate_slot_time


class BookAppointmentRequest(BaseModel):
    """Schema for booking a slot with a doctor"""

    docId: str
    slotDate: str
    slotTime: str

    @field_validator("slotDate")
    @classmethod
    def check_slot_date(cls, v):
        return validate_slot_date(v)

    @field_validator("slotTime")
    @classmethod
    def check_slot_time(cls, v):
        return validate_slot_time(v)


class AppointmentActionRequest(BaseModel):
    appointmentId: str


class RescheduleAppointmentRequest(BaseModel):
    appointmentId: str
    slotDate: str
    slotTime: str

    @field_validator("slotDate")
    @classmethod
    def check_slot_date(cls, v):
        return validate_slot_date(v)

    @field_validator("slotTime")
    @classmethod
    def check_slot_time(cls, v):
        return validate_slot_time(v)


class AppointmentResponse(BaseModel):
    id: str
    doctorId: str
    patientId: str
    patientName: Optional[str] = None
    doctorName: Optional[str] = None
    slotDate: str
    slotTime: str
    amount: Optional[float] = None
    status: str
    cancelled: bool
    isCompleted: bool
    payment: bool
    createdAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            doctorId=appointment.doctor_id,
            patientId=appointment.patient_id,
            patientName=appointment.patient_name,
            doctorName=appointment.doctor.name if appointment.doctor else None,
            slotDate=appointment.slot_date,
            slotTime=appointment.slot_time,
            amount=appointment.amount,
            status=appointment.status,
            cancelled=appointment.cancelled,
            isCompleted=appointment.is_completed,
            payment=appointment.payment,
            createdAt=appointment.created_at,
        )


class AppointmentActionResponse(BaseModel):
    success: bool
    message: str
    appointment: Optional[AppointmentResponse] = None


class AppointmentListResponse(BaseModel):
    success: bool = True
    appointments: list[AppointmentResponse]
