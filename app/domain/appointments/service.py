"""Appointment service - Business logic for the appointment lifecycle"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Appointment, Doctor, Patient
from ..calendar_sync.service import CalendarSyncService, old_slot_of
from .repository import AppointmentRepository
from .schemas import (
    AppointmentActionResponse,
    AppointmentResponse,
    BookAppointmentRequest,
    RescheduleAppointmentRequest,
)

logger = logging.getLogger(__name__)


class AppointmentService:
    """
    Service layer for appointment business logic.

    Every status change is committed first and mirrored to Google afterwards;
    a Google failure never turns a successful change into an error response.
    """

    def __init__(self, db: Session, calendar_sync: CalendarSyncService):
        self.db = db
        self.repo = AppointmentRepository()
        self.calendar_sync = calendar_sync

    def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    def get_patient_appointment(self, appointment_id: str, patient: Patient) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        if appointment.patient_id != patient.id:
            raise HTTPException(status_code=403, detail="Unauthorized action")
        return appointment

    def get_doctor_appointment(self, appointment_id: str, doctor: Doctor) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        if appointment.doctor_id != doctor.id:
            raise HTTPException(status_code=403, detail="Unauthorized action")
        return appointment

    def list_for_patient(self, patient: Patient) -> list[Appointment]:
        return self.repo.get_patient_appointments(self.db, patient.id)

    def list_for_doctor(self, doctor: Doctor) -> list[Appointment]:
        return self.repo.get_doctor_appointments(self.db, doctor.id)

    def list_all(self) -> list[Appointment]:
        return self.repo.get_all_appointments(self.db)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def book(self, data: BookAppointmentRequest, patient: Patient) -> AppointmentActionResponse:
        logger.info(f"📥 Booking {data.slotDate} {data.slotTime} with doctor {data.docId} for patient {patient.id}")

        doctor = self.repo.get_doctor(self.db, data.docId)
        if not doctor:
            raise HTTPException(status_code=404, detail="Doctor not found")
        if not doctor.available:
            return AppointmentActionResponse(success=False, message="Doctor not available")

        if self.repo.patient_has_slot(self.db, patient.id, data.slotDate, data.slotTime):
            return AppointmentActionResponse(
                success=False, message="You already have an appointment at this time"
            )
        if self.repo.is_slot_taken(self.db, doctor.id, data.slotDate, data.slotTime):
            return AppointmentActionResponse(success=False, message="Slot not available")

        appointment = self.repo.create_appointment(
            self.db,
            doctor_id=doctor.id,
            patient_id=patient.id,
            patient_name=patient.name,
            amount=doctor.fees,
            slot_date=data.slotDate,
            slot_time=data.slotTime,
        )
        logger.info(f"✅ Appointment {appointment.id} booked")

        await self.calendar_sync.on_booked(appointment)
        return self._action_response(appointment, "Appointment Booked")

    async def complete(self, appointment: Appointment) -> AppointmentActionResponse:
        if appointment.cancelled:
            return AppointmentActionResponse(success=False, message="Appointment is cancelled")
        if appointment.is_completed:
            return AppointmentActionResponse(success=False, message="Appointment already completed")

        self.repo.update_appointment(self.db, appointment, is_completed=True)
        logger.info(f"✅ Appointment {appointment.id} completed")

        await self.calendar_sync.on_completed(appointment.id)
        return self._action_response(appointment, "Appointment Completed")

    async def cancel(self, appointment: Appointment) -> AppointmentActionResponse:
        if appointment.cancelled:
            return AppointmentActionResponse(success=False, message="Appointment already cancelled")
        if appointment.is_completed:
            return AppointmentActionResponse(success=False, message="Completed appointments cannot be cancelled")

        self.repo.update_appointment(self.db, appointment, cancelled=True)
        logger.info(f"✅ Appointment {appointment.id} cancelled")

        await self.calendar_sync.on_cancelled(appointment.id)
        return self._action_response(appointment, "Appointment Cancelled")

    async def reschedule(
        self, appointment: Appointment, data: RescheduleAppointmentRequest
    ) -> AppointmentActionResponse:
        if appointment.cancelled or appointment.is_completed:
            return AppointmentActionResponse(
                success=False, message=f"A {appointment.status} appointment cannot be rescheduled"
            )

        if (appointment.slot_date, appointment.slot_time) == (data.slotDate, data.slotTime):
            return self._action_response(appointment, "Appointment already scheduled at this time")

        if self.repo.is_slot_taken(
            self.db, appointment.doctor_id, data.slotDate, data.slotTime, exclude_id=appointment.id
        ):
            return AppointmentActionResponse(success=False, message="Slot not available")

        old_slot = old_slot_of(appointment)
        self.repo.update_appointment(self.db, appointment, slot_date=data.slotDate, slot_time=data.slotTime)
        logger.info(
            f"✅ Appointment {appointment.id} moved from {old_slot.slot_date} {old_slot.slot_time} "
            f"to {data.slotDate} {data.slotTime}"
        )

        await self.calendar_sync.on_rescheduled(appointment.id, old_slot)
        return self._action_response(appointment, "Appointment Rescheduled")

    async def delete(self, appointment: Appointment) -> AppointmentActionResponse:
        snapshot = self.calendar_sync.snapshot(appointment)
        self.repo.delete_appointment(self.db, appointment)
        logger.info(f"🗑️ Appointment {snapshot.id} deleted")

        await self.calendar_sync.on_deleted(snapshot)
        return AppointmentActionResponse(success=True, message="Appointment Deleted")

    def _action_response(self, appointment: Appointment, message: str) -> AppointmentActionResponse:
        # Sync writes provider ids through its own queries
        self.db.refresh(appointment)
        return AppointmentActionResponse(
            success=True, message=message, appointment=AppointmentResponse.from_model(appointment)
        )
