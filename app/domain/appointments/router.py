"""Appointment routers - patient, doctor and admin endpoints for the appointment lifecycle"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_admin, get_current_doctor, get_current_patient
from ...database import get_db
from ...models import Doctor, Patient
from ..calendar_sync.router import get_calendar_sync_service
from ..calendar_sync.service import CalendarSyncService
from .schemas import (
    AppointmentActionRequest,
    AppointmentActionResponse,
    AppointmentListResponse,
    AppointmentResponse,
    BookAppointmentRequest,
    RescheduleAppointmentRequest,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

user_router = APIRouter(prefix="/api/user", tags=["Patient Appointments"])
doctor_router = APIRouter(prefix="/api/doctor", tags=["Doctor Appointments"])
admin_router = APIRouter(prefix="/api/admin", tags=["Admin Appointments"])


def get_appointment_service(
    db: Session = Depends(get_db),
    calendar_sync: CalendarSyncService = Depends(get_calendar_sync_service),
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, calendar_sync)


# ============================================================================
# PATIENT
# ============================================================================


@user_router.post("/book-appointment", response_model=AppointmentActionResponse)
async def book_appointment(
    data: BookAppointmentRequest,
    patient: Patient = Depends(get_current_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.book(data, patient)


@user_router.get("/appointments", response_model=AppointmentListResponse)
async def list_my_appointments(
    patient: Patient = Depends(get_current_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.list_for_patient(patient)
    return AppointmentListResponse(appointments=[AppointmentResponse.from_model(a) for a in appointments])


@user_router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_my_appointment(
    appointment_id: str,
    patient: Patient = Depends(get_current_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    return AppointmentResponse.from_model(service.get_patient_appointment(appointment_id, patient))


@user_router.post("/cancel-appointment", response_model=AppointmentActionResponse)
async def cancel_my_appointment(
    data: AppointmentActionRequest,
    patient: Patient = Depends(get_current_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_patient_appointment(data.appointmentId, patient)
    return await service.cancel(appointment)


@user_router.post("/reschedule-appointment", response_model=AppointmentActionResponse)
async def reschedule_my_appointment(
    data: RescheduleAppointmentRequest,
    patient: Patient = Depends(get_current_patient),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_patient_appointment(data.appointmentId, patient)
    return await service.reschedule(appointment, data)


# ============================================================================
# DOCTOR
# ============================================================================


@doctor_router.get("/appointments", response_model=AppointmentListResponse)
async def list_doctor_appointments(
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.list_for_doctor(doctor)
    return AppointmentListResponse(appointments=[AppointmentResponse.from_model(a) for a in appointments])


@doctor_router.post("/complete-appointment", response_model=AppointmentActionResponse)
async def doctor_complete_appointment(
    data: AppointmentActionRequest,
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_doctor_appointment(data.appointmentId, doctor)
    return await service.complete(appointment)


@doctor_router.post("/cancel-appointment", response_model=AppointmentActionResponse)
async def doctor_cancel_appointment(
    data: AppointmentActionRequest,
    doctor: Doctor = Depends(get_current_doctor),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_doctor_appointment(data.appointmentId, doctor)
    return await service.cancel(appointment)


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("/appointments", response_model=AppointmentListResponse)
async def list_all_appointments(
    admin: dict = Depends(get_current_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.list_all()
    return AppointmentListResponse(appointments=[AppointmentResponse.from_model(a) for a in appointments])


@admin_router.post("/complete-appointment", response_model=AppointmentActionResponse)
async def admin_complete_appointment(
    data: AppointmentActionRequest,
    admin: dict = Depends(get_current_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.complete(service.get_appointment(data.appointmentId))


@admin_router.post("/cancel-appointment", response_model=AppointmentActionResponse)
async def admin_cancel_appointment(
    data: AppointmentActionRequest,
    admin: dict = Depends(get_current_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    return await service.cancel(service.get_appointment(data.appointmentId))


@admin_router.delete("/appointments/{appointment_id}", response_model=AppointmentActionResponse)
async def admin_delete_appointment(
    appointment_id: str,
    admin: dict = Depends(get_current_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    logger.info(f"🗑️ Admin {admin.get('sub')} deleting appointment {appointment_id}")
    return await service.delete(service.get_appointment(appointment_id))
