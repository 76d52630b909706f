"""Calendar sync repository - the only place the sync engine touches the database"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...config import GOOGLE_CALENDAR_ID, GOOGLE_TASKLIST_ID
from ...models import Appointment, Doctor, Patient
from ...models_google_calendar import GoogleCalendarIntegration
from ...services.google_calendar_service import DoctorCredential, decrypt_token, encrypt_token
from .items import SyncAppointment

logger = logging.getLogger(__name__)

# Fields the sync engine is allowed to write back onto an appointment
SYNC_WRITABLE_FIELDS = {"provider_task_id", "provider_event_id", "patient_name"}


class AppointmentSyncRepository:
    """Persistence collaborator for the calendar sync engine"""

    def __init__(self, db: Session):
        self.db = db

    def get_appointment(self, appointment_id: str) -> Optional[SyncAppointment]:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            return None
        return self.to_sync_appointment(appointment)

    def update_appointment(self, appointment_id: str, **patch) -> None:
        unknown = set(patch) - SYNC_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Sync engine cannot write appointment fields: {sorted(unknown)}")

        updated = (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .update(patch, synchronize_session="fetch")
        )
        self.db.commit()
        if not updated:
            logger.warning(f"⚠️ Appointment {appointment_id} vanished before sync write-back")

    def get_doctor_name(self, doctor_id: str) -> str:
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        return doctor.name if doctor else ""

    def get_patient_name(self, patient_id: str) -> Optional[str]:
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        return patient.name if patient else None

    def get_doctor_credential(self, doctor_id: str) -> Optional[DoctorCredential]:
        integration = self._get_integration(doctor_id)
        if not integration or not integration.refresh_token:
            return None

        access_token = None
        if integration.access_token:
            try:
                access_token = decrypt_token(integration.access_token)
            except Exception as e:
                # A bad cached access token only forces a refresh
                logger.warning(f"⚠️ Discarding unreadable access token for doctor {doctor_id}: {e}")

        return DoctorCredential(
            doctor_id=doctor_id,
            refresh_token=decrypt_token(integration.refresh_token),
            access_token=access_token,
            token_expires_at=integration.token_expires_at,
            calendar_id=integration.calendar_id or GOOGLE_CALENDAR_ID,
            tasklist_id=integration.tasklist_id or GOOGLE_TASKLIST_ID,
        )

    def save_access_token(self, doctor_id: str, access_token: str, expires_at: datetime) -> None:
        integration = self._get_integration(doctor_id)
        if not integration:
            return
        integration.access_token = encrypt_token(access_token)
        integration.token_expires_at = expires_at
        self.db.commit()

    def list_syncable_appointments(self, doctor_id: str) -> list[SyncAppointment]:
        """All non-cancelled appointments of a doctor, in booking order"""
        appointments = (
            self.db.query(Appointment)
            .filter(Appointment.doctor_id == doctor_id, Appointment.cancelled.is_(False))
            .order_by(Appointment.created_at.asc())
            .all()
        )
        return [self.to_sync_appointment(a) for a in appointments]

    def clear_provider_links(self, doctor_id: str) -> int:
        cleared = (
            self.db.query(Appointment)
            .filter(Appointment.doctor_id == doctor_id)
            .filter(
                (Appointment.provider_task_id.isnot(None)) | (Appointment.provider_event_id.isnot(None))
            )
            .update(
                {"provider_task_id": None, "provider_event_id": None},
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        return cleared

    def _get_integration(self, doctor_id: str) -> Optional[GoogleCalendarIntegration]:
        return (
            self.db.query(GoogleCalendarIntegration)
            .filter(GoogleCalendarIntegration.doctor_id == doctor_id)
            .first()
        )

    def to_sync_appointment(self, appointment: Appointment) -> SyncAppointment:
        return SyncAppointment(
            id=appointment.id,
            doctor_id=appointment.doctor_id,
            slot_date=appointment.slot_date,
            slot_time=appointment.slot_time,
            patient_name=appointment.patient_name,
            cancelled=bool(appointment.cancelled),
            is_completed=bool(appointment.is_completed),
            provider_task_id=appointment.provider_task_id,
            provider_event_id=appointment.provider_event_id,
        )

    def hydrate(self, appointment: SyncAppointment, patient_id: Optional[str] = None) -> SyncAppointment:
        """Fill in the patient and doctor display names used in provider items"""
        if not appointment.patient_name:
            if patient_id is None:
                record = self.db.query(Appointment).filter(Appointment.id == appointment.id).first()
                patient_id = record.patient_id if record else None
            name = self.get_patient_name(patient_id) if patient_id else None
            if name:
                appointment.patient_name = name
                self.update_appointment(appointment.id, patient_name=name)
        if appointment.doctor_id and not appointment.doctor_name:
            appointment.doctor_name = self.get_doctor_name(appointment.doctor_id)
        return appointment
