"""Appointment repository - Database operations for appointments"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, Doctor


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: str) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_patient_appointments(db: Session, patient_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.created_at.desc())
            .all()
        )

    @staticmethod
    def get_doctor_appointments(db: Session, doctor_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.created_at.desc())
            .all()
        )

    @staticmethod
    def get_all_appointments(db: Session) -> list[Appointment]:
        return db.query(Appointment).order_by(Appointment.created_at.desc()).all()

    @staticmethod
    def get_doctor(db: Session, doctor_id: str) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def is_slot_taken(
        db: Session, doctor_id: str, slot_date: str, slot_time: str, exclude_id: Optional[str] = None
    ) -> bool:
        """A slot is taken while a non-cancelled appointment holds it"""
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.slot_date == slot_date,
            Appointment.slot_time == slot_time,
            Appointment.cancelled.is_(False),
        )
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        return db.query(query.exists()).scalar()

    @staticmethod
    def patient_has_slot(db: Session, patient_id: str, slot_date: str, slot_time: str) -> bool:
        query = db.query(Appointment).filter(
            Appointment.patient_id == patient_id,
            Appointment.slot_date == slot_date,
            Appointment.slot_time == slot_time,
            Appointment.cancelled.is_(False),
        )
        return db.query(query.exists()).scalar()

    @staticmethod
    def create_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def update_appointment(db: Session, appointment: Appointment, **updates) -> Appointment:
        for key, value in updates.items():
            if hasattr(appointment, key):
                setattr(appointment, key, value)

        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def delete_appointment(db: Session, appointment: Appointment) -> None:
        db.delete(appointment)
        db.commit()
