"""Calendar sync service - entry points called by the appointment lifecycle"""

import logging
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...config import GOOGLE_USE_TASKS
from ...models import Appointment
from ...services.google_calendar_service import GoogleClientFactory
from .bulk import BulkSyncOperation
from .cleanup import CleanupOperation
from .engine import ReconciliationEngine
from .errors import CalendarSyncError
from .items import AppointmentStatus, OldSlot, ProviderMode, PurgeReport, SyncAppointment, SyncReport
from .repository import AppointmentSyncRepository

logger = logging.getLogger(__name__)

AppointmentLike = Union[Appointment, SyncAppointment, str]


class CalendarSyncService:
    """
    Mirrors appointment status changes into the doctor's Google account.

    The ``on_*`` hooks never raise: a Google failure is logged and reported as
    ``False`` so booking, completing and cancelling always succeed. ``sync_all``
    and ``purge`` are explicit doctor/admin actions and do raise
    ``CredentialMissingError`` / ``TokenRefreshError``.
    """

    def __init__(
        self,
        db: Session,
        mode: Optional[ProviderMode] = None,
        client_factory=None,
    ):
        self.db = db
        self.mode = mode or ProviderMode.from_flag(GOOGLE_USE_TASKS)
        self.repository = AppointmentSyncRepository(db)
        self.engine = ReconciliationEngine(self.repository, client_factory or GoogleClientFactory(), self.mode)

    async def on_booked(self, appointment: AppointmentLike) -> bool:
        return await self._guard("booking", appointment, AppointmentStatus.PENDING)

    async def on_completed(self, appointment: AppointmentLike) -> bool:
        return await self._guard("completion", appointment, AppointmentStatus.COMPLETED)

    async def on_cancelled(self, appointment: AppointmentLike) -> bool:
        return await self._guard("cancellation", appointment, AppointmentStatus.CANCELLED)

    async def on_rescheduled(self, appointment: AppointmentLike, old_slot: OldSlot) -> bool:
        appointment_id = _appointment_id(appointment)
        try:
            outcome = await self.engine.reschedule(appointment_id, old_slot)
        except CalendarSyncError as e:
            logger.error(f"❌ Google sync failed for reschedule of appointment {appointment_id}: {e}")
            return False
        except Exception:
            logger.exception(f"❌ Unexpected error syncing reschedule of appointment {appointment_id}")
            return False
        logger.info(f"📅 Reschedule of appointment {appointment_id} synced: {outcome.value}")
        return True

    async def on_deleted(self, appointment: SyncAppointment) -> bool:
        """Remove Google items of an appointment that was hard-deleted; takes a snapshot taken before deletion"""
        try:
            await self.engine.remove(appointment)
        except CalendarSyncError as e:
            logger.error(f"❌ Google cleanup failed for deleted appointment {appointment.id}: {e}")
            return False
        except Exception:
            logger.exception(f"❌ Unexpected error cleaning up deleted appointment {appointment.id}")
            return False
        return True

    async def sync_all(self, doctor_id: str) -> SyncReport:
        return await BulkSyncOperation(self.repository, self.engine).sync_all(doctor_id)

    async def purge(self, doctor_id: str) -> PurgeReport:
        return await CleanupOperation(self.repository, self.engine).purge(doctor_id)

    def snapshot(self, appointment: Appointment) -> SyncAppointment:
        """Capture what ``on_deleted`` needs before the row disappears"""
        return self.repository.hydrate(self.repository.to_sync_appointment(appointment), appointment.patient_id)

    async def _guard(self, action: str, appointment: AppointmentLike, status: AppointmentStatus) -> bool:
        appointment_id = _appointment_id(appointment)
        try:
            outcome = await self.engine.reconcile(appointment_id, status)
        except CalendarSyncError as e:
            logger.error(f"❌ Google sync failed for {action} of appointment {appointment_id}: {e}")
            return False
        except Exception:
            logger.exception(f"❌ Unexpected error syncing {action} of appointment {appointment_id}")
            return False
        logger.info(f"📅 {action.capitalize()} of appointment {appointment_id} synced: {outcome.value}")
        return True


def _appointment_id(appointment: AppointmentLike) -> str:
    if isinstance(appointment, str):
        return appointment
    return appointment.id


def old_slot_of(appointment: Appointment) -> OldSlot:
    """Capture slot tokens and Google ids before a reschedule overwrites them"""
    return OldSlot(
        slot_date=appointment.slot_date,
        slot_time=appointment.slot_time,
        provider_task_id=appointment.provider_task_id,
        provider_event_id=appointment.provider_event_id,
    )
