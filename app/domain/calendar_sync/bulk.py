"""Re-sync every live appointment of a doctor"""

import logging

from .engine import ReconciliationEngine
from .errors import CredentialMissingError, TokenRefreshError
from .items import AppointmentStatus, SyncReport
from .repository import AppointmentSyncRepository
from .slots import try_scheduled_instant

logger = logging.getLogger(__name__)


class BulkSyncOperation:
    def __init__(self, repository: AppointmentSyncRepository, engine: ReconciliationEngine):
        self.repository = repository
        self.engine = engine

    async def sync_all(self, doctor_id: str) -> SyncReport:
        """
        Replay reconciliation over the doctor's non-cancelled appointments.

        Completed appointments are reconciled as completed, the rest as pending.
        Per-appointment failures are counted and the run continues; a refresh
        token that Google rejects aborts it, since no call can succeed.
        """
        credential = self.repository.get_doctor_credential(doctor_id)
        if credential is None:
            raise CredentialMissingError(doctor_id)

        report = SyncReport()
        appointments = self.repository.list_syncable_appointments(doctor_id)
        logger.info(f"🔄 Syncing {len(appointments)} appointment(s) for doctor {doctor_id}")

        async with self.engine.session(credential) as components:
            for appointment in appointments:
                if try_scheduled_instant(appointment.slot_date, appointment.slot_time) is None:
                    logger.warning(f"⚠️ Skipping appointment {appointment.id} with an unreadable slot")
                    report.skipped += 1
                    continue

                status = AppointmentStatus.COMPLETED if appointment.is_completed else AppointmentStatus.PENDING
                try:
                    self.repository.hydrate(appointment)
                    outcome = await self.engine.reconcile_with(components, appointment, status)
                except TokenRefreshError:
                    raise
                except Exception as e:
                    report.failed += 1
                    logger.error(f"❌ Failed to sync appointment {appointment.id}: {e}")
                    continue
                report.record(outcome)

        logger.info(
            f"✅ Sync finished for doctor {doctor_id}: {report.created} created, {report.updated} updated, "
            f"{report.converted} converted, {report.skipped} skipped, {report.failed} failed"
        )
        return report
