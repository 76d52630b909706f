"""
Reconciliation engine - brings one appointment's Google item in line with its status.

The provider mode (Tasks or Calendar) is fixed when the engine is built. Every
public coroutine opens a single Google client for the doctor and returns a
``ReconcileOutcome``; appointments without a connected doctor are skipped
without any Google call.
"""

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator, Optional

from ...config import EVENT_DURATION_MINUTES, TASK_SCAN_MAX_PAGES
from ...services.google_calendar_service import DoctorCredential
from .converter import ModeConverter
from .errors import ProviderError
from .items import (
    MODE_ITEM_KIND,
    AppointmentStatus,
    ItemKind,
    OldSlot,
    ProviderItemRef,
    ProviderMode,
    ReconcileOutcome,
    SyncAppointment,
)
from .matcher import ItemMatcher
from .repository import AppointmentSyncRepository
from .slots import try_scheduled_instant
from .writer import ItemWriter

logger = logging.getLogger(__name__)


class SyncComponents:
    """Matcher, writer and converter bound to one open Google client"""

    def __init__(self, client, repository, task_scan_max_pages: int, event_duration_minutes: int):
        self.client = client
        self.matcher = ItemMatcher(client, repository, task_scan_max_pages)
        self.writer = ItemWriter(client, self.matcher, event_duration_minutes)
        self.converter = ModeConverter(self.matcher, self.writer)


class ReconciliationEngine:
    def __init__(
        self,
        repository: AppointmentSyncRepository,
        client_factory,
        mode: ProviderMode,
        task_scan_max_pages: int = TASK_SCAN_MAX_PAGES,
        event_duration_minutes: int = EVENT_DURATION_MINUTES,
    ):
        self.repository = repository
        self.client_factory = client_factory
        self.mode = mode
        self.task_scan_max_pages = task_scan_max_pages
        self.event_duration_minutes = event_duration_minutes

    @property
    def item_kind(self) -> ItemKind:
        return MODE_ITEM_KIND[self.mode]

    @asynccontextmanager
    async def session(self, credential: DoctorCredential) -> AsyncIterator[SyncComponents]:
        """Open one Google client for a doctor; refreshed access tokens are saved back"""
        saver = partial(self.repository.save_access_token, credential.doctor_id)
        async with self.client_factory.open(credential, on_token_refreshed=saver) as client:
            yield SyncComponents(client, self.repository, self.task_scan_max_pages, self.event_duration_minutes)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def reconcile(
        self, appointment_id: str, new_status: Optional[AppointmentStatus] = None
    ) -> ReconcileOutcome:
        appointment = self._load(appointment_id)
        if appointment is None:
            return ReconcileOutcome.SKIPPED

        credential = self.repository.get_doctor_credential(appointment.doctor_id)
        if credential is None:
            logger.debug(f"Doctor {appointment.doctor_id} has no Google connection, skipping {appointment_id}")
            return ReconcileOutcome.SKIPPED

        async with self.session(credential) as components:
            return await self.reconcile_with(components, appointment, new_status or appointment.status)

    async def reconcile_with(
        self, components: SyncComponents, appointment: SyncAppointment, status: AppointmentStatus
    ) -> ReconcileOutcome:
        """Reconcile one appointment using an already open client"""
        kind = self.item_kind
        existing = await components.matcher.find(appointment, kind)

        if self.mode == ProviderMode.TASKS and status.is_terminal:
            # A missing Task is not created here; it would only be converted away
            if existing:
                await components.writer.write(appointment, status, existing, kind)
            await components.converter.convert_if_terminal(appointment, status, self.mode)
            return ReconcileOutcome.CONVERTED

        ref = await components.writer.write(appointment, status, existing, kind)
        if existing and ref.id == existing.id:
            return ReconcileOutcome.UPDATED
        return ReconcileOutcome.CREATED

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    async def reschedule(self, appointment_id: str, old_slot: OldSlot) -> ReconcileOutcome:
        """
        Move the appointment's item to its new slot.

        Items anchored at the old slot are deleted first (both stored ids, then a
        sweep of the active surface around the old time), then the new slot is
        reconciled as pending.
        """
        appointment = self._load(appointment_id)
        if appointment is None:
            return ReconcileOutcome.SKIPPED

        if (old_slot.slot_date, old_slot.slot_time) == (appointment.slot_date, appointment.slot_time):
            return await self.reconcile(appointment_id, AppointmentStatus.PENDING)

        credential = self.repository.get_doctor_credential(appointment.doctor_id)
        if credential is None:
            logger.debug(f"Doctor {appointment.doctor_id} has no Google connection, skipping reschedule")
            return ReconcileOutcome.SKIPPED

        async with self.session(credential) as components:
            await self._remove_old_slot(components, appointment, old_slot)
            return await self.reconcile_with(components, appointment, AppointmentStatus.PENDING)

    async def _remove_old_slot(
        self, components: SyncComponents, appointment: SyncAppointment, old_slot: OldSlot
    ) -> None:
        matcher, writer = components.matcher, components.writer

        if old_slot.provider_task_id:
            await writer.delete(
                ProviderItemRef(ItemKind.TASK, old_slot.provider_task_id, matcher.container_id(ItemKind.TASK))
            )
        if old_slot.provider_event_id:
            await writer.delete(
                ProviderItemRef(ItemKind.EVENT, old_slot.provider_event_id, matcher.container_id(ItemKind.EVENT))
            )

        old_instant = try_scheduled_instant(old_slot.slot_date, old_slot.slot_time)
        try:
            leftovers = await matcher.find_all(appointment, self.item_kind, instant=old_instant)
        except ProviderError as e:
            logger.warning(f"⚠️ Old-slot sweep for appointment {appointment.id} skipped: {e}")
            leftovers = []
        for ref in leftovers:
            await writer.delete(ref)

        if appointment.provider_task_id or appointment.provider_event_id:
            appointment.provider_task_id = None
            appointment.provider_event_id = None
            self.repository.update_appointment(appointment.id, provider_task_id=None, provider_event_id=None)

        logger.info(
            f"🔄 Cleared old slot {old_slot.slot_date} {old_slot.slot_time} for appointment {appointment.id}"
        )

    # ------------------------------------------------------------------
    # Hard delete
    # ------------------------------------------------------------------

    async def remove(self, appointment: SyncAppointment) -> int:
        """Delete every item belonging to an appointment on both surfaces"""
        if not appointment.doctor_id:
            return 0
        credential = self.repository.get_doctor_credential(appointment.doctor_id)
        if credential is None:
            return 0

        removed = 0
        async with self.session(credential) as components:
            matcher, writer = components.matcher, components.writer
            for kind in (ItemKind.TASK, ItemKind.EVENT):
                refs: list[ProviderItemRef] = []
                stored_id = appointment.stored_id(kind)
                if stored_id:
                    refs.append(ProviderItemRef(kind, stored_id, matcher.container_id(kind)))
                try:
                    refs.extend(await matcher.find_all(appointment, kind, exclude_id=stored_id))
                except ProviderError as e:
                    logger.warning(f"⚠️ {kind.value} sweep for deleted appointment {appointment.id} skipped: {e}")
                for ref in refs:
                    if await writer.delete(ref):
                        removed += 1

        logger.info(f"🗑️ Removed {removed} Google item(s) for deleted appointment {appointment.id}")
        return removed

    def _load(self, appointment_id: str) -> Optional[SyncAppointment]:
        appointment = self.repository.get_appointment(appointment_id)
        if appointment is None:
            logger.warning(f"⚠️ Appointment {appointment_id} not found, nothing to sync")
            return None
        if not appointment.doctor_id:
            logger.warning(f"⚠️ Appointment {appointment_id} has no doctor, nothing to sync")
            return None
        if try_scheduled_instant(appointment.slot_date, appointment.slot_time) is None:
            logger.warning(
                f"⚠️ Appointment {appointment_id} has an unreadable slot "
                f"({appointment.slot_date!r}, {appointment.slot_time!r}), nothing to sync"
            )
            return None
        return self.repository.hydrate(appointment)
