"""Builds Task / Event bodies for an appointment and writes them to Google"""

import logging
from datetime import timedelta
from typing import Optional

from ...config import EVENT_DURATION_MINUTES
from .errors import ProviderError, StaleReferenceError
from .items import (
    EVENT_COLORS,
    TASK_STATUSES,
    AppointmentStatus,
    EventBody,
    ItemKind,
    ProviderItemRef,
    SyncAppointment,
    TaskBody,
    to_rfc3339,
)
from .matcher import ItemMatcher
from .slots import scheduled_instant

logger = logging.getLogger(__name__)


def build_title(appointment: SyncAppointment, status: AppointmentStatus) -> str:
    return f"{appointment.slot_time} - {appointment.title_marker} {status.glyph}"


def build_notes(appointment: SyncAppointment, status: AppointmentStatus) -> str:
    lines = [
        f"Doctor: {appointment.doctor_name}",
        f"Patient: {appointment.display_name}",
        f"Status: {status.value.upper()}",
        appointment.id_marker,
    ]
    return "\n".join(lines)


def build_task_body(appointment: SyncAppointment, status: AppointmentStatus) -> TaskBody:
    due = scheduled_instant(appointment.slot_date, appointment.slot_time)
    return TaskBody(
        title=build_title(appointment, status),
        notes=build_notes(appointment, status),
        status=TASK_STATUSES[status],
        due=to_rfc3339(due),
    )


def build_event_body(
    appointment: SyncAppointment,
    status: AppointmentStatus,
    duration_minutes: int = EVENT_DURATION_MINUTES,
) -> EventBody:
    start = scheduled_instant(appointment.slot_date, appointment.slot_time)
    if status.is_terminal:
        # No reminders once the appointment is finished
        reminders = {"useDefault": False, "overrides": []}
    else:
        reminders = {"useDefault": True}
    return EventBody(
        summary=build_title(appointment, status),
        description=build_notes(appointment, status),
        start=start,
        end=start + timedelta(minutes=max(1, duration_minutes)),
        color_id=EVENT_COLORS[status],
        reminders=reminders,
    )


class ItemWriter:
    """Creates or updates the single Task / Event mirroring an appointment"""

    def __init__(self, client, matcher: ItemMatcher, event_duration_minutes: int = EVENT_DURATION_MINUTES):
        self.client = client
        self.matcher = matcher
        self.event_duration_minutes = event_duration_minutes

    async def write(
        self,
        appointment: SyncAppointment,
        status: AppointmentStatus,
        existing: Optional[ProviderItemRef],
        kind: ItemKind,
    ) -> ProviderItemRef:
        if kind == ItemKind.TASK:
            payload = build_task_body(appointment, status).to_payload()
        else:
            payload = build_event_body(appointment, status, self.event_duration_minutes).to_payload()

        if existing:
            try:
                item = await self._update(kind, existing, payload)
            except ProviderError as e:
                logger.warning(
                    f"⚠️ Updating {kind.value} {existing.id} for appointment {appointment.id} failed, "
                    f"creating a new one: {e}"
                )
            else:
                if appointment.stored_id(kind) != existing.id:
                    self.matcher.link(appointment, kind, existing.id)
                logger.info(f"✅ Updated {kind.value} {existing.id} for appointment {appointment.id} ({status.value})")
                return ProviderItemRef(kind, existing.id, existing.container_id, item or existing.item)

        return await self._create(appointment, kind, payload)

    async def _update(self, kind: ItemKind, ref: ProviderItemRef, payload: dict) -> dict:
        if kind == ItemKind.TASK:
            return await self.client.update_task(ref.container_id, ref.id, payload)
        return await self.client.update_event(ref.container_id, ref.id, payload)

    async def _create(self, appointment: SyncAppointment, kind: ItemKind, payload: dict) -> ProviderItemRef:
        container = self.matcher.container_id(kind)
        if kind == ItemKind.TASK:
            item = await self.client.insert_task(container, payload)
        else:
            item = await self.client.insert_event(container, payload)

        item_id = item.get("id")
        if not item_id:
            raise ProviderError(None, f"Google returned no id for the new {kind.value}")

        self.matcher.link(appointment, kind, item_id)
        logger.info(f"✅ Created {kind.value} {item_id} for appointment {appointment.id}")

        await self.remove_duplicates(appointment, kind, keep_id=item_id)
        return ProviderItemRef(kind, item_id, container, item)

    async def remove_duplicates(self, appointment: SyncAppointment, kind: ItemKind, keep_id: str) -> int:
        """Delete other items on the surface that also belong to this appointment"""
        try:
            duplicates = await self.matcher.find_all(appointment, kind, exclude_id=keep_id)
        except ProviderError as e:
            logger.warning(f"⚠️ Duplicate sweep for appointment {appointment.id} skipped: {e}")
            return 0

        removed = 0
        for ref in duplicates:
            if await self.delete(ref):
                removed += 1
        if removed:
            logger.info(f"🧹 Removed {removed} duplicate {kind.value}(s) for appointment {appointment.id}")
        return removed

    async def delete(self, ref: ProviderItemRef) -> bool:
        """Delete one item; an item that is already gone counts as deleted"""
        try:
            if ref.kind == ItemKind.TASK:
                await self.client.delete_task(ref.container_id, ref.id)
            else:
                await self.client.delete_event(ref.container_id, ref.id)
        except StaleReferenceError:
            return True
        except ProviderError as e:
            logger.warning(f"⚠️ Failed to delete {ref.kind.value} {ref.id}: {e}")
            return False
        return True
