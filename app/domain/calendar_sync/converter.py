"""Tasks mode: finished appointments move from Google Tasks to Google Calendar"""

import logging

from .errors import ProviderError
from .items import AppointmentStatus, ItemKind, ProviderItemRef, ProviderMode, SyncAppointment
from .matcher import ItemMatcher
from .writer import ItemWriter

logger = logging.getLogger(__name__)


class ModeConverter:
    def __init__(self, matcher: ItemMatcher, writer: ItemWriter):
        self.matcher = matcher
        self.writer = writer

    async def convert_if_terminal(
        self, appointment: SyncAppointment, status: AppointmentStatus, mode: ProviderMode
    ) -> bool:
        """
        Replace the appointment's Task with a calendar Event.

        The Event is written first. If that fails the error propagates and the
        Task stays in place, so the appointment never ends up with no item.
        Returns False when nothing needed converting.
        """
        if mode != ProviderMode.TASKS or not status.is_terminal:
            return False

        existing_event = await self.matcher.find(appointment, ItemKind.EVENT)
        event = await self.writer.write(appointment, status, existing_event, ItemKind.EVENT)

        task_cleared = True
        stored_task_id = appointment.stored_id(ItemKind.TASK)
        if stored_task_id:
            ref = ProviderItemRef(ItemKind.TASK, stored_task_id, self.matcher.container_id(ItemKind.TASK))
            task_cleared = await self.writer.delete(ref)

        try:
            leftovers = await self.matcher.find_all(appointment, ItemKind.TASK, exclude_id=stored_task_id)
        except ProviderError as e:
            logger.warning(f"⚠️ Task sweep after converting appointment {appointment.id} skipped: {e}")
            leftovers = []
        for ref in leftovers:
            await self.writer.delete(ref)

        if task_cleared and appointment.provider_task_id is not None:
            self.matcher.link(appointment, ItemKind.TASK, None)

        logger.info(
            f"🔄 Converted appointment {appointment.id} to calendar event {event.id} ({status.value})"
        )
        return True
