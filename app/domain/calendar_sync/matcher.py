"""
Locating the Google Task / Event that belongs to an appointment.

Resolution order for ``ItemMatcher.find``:

1. the id stored on the appointment for that surface
2. an item whose notes/description carry ``APT_ID:<appointment id>``
3. an item whose due/start time is within five minutes of the slot and whose
   title contains ``Appointment with <patient name>``

Tiers 2 and 3 re-link the found item onto the appointment so the next lookup
is a single GET.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from ...config import TASK_SCAN_MAX_PAGES
from .errors import ProviderError
from .items import (
    APPOINTMENT_ID_MARKER,
    APPOINTMENT_TITLE_MARKER,
    ItemKind,
    ProviderItemRef,
    SyncAppointment,
    to_rfc3339,
)
from .slots import parse_google_datetime, try_scheduled_instant

logger = logging.getLogger(__name__)

HEURISTIC_WINDOW = timedelta(minutes=5)
EVENT_SEARCH_WINDOW = timedelta(minutes=10)
EVENT_SEARCH_QUERY = APPOINTMENT_TITLE_MARKER.strip()
EVENT_SEARCH_MAX_RESULTS = 50
TASK_PAGE_SIZE = 100


def item_title(kind: ItemKind, item: dict[str, Any]) -> str:
    return (item.get("title") if kind == ItemKind.TASK else item.get("summary")) or ""


def item_text(kind: ItemKind, item: dict[str, Any]) -> str:
    return (item.get("notes") if kind == ItemKind.TASK else item.get("description")) or ""


def item_instant(kind: ItemKind, item: dict[str, Any]) -> Optional[datetime]:
    if kind == ItemKind.TASK:
        return parse_google_datetime(item.get("due"))
    start = item.get("start") or {}
    return parse_google_datetime(start.get("dateTime") or start.get("date"))


def is_live(kind: ItemKind, item: dict[str, Any]) -> bool:
    if kind == ItemKind.TASK:
        return not item.get("deleted")
    return item.get("status") != "cancelled"


def has_id_marker(text: str, appointment_id: str) -> bool:
    # "APT_ID:12" must not match inside "APT_ID:123"
    pattern = re.escape(f"{APPOINTMENT_ID_MARKER}{appointment_id}") + r"(?=\s|$)"
    return re.search(pattern, text) is not None


def matches_slot(
    kind: ItemKind, item: dict[str, Any], appointment: SyncAppointment, instant: Optional[datetime]
) -> bool:
    if instant is None or appointment.title_marker not in item_title(kind, item):
        return False
    text = item_text(kind, item)
    # Items marked for another appointment are never claimed by time/title
    if APPOINTMENT_ID_MARKER in text and not has_id_marker(text, appointment.id):
        return False
    when = item_instant(kind, item)
    return when is not None and abs(when - instant) <= HEURISTIC_WINDOW


class ItemMatcher:
    """Finds provider items for an appointment on the Tasks or Calendar surface"""

    def __init__(self, client, repository, task_scan_max_pages: int = TASK_SCAN_MAX_PAGES):
        self.client = client
        self.repository = repository
        self.task_scan_max_pages = max(1, task_scan_max_pages)

    def container_id(self, kind: ItemKind) -> str:
        return self.client.tasklist_id if kind == ItemKind.TASK else self.client.calendar_id

    async def find(self, appointment: SyncAppointment, kind: ItemKind) -> Optional[ProviderItemRef]:
        ref = await self._find_by_stored_id(appointment, kind)
        if ref:
            return ref

        instant = try_scheduled_instant(appointment.slot_date, appointment.slot_time)
        items = await self.enumerate(kind, instant)

        for item in items:
            if has_id_marker(item_text(kind, item), appointment.id):
                logger.info(f"🔗 Matched {kind.value} {item.get('id')} to appointment {appointment.id} by marker")
                return self._relink(appointment, kind, item)

        candidates = [item for item in items if matches_slot(kind, item, appointment, instant)]
        if candidates:
            if len(candidates) > 1:
                logger.debug(
                    f"Several {kind.value}s match appointment {appointment.id} by time/title, using the first"
                )
            item = candidates[0]
            logger.info(f"🔗 Matched {kind.value} {item.get('id')} to appointment {appointment.id} by time/title")
            return self._relink(appointment, kind, item)

        return None

    async def find_all(
        self,
        appointment: SyncAppointment,
        kind: ItemKind,
        instant: Optional[datetime] = None,
        exclude_id: Optional[str] = None,
    ) -> list[ProviderItemRef]:
        """Every live item on the surface that carries the marker or matches the slot"""
        if instant is None:
            instant = try_scheduled_instant(appointment.slot_date, appointment.slot_time)

        refs = []
        for item in await self.enumerate(kind, instant):
            item_id = item.get("id")
            if not item_id or item_id == exclude_id:
                continue
            if has_id_marker(item_text(kind, item), appointment.id) or matches_slot(
                kind, item, appointment, instant
            ):
                refs.append(ProviderItemRef(kind, item_id, self.container_id(kind), item))
        return refs

    async def enumerate(self, kind: ItemKind, instant: Optional[datetime]) -> list[dict[str, Any]]:
        """The bounded window of live items searched by the marker and time/title tiers"""
        if kind == ItemKind.TASK:
            return await self._scan_tasks()
        if instant is None:
            return []
        items, _ = await self.client.list_events(
            self.client.calendar_id,
            time_min=to_rfc3339(instant - EVENT_SEARCH_WINDOW),
            time_max=to_rfc3339(instant + EVENT_SEARCH_WINDOW),
            query=EVENT_SEARCH_QUERY,
            max_results=EVENT_SEARCH_MAX_RESULTS,
        )
        return [item for item in items if is_live(ItemKind.EVENT, item)]

    async def _scan_tasks(self) -> list[dict[str, Any]]:
        tasks: list[dict[str, Any]] = []
        page_token = None
        for _ in range(self.task_scan_max_pages):
            page, page_token = await self.client.list_tasks(
                self.client.tasklist_id,
                page_token=page_token,
                max_results=TASK_PAGE_SIZE,
                show_completed=True,
                show_hidden=True,
            )
            tasks.extend(item for item in page if is_live(ItemKind.TASK, item))
            if not page_token:
                break
        return tasks

    async def _find_by_stored_id(self, appointment: SyncAppointment, kind: ItemKind) -> Optional[ProviderItemRef]:
        stored_id = appointment.stored_id(kind)
        if not stored_id:
            return None

        container = self.container_id(kind)
        try:
            if kind == ItemKind.TASK:
                item = await self.client.get_task(container, stored_id)
            else:
                item = await self.client.get_event(container, stored_id)
        except ProviderError as e:
            # Any failure is a soft miss; the marker tier re-links the item if it still exists
            logger.warning(f"⚠️ Stored {kind.value} {stored_id} for appointment {appointment.id} unreadable: {e}")
            self._clear(appointment, kind)
            return None

        if not item or not is_live(kind, item):
            logger.info(f"ℹ️ Stored {kind.value} {stored_id} for appointment {appointment.id} was deleted in Google")
            self._clear(appointment, kind)
            return None

        return ProviderItemRef(kind, item.get("id") or stored_id, container, item)

    def _relink(self, appointment: SyncAppointment, kind: ItemKind, item: dict[str, Any]) -> ProviderItemRef:
        item_id = item["id"]
        if appointment.stored_id(kind) != item_id:
            self.link(appointment, kind, item_id)
        return ProviderItemRef(kind, item_id, self.container_id(kind), item)

    def link(self, appointment: SyncAppointment, kind: ItemKind, item_id: Optional[str]) -> None:
        """Persist (or clear, with ``None``) the provider id for one surface"""
        field = "provider_task_id" if kind == ItemKind.TASK else "provider_event_id"
        setattr(appointment, field, item_id)
        self.repository.update_appointment(appointment.id, **{field: item_id})

    def _clear(self, appointment: SyncAppointment, kind: ItemKind) -> None:
        self.link(appointment, kind, None)
