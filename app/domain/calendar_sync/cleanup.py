"""
Purge every appointment item this system created in a doctor's Google account.

Stored ids are not trusted here: both surfaces are enumerated in full and any
Task/Event titled "Appointment with ..." whose notes name this doctor is
deleted, so orphans left by earlier bugs or mode switches go too.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .errors import CredentialMissingError, ProviderError
from .items import APPOINTMENT_TITLE_MARKER, ItemKind, ProviderItemRef, PurgeReport, to_rfc3339
from .matcher import is_live, item_text, item_title
from .repository import AppointmentSyncRepository

logger = logging.getLogger(__name__)

PURGE_TASK_PAGE_SIZE = 100
PURGE_EVENT_PAGE_SIZE = 2500
PURGE_EVENT_HORIZON = timedelta(days=3650)

_COURTESY_PREFIX = re.compile(r"^dr(?:\.\s*|\s+)", re.IGNORECASE)


def doctor_line_pattern(doctor_name: str) -> Optional[re.Pattern]:
    """Match "Doctor: <name>" (optional "Dr." prefix, any case, trailing text allowed)"""
    bare = _COURTESY_PREFIX.sub("", (doctor_name or "").strip()).strip()
    if not bare:
        return None
    return re.compile(
        r"^Doctor:\s*(?:dr(?:\.\s*|\s+))?" + re.escape(bare) + r"(?!\w)",
        re.IGNORECASE | re.MULTILINE,
    )


def belongs_to_doctor(kind: ItemKind, item: dict[str, Any], pattern: re.Pattern) -> bool:
    if APPOINTMENT_TITLE_MARKER not in item_title(kind, item):
        return False
    return pattern.search(item_text(kind, item)) is not None


class CleanupOperation:
    def __init__(self, repository: AppointmentSyncRepository, engine):
        self.repository = repository
        self.engine = engine

    async def purge(self, doctor_id: str) -> PurgeReport:
        credential = self.repository.get_doctor_credential(doctor_id)
        if credential is None:
            raise CredentialMissingError(doctor_id)

        report = PurgeReport()
        pattern = doctor_line_pattern(self.repository.get_doctor_name(doctor_id))
        if pattern is None:
            logger.warning(f"⚠️ Doctor {doctor_id} has no name, cannot recognise their Google items")
            return report

        async with self.engine.session(credential) as components:
            client, writer = components.client, components.writer

            for tasklist_id in await self._tasklist_ids(client):
                for ref in await self._matching_tasks(client, tasklist_id, pattern):
                    if await writer.delete(ref):
                        report.tasks_deleted += 1
                    else:
                        report.failed += 1

            for calendar_id in await self._calendar_ids(client):
                for ref in await self._matching_events(client, calendar_id, pattern):
                    if await writer.delete(ref):
                        report.events_deleted += 1
                    else:
                        report.failed += 1

        cleared = self.repository.clear_provider_links(doctor_id)
        logger.info(
            f"🧹 Purged doctor {doctor_id}: {report.tasks_deleted} task(s), {report.events_deleted} event(s) "
            f"deleted, {report.failed} failed, {cleared} appointment link(s) cleared"
        )
        return report

    async def _tasklist_ids(self, client) -> list[str]:
        try:
            ids = [t["id"] for t in await client.list_tasklists() if t.get("id")]
        except ProviderError as e:
            logger.warning(f"⚠️ Could not list task lists, using the default list: {e}")
            ids = []
        return ids or ["@default"]

    async def _calendar_ids(self, client) -> list[str]:
        try:
            ids = [c["id"] for c in await client.list_calendars() if c.get("id")]
        except ProviderError as e:
            logger.warning(f"⚠️ Could not list calendars, using the primary calendar: {e}")
            ids = []
        return ids or ["primary"]

    async def _matching_tasks(self, client, tasklist_id: str, pattern: re.Pattern) -> list[ProviderItemRef]:
        refs = []
        page_token = None
        while True:
            try:
                items, page_token = await client.list_tasks(
                    tasklist_id,
                    page_token=page_token,
                    max_results=PURGE_TASK_PAGE_SIZE,
                    show_completed=True,
                    show_hidden=True,
                )
            except ProviderError as e:
                logger.warning(f"⚠️ Could not list tasks in {tasklist_id}: {e}")
                break
            for item in items:
                if item.get("id") and is_live(ItemKind.TASK, item) and belongs_to_doctor(ItemKind.TASK, item, pattern):
                    refs.append(ProviderItemRef(ItemKind.TASK, item["id"], tasklist_id, item))
            if not page_token:
                break
        return refs

    async def _matching_events(self, client, calendar_id: str, pattern: re.Pattern) -> list[ProviderItemRef]:
        now = datetime.now(timezone.utc)
        refs = []
        page_token = None
        while True:
            try:
                items, page_token = await client.list_events(
                    calendar_id,
                    time_min=to_rfc3339(now - PURGE_EVENT_HORIZON),
                    time_max=to_rfc3339(now + PURGE_EVENT_HORIZON),
                    query=APPOINTMENT_TITLE_MARKER,
                    page_token=page_token,
                    max_results=PURGE_EVENT_PAGE_SIZE,
                )
            except ProviderError as e:
                logger.warning(f"⚠️ Could not list events in {calendar_id}: {e}")
                break
            for item in items:
                if item.get("id") and is_live(ItemKind.EVENT, item) and belongs_to_doctor(ItemKind.EVENT, item, pattern):
                    refs.append(ProviderItemRef(ItemKind.EVENT, item["id"], calendar_id, item))
            if not page_token:
                break
        return refs
