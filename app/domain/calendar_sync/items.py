"""
Typed shapes shared by the calendar sync components.

Google returns and accepts plain JSON objects; everything the sync engine
builds goes through ``TaskBody`` / ``EventBody`` so the payload shape lives in
one place.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

APPOINTMENT_TITLE_MARKER = "Appointment with "
APPOINTMENT_ID_MARKER = "APT_ID:"
DEFAULT_PATIENT_NAME = "Patient"


class ProviderMode(str, Enum):
    """How appointments are mirrored into the doctor's Google account"""

    TASKS = "tasks"
    CALENDAR = "calendar"

    @classmethod
    def from_flag(cls, use_tasks: bool) -> "ProviderMode":
        return cls.TASKS if use_tasks else cls.CALENDAR


class ItemKind(str, Enum):
    TASK = "task"
    EVENT = "event"


MODE_ITEM_KIND = {
    ProviderMode.TASKS: ItemKind.TASK,
    ProviderMode.CALENDAR: ItemKind.EVENT,
}


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

    @property
    def glyph(self) -> str:
        return STATUS_GLYPHS[self]


# Title suffixes must stay stable: the time/title matcher relies on the prefix before them
STATUS_GLYPHS = {
    AppointmentStatus.PENDING: "⏳ PENDING",
    AppointmentStatus.COMPLETED: "✅ COMPLETED",
    AppointmentStatus.CANCELLED: "❌ CANCELLED",
}

# Google Calendar event palette: 9 = Blueberry, 10 = Basil, 11 = Tomato
EVENT_COLORS = {
    AppointmentStatus.PENDING: "9",
    AppointmentStatus.COMPLETED: "10",
    AppointmentStatus.CANCELLED: "11",
}

TASK_STATUSES = {
    AppointmentStatus.PENDING: "needsAction",
    AppointmentStatus.COMPLETED: "completed",
    AppointmentStatus.CANCELLED: "needsAction",
}


def to_rfc3339(value: datetime) -> str:
    """Format an aware datetime as the UTC RFC 3339 string Google expects"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


@dataclass
class SyncAppointment:
    """The subset of an appointment record the sync engine reads and writes"""

    id: str
    doctor_id: Optional[str]
    slot_date: Optional[str]
    slot_time: Optional[str]
    patient_name: Optional[str] = None
    doctor_name: str = ""
    cancelled: bool = False
    is_completed: bool = False
    provider_task_id: Optional[str] = None
    provider_event_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.patient_name or DEFAULT_PATIENT_NAME

    @property
    def status(self) -> AppointmentStatus:
        if self.cancelled:
            return AppointmentStatus.CANCELLED
        if self.is_completed:
            return AppointmentStatus.COMPLETED
        return AppointmentStatus.PENDING

    @property
    def title_marker(self) -> str:
        return f"{APPOINTMENT_TITLE_MARKER}{self.display_name}"

    @property
    def id_marker(self) -> str:
        return f"{APPOINTMENT_ID_MARKER}{self.id}"

    def stored_id(self, kind: ItemKind) -> Optional[str]:
        value = self.provider_task_id if kind == ItemKind.TASK else self.provider_event_id
        if value and value.strip():
            return value.strip()
        return None


@dataclass(frozen=True)
class OldSlot:
    """Slot tokens and provider ids captured before a reschedule mutated the record"""

    slot_date: str
    slot_time: str
    provider_task_id: Optional[str] = None
    provider_event_id: Optional[str] = None


@dataclass
class TaskBody:
    title: str
    notes: str
    status: str
    due: str

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "notes": self.notes,
            "status": self.status,
            "due": self.due,
        }
        if self.status == "needsAction":
            # Reopening a task requires clearing its completion timestamp
            payload["completed"] = None
        return payload


@dataclass
class EventBody:
    summary: str
    description: str
    start: datetime
    end: datetime
    color_id: str
    reminders: dict[str, Any]
    transparency: str = "transparent"

    def to_payload(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "description": self.description,
            "start": {"dateTime": to_rfc3339(self.start)},
            "end": {"dateTime": to_rfc3339(self.end)},
            "colorId": self.color_id,
            "transparency": self.transparency,
            "reminders": self.reminders,
        }


@dataclass
class ProviderItemRef:
    """A Google Task or Event known to belong to an appointment"""

    kind: ItemKind
    id: str
    container_id: str  # task list id or calendar id
    item: dict[str, Any] = field(default_factory=dict)


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    CONVERTED = "converted"
    SKIPPED = "skipped"


@dataclass
class SyncReport:
    created: int = 0
    updated: int = 0
    converted: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, outcome: ReconcileOutcome) -> None:
        if outcome == ReconcileOutcome.CREATED:
            self.created += 1
        elif outcome == ReconcileOutcome.UPDATED:
            self.updated += 1
        elif outcome == ReconcileOutcome.CONVERTED:
            self.converted += 1
        else:
            self.skipped += 1


@dataclass
class PurgeReport:
    tasks_deleted: int = 0
    events_deleted: int = 0
    failed: int = 0
