"""Shared fixtures: in-memory SQLite database and an in-memory Google Tasks / Calendar fake."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ["GOOGLE_USE_TASKS"] = "false"
os.environ["CLINIC_TIMEZONE"] = "UTC"

import copy  # noqa: E402
import itertools  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from typing import Any, Optional  # noqa: E402

import pytest  # noqa: E402

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.domain.calendar_sync.errors import StaleReferenceError  # noqa: E402
from app.domain.calendar_sync.items import ProviderMode  # noqa: E402
from app.domain.calendar_sync.service import CalendarSyncService  # noqa: E402
from app.domain.calendar_sync.slots import parse_google_datetime  # noqa: E402
from app.models import Appointment, Doctor, Patient  # noqa: E402
from app.models_google_calendar import GoogleCalendarIntegration  # noqa: E402
from app.services.google_calendar_service import encrypt_token  # noqa: E402


class FakeGoogleWorkspace:
    """
    Stand-in for GoogleWorkspaceClient backed by dicts.

    Keeps task due times intact (real Google Tasks drops the time part) so the
    time/title matching tier can be exercised.
    """

    def __init__(self):
        self.tasklists: dict[str, dict[str, dict]] = {"@default": {}}
        self.calendars: dict[str, dict[str, dict]] = {"primary": {}}
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self._ids = itertools.count(1)
        self.calendar_id = "primary"
        self.tasklist_id = "@default"

    # -- helpers used by tests ---------------------------------------------

    def fail(self, method: str, error: Exception) -> None:
        """Make every following call to ``method`` raise ``error``"""
        self.failures[method] = error

    def tasks(self, tasklist: str = "@default") -> list[dict]:
        return list(self.tasklists.get(tasklist, {}).values())

    def events(self, calendar_id: str = "primary") -> list[dict]:
        return list(self.calendars.get(calendar_id, {}).values())

    def add_task(self, tasklist: str = "@default", **fields) -> dict:
        task = {"id": f"task-{next(self._ids)}", "status": "needsAction", **fields}
        self.tasklists.setdefault(tasklist, {})[task["id"]] = task
        return task

    def add_event(self, calendar_id: str = "primary", **fields) -> dict:
        event = {"id": f"event-{next(self._ids)}", "status": "confirmed", **fields}
        self.calendars.setdefault(calendar_id, {})[event["id"]] = event
        return event

    def _record(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]

    # -- Tasks surface -----------------------------------------------------

    async def list_tasklists(self):
        self._record("list_tasklists")
        return [{"id": key, "title": key} for key in self.tasklists]

    async def list_tasks(self, tasklist, *, page_token=None, max_results=100, show_completed=True, show_hidden=True):
        self._record("list_tasks")
        items = self.tasks(tasklist)
        start = int(page_token or 0)
        page = items[start : start + max_results]
        next_token = str(start + max_results) if start + max_results < len(items) else None
        return copy.deepcopy(page), next_token

    async def get_task(self, tasklist, task_id):
        self._record("get_task")
        task = self.tasklists.get(tasklist, {}).get(task_id)
        if task is None:
            raise StaleReferenceError(404, "Not Found")
        return copy.deepcopy(task)

    async def insert_task(self, tasklist, body):
        self._record("insert_task")
        return copy.deepcopy(self.add_task(tasklist, **body))

    async def update_task(self, tasklist, task_id, body):
        self._record("update_task")
        task = self.tasklists.get(tasklist, {}).get(task_id)
        if task is None:
            raise StaleReferenceError(404, "Not Found")
        task.update(body)
        return copy.deepcopy(task)

    async def delete_task(self, tasklist, task_id):
        self._record("delete_task")
        if self.tasklists.get(tasklist, {}).pop(task_id, None) is None:
            raise StaleReferenceError(404, "Not Found")

    # -- Events surface ----------------------------------------------------

    async def list_calendars(self):
        self._record("list_calendars")
        return [{"id": key} for key in self.calendars]

    async def list_events(
        self, calendar_id, *, time_min=None, time_max=None, query=None, page_token=None, max_results=50
    ):
        self._record("list_events")
        lower = parse_google_datetime(time_min) if time_min else None
        upper = parse_google_datetime(time_max) if time_max else None
        matched = []
        for event in self.events(calendar_id):
            start = parse_google_datetime((event.get("start") or {}).get("dateTime"))
            end = parse_google_datetime((event.get("end") or {}).get("dateTime")) or start
            if lower and end and end <= lower:
                continue
            if upper and start and start >= upper:
                continue
            if query:
                text = f"{event.get('summary', '')} {event.get('description', '')}".lower()
                if not all(word in text for word in query.lower().split()):
                    continue
            matched.append(event)
        start_index = int(page_token or 0)
        page = matched[start_index : start_index + max_results]
        next_token = str(start_index + max_results) if start_index + max_results < len(matched) else None
        return copy.deepcopy(page), next_token

    async def get_event(self, calendar_id, event_id):
        self._record("get_event")
        event = self.calendars.get(calendar_id, {}).get(event_id)
        if event is None:
            raise StaleReferenceError(404, "Not Found")
        return copy.deepcopy(event)

    async def insert_event(self, calendar_id, body):
        self._record("insert_event")
        return copy.deepcopy(self.add_event(calendar_id, **body))

    async def update_event(self, calendar_id, event_id, body):
        self._record("update_event")
        event = self.calendars.get(calendar_id, {}).get(event_id)
        if event is None:
            raise StaleReferenceError(404, "Not Found")
        event.update(body)
        return copy.deepcopy(event)

    async def delete_event(self, calendar_id, event_id):
        self._record("delete_event")
        if self.calendars.get(calendar_id, {}).pop(event_id, None) is None:
            raise StaleReferenceError(410, "Resource has been deleted")


class FakeClientFactory:
    def __init__(self, workspace: FakeGoogleWorkspace):
        self.workspace = workspace
        self.opened: list[str] = []

    @asynccontextmanager
    async def open(self, credential, on_token_refreshed=None):
        self.opened.append(credential.doctor_id)
        yield self.workspace


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def google() -> FakeGoogleWorkspace:
    return FakeGoogleWorkspace()


@pytest.fixture
def client_factory(google) -> FakeClientFactory:
    return FakeClientFactory(google)


@pytest.fixture
def doctor(db) -> Doctor:
    doctor = Doctor(id="D", name="Dr. Gregory House", email="house@clinic.test", fees=50)
    db.add(doctor)
    db.commit()
    return doctor


@pytest.fixture
def patient(db) -> Patient:
    patient = Patient(id="P", name="Jane Doe", email="jane@example.com")
    db.add(patient)
    db.commit()
    return patient


@pytest.fixture
def connected(db, doctor) -> GoogleCalendarIntegration:
    integration = GoogleCalendarIntegration(
        doctor_id=doctor.id,
        refresh_token=encrypt_token("refresh-token"),
        access_token=encrypt_token("access-token"),
        token_expires_at=datetime.utcnow() + timedelta(hours=1),
        google_user_email="house@gmail.com",
        calendar_id="primary",
        tasklist_id="@default",
    )
    db.add(integration)
    db.commit()
    return integration


@pytest.fixture
def make_appointment(db, doctor, patient):
    def _make(
        appointment_id: str = "A1",
        slot_date: str = "19_10_2026",
        slot_time: str = "10:00 AM",
        patient_name: Optional[str] = "Jane Doe",
        **fields: Any,
    ) -> Appointment:
        appointment = Appointment(
            id=appointment_id,
            doctor_id=doctor.id,
            patient_id=patient.id,
            patient_name=patient_name,
            amount=doctor.fees,
            slot_date=slot_date,
            slot_time=slot_time,
            **fields,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


@pytest.fixture
def make_sync_service(db, client_factory):
    def _make(mode: ProviderMode = ProviderMode.CALENDAR) -> CalendarSyncService:
        return CalendarSyncService(db, mode=mode, client_factory=client_factory)

    return _make
