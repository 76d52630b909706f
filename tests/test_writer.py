import pytest

from app.domain.calendar_sync.errors import ProviderError
from app.domain.calendar_sync.items import AppointmentStatus, ItemKind, ProviderItemRef, SyncAppointment
from app.domain.calendar_sync.matcher import ItemMatcher
from app.domain.calendar_sync.repository import AppointmentSyncRepository
from app.domain.calendar_sync.writer import ItemWriter, build_event_body, build_task_body


def _appointment(**overrides) -> SyncAppointment:
    fields = dict(
        id="A1",
        doctor_id="D",
        slot_date="19_10_2026",
        slot_time="10:00 AM",
        patient_name="Jane Doe",
        doctor_name="Dr. Gregory House",
    )
    fields.update(overrides)
    return SyncAppointment(**fields)


class TestBodies:
    def test_pending_task_body(self):
        body = build_task_body(_appointment(), AppointmentStatus.PENDING).to_payload()

        assert body["title"] == "10:00 AM - Appointment with Jane Doe ⏳ PENDING"
        assert body["notes"] == "Doctor: Dr. Gregory House\nPatient: Jane Doe\nStatus: PENDING\nAPT_ID:A1"
        assert body["status"] == "needsAction"
        assert body["due"] == "2026-10-19T10:00:00.000Z"
        assert body["completed"] is None

    def test_completed_task_is_marked_done(self):
        body = build_task_body(_appointment(), AppointmentStatus.COMPLETED).to_payload()

        assert body["status"] == "completed"
        assert "completed" not in body

    def test_missing_patient_name_falls_back(self):
        body = build_task_body(_appointment(patient_name=None), AppointmentStatus.PENDING)

        assert body.title == "10:00 AM - Appointment with Patient ⏳ PENDING"
        assert body.notes.endswith("APT_ID:A1")

    def test_pending_event_body(self):
        body = build_event_body(_appointment(), AppointmentStatus.PENDING, duration_minutes=10).to_payload()

        assert body["start"] == {"dateTime": "2026-10-19T10:00:00.000Z"}
        assert body["end"] == {"dateTime": "2026-10-19T10:10:00.000Z"}
        assert body["colorId"] == "9"
        assert body["transparency"] == "transparent"
        assert body["reminders"] == {"useDefault": True}

    def test_terminal_event_bodies(self):
        completed = build_event_body(_appointment(), AppointmentStatus.COMPLETED).to_payload()
        cancelled = build_event_body(_appointment(), AppointmentStatus.CANCELLED).to_payload()

        assert completed["colorId"] == "10"
        assert completed["summary"].endswith("✅ COMPLETED")
        assert cancelled["colorId"] == "11"
        assert cancelled["summary"].endswith("❌ CANCELLED")
        for body in (completed, cancelled):
            assert body["reminders"] == {"useDefault": False, "overrides": []}


def _writer(db, google):
    matcher = ItemMatcher(google, AppointmentSyncRepository(db))
    return ItemWriter(google, matcher)


class TestItemWriter:
    async def test_create_persists_new_id(self, db, google, make_appointment):
        record = make_appointment()
        appointment = _appointment()

        ref = await _writer(db, google).write(appointment, AppointmentStatus.PENDING, None, ItemKind.EVENT)

        db.refresh(record)
        assert record.provider_event_id == ref.id == appointment.provider_event_id
        assert len(google.events()) == 1

    async def test_update_keeps_the_same_item(self, db, google, make_appointment):
        event = google.add_event(summary="old", description="APT_ID:A1")
        make_appointment(provider_event_id=event["id"])
        appointment = _appointment(provider_event_id=event["id"])
        existing = ProviderItemRef(ItemKind.EVENT, event["id"], "primary", event)

        ref = await _writer(db, google).write(appointment, AppointmentStatus.COMPLETED, existing, ItemKind.EVENT)

        assert ref.id == event["id"]
        assert google.events()[0]["colorId"] == "10"
        assert "insert_event" not in google.calls

    async def test_failed_update_degrades_to_create(self, db, google, make_appointment):
        record = make_appointment()
        task = google.add_task(title="x", notes="", due="2026-10-19T10:00:00.000Z")
        google.fail("update_task", ProviderError(403, "Forbidden"))
        existing = ProviderItemRef(ItemKind.TASK, task["id"], "@default", task)

        ref = await _writer(db, google).write(_appointment(), AppointmentStatus.PENDING, existing, ItemKind.TASK)

        assert ref.id != task["id"]
        db.refresh(record)
        assert record.provider_task_id == ref.id

    async def test_create_sweeps_duplicates(self, db, google, make_appointment):
        make_appointment()
        google.add_task(title="stray", notes="APT_ID:A1", due="2026-10-19T10:00:00.000Z")
        google.add_task(
            title="10:00 AM - Appointment with Jane Doe ⏳ PENDING", notes="", due="2026-10-19T10:02:00.000Z"
        )

        ref = await _writer(db, google).write(_appointment(), AppointmentStatus.PENDING, None, ItemKind.TASK)

        assert [t["id"] for t in google.tasks()] == [ref.id]

    async def test_failed_create_propagates(self, db, google, make_appointment):
        make_appointment()
        google.fail("insert_event", ProviderError(500, "boom"))

        with pytest.raises(ProviderError) as excinfo:
            await _writer(db, google).write(_appointment(), AppointmentStatus.PENDING, None, ItemKind.EVENT)
        assert excinfo.value.status_code == 500
