import pytest

from app.domain.calendar_sync.cleanup import doctor_line_pattern
from app.domain.calendar_sync.errors import CredentialMissingError, ProviderError
from app.domain.calendar_sync.items import ProviderMode
from app.models import Doctor


class TestSyncAll:
    async def test_creates_then_updates(self, db, google, connected, make_appointment, make_sync_service):
        make_appointment("A1", slot_time="09:00 AM")
        make_appointment("A2", slot_time="09:30 AM", is_completed=True)
        make_appointment("A3", slot_time="10:00 AM", cancelled=True)
        service = make_sync_service(ProviderMode.CALENDAR)

        first = await service.sync_all("D")
        second = await service.sync_all("D")

        assert (first.created, first.updated, first.failed) == (2, 0, 0)
        assert (second.created, second.updated, second.failed) == (0, 2, 0)
        summaries = sorted(e["summary"] for e in google.events())
        assert summaries == [
            "09:00 AM - Appointment with Jane Doe ⏳ PENDING",
            "09:30 AM - Appointment with Jane Doe ✅ COMPLETED",
        ]

    async def test_tasks_mode_converts_completed(self, db, google, connected, make_appointment, make_sync_service):
        make_appointment("A1", slot_time="09:00 AM")
        make_appointment("A2", slot_time="09:30 AM", is_completed=True)

        report = await make_sync_service(ProviderMode.TASKS).sync_all("D")

        assert (report.created, report.converted) == (1, 1)
        assert len(google.tasks()) == 1
        assert len(google.events()) == 1

    async def test_uses_one_client_for_the_run(self, db, client_factory, connected, make_appointment, make_sync_service):
        make_appointment("A1", slot_time="09:00 AM")
        make_appointment("A2", slot_time="10:00 AM")

        await make_sync_service().sync_all("D")

        assert client_factory.opened == ["D"]

    async def test_per_item_failures_are_counted(self, db, google, connected, make_appointment, make_sync_service):
        make_appointment("A1", slot_time="09:00 AM")
        google.fail("insert_event", ProviderError(500, "backend error"))

        report = await make_sync_service().sync_all("D")

        assert report.failed == 1

    async def test_unreadable_slots_are_skipped(self, db, google, connected, make_appointment, make_sync_service):
        make_appointment("A1", slot_time="whenever")

        report = await make_sync_service().sync_all("D")

        assert report.skipped == 1
        assert google.calls == []

    async def test_requires_google_connection(self, db, google, make_appointment, make_sync_service):
        make_appointment()

        with pytest.raises(CredentialMissingError):
            await make_sync_service().sync_all("D")
        assert google.calls == []


class TestDoctorLinePattern:
    @pytest.mark.parametrize(
        "notes",
        [
            "Doctor: Dr. Gregory House\nAPT_ID:A1",
            "Doctor: Gregory House\nAPT_ID:A1",
            "Doctor: dr gregory house\nAPT_ID:A1",
            "Doctor: DR.GREGORY HOUSE",
            "Doctor: Dr. Gregory House, MD\nAPT_ID:A1",
        ],
    )
    def test_matches_with_or_without_prefix(self, notes):
        assert doctor_line_pattern("Dr. Gregory House").search(notes)

    def test_other_doctors_do_not_match(self):
        pattern = doctor_line_pattern("Dr. Gregory House")
        assert not pattern.search("Doctor: Gregory Housewright\nAPT_ID:A1")
        assert not pattern.search("Doctor: James Wilson\nAPT_ID:A1")

    def test_names_starting_with_dr_keep_their_letters(self):
        assert doctor_line_pattern("Drake Ramoray").search("Doctor: Drake Ramoray")

    def test_empty_name_has_no_pattern(self):
        assert doctor_line_pattern("") is None


class TestPurge:
    async def test_removes_every_item_of_the_doctor(self, db, google, connected, make_appointment, make_sync_service):
        appointment = make_appointment()
        service = make_sync_service(ProviderMode.CALENDAR)
        await service.on_booked(appointment)

        google.tasklists["work"] = {}
        google.add_task("work", title="09:00 AM - Appointment with Old Patient ⏳ PENDING", notes="Doctor: Gregory House")
        google.add_event(
            "clinic-calendar",
            summary="08:00 AM - Appointment with Orphan ❌ CANCELLED",
            description="Doctor: dr. gregory house\nPatient: Orphan",
            start={"dateTime": "2026-01-01T08:00:00.000Z"},
            end={"dateTime": "2026-01-01T08:10:00.000Z"},
        )
        kept_task = google.add_task(title="Buy milk", notes="Doctor: Gregory House")
        other_doctor = google.add_event(
            summary="11:00 AM - Appointment with Someone ⏳ PENDING",
            description="Doctor: Dr. James Wilson",
            start={"dateTime": "2026-10-19T11:00:00.000Z"},
            end={"dateTime": "2026-10-19T11:10:00.000Z"},
        )

        report = await service.purge("D")

        assert (report.tasks_deleted, report.events_deleted, report.failed) == (1, 2, 0)
        assert google.tasks("work") == []
        assert google.events("clinic-calendar") == []
        assert [t["id"] for t in google.tasks()] == [kept_task["id"]]
        assert [e["id"] for e in google.events()] == [other_doctor["id"]]
        db.refresh(appointment)
        assert appointment.provider_event_id is None

    async def test_requires_google_connection(self, db, google, doctor, make_sync_service):
        with pytest.raises(CredentialMissingError):
            await make_sync_service().purge("D")

    async def test_unnamed_doctor_deletes_nothing(self, db, google, connected, make_sync_service):
        db.query(Doctor).filter(Doctor.id == "D").update({"name": ""})
        db.commit()
        google.add_task(title="Appointment with X", notes="Doctor: ")

        report = await make_sync_service().purge("D")

        assert report.tasks_deleted == 0
        assert len(google.tasks()) == 1
