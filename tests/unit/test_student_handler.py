"""Unit tests for the Student handlers."""

import json

import pytest

from services.change_propagation.app.handlers import AppProjectionRefresher, StudentMirrorWriter
from services.change_propagation.app.handlers.student import behavior_names
from services.change_propagation.app.mirror import student_key
from shared.schemas.events import Created, Deleted, Updated
from shared.schemas.models import AppConfig, AppPii, BehaviorName, Student
from tests.fixtures.sample_events import student_record


def make_student(**kwargs) -> Student:
    return Student.from_dict(student_record(**kwargs))


def make_config(app_id="app-1", tracked=("b1", "r1"), device_id=None) -> AppConfig:
    return AppConfig(
        student_id="s1",
        app_id=app_id,
        license="l1",
        device_id=device_id,
        behaviors=[{"id": item} for item in tracked if item.startswith("b")],
        responses=[{"id": item} for item in tracked if item.startswith("r")],
    )


class TestBehaviorNames:
    """Test tracked-item name resolution."""

    def test_only_tracked_ids_are_named(self):
        student = make_student()

        names = behavior_names(student, make_config(tracked=("b2", "r1")))

        assert names == [BehaviorName("b2", "Hitting"), BehaviorName("r1", "Redirect")]

    def test_title_field_is_accepted(self):
        student = make_student(behaviors=[{"id": "b1", "title": "Elopement"}], responses=[])

        assert behavior_names(student, make_config()) == [BehaviorName("b1", "Elopement")]


class TestAppProjectionRefresher:
    """Test App projection refresh."""

    @pytest.fixture
    def refresher(self, student_store, app_store):
        return AppProjectionRefresher(students=student_store, apps=app_store)

    @pytest.mark.asyncio
    async def test_refresh_updates_config_and_pii(self, refresher, app_store):
        app_store.add_app(make_config(), AppPii(student_id="s1", app_id="app-1", device_id="", student_name="Sam"))

        report = await refresher.handle(Updated(old=make_student(), new=make_student()))

        assert report.ok
        assert app_store.license_updates == []
        pii = app_store.pii_writes[0]
        assert pii.behavior_names == [BehaviorName("b1", "Elopement"), BehaviorName("r1", "Redirect")]
        assert pii.abc == {"antecedents": ["Transition"], "consequences": ["Break"]}
        assert pii.student_name == "Sam"
        assert pii.device_id is None
        assert app_store.config_writes[0].device_id == ""

    @pytest.mark.asyncio
    async def test_license_change_is_applied_before_refresh(self, refresher, app_store):
        app_store.add_app(make_config("app-1"))
        app_store.add_app(make_config("app-2"))

        report = await refresher.handle(Updated(old=make_student(license="l0"), new=make_student()))

        assert report.ok
        assert sorted(app_store.license_updates) == [("s1", "app-1", "l1"), ("s1", "app-2", "l1")]
        license_calls = [i for i, call in enumerate(app_store.calls) if call.startswith("license:")]
        refresh_calls = [i for i, call in enumerate(app_store.calls) if not call.startswith("license:")]
        assert max(license_calls) < min(refresh_calls)

    @pytest.mark.asyncio
    async def test_failed_license_update_skips_refresh(self, refresher, app_store):
        app_store.add_app(make_config("app-1"))
        app_store.add_app(make_config("app-2"))
        app_store.fail_license_for.add("app-2")

        report = await refresher.handle(Updated(old=make_student(license="l0"), new=make_student()))

        assert not report.ok
        assert report.step("app.refresh") is None
        assert app_store.config_writes == []

    @pytest.mark.asyncio
    async def test_current_student_record_is_used(self, refresher, app_store, student_store):
        """The refresh reads the stored Student, not the event image."""
        app_store.add_app(make_config(tracked=("b1",)))
        student_store.students["s1"].behaviors = [{"id": "b1", "name": "Running"}]

        await refresher.handle(Updated(old=make_student(), new=make_student()))

        assert app_store.pii_writes[0].behavior_names == [BehaviorName("b1", "Running")]

    @pytest.mark.asyncio
    async def test_missing_config_is_skipped(self, refresher, app_store):
        app_store.add_app(make_config())
        del app_store.configs[("s1", "app-1")]

        report = await refresher.handle(Updated(old=make_student(), new=make_student()))

        assert report.ok
        assert app_store.config_writes == []

    @pytest.mark.asyncio
    async def test_creation_and_deletion_are_ignored(self, refresher, app_store):
        app_store.add_app(make_config())

        await refresher.handle(Created(new=make_student()))
        await refresher.handle(Deleted(old=make_student()))

        assert app_store.calls == []


class TestStudentMirrorWriter:
    """Test the Student summary mirror."""

    @pytest.mark.asyncio
    async def test_summary_written(self, blob_store):
        writer = StudentMirrorWriter(blob_store)

        report = await writer.handle(Created(new=make_student()))

        document = blob_store.document(student_key("l1", "s1"))
        assert report.step("student.mirror").succeeded == 1
        assert document["studentId"] == "s1"
        assert json.loads(document["behaviors"])[0]["id"] == "b1"
        assert json.loads(document["licenseDetails"])["fullYear"] is True
        assert document["archived"] is False

    @pytest.mark.asyncio
    async def test_repeated_writes_are_identical(self, blob_store):
        writer = StudentMirrorWriter(blob_store)
        change = Updated(old=make_student(), new=make_student())

        await writer.handle(change)
        first = blob_store.objects[student_key("l1", "s1")]
        await writer.handle(change)

        assert blob_store.objects[student_key("l1", "s1")] == first

    @pytest.mark.asyncio
    async def test_unlicensed_and_deleted_students_are_skipped(self, blob_store):
        writer = StudentMirrorWriter(blob_store)

        await writer.handle(Created(new=make_student(license=None)))
        await writer.handle(Deleted(old=make_student()))

        assert blob_store.puts == []
