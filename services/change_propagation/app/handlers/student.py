"""
Student fan-out: App projection refresh and the Student summary mirror.
"""

from __future__ import annotations

import asyncio
from copy import deepcopy
from dataclasses import replace
from typing import List

import structlog

from shared.schemas.events import Change, Deleted, Updated
from shared.schemas.models import AppConfig, AppPii, AppSummary, BehaviorName, Student

from ..fanout import FanoutReport, ItemResult, PropagationReport, fan_out
from ..mirror import student_key, student_summary
from ..ports import AppStore, BlobStore, StudentStore


logger = structlog.get_logger(__name__)


def behavior_names(student: Student, config: AppConfig) -> List[BehaviorName]:
    """Student behavior and response names for the ids the app tracks."""
    tracked = config.tracked_ids()
    return [
        BehaviorName(id=item["id"], title=item.get("name") or item.get("title") or "")
        for item in student.behaviors + student.responses
        if item.get("id") in tracked
    ]


class AppProjectionRefresher:
    """Keeps every App bound to a Student in step with the Student."""

    def __init__(self, students: StudentStore, apps: AppStore):
        self.students = students
        self.apps = apps

    async def handle(self, change: Change[Student]) -> PropagationReport:
        # Creations have no apps yet; deleted students are cleaned up by the removal workflow
        if not isinstance(change, Updated):
            return PropagationReport(entity_type="student-config")

        old, new = change.old, change.new
        report = PropagationReport(entity_type="student-config", entity_id=new.student_id)

        apps, current = await asyncio.gather(
            self.apps.get_apps_for_student(new.student_id),
            self.students.get_student(new.student_id),
        )
        if not apps:
            return report

        if new.license != old.license:
            license_report = await fan_out(
                "app.license",
                apps,
                lambda app: self.apps.update_license(new.student_id, app.app_id, new.license),
                key=lambda app: app.app_id,
            )
            report.add(license_report)
            if not license_report.ok:
                # No refresh while any app still points at the previous license
                return report

        if current is None:
            logger.warning("Student not found, using event image", student_id=new.student_id)
            current = new

        report.add(await fan_out(
            "app.refresh",
            apps,
            lambda app: self.refresh_app(current, app),
            key=lambda app: app.app_id,
        ))
        return report

    async def refresh_app(self, student: Student, app: AppSummary) -> None:
        config, pii = await asyncio.gather(
            self.apps.get_app_config(app.student_id, app.app_id),
            self.apps.get_app_pii(app.student_id, app.app_id),
        )
        if config is None:
            logger.warning("App has no configuration", student_id=app.student_id, app_id=app.app_id)
            return

        pii = pii or AppPii(student_id=app.student_id, app_id=app.app_id)
        refreshed_pii = replace(
            pii,
            abc=deepcopy(student.abc),
            device_id=pii.device_id or None,
            behavior_names=behavior_names(student, config),
        )

        await asyncio.gather(
            self.apps.update_app_config(replace(config, device_id=config.device_id or "")),
            self.apps.update_app_pii(refreshed_pii),
        )


class StudentMirrorWriter:
    """Writes the reduced Student summary to the blob store."""

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs

    async def handle(self, change: Change[Student]) -> PropagationReport:
        if isinstance(change, Deleted):
            return PropagationReport(entity_type="student-config", entity_id=change.old.student_id)

        student = change.new
        report = PropagationReport(entity_type="student-config", entity_id=student.student_id)
        if not student.license:
            logger.info("Student has no license, mirror skipped", student_id=student.student_id)
            return report

        key = student_key(student.license, student.student_id)
        await self.blobs.put_json(key, student_summary(student))
        report.add(FanoutReport("student.mirror", [ItemResult(key=key, ok=True)]))
        return report
