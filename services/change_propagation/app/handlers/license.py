"""
License fan-out.

One License change drives four independent steps: the blob mirror, the
license-derived fields on every Student, the admin associations and the
student templates. Each step is idempotent and reported on its own, so a
failing step never prevents the others from running.
"""

from __future__ import annotations

from typing import Optional

import structlog

from shared.schemas.events import Change, Deleted, current_state, images
from shared.schemas.models import License, LicenseSummary, Student
from shared.utils.tracing import set_span_attribute, trace_async_function

from ..diff import compute_admin_delta, is_relevant_license_change, student_templates_changed
from ..fanout import FanoutReport, ItemResult, PropagationReport, fan_out, fan_out_batched
from ..mirror import license_document, license_key
from ..ports import BlobStore, StudentStore, TemplateEngine, UserStore


logger = structlog.get_logger(__name__)


class LicenseFanoutHandler:
    """Propagates License changes to every projection derived from it."""

    def __init__(
        self,
        students: StudentStore,
        users: UserStore,
        templates: TemplateEngine,
        blobs: BlobStore,
        template_batch_size: int = 10,
        delete_mirror_on_removal: bool = False,
    ):
        self.students = students
        self.users = users
        self.templates = templates
        self.blobs = blobs
        self.template_batch_size = template_batch_size
        self.delete_mirror_on_removal = delete_mirror_on_removal

    async def handle(self, change: Change[License]) -> PropagationReport:
        license = current_state(change)
        old, new = images(change)
        report = PropagationReport(entity_type="license", entity_id=license.license_id)

        async with trace_async_function("license.fanout", {"license.id": license.license_id}):
            await report.run_step("license.mirror", lambda: self.write_mirror(change))
            await report.run_step("license.students", lambda: self.propagate_summaries(old, new))
            await report.run_step("license.admins", lambda: self.propagate_admins(old, new))
            await report.run_step("license.templates", lambda: self.propagate_templates(old, new))
            set_span_attribute("propagation.failed", report.failed)

        logger.info("License change propagated", license_id=license.license_id, steps=report.to_dict()["steps"])
        return report

    async def write_mirror(self, change: Change[License]) -> FanoutReport:
        license = current_state(change)
        key = license_key(license.license_id)

        if isinstance(change, Deleted) and self.delete_mirror_on_removal:
            await self.blobs.delete(key)
            logger.info("License mirror deleted", license_id=license.license_id)
        else:
            # A deletion re-asserts the last known image as an archival snapshot
            await self.blobs.put_json(key, license_document(license))

        return FanoutReport("license.mirror", [ItemResult(key=key, ok=True)])

    async def propagate_summaries(self, old: Optional[License], new: Optional[License]) -> Optional[FanoutReport]:
        """Copy expiration and features onto every Student of the license."""
        if not is_relevant_license_change(old, new):
            logger.debug("License change does not affect students")
            return None

        students = await self.students.get_students_by_license(new.license_id)

        async def apply(student: Student) -> None:
            summary = (student.license_details or LicenseSummary()).with_license(new)
            await self.students.update_license(
                student.student_id,
                new.license_id,
                summary,
                bool(student.archived),
                student.tags,
            )

        return await fan_out("license.students", students, apply, key=lambda s: s.student_id)

    async def propagate_admins(self, old: Optional[License], new: Optional[License]) -> Optional[FanoutReport]:
        """Grant new admins, then revoke removed ones."""
        license_id = (new or old).license_id
        current_admins = await self.users.get_admins_for_license(license_id)
        delta = await compute_admin_delta(old, new, current_admins, self.users.get_user_ids_by_email)
        if delta.empty:
            return None

        logger.info(
            "Updating license admins",
            license_id=license_id,
            add=len(delta.add_ids),
            remove=len(delta.remove_ids),
        )

        report = await fan_out(
            "license.admins",
            delta.add_ids,
            lambda user_id: self.users.add_user_to_license(user_id, license_id),
            key=lambda user_id: f"add:{user_id}",
        )
        report.extend(await fan_out(
            "license.admins",
            delta.remove_ids,
            lambda user_id: self.users.remove_user_from_license(user_id, license_id),
            key=lambda user_id: f"remove:{user_id}",
        ))
        return report

    async def propagate_templates(self, old: Optional[License], new: Optional[License]) -> Optional[FanoutReport]:
        """Apply the current student template set to every Student in bounded batches."""
        if not student_templates_changed(old, new):
            logger.debug("No change affecting templates")
            return None

        license_id = (new or old).license_id
        templates = {"student": list(new.student_templates) if new is not None else []}
        students = await self.students.get_students_by_license(license_id)

        return await fan_out_batched(
            "license.templates",
            students,
            lambda student: self.templates.process_student_templates(student, license_id, templates),
            batch_size=self.template_batch_size,
            key=lambda s: s.student_id,
        )
