"""
Final student removal, run by the removal workflow for an orphaned student.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import structlog

from shared.utils.errors import MalformedEventError

from services.change_propagation.app.mirror import student_data_prefix, student_prefix
from services.change_propagation.app.ports import BlobStore, PagedTable, StudentStore

from .orphans import is_orphaned, team_members


logger = structlog.get_logger(__name__)


@dataclass
class RemovalResult:
    student_id: str
    removed: bool
    blobs_deleted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"studentId": self.student_id, "removed": self.removed, "blobsDeleted": self.blobs_deleted}


class StudentRemovalStep:
    """Removes a student's records and mirrors once its team is empty."""

    def __init__(self, students: StudentStore, team: PagedTable, blobs: BlobStore):
        self.students = students
        self.team = team
        self.blobs = blobs

    async def run(self, input: Dict[str, Any]) -> RemovalResult:
        student_id = (input or {}).get("studentId")
        if not student_id:
            raise MalformedEventError("Removal input has no studentId")

        # The team may have gained a member since the scan
        rows = await self.team.query_partition("studentId", student_id)
        if not is_orphaned(team_members(rows, student_id)):
            logger.info("Student still has team members", student_id=student_id)
            return RemovalResult(student_id=student_id, removed=False)

        student = await self.students.get_student(student_id)
        await self.students.remove_student_all(student_id)

        deleted = 0
        if student is not None and student.license:
            deleted += await self.blobs.delete_prefix(student_prefix(student.license, student_id))
        else:
            logger.warning("Student license unknown, license mirror left in place", student_id=student_id)
        deleted += await self.blobs.delete_prefix(student_data_prefix(student_id))

        logger.info("Student removed", student_id=student_id, blobs_deleted=deleted)
        return RemovalResult(student_id=student_id, removed=True, blobs_deleted=deleted)
