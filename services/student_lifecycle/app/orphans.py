"""
Orphaned student detection.

Walks the Student table page by page and starts the removal workflow for
every student whose team has no active member. Pages are processed one
after another; the team lookups within a page run concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from shared.schemas.models import TeamMember

from services.change_propagation.app.fanout import fan_out
from services.change_propagation.app.ports import PagedTable, WorkflowOrchestrator


logger = structlog.get_logger(__name__)


def team_members(rows: List[Dict[str, Any]], student_id: str) -> List[TeamMember]:
    return [TeamMember.from_dict(dict(row, studentId=row.get("studentId") or student_id)) for row in rows]


def is_orphaned(members: List[TeamMember]) -> bool:
    """A student is orphaned when no team member is still active."""
    return not any(not member.removed for member in members)


@dataclass
class OrphanScanSummary:
    """Outcome of one full scan."""
    pages: int = 0
    scanned: int = 0
    orphaned: List[str] = field(default_factory=list)
    workflows_started: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": self.pages,
            "scanned": self.scanned,
            "orphaned": len(self.orphaned),
            "workflows_started": self.workflows_started,
            "failed": len(self.failures),
        }


class OrphanScanner:
    """Finds students without an active team and hands them to the removal workflow."""

    def __init__(
        self,
        students: PagedTable,
        team: PagedTable,
        orchestrator: WorkflowOrchestrator,
        workflow_id: str,
        page_limit: Optional[int] = None,
        dry_run: bool = False,
    ):
        self.students = students
        self.team = team
        self.orchestrator = orchestrator
        self.workflow_id = workflow_id
        self.page_limit = page_limit
        self.dry_run = dry_run

    async def is_orphan(self, student_id: str) -> bool:
        rows = await self.team.query_partition("studentId", student_id)
        return is_orphaned(team_members(rows, student_id))

    async def scan(self) -> OrphanScanSummary:
        summary = OrphanScanSummary()
        start_key: Optional[Dict[str, Any]] = None

        while True:
            page = await self.students.scan_page(start_key, self.page_limit)
            summary.pages += 1
            summary.scanned += len(page.items)

            student_ids = [row["studentId"] for row in page.items if row.get("studentId")]
            report = await fan_out("orphan.check", student_ids, lambda sid: self._check(sid, summary))
            summary.failures.extend(item.to_dict() for item in report.failures())

            logger.debug("Orphan scan page complete", page=summary.pages, students=len(student_ids))

            if not page.next_key:
                break
            start_key = page.next_key

        logger.info("Orphan scan complete", dry_run=self.dry_run, **summary.to_dict())
        return summary

    async def _check(self, student_id: str, summary: OrphanScanSummary) -> None:
        if not await self.is_orphan(student_id):
            return

        summary.orphaned.append(student_id)
        if self.dry_run:
            logger.info("Orphaned student found", student_id=student_id)
            return

        await self.orchestrator.start(self.workflow_id, {"studentId": student_id})
        summary.workflows_started += 1
        logger.info("Student removal started", student_id=student_id)
