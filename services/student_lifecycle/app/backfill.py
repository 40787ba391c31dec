"""
Mirror backfill.

Replays primary rows of the data table as synthetic creation events
through the mirror writers. Only re-asserts current state, so it is safe
to run next to live traffic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from shared.schemas.events import EntityType, is_app_config_key, is_student_primary_key, synthesize_creation
from shared.schemas.models import AppDeviceConfig, Student

from services.change_propagation.app.fanout import fan_out
from services.change_propagation.app.handlers import AppConfigMirrorHandler, StudentMirrorWriter
from services.change_propagation.app.ports import PagedTable


logger = structlog.get_logger(__name__)


class BackfillMode(Enum):
    """Which rows to replay."""
    STUDENT = "student"
    APP_CONFIG = "app-config"


@dataclass
class BackfillSummary:
    """Outcome of one backfill run."""
    mode: str
    pages: int = 0
    scanned: int = 0
    replayed: int = 0
    skipped: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "pages": self.pages,
            "scanned": self.scanned,
            "replayed": self.replayed,
            "skipped": self.skipped,
            "failed": len(self.failures),
        }


class MirrorBackfill:
    """Rebuilds the blob mirrors from the data table."""

    def __init__(
        self,
        table: PagedTable,
        student_mirror: StudentMirrorWriter,
        app_mirror: Optional[AppConfigMirrorHandler] = None,
        page_limit: int = 10,
        dry_run: bool = False,
    ):
        self.table = table
        self.student_mirror = student_mirror
        self.app_mirror = app_mirror
        self.page_limit = page_limit
        self.dry_run = dry_run

    def _target(self, mode: BackfillMode) -> Tuple[Callable[[Any, Any], bool], EntityType, Callable, Any]:
        if mode is BackfillMode.STUDENT:
            return is_student_primary_key, EntityType.STUDENT, Student.from_dict, self.student_mirror
        if self.app_mirror is None:
            raise ValueError("App config backfill needs an app mirror handler")
        return is_app_config_key, EntityType.APP_CONFIG, AppDeviceConfig.from_dict, self.app_mirror

    async def run(self, mode: BackfillMode = BackfillMode.STUDENT) -> BackfillSummary:
        matches, entity_type, parse, handler = self._target(mode)
        summary = BackfillSummary(mode=mode.value)

        async def replay(row: Dict[str, Any]) -> None:
            change = synthesize_creation(entity_type.value, row).decode(parse)
            if self.dry_run:
                return
            report = await handler.handle(change)
            report.raise_for_failures()

        start_key: Optional[Dict[str, Any]] = None
        while True:
            page = await self.table.scan_page(start_key, self.page_limit)
            summary.pages += 1
            summary.scanned += len(page.items)

            rows = [row for row in page.items if matches(row.get("pk"), row.get("sk"))]
            summary.skipped += len(page.items) - len(rows)

            report = await fan_out(f"backfill.{mode.value}", rows, replay, key=lambda row: row.get("pk", ""))
            summary.replayed += report.succeeded
            summary.failures.extend(item.to_dict() for item in report.failures())

            if not page.next_key:
                break
            start_key = page.next_key

        logger.info("Mirror backfill complete", dry_run=self.dry_run, **summary.to_dict())
        return summary
