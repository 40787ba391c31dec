"""
Device configuration mirror.

Each student entry of a device configuration is written as its own app
document, partitioned by license then student.
"""

from __future__ import annotations

from dataclasses import replace

import structlog

from shared.schemas.events import Change, Deleted, current_state
from shared.schemas.models import AppDeviceConfig, AppDeviceStudent

from ..fanout import PropagationReport, fan_out
from ..mirror import app_document, app_key
from ..ports import BlobStore


logger = structlog.get_logger(__name__)


class AppConfigMirrorHandler:
    """Mirrors device app configurations to the blob store."""

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs

    async def handle(self, change: Change[AppDeviceConfig]) -> PropagationReport:
        device = current_state(change)
        report = PropagationReport(entity_type="app-config", entity_id=device.device_id)

        if not device.license:
            logger.info("Device has no license, mirror skipped", device_id=device.device_id)
            return report

        removed = isinstance(change, Deleted)

        async def write(entry: AppDeviceStudent) -> None:
            if removed:
                entry = replace(entry, deleted=True)
            await self.blobs.put_json(
                app_key(device.license, entry.student_id, device.device_id),
                app_document(device, entry),
            )

        report.add(await fan_out("app.mirror", device.students, write, key=lambda entry: entry.student_id))
        return report
