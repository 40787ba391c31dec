"""
Blob store key layout and mirror document shapes.

Mirror documents are flat: nested definitions are embedded as JSON
strings so analytics readers can load them without a schema.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from shared.schemas.models import AppDeviceConfig, AppDeviceStudent, License, Student


def license_key(license_id: str) -> str:
    return f"licenses/{license_id}.json"


def student_prefix(license_id: str, student_id: str) -> str:
    return f"students/license={license_id}/student={student_id}/"


def student_key(license_id: str, student_id: str) -> str:
    return f"{student_prefix(license_id, student_id)}info.json"


def student_data_prefix(student_id: str) -> str:
    return f"student/{student_id}/"


def app_key(license_id: str, student_id: str, device_id: str) -> str:
    return f"apps/license={license_id}/student={student_id}/{device_id}-{student_id}.json"


def _embedded(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def license_document(license: License) -> Dict[str, Any]:
    return license.to_dict()


def student_summary(student: Student) -> Dict[str, Any]:
    """Reduced Student summary written to the mirror."""
    return {
        "studentId": student.student_id,
        "license": student.license,
        "licenseDetails": _embedded(student.license_details.to_dict() if student.license_details else None),
        "behaviors": _embedded(student.behaviors),
        "responses": _embedded(student.responses),
        "lastUpdatedDate": student.last_updated_date,
        "lastTracked": student.last_tracked,
        "lastActive": student.last_active,
        "archived": bool(student.archived),
    }


def app_document(device: AppDeviceConfig, entry: AppDeviceStudent) -> Dict[str, Any]:
    """Per-student app entry of a device configuration."""
    return {
        "appId": f"{device.device_id}-{entry.student_id}",
        "studentId": entry.student_id,
        "license": device.license,
        "deviceId": device.device_id,
        "deleted": entry.deleted,
        "generatingUserId": "",
        "behaviors": _embedded(entry.behaviors),
        "groupCount": 0,
        "timezone": device.timezone,
    }
