"""Sample records and change envelopes for testing."""

from typing import Any, Dict, List, Optional


def license_record(
    license_id: str = "l1",
    expiration: str = "2025-06-30",
    features: Optional[Dict[str, Any]] = None,
    admins: Optional[List[str]] = None,
    student_templates: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "pk": "L",
        "sk": f"P#{license_id}",
        "license": license_id,
        "details": {
            "customer": "Test District",
            "expiration": expiration,
            "features": features if features is not None else {"duration": False, "abc": True},
            "admins": admins if admins is not None else ["admin@example.com"],
            "studentTemplates": student_templates if student_templates is not None else [],
            "appTemplates": [],
            "tags": {"devices": []},
        },
    }


def student_record(
    student_id: str = "s1",
    license: Optional[str] = "l1",
    expiration: str = "2025-06-30",
    full_year: bool = True,
    flexible: bool = False,
    transferable: bool = True,
    archived: bool = False,
    behaviors: Optional[List[Dict[str, Any]]] = None,
    responses: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "pk": f"S#{student_id}",
        "sk": "P",
        "studentId": student_id,
        "license": license,
        "licenseDetails": {
            "expiration": expiration,
            "features": {"duration": False, "abc": True},
            "fullYear": full_year,
            "flexible": flexible,
            "transferable": transferable,
        },
        "archived": archived,
        "tags": ["grade-3"],
        "behaviors": behaviors if behaviors is not None else [
            {"id": "b1", "name": "Elopement"},
            {"id": "b2", "name": "Hitting"},
        ],
        "responses": responses if responses is not None else [{"id": "r1", "name": "Redirect"}],
        "documents": [],
        "abc": {"antecedents": ["Transition"], "consequences": ["Break"]},
        "lastUpdatedDate": 1718000000000,
        "lastTracked": "2024-06-10",
        "lastActive": "2024-06-11",
    }


def app_device_record(
    device_id: str = "d1",
    student_ids: Optional[List[str]] = None,
    license: Optional[str] = "l1",
) -> Dict[str, Any]:
    student_ids = student_ids or ["s1"]
    return {
        "pk": f"S#{student_ids[0]}",
        "sk": f"AS#{device_id}#P",
        "deviceId": device_id,
        "license": license,
        "timezone": "America/Los_Angeles",
        "students": [
            {"studentId": sid, "behaviors": [{"id": "b1", "order": 1}], "services": []}
            for sid in student_ids
        ],
    }


def notification_record(student_id: str = "s1", user_id: Optional[str] = "u1") -> Dict[str, Any]:
    record = {
        "pk": f"USN#{user_id or 'none'}",
        "sk": f"S#{student_id}#N#1",
        "studentId": student_id,
        "event": {"type": "behavior", "behaviorId": "b1"},
    }
    if user_id:
        record["userId"] = user_id
    return record


def envelope(entity_type: str, old: Optional[Dict[str, Any]] = None, new: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if old is not None:
        data["old"] = old
    if new is not None:
        data["new"] = new
    return {
        "id": "evt-1",
        "source": "DynamoDB",
        "detail-type": entity_type,
        "detail": {"type": entity_type, "data": data},
    }
