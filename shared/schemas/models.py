"""
Record models for the change propagation engine.

Defines the source-of-truth records (License, Student, notification
records) and the projections derived from them, with camelCase
dictionary serialization matching the document store.
"""

from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional, List, Set


@dataclass
class License:
    """License record owned by the licensing authority."""
    license_id: str
    expiration: Optional[Any] = None
    features: Dict[str, Any] = field(default_factory=dict)
    admins: List[str] = field(default_factory=list)
    student_templates: List[Dict[str, Any]] = field(default_factory=list)
    app_templates: List[Dict[str, Any]] = field(default_factory=list)
    tags: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "License":
        """Create from a document store record."""
        details = data.get("details") or {}
        return cls(
            license_id=data["license"],
            expiration=details.get("expiration"),
            features=deepcopy(details.get("features") or {}),
            admins=list(details.get("admins") or []),
            student_templates=deepcopy(details.get("studentTemplates") or []),
            app_templates=deepcopy(details.get("appTemplates") or []),
            tags=deepcopy(details.get("tags") or {}),
            raw=deepcopy(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored record shape, keeping unmodelled fields."""
        result = deepcopy(self.raw)
        details = result.setdefault("details", {})
        details.update({
            "expiration": self.expiration,
            "features": deepcopy(self.features),
            "admins": list(self.admins),
            "studentTemplates": deepcopy(self.student_templates),
            "appTemplates": deepcopy(self.app_templates),
            "tags": deepcopy(self.tags),
        })
        result["license"] = self.license_id
        return result


@dataclass
class LicenseSummary:
    """License-derived fields copied onto a Student, plus Student-owned overrides."""
    expiration: Optional[Any] = None
    features: Dict[str, Any] = field(default_factory=dict)
    full_year: Optional[bool] = None
    flexible: Optional[bool] = None
    transferable: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LicenseSummary":
        data = data or {}
        return cls(
            expiration=data.get("expiration"),
            features=deepcopy(data.get("features") or {}),
            full_year=data.get("fullYear"),
            flexible=data.get("flexible"),
            transferable=data.get("transferable"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "expiration": self.expiration,
            "features": deepcopy(self.features),
        }
        # Overrides are omitted rather than written as null
        if self.full_year is not None:
            result["fullYear"] = self.full_year
        if self.flexible is not None:
            result["flexible"] = self.flexible
        if self.transferable is not None:
            result["transferable"] = self.transferable
        return result

    def with_license(self, license: License) -> "LicenseSummary":
        """Overwrite only the license-derived fields."""
        return replace(
            self,
            expiration=license.expiration,
            features=deepcopy(license.features),
        )


@dataclass
class Student:
    """Student record."""
    student_id: str
    license: Optional[str] = None
    license_details: Optional[LicenseSummary] = None
    archived: bool = False
    tags: List[Any] = field(default_factory=list)
    behaviors: List[Dict[str, Any]] = field(default_factory=list)
    responses: List[Dict[str, Any]] = field(default_factory=list)
    documents: List[Dict[str, Any]] = field(default_factory=list)
    abc: Optional[Dict[str, Any]] = None
    last_updated_date: Optional[Any] = None
    last_tracked: Optional[Any] = None
    last_active: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Student":
        """Create from a document store record."""
        license_details = data.get("licenseDetails")
        return cls(
            student_id=data["studentId"],
            license=data.get("license") or None,
            license_details=LicenseSummary.from_dict(license_details) if license_details is not None else None,
            archived=bool(data.get("archived")),
            tags=deepcopy(data.get("tags") or []),
            behaviors=deepcopy(data.get("behaviors") or []),
            responses=deepcopy(data.get("responses") or []),
            documents=deepcopy(data.get("documents") or []),
            abc=deepcopy(data.get("abc")),
            last_updated_date=data.get("lastUpdatedDate"),
            last_tracked=data.get("lastTracked"),
            last_active=data.get("lastActive"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "license": self.license,
            "licenseDetails": self.license_details.to_dict() if self.license_details else None,
            "archived": self.archived,
            "tags": deepcopy(self.tags),
            "behaviors": deepcopy(self.behaviors),
            "responses": deepcopy(self.responses),
            "documents": deepcopy(self.documents),
            "abc": deepcopy(self.abc),
            "lastUpdatedDate": self.last_updated_date,
            "lastTracked": self.last_tracked,
            "lastActive": self.last_active,
        }


@dataclass
class AppSummary:
    """App bound to a student, as listed by the App collaborator."""
    student_id: str
    app_id: str
    license: Optional[str] = None
    device_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSummary":
        return cls(
            student_id=data["studentId"],
            app_id=data.get("appId") or data["id"],
            license=data.get("license"),
            device_id=data.get("deviceId"),
        )


@dataclass
class AppConfig:
    """Per-student app configuration with the items the app tracks."""
    student_id: str
    app_id: str
    license: Optional[str] = None
    device_id: Optional[str] = None
    behaviors: List[Dict[str, Any]] = field(default_factory=list)
    responses: List[Dict[str, Any]] = field(default_factory=list)
    services: List[Dict[str, Any]] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        config = deepcopy(data.get("config") or {})
        return cls(
            student_id=data["studentId"],
            app_id=data["appId"],
            license=data.get("license"),
            device_id=data.get("deviceId"),
            behaviors=config.pop("behaviors", None) or [],
            responses=config.pop("responses", None) or [],
            services=config.pop("services", None) or [],
            settings=config,
        )

    def to_dict(self) -> Dict[str, Any]:
        config = deepcopy(self.settings)
        config.update({
            "behaviors": deepcopy(self.behaviors),
            "responses": deepcopy(self.responses),
            "services": deepcopy(self.services),
        })
        return {
            "studentId": self.student_id,
            "appId": self.app_id,
            "license": self.license,
            "deviceId": self.device_id,
            "config": config,
        }

    def tracked_ids(self) -> Set[str]:
        """Ids of the behaviors and responses this app tracks."""
        return {item["id"] for item in self.behaviors + self.responses if item.get("id")}


@dataclass
class BehaviorName:
    """Display name for a tracked behavior or response."""
    id: str
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title}


@dataclass
class AppPii:
    """Display PII held on the device projection."""
    student_id: str
    app_id: str
    device_id: Optional[str] = None
    student_name: Optional[str] = None
    behavior_names: List[BehaviorName] = field(default_factory=list)
    abc: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppPii":
        return cls(
            student_id=data["studentId"],
            app_id=data["appId"],
            device_id=data.get("deviceId") or None,
            student_name=data.get("studentName"),
            behavior_names=[
                BehaviorName(id=item["id"], title=item.get("title", ""))
                for item in data.get("behaviorNames") or []
            ],
            abc=deepcopy(data.get("abc")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "appId": self.app_id,
            "deviceId": self.device_id,
            "studentName": self.student_name,
            "behaviorNames": [name.to_dict() for name in self.behavior_names],
            "abc": deepcopy(self.abc),
        }


@dataclass
class AppDeviceStudent:
    """One student entry on a device configuration."""
    student_id: str
    behaviors: List[Dict[str, Any]] = field(default_factory=list)
    services: List[Dict[str, Any]] = field(default_factory=list)
    deleted: bool = False


@dataclass
class AppDeviceConfig:
    """Device-level app configuration listing every student on the device."""
    device_id: str
    license: Optional[str] = None
    timezone: Optional[str] = None
    students: List[AppDeviceStudent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppDeviceConfig":
        return cls(
            device_id=data.get("deviceId") or "",
            license=data.get("license") or None,
            timezone=data.get("timezone"),
            students=[
                AppDeviceStudent(
                    student_id=item["studentId"],
                    behaviors=deepcopy(item.get("behaviors") or []),
                    services=deepcopy(item.get("services") or []),
                    deleted=bool(item.get("deleted")),
                )
                for item in data.get("students") or []
            ],
        )


@dataclass
class AdminAccount:
    """A user currently holding admin rights on a license."""
    user_id: str
    email: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdminAccount":
        return cls(user_id=data.get("userId") or data["username"], email=data["email"])


@dataclass
class NotificationRecord:
    """Per-user notification record for a student."""
    student_id: str
    user_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationRecord":
        details = {k: deepcopy(v) for k, v in data.items() if k not in ("userId", "studentId")}
        return cls(
            student_id=data["studentId"],
            user_id=data.get("userId") or None,
            details=details,
        )


@dataclass
class UserNotificationCounter:
    """Unread/alert counter for one student inside a user's event list."""
    student_id: str
    count: int = 0
    awaiting_response: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserNotificationCounter":
        return cls(
            student_id=data["studentId"],
            count=int(data.get("count") or 0),
            awaiting_response=bool(data.get("awaitingResponse")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "count": self.count,
            "awaitingResponse": self.awaiting_response,
        }


@dataclass
class UserConfig:
    """User record holding the notification counters."""
    user_id: str
    events: List[UserNotificationCounter] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserConfig":
        return cls(
            user_id=data["userId"],
            events=[UserNotificationCounter.from_dict(e) for e in data.get("events") or []],
        )

    def find_event(self, student_id: str) -> int:
        """Index of the counter for ``student_id`` or -1."""
        for index, event in enumerate(self.events):
            if event.student_id == student_id:
                return index
        return -1


@dataclass
class TeamMember:
    """Team membership of a user on a student."""
    student_id: str
    user_id: str
    removed: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        return cls(
            student_id=data["studentId"],
            user_id=data.get("userId", ""),
            removed=bool(data.get("removed")),
        )
