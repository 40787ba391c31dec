"""
Change event schema for the propagation engine.

A CDC notification carries the before/after images of one record. The
envelope is decoded once, at the boundary, into an explicit
``Created | Updated | Deleted`` value so handlers never re-derive the
transition kind from presence checks.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar, Union

from shared.utils.errors import MalformedEventError


T = TypeVar("T")


class EntityType(Enum):
    """Entity type carried by a change envelope."""
    LICENSE = "license"
    STUDENT = "student-config"
    APP_CONFIG = "app-config"
    USER_NOTIFICATION = "user-notification"
    USER = "user"
    TEAM = "team"


@dataclass(frozen=True)
class Created(Generic[T]):
    """Record appeared; there is no previous image."""
    new: T


@dataclass(frozen=True)
class Updated(Generic[T]):
    """Record changed; both images are present."""
    old: T
    new: T


@dataclass(frozen=True)
class Deleted(Generic[T]):
    """Record removed; only the previous image is present."""
    old: T


Change = Union[Created[T], Updated[T], Deleted[T]]


def build_change(old: Optional[T], new: Optional[T]) -> "Change[T]":
    """Classify an ``(old, new)`` pair into a transition."""
    if old is None and new is None:
        raise MalformedEventError("Change event carries neither an old nor a new image")
    if old is None:
        return Created(new=new)
    if new is None:
        return Deleted(old=old)
    return Updated(old=old, new=new)


def current_state(change: "Change[T]") -> T:
    """The latest known image: ``new`` unless the record was deleted."""
    if isinstance(change, (Created, Updated)):
        return change.new
    if isinstance(change, Deleted):
        return change.old
    raise TypeError(f"Unsupported change type: {type(change).__name__}")


def previous_state(change: "Change[T]") -> Optional[T]:
    if isinstance(change, (Updated, Deleted)):
        return change.old
    return None


def images(change: "Change[T]") -> Tuple[Optional[T], Optional[T]]:
    """``(old, new)`` with ``None`` for the side the transition lacks."""
    new = change.new if isinstance(change, (Created, Updated)) else None
    return previous_state(change), new


def change_kind(change: "Change[Any]") -> str:
    return type(change).__name__.lower()


@dataclass
class ChangeEnvelope:
    """Delivered CDC notification for one entity instance."""
    entity_type: str
    old: Optional[Dict[str, Any]] = None
    new: Optional[Dict[str, Any]] = None
    source: str = "cdc"
    event_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeEnvelope":
        """Create from ``{entityType, detail: {data: {old, new}}}``.

        EventBridge deliveries name the entity type ``detail-type``; both
        spellings are accepted.
        """
        if not isinstance(data, dict):
            raise MalformedEventError("Change envelope must be a JSON object")

        detail = data.get("detail") or {}
        entity_type = data.get("entityType") or data.get("detail-type") or detail.get("type")
        if not entity_type:
            raise MalformedEventError("Change envelope has no entity type")

        payload = detail.get("data")
        if not isinstance(payload, dict):
            raise MalformedEventError("Change envelope has no data section", entity_type=entity_type)

        return cls(
            entity_type=entity_type,
            old=payload.get("old") or None,
            new=payload.get("new") or None,
            source=data.get("source", "cdc"),
            event_id=data.get("id") or data.get("eventId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.old is not None:
            data["old"] = self.old
        if self.new is not None:
            data["new"] = self.new
        return {
            "entityType": self.entity_type,
            "source": self.source,
            "id": self.event_id,
            "detail": {"type": self.entity_type, "data": data},
        }

    def decode(self, parse: Callable[[Dict[str, Any]], T]) -> "Change[T]":
        """Parse both images with ``parse`` and classify the transition."""
        if self.old is None and self.new is None:
            raise MalformedEventError(
                "Change event carries neither an old nor a new image",
                entity_type=self.entity_type,
            )
        try:
            old = parse(self.old) if self.old is not None else None
            new = parse(self.new) if self.new is not None else None
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedEventError(
                f"Unable to parse {self.entity_type} image: {exc}",
                entity_type=self.entity_type,
            ) from exc
        return build_change(old, new)


def synthesize_creation(entity_type: str, record: Dict[str, Any], source: str = "reload") -> ChangeEnvelope:
    """Envelope replaying ``record`` as a creation, used by backfills."""
    return ChangeEnvelope(entity_type=entity_type, old=None, new=record, source=source)


_ID = r"[0-9a-z\-]+"
_USER_PK = re.compile(rf"^U#{_ID}$")
_STUDENT_PK = re.compile(rf"^S#{_ID}$")
_TEAM_SK = re.compile(rf"^S#{_ID}#P$")
_APP_CONFIG_SK = re.compile(rf"^AS#{_ID}#P$")
_USER_NOTIFICATION_PK = re.compile(r"^USN#.+$")


def is_student_primary_key(pk: Optional[str], sk: Optional[str]) -> bool:
    """Primary Student rows share their table with secondary index rows."""
    return bool(pk and _STUDENT_PK.match(pk)) and sk == "P"


def is_app_config_key(pk: Optional[str], sk: Optional[str]) -> bool:
    return bool(pk and _STUDENT_PK.match(pk)) and bool(sk and _APP_CONFIG_SK.match(sk))


def classify_stream_record(
    new: Optional[Dict[str, Any]],
    old: Optional[Dict[str, Any]],
) -> Optional[EntityType]:
    """Map a raw stream record to the entity type its key shape denotes."""
    data = new or old
    if not data or not data.get("pk"):
        return None

    pk = data["pk"]
    sk = data.get("sk") or ""

    if pk == "L":
        return EntityType.LICENSE if sk.startswith("P#") else None
    if _USER_PK.match(pk):
        if sk == "P":
            return EntityType.USER
        if _TEAM_SK.match(sk):
            return EntityType.TEAM
        return None
    if _STUDENT_PK.match(pk):
        if sk == "P":
            return EntityType.STUDENT
        if _APP_CONFIG_SK.match(sk):
            return EntityType.APP_CONFIG
        return None
    if _USER_NOTIFICATION_PK.match(pk) and sk.startswith("S#"):
        return EntityType.USER_NOTIFICATION
    return None


def envelope_from_stream_record(
    new: Optional[Dict[str, Any]],
    old: Optional[Dict[str, Any]],
) -> Optional[ChangeEnvelope]:
    """Build an envelope for a stream record, or ``None`` when it is not routed."""
    entity_type = classify_stream_record(new, old)
    if entity_type is None:
        return None
    return ChangeEnvelope(entity_type=entity_type.value, old=old, new=new, source="DynamoDB")
