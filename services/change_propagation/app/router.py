"""
Entity-type routing for change envelopes.

The router decodes an envelope with the parser registered for its entity
type and runs every handler registered for it. A handler that raises is
recorded as a failed step; the remaining handlers still run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import structlog

from shared.schemas.events import Change, ChangeEnvelope, EntityType, current_state
from shared.schemas.models import AppDeviceConfig, License, NotificationRecord, Student
from shared.utils.logging import bind_event_context, clear_event_context

from .fanout import FanoutReport, ItemResult, PropagationReport
from .handlers import (
    AppConfigMirrorHandler,
    AppProjectionRefresher,
    LicenseFanoutHandler,
    NotificationCounterMaintainer,
    StudentMirrorWriter,
)
from .ports import AppStore, BlobStore, StudentStore, TemplateEngine, UserStore


logger = structlog.get_logger(__name__)


class ChangeHandler(Protocol):
    async def handle(self, change: Change[Any]) -> PropagationReport: ...


@dataclass
class Route:
    parse: Callable[[Dict[str, Any]], Any]
    handlers: List[Tuple[str, ChangeHandler]] = field(default_factory=list)


def entity_id(entity: Any) -> Optional[str]:
    for attribute in ("license_id", "student_id", "device_id", "user_id"):
        value = getattr(entity, attribute, None)
        if value:
            return value
    return None


class ChangeRouter:
    """Dispatches change envelopes to the handlers of their entity type."""

    def __init__(self):
        self.routes: Dict[str, Route] = {}

    def register(
        self,
        entity_type: EntityType,
        parse: Callable[[Dict[str, Any]], Any],
        handler: ChangeHandler,
        name: Optional[str] = None,
    ) -> None:
        route = self.routes.setdefault(entity_type.value, Route(parse=parse))
        route.handlers.append((name or type(handler).__name__, handler))

    def handles(self, entity_type: str) -> bool:
        return entity_type in self.routes

    async def dispatch(self, envelope: ChangeEnvelope) -> PropagationReport:
        """Decode and propagate one envelope.

        Raises ``MalformedEventError`` before any handler runs when the
        envelope cannot be decoded.
        """
        route = self.routes.get(envelope.entity_type)
        if route is None:
            logger.debug("No handlers for entity type", entity_type=envelope.entity_type)
            return PropagationReport(entity_type=envelope.entity_type)

        change = envelope.decode(route.parse)
        report = PropagationReport(entity_type=envelope.entity_type, entity_id=entity_id(current_state(change)))

        bind_event_context(envelope.entity_type, report.entity_id)
        try:
            for name, handler in route.handlers:
                try:
                    report.merge(await handler.handle(change))
                except Exception as e:
                    logger.error("Change handler failed", handler=name, error=str(e), exc_info=True)
                    report.add(FanoutReport(name, [ItemResult(key=report.entity_id or name, ok=False, error=e)]))
        finally:
            clear_event_context()

        return report


@dataclass
class Collaborators:
    """Record stores and side-effect targets the handlers write through."""
    students: StudentStore
    users: UserStore
    apps: AppStore
    templates: TemplateEngine
    blobs: Optional[BlobStore] = None


def build_router(
    collaborators: Collaborators,
    template_batch_size: int = 10,
    counter_max_attempts: int = 5,
    delete_license_mirror_on_removal: bool = False,
) -> ChangeRouter:
    """Wire every handler to the entity type it consumes."""
    if collaborators.blobs is None:
        raise ValueError("A blob store is required")

    router = ChangeRouter()
    router.register(
        EntityType.LICENSE,
        License.from_dict,
        LicenseFanoutHandler(
            students=collaborators.students,
            users=collaborators.users,
            templates=collaborators.templates,
            blobs=collaborators.blobs,
            template_batch_size=template_batch_size,
            delete_mirror_on_removal=delete_license_mirror_on_removal,
        ),
        name="license",
    )
    router.register(
        EntityType.STUDENT,
        Student.from_dict,
        AppProjectionRefresher(students=collaborators.students, apps=collaborators.apps),
        name="student.apps",
    )
    router.register(
        EntityType.STUDENT,
        Student.from_dict,
        StudentMirrorWriter(blobs=collaborators.blobs),
        name="student.mirror",
    )
    router.register(
        EntityType.APP_CONFIG,
        AppDeviceConfig.from_dict,
        AppConfigMirrorHandler(blobs=collaborators.blobs),
        name="app.mirror",
    )
    router.register(
        EntityType.USER_NOTIFICATION,
        NotificationRecord.from_dict,
        NotificationCounterMaintainer(users=collaborators.users, max_attempts=counter_max_attempts),
        name="notification.counter",
    )
    return router

