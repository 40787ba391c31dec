"""
Notification counter maintenance.

Every notification record owned by a user contributes one to that user's
counter for the record's student. The owner is the new image's user, or
the old image's user when the new image has none. Counters are only
decremented once the new image has lost its owner, created when the owner
has no entry yet, and incremented when a previously unowned record gains
an owner with an existing entry.

Counter writes are conditional on the entry that was read; a lost race
re-reads and retries a bounded number of times.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

import structlog

from shared.schemas.events import Change, current_state, images
from shared.schemas.models import NotificationRecord, UserNotificationCounter
from shared.utils.errors import ConcurrentModificationError

from ..fanout import PropagationReport, fan_out
from ..ports import UserStore


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CounterAdjustment:
    """One counter change caused by a notification event.

    ``create_only`` adjustments add a missing entry but leave an existing
    one untouched.
    """
    user_id: str
    student_id: str
    delta: int
    create_only: bool = False

    def __str__(self) -> str:
        return f"{self.user_id}:{self.student_id}:{self.delta:+d}"


def plan_adjustments(change: Change[NotificationRecord]) -> List[CounterAdjustment]:
    """Counter changes implied by a notification transition.

    | old.userId | new.userId | counter exists | effect              |
    |------------|------------|----------------|---------------------|
    | absent     | absent     | any            | nothing             |
    | present    | absent     | yes            | decrement           |
    | any        | present    | no             | create at 1         |
    | absent     | present    | yes            | increment           |
    | present    | present    | yes            | nothing             |
    """
    old, new = images(change)
    old_owner = old.user_id if old is not None else None
    new_owner = new.user_id if new is not None else None

    record = current_state(change)
    if not new_owner:
        if not old_owner:
            return []
        return [CounterAdjustment(old_owner, record.student_id, -1)]

    return [CounterAdjustment(new_owner, record.student_id, 1, create_only=bool(old_owner))]


class NotificationCounterMaintainer:
    """Maintains per-(user, student) notification counters."""

    def __init__(self, users: UserStore, max_attempts: int = 5):
        self.users = users
        self.max_attempts = max_attempts

    async def handle(self, change: Change[NotificationRecord]) -> PropagationReport:
        record = current_state(change)
        report = PropagationReport(entity_type="user-notification", entity_id=record.student_id)

        adjustments = plan_adjustments(change)
        if not adjustments:
            logger.debug("Notification change does not move any counter", student_id=record.student_id)
            return report

        report.add(await fan_out("notification.counter", adjustments, self.apply))
        return report

    async def apply(self, adjustment: CounterAdjustment) -> Optional[UserNotificationCounter]:
        """Apply one adjustment, retrying when a concurrent writer got there first."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._apply_once(adjustment)
            except ConcurrentModificationError:
                if attempt == self.max_attempts:
                    logger.error(
                        "Counter update kept conflicting",
                        user_id=adjustment.user_id,
                        student_id=adjustment.student_id,
                        attempts=attempt,
                    )
                    raise
                logger.info(
                    "Counter update conflicted, retrying",
                    user_id=adjustment.user_id,
                    student_id=adjustment.student_id,
                    attempt=attempt,
                )
        return None

    async def _apply_once(self, adjustment: CounterAdjustment) -> Optional[UserNotificationCounter]:
        user = await self.users.get_user_config(adjustment.user_id)
        if user is None:
            logger.info("No user found for notification", user_id=adjustment.user_id)
            return None

        index = user.find_event(adjustment.student_id)

        if index < 0:
            if adjustment.delta < 0:
                logger.debug("No counter to decrement", user_id=adjustment.user_id, student_id=adjustment.student_id)
                return None
            entry = UserNotificationCounter(
                student_id=adjustment.student_id,
                count=adjustment.delta,
                awaiting_response=False,
            )
            await self.users.update_user_event(adjustment.user_id, entry, None)
            return entry

        current = user.events[index]
        if adjustment.create_only:
            logger.debug("Counter already present", user_id=adjustment.user_id, student_id=adjustment.student_id)
            return current

        count =max(current.count + adjustment.delta, 0)

        if count == 0 and not current.awaiting_response:
            await self.users.update_user_event(adjustment.user_id, None, index, expected=current)
            return None

        entry = replace(current, count=count)
        await self.users.update_user_event(adjustment.user_id, entry, index, expected=current)
        return entry
