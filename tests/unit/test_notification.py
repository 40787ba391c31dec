"""Unit tests for notification counter maintenance."""

import asyncio

import pytest

from services.change_propagation.app.handlers import NotificationCounterMaintainer
from services.change_propagation.app.handlers.notification import CounterAdjustment, plan_adjustments
from shared.schemas.events import Created, Deleted, Updated
from shared.schemas.models import NotificationRecord, UserNotificationCounter
from shared.utils.errors import ConcurrentModificationError
from tests.fixtures.sample_events import notification_record


def record(user_id="u1", student_id="s1") -> NotificationRecord:
    return NotificationRecord.from_dict(notification_record(student_id=student_id, user_id=user_id))


class TestPlanAdjustments:
    """Test the ownership transition table."""

    def test_creation_increments_owner(self):
        assert plan_adjustments(Created(new=record("u1"))) == [CounterAdjustment("u1", "s1", 1)]

    def test_deletion_decrements_owner(self):
        assert plan_adjustments(Deleted(old=record("u1"))) == [CounterAdjustment("u1", "s1", -1)]

    def test_unowned_records_move_nothing(self):
        assert plan_adjustments(Created(new=record(None))) == []
        assert plan_adjustments(Updated(old=record(None), new=record(None))) == []

    def test_owned_update_only_creates_missing_counter(self):
        assert plan_adjustments(Updated(old=record("u1"), new=record("u1"))) == [
            CounterAdjustment("u1", "s1", 1, create_only=True)
        ]

    def test_owner_change_targets_new_owner_only(self):
        assert plan_adjustments(Updated(old=record("u1"), new=record("u2"))) == [
            CounterAdjustment("u2", "s1", 1, create_only=True)
        ]

    def test_owner_assigned_increments(self):
        assert plan_adjustments(Updated(old=record(None), new=record("u2"))) == [CounterAdjustment("u2", "s1", 1)]

    def test_owner_cleared(self):
        assert plan_adjustments(Updated(old=record("u1"), new=record(None))) == [CounterAdjustment("u1", "s1", -1)]


class TestNotificationCounterMaintainer:
    """Test conditional counter writes."""

    @pytest.fixture
    def maintainer(self, user_store):
        return NotificationCounterMaintainer(user_store, max_attempts=3)

    @pytest.mark.asyncio
    async def test_first_notification_appends_counter(self, maintainer, user_store):
        user_store.add_user("u1")

        report = await maintainer.handle(Created(new=record()))

        assert report.ok
        assert user_store.counter("u1", "s1") == UserNotificationCounter("s1", 1, False)

    @pytest.mark.asyncio
    async def test_increment_existing_counter(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s1", 2, False)])

        await maintainer.handle(Created(new=record()))

        assert user_store.counter("u1", "s1").count == 3

    @pytest.mark.asyncio
    async def test_last_deletion_removes_entry(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s2", 1, False), UserNotificationCounter("s1", 1, False)])

        await maintainer.handle(Deleted(old=record()))

        assert user_store.counter("u1", "s1") is None
        assert user_store.counter("u1", "s2").count == 1

    @pytest.mark.asyncio
    async def test_awaiting_response_entry_is_kept_at_zero(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s1", 1, True)])

        await maintainer.handle(Deleted(old=record()))

        assert user_store.counter("u1", "s1") == UserNotificationCounter("s1", 0, True)

    @pytest.mark.asyncio
    async def test_count_never_goes_negative(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s1", 0, True)])

        await maintainer.handle(Deleted(old=record()))

        assert user_store.counter("u1", "s1").count == 0

    @pytest.mark.asyncio
    async def test_decrement_without_counter_is_noop(self, maintainer, user_store):
        user_store.add_user("u1")

        report = await maintainer.handle(Deleted(old=record()))

        assert report.ok
        assert user_store.event_writes == []

    @pytest.mark.asyncio
    async def test_owner_change_leaves_previous_owner_alone(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s1", 2, False)])
        user_store.add_user("u2", [UserNotificationCounter("s1", 1, False)])

        report = await maintainer.handle(Updated(old=record("u1"), new=record("u2")))

        assert report.ok
        assert user_store.counter("u1", "s1").count == 2
        assert user_store.counter("u2", "s1").count == 1
        assert user_store.event_writes == []

    @pytest.mark.asyncio
    async def test_owner_change_creates_missing_counter(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s1", 2, False)])
        user_store.add_user("u2")

        await maintainer.handle(Updated(old=record("u1"), new=record("u2")))

        assert user_store.counter("u1", "s1").count == 2
        assert user_store.counter("u2", "s1") == UserNotificationCounter("s1", 1, False)

    @pytest.mark.asyncio
    async def test_owned_update_creates_missing_counter(self, maintainer, user_store):
        user_store.add_user("u1")

        await maintainer.handle(Updated(old=record("u1"), new=record("u1")))

        assert user_store.counter("u1", "s1") == UserNotificationCounter("s1", 1, False)

    @pytest.mark.asyncio
    async def test_owner_assigned_increments_existing_counter(self, maintainer, user_store):
        user_store.add_user("u2", [UserNotificationCounter("s1", 1, True)])

        await maintainer.handle(Updated(old=record(None), new=record("u2")))

        assert user_store.counter("u2", "s1") == UserNotificationCounter("s1", 2, True)

    @pytest.mark.asyncio
    async def test_missing_user_is_skipped(self, maintainer, user_store):
        report = await maintainer.handle(Created(new=record("ghost")))

        assert report.ok
        assert user_store.event_writes == []

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, maintainer, user_store):
        user_store.add_user("u1", [UserNotificationCounter("s1", 1, False)])
        user_store.conflicts = 2

        report = await maintainer.handle(Created(new=record()))

        assert report.ok
        assert len(user_store.event_writes) == 3
        assert user_store.counter("u1", "s1").count == 2

    @pytest.mark.asyncio
    async def test_persistent_conflict_fails_the_item(self, maintainer, user_store):
        user_store.add_user("u1")
        user_store.conflicts = 3

        report = await maintainer.handle(Created(new=record()))

        assert not report.ok
        failure = report.step("notification.counter").failures()[0]
        assert isinstance(failure.error, ConcurrentModificationError)
        assert failure.key == "u1:s1:+1"

    @pytest.mark.asyncio
    async def test_concurrent_increments_both_count(self, user_store):
        """Two notifications for a new counter both end up counted."""
        user_store.add_user("u1")
        maintainer = NotificationCounterMaintainer(user_store, max_attempts=5)

        await asyncio.gather(
            maintainer.handle(Created(new=record())),
            maintainer.handle(Created(new=record())),
        )

        assert user_store.counter("u1", "s1").count == 2
