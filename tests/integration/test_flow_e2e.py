"""End-to-end propagation flow tests.

Messages enter through the consumer batch path and leave as writes on the
in-memory collaborators.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.change_propagation.app.config import ChangePropagationConfig
from services.change_propagation.app.main import PropagationService
from services.change_propagation.app.mirror import license_key, student_key
from shared.schemas.models import UserNotificationCounter
from tests.fixtures.sample_events import envelope, license_record, notification_record, student_record


def kafka_message(offset, payload):
    message = MagicMock()
    message.error.return_value = None
    message.topic.return_value = "cdc.records.changes.v1"
    message.partition.return_value = 0
    message.offset.return_value = offset
    message.timestamp.return_value = (1, 1718000000000)
    message.key.return_value = None
    message.value.return_value = json.dumps(payload).encode("utf-8")
    return message


@pytest.fixture
def service(router):
    service = PropagationService(config=ChangePropagationConfig(), router=router)
    service.consumer.consumer = MagicMock()
    service.consumer.config.retry_backoff = 0
    service.dlq_producer.send_message = AsyncMock()
    return service


class TestEndToEndFlow:
    """End-to-end data flow tests."""

    @pytest.mark.asyncio
    async def test_license_feature_change(self, service, student_store, user_store, template_engine, blob_store):
        """A features change rewrites both summaries and nothing else."""
        payload = envelope(
            "license",
            old=license_record(features={"duration": False}),
            new=license_record(features={"duration": True}),
        )

        await service.consumer.process_messages([kafka_message(1, payload)])

        assert len(student_store.license_updates) == 2
        for student_id in ("s1", "s2"):
            assert student_store.students[student_id].license_details.features == {"duration": True}
        assert student_store.students["s1"].license_details.full_year is True
        assert student_store.students["s2"].license_details.flexible is True
        assert user_store.added == []
        assert user_store.removed == []
        assert template_engine.calls == []
        assert json.loads(blob_store.objects[license_key("l1")])["details"]["features"] == {"duration": True}
        service.consumer.consumer.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_partial_failure_is_redelivered(self, service, student_store):
        """A failed summary write leaves the message uncommitted and rewound."""
        student_store.fail_on.add("s2")
        payload = envelope("license", old=license_record(expiration="2025-01-01"), new=license_record())

        await service.consumer.process_messages([kafka_message(5, payload)])

        service.consumer.consumer.commit.assert_not_called()
        assert service.consumer.consumer.seek.call_args.args[0].offset == 5

        # Redelivery after the store recovers converges without duplicating s1's state
        student_store.fail_on.clear()
        await service.consumer.process_messages([kafka_message(5, payload)])

        service.consumer.consumer.commit.assert_called_once()
        assert sorted(u[0] for u in student_store.license_updates) == ["s1", "s1", "s2"]
        assert student_store.students["s1"].license_details.expiration == "2025-06-30"

    @pytest.mark.asyncio
    async def test_malformed_message_is_committed(self, service):
        await service.consumer.process_messages([kafka_message(2, {"detail-type": "license", "detail": {}})])

        service.dlq_producer.send_message.assert_awaited_once()
        service.consumer.consumer.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_mixed_batch(self, service, user_store, blob_store):
        user_store.add_user("u1")
        messages = [
            kafka_message(1, envelope("student-config", old=student_record(), new=student_record(archived=True))),
            kafka_message(2, envelope("user-notification", new=notification_record())),
            kafka_message(3, envelope("user-notification", new=notification_record())),
        ]

        await service.consumer.process_messages(messages)

        assert json.loads(blob_store.objects[student_key("l1", "s1")])["archived"] is True
        assert user_store.counter("u1", "s1") == UserNotificationCounter("s1", 2, False)
        assert service.consumer.consumer.commit.call_count == 3
