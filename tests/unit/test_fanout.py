"""Unit tests for fan-out reporting."""

import asyncio

import pytest

from services.change_propagation.app.fanout import (
    FanoutReport,
    ItemResult,
    PropagationReport,
    batched,
    fan_out,
    fan_out_batched,
)
from shared.utils.errors import PartialPropagationError


class TestFanOut:
    """Test concurrent fan-out."""

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successes(self):
        """One failing target does not stop the others."""
        written = []

        async def action(item):
            if item == "b":
                raise RuntimeError("boom")
            written.append(item)

        report = await fan_out("test.write", ["a", "b", "c"], action)

        assert sorted(written) == ["a", "c"]
        assert report.succeeded == 2
        assert report.failed == 1
        assert report.failures()[0].key == "b"

        with pytest.raises(PartialPropagationError) as exc_info:
            report.raise_for_failures()
        assert exc_info.value.succeeded == 2
        assert exc_info.value.failures[0]["operation"] == "test.write"

    @pytest.mark.asyncio
    async def test_empty_fan_out(self):
        report = await fan_out("test.write", [], lambda item: asyncio.sleep(0))

        assert report.ok
        report.raise_for_failures()

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        async def action(item):
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await fan_out("test.write", [1], action)


class TestBatching:
    """Test bounded batches."""

    def test_batched(self):
        assert list(batched(list(range(5)), 2)) == [[0, 1], [2, 3], [4]]
        assert list(batched([], 3)) == []

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            list(batched([1], 0))

    @pytest.mark.asyncio
    async def test_batches_run_one_after_another(self):
        """At most one batch is in flight at any time."""
        active = 0
        peak = 0

        async def action(item):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1

        report = await fan_out_batched("test.batch", list(range(25)), action, batch_size=10)

        assert report.succeeded == 25
        assert peak == 10


class TestPropagationReport:
    """Test step-level reporting."""

    @pytest.mark.asyncio
    async def test_run_step_records_step_failure(self):
        report = PropagationReport(entity_type="license", entity_id="l1")

        async def failing():
            raise RuntimeError("lookup failed")

        async def passing():
            return FanoutReport("ok.step", [ItemResult("x", True)])

        async def skipped():
            return None

        await report.run_step("failing.step", failing)
        await report.run_step("ok.step", passing)
        await report.run_step("skipped.step", skipped)

        assert [step.operation for step in report.steps] == ["failing.step", "ok.step"]
        assert report.step("failing.step").failures()[0].key == "l1"
        assert report.succeeded == 1
        assert report.failed == 1
        assert report.to_dict()["steps"]["ok.step"] == {"succeeded": 1, "failed": 0}

        with pytest.raises(PartialPropagationError):
            report.raise_for_failures()

    def test_merge(self):
        first = PropagationReport(entity_type="student-config", entity_id="s1")
        second = PropagationReport(entity_type="student-config", entity_id="s1")
        second.add(FanoutReport("student.mirror", [ItemResult("k", True)]))

        first.merge(second)

        assert first.ok
        assert first.step("student.mirror") is not None
