"""
Concurrent fan-out with per-item results.

A fan-out applies one action to many targets and records each outcome
instead of aborting on the first failure. Writes that succeeded stay
applied; ``raise_for_failures`` turns any failure into a
``PartialPropagationError`` so the delivery system redelivers the event.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, TypeVar

import structlog

from shared.utils.errors import PartialPropagationError


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class ItemResult:
    """Outcome of one fan-out target."""
    key: str
    ok: bool
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"key": self.key, "ok": self.ok}
        if self.error is not None:
            result["error"] = str(self.error)
            result["error_type"] = type(self.error).__name__
        return result


@dataclass
class FanoutReport:
    """Per-item results of one named fan-out operation."""
    operation: str
    results: List[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def failures(self) -> List[ItemResult]:
        return [result for result in self.results if not result.ok]

    def extend(self, other: "FanoutReport") -> None:
        self.results.extend(other.results)

    def raise_for_failures(self) -> None:
        if self.ok:
            return
        raise PartialPropagationError(
            f"{self.failed} of {len(self.results)} {self.operation} writes failed",
            failures=[dict(item.to_dict(), operation=self.operation) for item in self.failures()],
            succeeded=self.succeeded,
        )


def batched(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size``."""
    if size < 1:
        raise ValueError("batch size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


async def fan_out(
    operation: str,
    items: Iterable[T],
    action: Callable[[T], Awaitable[Any]],
    key: Callable[[T], str] = str,
) -> FanoutReport:
    """Run ``action`` on every item concurrently and collect the outcomes."""
    items = list(items)
    outcomes = await asyncio.gather(*(action(item) for item in items), return_exceptions=True)

    report = FanoutReport(operation=operation)
    for item, outcome in zip(items, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(
                "Fan-out item failed",
                operation=operation,
                item=key(item),
                error=str(outcome),
                error_type=type(outcome).__name__,
            )
            report.results.append(ItemResult(key=key(item), ok=False, error=outcome))
        else:
            report.results.append(ItemResult(key=key(item), ok=True))
    return report


async def fan_out_batched(
    operation: str,
    items: Sequence[T],
    action: Callable[[T], Awaitable[Any]],
    batch_size: int,
    key: Callable[[T], str] = str,
) -> FanoutReport:
    """Fan out batch by batch; each batch completes before the next starts."""
    report = FanoutReport(operation=operation)
    for number, batch in enumerate(batched(items, batch_size)):
        batch_report = await fan_out(operation, batch, action, key=key)
        logger.debug(
            "Fan-out batch complete",
            operation=operation,
            batch=number,
            size=len(batch),
            failed=batch_report.failed,
        )
        report.extend(batch_report)
    return report


@dataclass
class PropagationReport:
    """Everything one change event caused, step by step."""
    entity_type: str
    entity_id: Optional[str] = None
    steps: List[FanoutReport] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(step.succeeded for step in self.steps)

    @property
    def failed(self) -> int:
        return sum(step.failed for step in self.steps)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def step(self, operation: str) -> Optional[FanoutReport]:
        for step in self.steps:
            if step.operation == operation:
                return step
        return None

    def add(self, report: FanoutReport) -> None:
        self.steps.append(report)

    async def run_step(self, operation: str, func: Callable[[], Awaitable[Optional[FanoutReport]]]) -> None:
        """Run one step, recording a failure of the step itself as a failed item."""
        try:
            result = await func()
        except Exception as e:
            logger.error(
                "Propagation step failed",
                operation=operation,
                entity_type=self.entity_type,
                entity_id=self.entity_id,
                error=str(e),
            )
            self.add(FanoutReport(operation, [ItemResult(key=self.entity_id or operation, ok=False, error=e)]))
            return

        if result is not None:
            self.add(result)

    def merge(self, other: "PropagationReport") -> None:
        self.steps.extend(other.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "steps": {
                step.operation: {"succeeded": step.succeeded, "failed": step.failed}
                for step in self.steps
            },
        }

    def raise_for_failures(self) -> None:
        if self.ok:
            return
        failures = [
            dict(item.to_dict(), operation=step.operation)
            for step in self.steps
            for item in step.failures()
        ]
        raise PartialPropagationError(
            f"{self.failed} propagation writes failed for {self.entity_type} {self.entity_id}",
            failures=failures,
            succeeded=self.succeeded,
        )
