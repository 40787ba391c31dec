"""Student lifecycle jobs."""

from .backfill import BackfillMode, BackfillSummary, MirrorBackfill
from .orphans import OrphanScanner, OrphanScanSummary
from .removal import RemovalResult, StudentRemovalStep

__all__ = [
    "BackfillMode",
    "BackfillSummary",
    "MirrorBackfill",
    "OrphanScanner",
    "OrphanScanSummary",
    "RemovalResult",
    "StudentRemovalStep",
]
