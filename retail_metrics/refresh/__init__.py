"""Snapshot publishing and the metrics engine."""

from .engine import PUBLISHER_NAMES, MetricsEngine, PassContext
from .snapshot import (
    CancellationToken,
    ComputedRecords,
    PublishedSnapshot,
    RefreshCancelled,
    RefreshResult,
    SnapshotPublisher,
)

__all__ = [
    "PUBLISHER_NAMES",
    "CancellationToken",
    "ComputedRecords",
    "MetricsEngine",
    "PassContext",
    "PublishedSnapshot",
    "RefreshCancelled",
    "RefreshResult",
    "SnapshotPublisher",
]
