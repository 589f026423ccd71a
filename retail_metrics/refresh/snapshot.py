"""Published snapshots with atomic swap, coalesced refresh and cancellation.

A :class:`SnapshotPublisher` owns the latest published output of one
classifier. Readers always get a complete snapshot (old or new, never a
mix) because publishing replaces a single reference under a lock.

Refresh semantics:
- At most one computation pass runs per publisher. A refresh requested while
  a pass is in flight waits for that pass and shares its result
  (``coalesced=True``) instead of starting another one.
- A failing pass returns ``success=False`` with the error; the previous
  snapshot keeps serving.
- A cancelled pass is discarded without publishing.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Sequence

import structlog

logger = structlog.get_logger(__name__)


class RefreshCancelled(Exception):
    """Raised inside a computation pass that has been cancelled."""


class CancellationToken:
    """Cooperative cancellation flag handed to a computation pass."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RefreshCancelled()


@dataclass(frozen=True)
class ComputedRecords:
    """Output of one computation pass before it is published."""

    records: Sequence[Any]
    reference_date: date | None


@dataclass(frozen=True)
class PublishedSnapshot:
    """Immutable, ordered output of one successful pass.

    ``computed_at`` makes staleness explicit: consumers can compare it with
    the current time and decide whether the data is fresh enough.
    """

    name: str
    version: int
    records: tuple[Any, ...]
    reference_date: date | None
    computed_at: datetime

    def __len__(self) -> int:
        return len(self.records)

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the snapshot was computed."""
        now = now or datetime.now(timezone.utc)
        return (now - self.computed_at).total_seconds()


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of a :meth:`SnapshotPublisher.refresh` call.

    ``snapshot`` is the newly published snapshot on success, otherwise the
    snapshot still being served (``None`` before the first publish).
    """

    name: str
    success: bool
    snapshot: PublishedSnapshot | None = None
    error: BaseException | None = None
    coalesced: bool = False
    cancelled: bool = False


@dataclass
class _InFlightPass:
    token: CancellationToken = field(default_factory=CancellationToken)
    done: threading.Event = field(default_factory=threading.Event)
    result: RefreshResult | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotPublisher:
    """Serve and refresh the published snapshot of one classifier.

    Args:
        name: Name of the published output (e.g. ``"customer_value"``)
        compute: Computation pass. Receives a :class:`CancellationToken` and
            returns :class:`ComputedRecords`.
        clock: Source of ``computed_at`` timestamps (default: UTC now)

    Example:
        >>> publisher = SnapshotPublisher(
        ...     "demo", lambda token: ComputedRecords(records=[1, 2], reference_date=None)
        ... )
        >>> publisher.current()
        ()
        >>> publisher.refresh().success
        True
        >>> publisher.current()
        (1, 2)
    """

    def __init__(
        self,
        name: str,
        compute: Callable[[CancellationToken], ComputedRecords],
        clock: Callable[[], datetime] | None = None,
    ):
        self.name = name
        self._compute = compute
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self._snapshot: PublishedSnapshot | None = None
        self._inflight: _InFlightPass | None = None

    def snapshot(self) -> PublishedSnapshot | None:
        """Latest published snapshot, or None before the first publish."""
        with self._lock:
            return self._snapshot

    def current(self) -> tuple[Any, ...]:
        """Ordered records of the latest published snapshot (empty before any)."""
        snapshot = self.snapshot()
        return snapshot.records if snapshot is not None else ()

    @property
    def refreshing(self) -> bool:
        with self._lock:
            return self._inflight is not None

    def cancel(self) -> bool:
        """Cancel the in-flight pass, if any.

        Returns:
            True if a pass was in flight and has been marked cancelled
        """
        with self._lock:
            inflight = self._inflight
            if inflight is None:
                return False
            inflight.token.cancel()
        logger.info("snapshot_refresh_cancel_requested", publisher=self.name)
        return True

    def refresh(self) -> RefreshResult:
        """Run a computation pass and publish its output.

        Blocks until the pass finishes. Concurrent callers share one pass.
        """
        with self._lock:
            inflight = self._inflight
            leader = inflight is None
            if leader:
                inflight = _InFlightPass()
                self._inflight = inflight

        if not leader:
            logger.info("refresh_coalesced", publisher=self.name)
            inflight.done.wait()
            return replace(inflight.result, coalesced=True)

        result = RefreshResult(name=self.name, success=False, snapshot=self.snapshot())
        try:
            result = self._run_pass(inflight)
        finally:
            inflight.result = result
            with self._lock:
                self._inflight = None
            inflight.done.set()
        return result

    def _run_pass(self, inflight: _InFlightPass) -> RefreshResult:
        start_time = time.time()
        logger.info("snapshot_refresh_started", publisher=self.name)

        try:
            computed = self._compute(inflight.token)
        except RefreshCancelled:
            return self._cancelled_result()
        except Exception as e:
            logger.error(
                "snapshot_refresh_failed",
                publisher=self.name,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=int((time.time() - start_time) * 1000),
            )
            return RefreshResult(
                name=self.name, success=False, snapshot=self.snapshot(), error=e
            )

        with self._lock:
            if inflight.token.cancelled:
                snapshot = None
            else:
                version = self._snapshot.version + 1 if self._snapshot else 1
                snapshot = PublishedSnapshot(
                    name=self.name,
                    version=version,
                    records=tuple(computed.records),
                    reference_date=computed.reference_date,
                    computed_at=self._clock(),
                )
                self._snapshot = snapshot

        if snapshot is None:
            return self._cancelled_result()

        logger.info(
            "snapshot_published",
            publisher=self.name,
            version=snapshot.version,
            record_count=len(snapshot.records),
            reference_date=str(snapshot.reference_date),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return RefreshResult(name=self.name, success=True, snapshot=snapshot)

    def _cancelled_result(self) -> RefreshResult:
        logger.info("snapshot_refresh_cancelled", publisher=self.name)
        return RefreshResult(
            name=self.name, success=False, snapshot=self.snapshot(), cancelled=True
        )
