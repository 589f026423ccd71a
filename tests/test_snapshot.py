"""Tests for snapshot publishing, coalesced refresh and cancellation."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

import pytest

from retail_metrics.refresh.snapshot import (
    CancellationToken,
    ComputedRecords,
    RefreshCancelled,
    SnapshotPublisher,
)

FIXED_NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


class BlockingCompute:
    """Computation pass that blocks until released and counts its calls."""

    def __init__(self, records=(1, 2, 3), check_token=False):
        self.records = records
        self.check_token = check_token
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def __call__(self, token):
        self.calls += 1
        self.started.set()
        assert self.release.wait(timeout=5)
        if self.check_token:
            token.raise_if_cancelled()
        return ComputedRecords(records=list(self.records), reference_date=date(2024, 6, 30))


class TestCancellationToken:
    """Test CancellationToken."""

    def test_raise_if_cancelled(self):
        """The token raises only after cancellation."""
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(RefreshCancelled):
            token.raise_if_cancelled()


class TestPublishing:
    """Test publishing snapshots."""

    def test_empty_before_first_publish(self):
        """Before any publish there are no records and no snapshot."""
        publisher = SnapshotPublisher("demo", lambda token: ComputedRecords([1], None))
        assert publisher.current() == ()
        assert publisher.snapshot() is None
        assert not publisher.refreshing

    def test_publish_replaces_snapshot_and_bumps_version(self):
        """Each successful pass replaces the snapshot and bumps the version."""
        batches = iter([["a", "b"], ["c"]])
        publisher = SnapshotPublisher(
            "demo",
            lambda token: ComputedRecords(next(batches), date(2024, 6, 30)),
            clock=lambda: FIXED_NOW,
        )

        first = publisher.refresh()
        assert first.success
        assert first.snapshot.version == 1
        assert publisher.current() == ("a", "b")

        second = publisher.refresh()
        assert second.snapshot.version == 2
        assert publisher.current() == ("c",)
        assert second.snapshot.reference_date == date(2024, 6, 30)
        assert second.snapshot.computed_at == FIXED_NOW
        assert len(second.snapshot) == 1

    def test_snapshot_age(self):
        """Snapshot age is measured from computed_at."""
        publisher = SnapshotPublisher(
            "demo", lambda token: ComputedRecords([1], None), clock=lambda: FIXED_NOW
        )
        snapshot = publisher.refresh().snapshot
        assert snapshot.age_seconds(FIXED_NOW + timedelta(minutes=2)) == 120.0

    def test_held_snapshot_unaffected_by_later_publish(self):
        """A snapshot held by a reader does not change after a later publish."""
        batches = iter([[1, 2], [3]])
        publisher = SnapshotPublisher("demo", lambda token: ComputedRecords(next(batches), None))
        publisher.refresh()
        held = publisher.snapshot()
        publisher.refresh()
        assert held.records == (1, 2)
        assert held.version == 1


class TestFailedRefresh:
    """Test failed passes."""

    def test_failure_keeps_previous_snapshot(self):
        """A failed pass keeps the previous snapshot and reports the error."""
        outcomes = iter([ComputedRecords(["ok"], None), RuntimeError("warehouse down")])

        def compute(token):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        publisher = SnapshotPublisher("demo", compute)
        publisher.refresh()

        result = publisher.refresh()
        assert not result.success
        assert isinstance(result.error, RuntimeError)
        assert result.snapshot.version == 1
        assert publisher.current() == ("ok",)
        assert not publisher.refreshing

    def test_failure_before_first_publish(self):
        """A failure before any publish leaves the snapshot empty."""
        def compute(token):
            raise KeyError("clv_tier_gold")

        result = SnapshotPublisher("demo", compute).refresh()
        assert not result.success
        assert result.snapshot is None
        assert isinstance(result.error, KeyError)


class TestCoalescing:
    """Test coalescing of concurrent refreshes."""

    def test_concurrent_refreshes_share_one_pass(self):
        """Refreshes requested during a pass share its result."""
        compute = BlockingCompute()
        publisher = SnapshotPublisher("demo", compute)

        with ThreadPoolExecutor(max_workers=4) as pool:
            leader = pool.submit(publisher.refresh)
            assert compute.started.wait(timeout=5)
            assert publisher.refreshing
            followers = [pool.submit(publisher.refresh) for _ in range(3)]
            time.sleep(0.2)
            compute.release.set()
            leader_result = leader.result(timeout=5)
            follower_results = [f.result(timeout=5) for f in followers]

        assert compute.calls == 1
        assert not leader_result.coalesced
        assert all(r.coalesced for r in follower_results)
        assert {r.snapshot.version for r in follower_results} == {1}
        assert publisher.snapshot().version == 1

    def test_refresh_after_pass_completes_runs_again(self):
        """A refresh after a finished pass starts a new one."""
        calls = []
        publisher = SnapshotPublisher(
            "demo", lambda token: calls.append(1) or ComputedRecords([len(calls)], None)
        )
        publisher.refresh()
        publisher.refresh()
        assert len(calls) == 2
        assert publisher.current() == (2,)


class TestCancellation:
    """Test cancelling a pass in flight."""

    def test_cancel_without_pass_returns_false(self):
        """Cancelling with no pass in flight returns False."""
        publisher = SnapshotPublisher("demo", lambda token: ComputedRecords([], None))
        assert publisher.cancel() is False

    def test_cancelled_pass_raising_is_discarded(self):
        """A cancelled pass that stops early publishes nothing."""
        compute = BlockingCompute(check_token=True)
        publisher = SnapshotPublisher("demo", compute)

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(publisher.refresh)
            assert compute.started.wait(timeout=5)
            assert publisher.cancel() is True
            compute.release.set()
            result = future.result(timeout=5)

        assert result.cancelled
        assert not result.success
        assert publisher.current() == ()

    def test_cancelled_pass_finishing_is_not_published(self):
        """A cancelled pass that finishes anyway publishes nothing."""
        compute = BlockingCompute(records=("old",))
        publisher = SnapshotPublisher("demo", compute)
        compute.release.set()
        publisher.refresh()

        compute.records = ("new",)
        compute.started.clear()
        compute.release.clear()
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(publisher.refresh)
            assert compute.started.wait(timeout=5)
            publisher.cancel()
            compute.release.set()
            result = future.result(timeout=5)

        assert result.cancelled
        assert result.snapshot.records == ("old",)
        assert publisher.current() == ("old",)
