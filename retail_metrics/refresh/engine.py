"""Metrics engine: one snapshot publisher per classifier.

Every computation pass starts by reading the snapshot reference date and the
classification thresholds exactly once. Everything the pass derives is
computed against those two values, and each sub-step checks that it observes
the same reference date.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

import structlog

from retail_metrics.analyses.abc import classify_products
from retail_metrics.analyses.churn import score_churn_priority
from retail_metrics.analyses.clv import calculate_customer_value
from retail_metrics.analyses.retention import (
    DEFAULT_HORIZON_MONTHS,
    analyze_customer_mix,
    calculate_cohort_retention,
)
from retail_metrics.analyses.rfm_segments import segment_customers
from retail_metrics.analyses.store_performance import classify_stores
from retail_metrics.foundation.config import ClassificationThresholds, ConfigProvider
from retail_metrics.foundation.errors import ensure_same_reference_date
from retail_metrics.foundation.facts import DELIVERED, FactSource
from retail_metrics.foundation.rollups import FactAggregator, RollupSet
from retail_metrics.refresh.snapshot import (
    CancellationToken,
    ComputedRecords,
    PublishedSnapshot,
    RefreshResult,
    SnapshotPublisher,
)

logger = structlog.get_logger(__name__)

CUSTOMER_VALUE = "customer_value"
RFM = "rfm"
COHORT_RETENTION = "cohort_retention"
CUSTOMER_MIX = "customer_mix"
PRODUCT_ABC = "product_abc"
CHURN_PRIORITY = "churn_priority"
STORE_PERFORMANCE = "store_performance"

PUBLISHER_NAMES = (
    CUSTOMER_VALUE,
    RFM,
    COHORT_RETENTION,
    CUSTOMER_MIX,
    PRODUCT_ABC,
    CHURN_PRIORITY,
    STORE_PERFORMANCE,
)


@dataclass(frozen=True)
class PassContext:
    """Values read once at the start of a pass."""

    reference_date: date | None
    thresholds: ClassificationThresholds


class MetricsEngine:
    """Compute and publish every classified output from one fact source.

    Args:
        source: Fact read interface
        config: Threshold provider, read once per pass
        horizon: Largest cohort month offset reported (default: 12)
        clock: Timestamp source for published snapshots
        max_workers: Thread pool size for :meth:`refresh_all`
            (default: one worker per publisher)

    Example:
        >>> from retail_metrics.foundation.config import DEFAULT_CONFIG, StaticConfigProvider
        >>> from retail_metrics.foundation.facts import FactSnapshot
        >>> engine = MetricsEngine(FactSnapshot.from_iterables(), StaticConfigProvider(DEFAULT_CONFIG))
        >>> engine.current("customer_value")
        ()
    """

    def __init__(
        self,
        source: FactSource,
        config: ConfigProvider,
        horizon: int = DEFAULT_HORIZON_MONTHS,
        clock: Callable[[], datetime] | None = None,
        max_workers: int | None = None,
    ):
        self.source = source
        self.config = config
        self.horizon = horizon
        self.max_workers = max_workers or len(PUBLISHER_NAMES)

        computations: dict[str, Callable[[CancellationToken], ComputedRecords]] = {
            CUSTOMER_VALUE: self._compute_customer_value,
            RFM: self._compute_rfm,
            COHORT_RETENTION: self._compute_cohort_retention,
            CUSTOMER_MIX: self._compute_customer_mix,
            PRODUCT_ABC: self._compute_product_abc,
            CHURN_PRIORITY: self._compute_churn_priority,
            STORE_PERFORMANCE: self._compute_store_performance,
        }
        self._publishers = {
            name: SnapshotPublisher(name, compute, clock=clock)
            for name, compute in computations.items()
        }

    @property
    def names(self) -> tuple[str, ...]:
        return PUBLISHER_NAMES

    def publisher(self, name: str) -> SnapshotPublisher:
        try:
            return self._publishers[name]
        except KeyError:
            raise KeyError(
                f"Unknown publisher {name!r}; expected one of {', '.join(PUBLISHER_NAMES)}"
            ) from None

    def current(self, name: str) -> tuple[Any, ...]:
        return self.publisher(name).current()

    def snapshot(self, name: str) -> PublishedSnapshot | None:
        return self.publisher(name).snapshot()

    def refresh(self, name: str) -> RefreshResult:
        return self.publisher(name).refresh()

    def cancel(self, name: str) -> bool:
        return self.publisher(name).cancel()

    def refresh_all(self) -> dict[str, RefreshResult]:
        """Refresh every publisher concurrently.

        Returns:
            Refresh result per publisher name, in publisher order
        """
        start_time = time.time()
        logger.info("refresh_all_started", publishers=list(PUBLISHER_NAMES))

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="retail-metrics"
        ) as executor:
            futures = {
                name: executor.submit(self._publishers[name].refresh)
                for name in PUBLISHER_NAMES
            }
            results = {name: future.result() for name, future in futures.items()}

        failed = [name for name, result in results.items() if not result.success]
        logger.info(
            "refresh_all_completed",
            succeeded=len(results) - len(failed),
            failed=failed,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return results

    def _begin_pass(self) -> PassContext:
        return PassContext(
            reference_date=self.source.reference_date(),
            thresholds=ClassificationThresholds.from_provider(self.config),
        )

    def _rollups(self, context: PassContext, token: CancellationToken) -> RollupSet:
        rollups = FactAggregator(self.source).build(context.reference_date)
        token.raise_if_cancelled()
        return rollups

    def _finish(self, stage: str, context: PassContext, records: Any) -> ComputedRecords:
        ensure_same_reference_date(stage, context.reference_date, self.source.reference_date())
        return ComputedRecords(records=records, reference_date=context.reference_date)

    def _compute_customer_value(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        rollups = self._rollups(context, token)
        records = calculate_customer_value(rollups, context.thresholds, context.reference_date)
        return self._finish(CUSTOMER_VALUE, context, records)

    def _compute_rfm(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        rollups = self._rollups(context, token)
        records = segment_customers(rollups, context.reference_date)
        return self._finish(RFM, context, records)

    def _compute_cohort_retention(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        orders = self.source.orders(status=DELIVERED)
        token.raise_if_cancelled()
        records = calculate_cohort_retention(orders, horizon=self.horizon)
        return self._finish(COHORT_RETENTION, context, records)

    def _compute_customer_mix(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        orders = self.source.orders(status=DELIVERED)
        token.raise_if_cancelled()
        records = analyze_customer_mix(orders)
        return self._finish(CUSTOMER_MIX, context, records)

    def _compute_product_abc(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        rollups = self._rollups(context, token)
        records = classify_products(rollups.products, context.thresholds)
        return self._finish(PRODUCT_ABC, context, records)

    def _compute_churn_priority(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        rollups = self._rollups(context, token)
        values = calculate_customer_value(rollups, context.thresholds, context.reference_date)
        token.raise_if_cancelled()
        records = score_churn_priority(values, context.thresholds)
        return self._finish(CHURN_PRIORITY, context, records)

    def _compute_store_performance(self, token: CancellationToken) -> ComputedRecords:
        context = self._begin_pass()
        rollups = self._rollups(context, token)
        records = classify_stores(rollups.stores)
        return self._finish(STORE_PERFORMANCE, context, records)
