"""RFM (Recency-Frequency-Monetary) calculation utilities.

RFM analysis scores customers on three dimensions:
- Recency: How recently did the customer make a purchase?
- Frequency: How often do they purchase?
- Monetary: How much do they spend in total?

Scores are quintile ranks within the *current* population. Adding or removing
one customer can move every other customer's score, so scores are always
recomputed over the whole population and never cached per customer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Sequence, TypeVar

from retail_metrics.foundation.errors import ensure_same_reference_date
from retail_metrics.foundation.rollups import CustomerRollup, RollupSet

SCORE_BINS = 5

T = TypeVar("T")


@dataclass(frozen=True)
class RFMMetrics:
    """Raw RFM metrics for a single purchasing customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_days:
        Days since last delivered order, measured from the snapshot
        reference date
    frequency:
        Number of delivered orders
    monetary:
        Total spend across delivered orders
    """

    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal

    def __post_init__(self) -> None:
        """Validate RFM metrics."""
        if self.recency_days < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if self.monetary < 0:
            raise ValueError(
                f"Monetary value cannot be negative: {self.monetary} (customer_id={self.customer_id})"
            )


def calculate_rfm(
    rollups: RollupSet | Sequence[CustomerRollup],
    reference_date: date | None = None,
) -> list[RFMMetrics]:
    """Derive RFM metrics from customer rollups.

    Customers without delivered orders are excluded; they have no recency
    and would otherwise all crowd the lowest quintiles.

    Parameters
    ----------
    rollups:
        A :class:`RollupSet` or its customer rollups, already ordered by
        customer_id.
    reference_date:
        Reference date of the calling pass. When given together with a
        :class:`RollupSet`, both must agree.

    Returns
    -------
    list[RFMMetrics]
        One entry per purchasing customer, in input order.
    """
    if isinstance(rollups, RollupSet):
        if reference_date is not None:
            ensure_same_reference_date("RFM scoring", reference_date, rollups.reference_date)
        customers: Sequence[CustomerRollup] = rollups.customers
    else:
        customers = rollups

    return [
        RFMMetrics(
            customer_id=rollup.customer_id,
            recency_days=rollup.days_since_last_order,
            frequency=rollup.total_orders,
            monetary=rollup.total_revenue,
        )
        for rollup in customers
        if rollup.total_orders > 0
    ]


@dataclass(frozen=True)
class RFMScore:
    """RFM scores (1-5 quintiles) for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    r_score:
        Recency score (1-5, where 5 = most recent)
    f_score:
        Frequency score (1-5, where 5 = most frequent)
    m_score:
        Monetary score (1-5, where 5 = highest spend)
    rfm_score:
        Combined RFM score string (e.g., "555" for best customers)
    """

    customer_id: str
    r_score: int
    f_score: int
    m_score: int
    rfm_score: str

    def __post_init__(self) -> None:
        """Validate RFM scores."""
        for score_name, score_value in [
            ("r_score", self.r_score),
            ("f_score", self.f_score),
            ("m_score", self.m_score),
        ]:
            if not 1 <= score_value <= SCORE_BINS:
                raise ValueError(
                    f"{score_name} must be between 1 and 5: {score_value} (customer_id={self.customer_id})"
                )
        expected_rfm = f"{self.r_score}{self.f_score}{self.m_score}"
        if self.rfm_score != expected_rfm:
            raise ValueError(
                f"rfm_score ({self.rfm_score}) does not match r/f/m scores ({expected_rfm}) (customer_id={self.customer_id})"
            )

    @property
    def rfm_total(self) -> int:
        return self.r_score + self.f_score + self.m_score


def ntile_buckets(count: int, buckets: int = SCORE_BINS) -> list[int]:
    """Bucket numbers (1-based) for ``count`` ordered rows, SQL NTILE style.

    Rows are split into ``buckets`` groups whose sizes differ by at most one;
    the first ``count % buckets`` groups take the extra row. With fewer rows
    than buckets each row gets its own bucket.

    >>> ntile_buckets(9)
    [1, 1, 2, 2, 3, 3, 4, 4, 5]
    >>> ntile_buckets(3)
    [1, 2, 3]
    """
    if buckets <= 0:
        raise ValueError(f"buckets must be positive, got {buckets}")
    base, extra = divmod(count, buckets)
    assignments: list[int] = []
    for bucket in range(1, buckets + 1):
        size = base + (1 if bucket <= extra else 0)
        assignments.extend([bucket] * size)
    return assignments


def _rank_scores(
    items: Sequence[T], key: Callable[[T], object], descending: bool, bins: int
) -> list[int]:
    """Score ``items`` by NTILE over a stable sort, returned in input order."""
    order = sorted(range(len(items)), key=lambda idx: key(items[idx]), reverse=descending)
    # sorted(reverse=True) keeps equal keys in input order, same as ascending.
    scores = [0] * len(items)
    for bucket, idx in zip(ntile_buckets(len(items), bins), order):
        scores[idx] = bucket
    return scores


def calculate_rfm_scores(
    rfm_metrics: Sequence[RFMMetrics],
    bins: int = SCORE_BINS,
) -> list[RFMScore]:
    """Score RFM metrics into quintiles (1-5).

    Each dimension is ranked independently with equal-count binning:
    recency is ordered by days descending (the longest-idle customers land in
    bucket 1), frequency and monetary ascending (the largest values land in
    bucket 5). Ties keep input order, so an unchanged input always yields the
    same scores.

    Parameters
    ----------
    rfm_metrics:
        RFM metrics to score. Pass them in a deterministic order (the
        aggregator orders by customer_id).
    bins:
        Number of buckets (default: 5 for quintiles)

    Returns
    -------
    list[RFMScore]
        Scores in input order.

    Examples
    --------
    >>> from decimal import Decimal
    >>> metrics = [
    ...     RFMMetrics("C1", 10, 5, Decimal("250")),
    ...     RFMMetrics("C2", 30, 2, Decimal("150")),
    ... ]
    >>> scores = calculate_rfm_scores(metrics)
    >>> scores[0].r_score > scores[1].r_score  # C1 more recent
    True
    """
    if not rfm_metrics:
        return []

    r_scores = _rank_scores(rfm_metrics, lambda m: m.recency_days, True, bins)
    f_scores = _rank_scores(rfm_metrics, lambda m: m.frequency, False, bins)
    m_scores = _rank_scores(rfm_metrics, lambda m: m.monetary, False, bins)

    return [
        RFMScore(
            customer_id=metrics.customer_id,
            r_score=r,
            f_score=f,
            m_score=m,
            rfm_score=f"{r}{f}{m}",
        )
        for metrics, r, f, m in zip(rfm_metrics, r_scores, f_scores, m_scores)
    ]
