"""Customer lifetime value, CLV tier and activity status.

Every field of a :class:`CustomerValueRecord` is a pure function of the
customer's rollup and the pass thresholds. Nothing is carried over from an
earlier pass.

Boundary convention
-------------------
A recency window of N days *contains* a customer whose recency is ``<= N``.
The same convention is used by the churn scorer, whose "beyond the window"
tests are the strict complement (``> N``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Sequence

from retail_metrics.analyses.store_performance import sql_rank
from retail_metrics.foundation.config import ClassificationThresholds
from retail_metrics.foundation.errors import ensure_same_reference_date
from retail_metrics.foundation.rollups import (
    CustomerRollup,
    RollupSet,
    quantize_money,
    safe_ratio,
)

DAYS_PER_YEAR = 365
DAYS_PER_MONTH = 30
PERCENTAGE_PRECISION = Decimal("0.01")


class CLVTier(str, Enum):
    """Customer value tiers, best first."""

    PLATINUM = "Platinum"
    GOLD = "Gold"
    SILVER = "Silver"
    BRONZE = "Bronze"
    BASIC = "Basic"


class CustomerStatus(str, Enum):
    """Activity status derived from recency."""

    ACTIVE = "Active"
    AT_RISK = "At Risk"
    CHURNING = "Churning"
    CHURNED = "Churned"
    NEVER_PURCHASED = "Never Purchased"


#: Fixed age buckets as (exclusive upper bound, label); the last bucket is open.
AGE_BUCKETS = (
    (25, "18-24"),
    (35, "25-34"),
    (45, "35-44"),
    (55, "45-54"),
)
AGE_GROUP_OPEN = "55+"
AGE_GROUP_UNKNOWN = "Unknown"


@dataclass(frozen=True)
class CustomerValueRecord:
    """Derived value metrics and classification for one customer.

    Attributes
    ----------
    days_since_last_order:
        Recency in days from the snapshot reference date; 9999 for customers
        without delivered orders.
    projected_annual_value:
        ``total_revenue / max(lifespan_days, 1) * 365``.
    avg_orders_per_month:
        ``total_orders / max(lifespan_days, 1) * 30``.
    """

    customer_id: str
    full_name: str
    gender: str
    age: int | None
    age_group: str
    city: str
    state: str
    region: str
    join_date: date | None
    total_orders: int
    total_revenue: Decimal
    avg_order_value: Decimal
    total_items_purchased: int
    first_order_date: date | None
    last_order_date: date | None
    days_since_last_order: int
    lifespan_days: int
    loyalty_points: int
    review_count: int
    avg_rating_given: Decimal
    projected_annual_value: Decimal
    avg_orders_per_month: Decimal
    clv_tier: CLVTier
    customer_status: CustomerStatus

    def __post_init__(self) -> None:
        if self.total_orders < 0:
            raise ValueError(
                f"total_orders cannot be negative: {self.total_orders} (customer_id={self.customer_id})"
            )
        if self.total_revenue < 0:
            raise ValueError(
                f"total_revenue cannot be negative: {self.total_revenue} (customer_id={self.customer_id})"
            )


def assign_clv_tier(
    total_revenue: Decimal, thresholds: ClassificationThresholds
) -> CLVTier:
    """Walk the tier ladder best-first; the first threshold met wins.

    Revenue exactly equal to a threshold earns that tier.
    """
    ladder = (
        (thresholds.clv_tier_platinum, CLVTier.PLATINUM),
        (thresholds.clv_tier_gold, CLVTier.GOLD),
        (thresholds.clv_tier_silver, CLVTier.SILVER),
        (thresholds.clv_tier_bronze, CLVTier.BRONZE),
    )
    for threshold, tier in ladder:
        if total_revenue >= threshold:
            return tier
    return CLVTier.BASIC


def assign_customer_status(
    total_orders: int, days_since_last_order: int, thresholds: ClassificationThresholds
) -> CustomerStatus:
    """Classify activity from recency using the configured windows."""
    if total_orders <= 0:
        return CustomerStatus.NEVER_PURCHASED
    windows = (
        (thresholds.recency_active_days, CustomerStatus.ACTIVE),
        (thresholds.recency_at_risk_days, CustomerStatus.AT_RISK),
        (thresholds.recency_churning_days, CustomerStatus.CHURNING),
    )
    for window, status in windows:
        if days_since_last_order <= window:
            return status
    return CustomerStatus.CHURNED


def age_group(age: int | None) -> str:
    """Bucket an age into the fixed reporting groups."""
    if age is None:
        return AGE_GROUP_UNKNOWN
    for upper, label in AGE_BUCKETS:
        if age < upper:
            return label
    return AGE_GROUP_OPEN


def _per_lifespan(amount: Decimal, lifespan_days: int, scale: int) -> Decimal:
    return quantize_money(Decimal(amount) / max(lifespan_days, 1) * scale)


def value_record(
    rollup: CustomerRollup, thresholds: ClassificationThresholds
) -> CustomerValueRecord:
    """Derive the value record of a single customer rollup."""
    return CustomerValueRecord(
        customer_id=rollup.customer_id,
        full_name=rollup.full_name,
        gender=rollup.gender,
        age=rollup.age,
        age_group=age_group(rollup.age),
        city=rollup.city,
        state=rollup.state,
        region=rollup.region,
        join_date=rollup.join_date,
        total_orders=rollup.total_orders,
        total_revenue=rollup.total_revenue,
        avg_order_value=rollup.avg_order_value,
        total_items_purchased=rollup.total_items,
        first_order_date=rollup.first_order_date,
        last_order_date=rollup.last_order_date,
        days_since_last_order=rollup.days_since_last_order,
        lifespan_days=rollup.lifespan_days,
        loyalty_points=rollup.loyalty_points,
        review_count=rollup.review_count,
        avg_rating_given=rollup.avg_rating_given,
        projected_annual_value=_per_lifespan(
            rollup.total_revenue, rollup.lifespan_days, DAYS_PER_YEAR
        ),
        avg_orders_per_month=_per_lifespan(
            Decimal(rollup.total_orders), rollup.lifespan_days, DAYS_PER_MONTH
        ),
        clv_tier=assign_clv_tier(rollup.total_revenue, thresholds),
        customer_status=assign_customer_status(
            rollup.total_orders, rollup.days_since_last_order, thresholds
        ),
    )


def calculate_customer_value(
    rollups: RollupSet,
    thresholds: ClassificationThresholds,
    reference_date: date | None = None,
) -> list[CustomerValueRecord]:
    """Compute value records for every customer in the rollup set.

    Parameters
    ----------
    rollups:
        Rollups of the current pass.
    thresholds:
        Thresholds loaded at pass start.
    reference_date:
        Reference date the pass started with; checked against the rollups'.

    Returns
    -------
    list[CustomerValueRecord]
        One record per customer, including customers who never purchased,
        ordered by customer_id.

    Raises
    ------
    InconsistentSnapshotError
        If ``reference_date`` differs from ``rollups.reference_date``.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> from retail_metrics.foundation.config import default_thresholds
    >>> from retail_metrics.foundation.facts import CustomerFact, FactSnapshot, OrderFact
    >>> from retail_metrics.foundation.rollups import FactAggregator
    >>> snapshot = FactSnapshot.from_iterables(
    ...     customers=[CustomerFact("C1")],
    ...     orders=[OrderFact("O1", "C1", date(2024, 5, 1), Decimal("60000"))],
    ... )
    >>> records = calculate_customer_value(FactAggregator(snapshot).build(), default_thresholds())
    >>> records[0].clv_tier.value, records[0].customer_status.value
    ('Platinum', 'Active')
    """
    if reference_date is not None:
        ensure_same_reference_date("CLV classification", reference_date, rollups.reference_date)
    return [value_record(rollup, thresholds) for rollup in rollups.customers]


@dataclass(frozen=True)
class TierSummary:
    """Distribution of purchasing customers and revenue within one tier."""

    clv_tier: CLVTier
    customer_count: int
    total_revenue: Decimal
    avg_revenue: Decimal
    pct_of_customers: Decimal
    pct_of_revenue: Decimal


def summarize_tiers(records: Sequence[CustomerValueRecord]) -> list[TierSummary]:
    """Summarise purchasing customers by tier, best tier first.

    Tiers without any purchasing customer are omitted.
    """
    purchasers = [r for r in records if r.total_orders > 0]
    total_customers = len(purchasers)
    total_revenue = sum((r.total_revenue for r in purchasers), Decimal("0"))

    summaries: list[TierSummary] = []
    for tier in CLVTier:
        members = [r for r in purchasers if r.clv_tier is tier]
        if not members:
            continue
        revenue = sum((r.total_revenue for r in members), Decimal("0"))
        summaries.append(
            TierSummary(
                clv_tier=tier,
                customer_count=len(members),
                total_revenue=quantize_money(revenue),
                avg_revenue=quantize_money(revenue / len(members)),
                pct_of_customers=(
                    safe_ratio(Decimal(len(members)), total_customers) * 100
                ).quantize(PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP),
                pct_of_revenue=(safe_ratio(revenue, total_revenue) * 100).quantize(
                    PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
                ),
            )
        )
    return summaries


@dataclass(frozen=True)
class DemographicSummary:
    """Purchasing customers and revenue within one age group and gender."""

    age_group: str
    gender: str
    customer_count: int
    total_revenue: Decimal
    avg_revenue: Decimal
    avg_orders: Decimal
    pct_of_customers: Decimal
    pct_of_revenue: Decimal


def summarize_demographics(
    records: Sequence[CustomerValueRecord],
) -> list[DemographicSummary]:
    """Summarise purchasing customers by (age group, gender).

    ``avg_orders`` is rounded to one decimal place, the remaining averages and
    shares to two. Groups are ordered by revenue descending, then age group
    and gender.
    """
    purchasers = [r for r in records if r.total_orders > 0]
    total_customers = len(purchasers)
    total_revenue = sum((r.total_revenue for r in purchasers), Decimal("0"))

    groups: dict[tuple[str, str], list[CustomerValueRecord]] = {}
    for record in purchasers:
        groups.setdefault((record.age_group, record.gender), []).append(record)

    summaries = []
    for (group, gender), members in groups.items():
        revenue = sum((m.total_revenue for m in members), Decimal("0"))
        orders = sum(m.total_orders for m in members)
        summaries.append(
            DemographicSummary(
                age_group=group,
                gender=gender,
                customer_count=len(members),
                total_revenue=quantize_money(revenue),
                avg_revenue=quantize_money(revenue / len(members)),
                avg_orders=(Decimal(orders) / len(members)).quantize(
                    Decimal("0.1"), rounding=ROUND_HALF_UP
                ),
                pct_of_customers=(
                    safe_ratio(Decimal(len(members)), total_customers) * 100
                ).quantize(PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP),
                pct_of_revenue=(safe_ratio(revenue, total_revenue) * 100).quantize(
                    PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
                ),
            )
        )
    summaries.sort(key=lambda s: (-s.total_revenue, s.age_group, s.gender))
    return summaries


@dataclass(frozen=True)
class GeographySummary:
    """Purchasing customers of one city.

    Attributes
    ----------
    revenue_rank:
        SQL ``RANK()`` of the city's revenue among all cities.
    state_rank:
        The same rank restricted to cities of the same state.
    """

    state: str
    city: str
    customer_count: int
    total_orders: int
    total_revenue: Decimal
    avg_order_value: Decimal
    revenue_per_customer: Decimal
    revenue_rank: int
    state_rank: int


def summarize_geography(records: Sequence[CustomerValueRecord]) -> list[GeographySummary]:
    """Roll purchasing customers up by (state, city) and rank the cities by revenue.

    ``avg_order_value`` is the mean of the customers' own average order
    values. Output is ordered by revenue rank, then state and city.
    """
    groups: dict[tuple[str, str], list[CustomerValueRecord]] = {}
    for record in records:
        if record.total_orders > 0:
            groups.setdefault((record.state, record.city), []).append(record)

    keys = list(groups)
    revenues = [
        sum((m.total_revenue for m in groups[key]), Decimal("0")) for key in keys
    ]
    overall = sql_rank(revenues, key=lambda v: v, descending=True)

    by_state: dict[str, list[int]] = {}
    for idx, (state, _) in enumerate(keys):
        by_state.setdefault(state, []).append(idx)
    state_ranks = [0] * len(keys)
    for indices in by_state.values():
        ranks = sql_rank([revenues[i] for i in indices], key=lambda v: v, descending=True)
        for idx, rank in zip(indices, ranks):
            state_ranks[idx] = rank

    summaries = []
    for idx, (state, city) in enumerate(keys):
        members = groups[(state, city)]
        summaries.append(
            GeographySummary(
                state=state,
                city=city,
                customer_count=len(members),
                total_orders=sum(m.total_orders for m in members),
                total_revenue=quantize_money(revenues[idx]),
                avg_order_value=quantize_money(
                    sum((m.avg_order_value for m in members), Decimal("0")) / len(members)
                ),
                revenue_per_customer=quantize_money(revenues[idx] / len(members)),
                revenue_rank=overall[idx],
                state_rank=state_ranks[idx],
            )
        )
    summaries.sort(key=lambda s: (s.revenue_rank, s.state, s.city))
    return summaries
