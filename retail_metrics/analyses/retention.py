"""Monthly cohort retention and new-vs-returning customer mix.

Customers are grouped into monthly acquisition cohorts by the month of their
first delivered order. For every later month in which a cohort member places
a delivered order, the member counts as active at that month offset.

Notes
-----
A (cohort, offset) pair only appears when at least one member was active at
that offset. :func:`retention_curve` fills the gaps with zero for plotting.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from retail_metrics.foundation.cohorts import (
    assign_monthly_cohorts,
    cohort_display_name,
    month_start,
    monthly_activity,
    months_between,
)
from retail_metrics.foundation.facts import DELIVERED, OrderFact
from retail_metrics.foundation.rollups import HUNDRED, quantize_money, safe_ratio

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_MONTHS = 12
RATE_PRECISION = Decimal("0.01")


@dataclass(frozen=True)
class Cohort:
    """A monthly acquisition cohort.

    Attributes
    ----------
    cohort_month:
        First day of the month of the members' first delivered order.
    cohort_size:
        Distinct customers acquired in that month.
    """

    cohort_month: date
    cohort_size: int

    def __post_init__(self) -> None:
        if self.cohort_month.day != 1:
            raise ValueError(f"cohort_month must be a month start, got {self.cohort_month}")
        if self.cohort_size <= 0:
            raise ValueError(
                f"cohort_size must be positive: {self.cohort_size} (cohort_month={self.cohort_month})"
            )

    @property
    def name(self) -> str:
        return cohort_display_name(self.cohort_month)


@dataclass(frozen=True)
class CohortActivity:
    """Active member count and retention rate of one cohort at one offset."""

    cohort_month: date
    month_offset: int
    active_customers: int
    cohort_size: int
    retention_rate: Decimal

    def __post_init__(self) -> None:
        if self.month_offset < 0:
            raise ValueError(f"month_offset cannot be negative: {self.month_offset}")
        if not 0 <= self.active_customers <= self.cohort_size:
            raise ValueError(
                f"active_customers ({self.active_customers}) must be between 0 and "
                f"cohort_size ({self.cohort_size}) (cohort_month={self.cohort_month})"
            )
        if not Decimal("0") <= self.retention_rate <= Decimal("1"):
            raise ValueError(
                f"retention_rate must be in [0, 1]: {self.retention_rate} "
                f"(cohort_month={self.cohort_month}, month_offset={self.month_offset})"
            )


def retention_rate(active_customers: int, cohort_size: int) -> Decimal:
    """``active / size`` rounded half-up to 2 places, 0 for an empty cohort."""
    return safe_ratio(Decimal(active_customers), cohort_size).quantize(
        RATE_PRECISION, rounding=ROUND_HALF_UP
    )


def build_cohorts(orders: Iterable[OrderFact]) -> list[Cohort]:
    """Monthly cohorts of all customers with a delivered order, newest first."""
    assignments = assign_monthly_cohorts(monthly_activity(orders))
    sizes: dict[date, int] = defaultdict(int)
    for cohort_month in assignments.values():
        sizes[cohort_month] += 1
    return [
        Cohort(cohort_month=month, cohort_size=size)
        for month, size in sorted(sizes.items(), reverse=True)
    ]


def calculate_cohort_retention(
    orders: Iterable[OrderFact], horizon: int = DEFAULT_HORIZON_MONTHS
) -> list[CohortActivity]:
    """Month-indexed retention for every monthly acquisition cohort.

    Parameters
    ----------
    orders:
        Orders of the snapshot; only delivered orders count.
    horizon:
        Largest month offset reported (default 12).

    Returns
    -------
    list[CohortActivity]
        Ordered by cohort month descending, then offset ascending. Offset 0
        of every cohort is present and equals the cohort size.

    Examples
    --------
    >>> from decimal import Decimal
    >>> orders = [
    ...     OrderFact("O1", "C1", date(2024, 1, 5), Decimal("10")),
    ...     OrderFact("O2", "C2", date(2024, 1, 9), Decimal("10")),
    ...     OrderFact("O3", "C1", date(2024, 2, 3), Decimal("10")),
    ... ]
    >>> [(a.month_offset, a.active_customers, str(a.retention_rate))
    ...  for a in calculate_cohort_retention(orders)]
    [(0, 2, '1.00'), (1, 1, '0.50')]
    """
    if horizon < 0:
        raise ValueError(f"horizon cannot be negative, got {horizon}")

    activity = monthly_activity(orders)
    assignments = assign_monthly_cohorts(activity)

    sizes: dict[date, int] = defaultdict(int)
    for cohort_month in assignments.values():
        sizes[cohort_month] += 1

    active: dict[tuple[date, int], int] = defaultdict(int)
    for customer_id, cohort_month in assignments.items():
        for activity_month in activity[customer_id]:
            offset = months_between(activity_month, cohort_month)
            if 0 <= offset <= horizon:
                active[(cohort_month, offset)] += 1

    results = [
        CohortActivity(
            cohort_month=cohort_month,
            month_offset=offset,
            active_customers=count,
            cohort_size=sizes[cohort_month],
            retention_rate=retention_rate(count, sizes[cohort_month]),
        )
        for (cohort_month, offset), count in active.items()
    ]
    results.sort(key=lambda a: (-a.cohort_month.toordinal(), a.month_offset))
    logger.debug(f"Computed {len(results)} cohort activity rows across {len(sizes)} cohorts")
    return results


def retention_curve(
    activities: Sequence[CohortActivity],
    cohort_month: date,
    horizon: int = DEFAULT_HORIZON_MONTHS,
) -> list[Decimal]:
    """Retention rates of one cohort indexed by month offset 0..horizon.

    Offsets without activity read as zero.

    Raises
    ------
    KeyError
        If no activity exists for ``cohort_month``.
    """
    rates = {
        a.month_offset: a.retention_rate
        for a in activities
        if a.cohort_month == cohort_month
    }
    if not rates:
        raise KeyError(f"No retention data for cohort {cohort_month:%Y-%m}")
    return [rates.get(offset, Decimal("0.00")) for offset in range(horizon + 1)]


@dataclass(frozen=True)
class MonthlyCustomerMix:
    """Delivered orders of one calendar month split into new and returning buyers.

    A customer is *new* in the month of their first delivered order and
    *returning* in every later month they buy.
    """

    order_month: date
    total_orders: int
    total_revenue: Decimal
    total_customers: int
    new_customers: int
    returning_customers: int
    new_customer_pct: Decimal
    returning_customer_pct: Decimal

    def __post_init__(self) -> None:
        if self.new_customers + self.returning_customers != self.total_customers:
            raise ValueError(
                f"new ({self.new_customers}) + returning ({self.returning_customers}) "
                f"!= total customers ({self.total_customers}) for {self.order_month}"
            )

    @property
    def month_name(self) -> str:
        return cohort_display_name(self.order_month)


def _percentage(part: int, whole: int) -> Decimal:
    return quantize_money(safe_ratio(Decimal(part), whole) * HUNDRED)


def analyze_customer_mix(orders: Iterable[OrderFact]) -> list[MonthlyCustomerMix]:
    """New vs returning customers per calendar month, newest month first."""
    delivered = [order for order in orders if order.status == DELIVERED]
    cohorts = assign_monthly_cohorts(monthly_activity(delivered, status=None))

    order_ids: dict[date, set[str]] = defaultdict(set)
    revenue: dict[date, Decimal] = defaultdict(Decimal)
    buyers: dict[date, set[str]] = defaultdict(set)
    for order in delivered:
        month = month_start(order.order_date)
        order_ids[month].add(order.order_id)
        revenue[month] += order.total_amount
        buyers[month].add(order.customer_id)

    mix: list[MonthlyCustomerMix] = []
    for month in sorted(buyers, reverse=True):
        customers = buyers[month]
        new = sum(1 for customer_id in customers if cohorts[customer_id] == month)
        returning = len(customers) - new
        mix.append(
            MonthlyCustomerMix(
                order_month=month,
                total_orders=len(order_ids[month]),
                total_revenue=quantize_money(revenue[month]),
                total_customers=len(customers),
                new_customers=new,
                returning_customers=returning,
                new_customer_pct=_percentage(new, len(customers)),
                returning_customer_pct=_percentage(returning, len(customers)),
            )
        )
    return mix
