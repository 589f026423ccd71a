"""Store performance tiers and regional roll-up.

Stores are placed into performance tiers by the percent rank of their
delivered revenue among all stores. Ranks follow SQL window semantics: tied
values share the lowest rank of their group, and the next distinct value skips
ahead by the size of the tie.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Sequence, TypeVar

from retail_metrics.foundation.rollups import StoreRollup, quantize_money, safe_ratio

T = TypeVar("T")


class PerformanceTier(str, Enum):
    STAR = "Star"
    AVERAGE = "Average"
    IMPROVING = "Improving"
    NEEDS_ATTENTION = "Needs Attention"


#: (minimum percent rank, tier), best first.
TIER_FLOORS: tuple[tuple[Decimal, PerformanceTier], ...] = (
    (Decimal("0.8"), PerformanceTier.STAR),
    (Decimal("0.5"), PerformanceTier.AVERAGE),
    (Decimal("0.2"), PerformanceTier.IMPROVING),
)


@dataclass(frozen=True)
class StorePerformanceRecord:
    store_id: str
    name: str
    city: str
    state: str
    region: str
    total_orders: int
    total_revenue: Decimal
    avg_order_value: Decimal
    unique_customers: int
    total_expenses: Decimal
    net_profit: Decimal
    profit_margin_pct: Decimal
    employee_count: int
    total_payroll: Decimal
    revenue_per_employee: Decimal
    revenue_rank: int
    profit_rank: int
    revenue_percent_rank: Decimal
    performance_tier: PerformanceTier

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.revenue_percent_rank <= Decimal("1"):
            raise ValueError(
                f"revenue_percent_rank must be in [0, 1]: {self.revenue_percent_rank} "
                f"(store_id={self.store_id})"
            )


def sql_rank(items: Sequence[T], key: Callable[[T], object], descending: bool) -> list[int]:
    """SQL ``RANK()`` of every item, returned in input order.

    >>> sql_rank([10, 30, 30, 20], key=lambda v: v, descending=True)
    [4, 1, 1, 3]
    """
    order = sorted(range(len(items)), key=lambda idx: key(items[idx]), reverse=descending)
    ranks = [0] * len(items)
    previous = object()
    current_rank = 0
    for position, idx in enumerate(order, start=1):
        value = key(items[idx])
        if value != previous:
            current_rank = position
            previous = value
        ranks[idx] = current_rank
    return ranks


def percent_ranks(values: Sequence[Decimal]) -> list[Decimal]:
    """SQL ``PERCENT_RANK()`` over ascending values, in input order.

    ``(rank - 1) / (n - 1)``, and 0 for a single value.
    """
    if len(values) <= 1:
        return [Decimal("0")] * len(values)
    ranks = sql_rank(values, key=lambda v: v, descending=False)
    denominator = len(values) - 1
    return [Decimal(rank - 1) / denominator for rank in ranks]


def performance_tier(percent_rank: Decimal) -> PerformanceTier:
    for floor, tier in TIER_FLOORS:
        if percent_rank >= floor:
            return tier
    return PerformanceTier.NEEDS_ATTENTION


def classify_stores(stores: Sequence[StoreRollup]) -> list[StorePerformanceRecord]:
    """Rank and tier every store.

    Returns
    -------
    list[StorePerformanceRecord]
        Ordered by revenue rank, then store_id.
    """
    revenue_ranks = sql_rank(stores, key=lambda s: s.total_revenue, descending=True)
    profit_ranks = sql_rank(stores, key=lambda s: s.net_profit, descending=True)
    pct_ranks = percent_ranks([s.total_revenue for s in stores])

    records = [
        StorePerformanceRecord(
            store_id=store.store_id,
            name=store.name,
            city=store.city,
            state=store.state,
            region=store.region,
            total_orders=store.total_orders,
            total_revenue=store.total_revenue,
            avg_order_value=store.avg_order_value,
            unique_customers=store.unique_customers,
            total_expenses=store.total_expenses,
            net_profit=store.net_profit,
            profit_margin_pct=store.profit_margin_pct,
            employee_count=store.employee_count,
            total_payroll=store.total_payroll,
            revenue_per_employee=store.revenue_per_employee,
            revenue_rank=revenue_rank,
            profit_rank=profit_rank,
            revenue_percent_rank=pct_rank,
            performance_tier=performance_tier(pct_rank),
        )
        for store, revenue_rank, profit_rank, pct_rank in zip(
            stores, revenue_ranks, profit_ranks, pct_ranks
        )
    ]
    records.sort(key=lambda r: (r.revenue_rank, r.store_id))
    return records


@dataclass(frozen=True)
class RegionalPerformance:
    region: str
    store_count: int
    total_orders: int
    total_revenue: Decimal
    total_profit: Decimal
    avg_profit_margin_pct: Decimal
    total_employees: int
    revenue_per_employee: Decimal
    avg_revenue_per_store: Decimal


def summarize_regions(records: Sequence[StorePerformanceRecord]) -> list[RegionalPerformance]:
    """Aggregate store performance by region, largest revenue first."""
    by_region: dict[str, list[StorePerformanceRecord]] = defaultdict(list)
    for record in records:
        by_region[record.region].append(record)

    summaries = []
    for region, members in by_region.items():
        revenue = sum((m.total_revenue for m in members), Decimal("0"))
        employees = sum(m.employee_count for m in members)
        summaries.append(
            RegionalPerformance(
                region=region,
                store_count=len(members),
                total_orders=sum(m.total_orders for m in members),
                total_revenue=quantize_money(revenue),
                total_profit=quantize_money(sum((m.net_profit for m in members), Decimal("0"))),
                avg_profit_margin_pct=quantize_money(
                    safe_ratio(sum((m.profit_margin_pct for m in members), Decimal("0")), len(members))
                ),
                total_employees=employees,
                revenue_per_employee=quantize_money(safe_ratio(revenue, employees)),
                avg_revenue_per_store=quantize_money(safe_ratio(revenue, len(members))),
            )
        )
    summaries.sort(key=lambda s: (-s.total_revenue, s.region))
    return summaries
