"""Fact aggregation: one rollup row per customer, product and store.

The aggregator is the only component that touches raw facts. Every entity in
the identity set (customers, products, stores) appears exactly once in the
output even when it has no qualifying activity; missing sums and counts
default to zero, missing dates to ``None``, and customer recency to
:data:`NO_ACTIVITY_RECENCY_DAYS`.

Only orders with status :data:`~retail_metrics.foundation.facts.DELIVERED`
contribute to order, revenue and item aggregates.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from retail_metrics.foundation.errors import ensure_same_reference_date
from retail_metrics.foundation.facts import DELIVERED, FactSource

logger = logging.getLogger(__name__)

#: Recency reported for customers who never placed a qualifying order.
NO_ACTIVITY_RECENCY_DAYS = 9999

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def safe_ratio(numerator: Decimal, denominator: Decimal | int) -> Decimal:
    """Divide, returning zero when the denominator is zero."""
    if not denominator:
        return Decimal("0")
    return Decimal(numerator) / Decimal(denominator)


@dataclass(frozen=True, slots=True)
class CustomerRollup:
    """Per-customer aggregate of delivered orders and engagement facts.

    Attributes
    ----------
    total_orders:
        Distinct delivered orders.
    total_revenue:
        Sum of delivered order totals.
    total_items:
        Sum of line quantities across delivered orders.
    first_order_date, last_order_date:
        Bounds of delivered order activity, ``None`` without orders.
    days_since_last_order:
        Days between the snapshot reference date and the last delivered
        order, :data:`NO_ACTIVITY_RECENCY_DAYS` without orders.
    lifespan_days:
        Days between first and last delivered order (0 without orders).
    """

    customer_id: str
    full_name: str
    gender: str
    age: int | None
    city: str
    state: str
    region: str
    join_date: date | None
    total_orders: int
    total_revenue: Decimal
    avg_order_value: Decimal
    total_items: int
    first_order_date: date | None
    last_order_date: date | None
    days_since_last_order: int
    lifespan_days: int
    loyalty_points: int
    review_count: int
    avg_rating_given: Decimal


@dataclass(frozen=True, slots=True)
class ProductRollup:
    """Per-product sales aggregate over delivered orders."""

    product_id: str
    name: str
    category: str
    brand: str
    list_price: Decimal
    times_ordered: int
    units_sold: int
    gross_revenue: Decimal
    total_discounts: Decimal
    net_revenue: Decimal
    avg_selling_price: Decimal
    avg_discount_pct: Decimal
    review_count: int
    avg_rating: Decimal


@dataclass(frozen=True, slots=True)
class StoreRollup:
    """Per-store sales, cost and staffing aggregate."""

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


@dataclass(frozen=True)
class RollupSet:
    """All rollups of one pass, stamped with the pass reference date."""

    reference_date: date | None
    customers: tuple[CustomerRollup, ...] = ()
    products: tuple[ProductRollup, ...] = ()
    stores: tuple[StoreRollup, ...] = ()


class FactAggregator:
    """Build rollups from a :class:`FactSource`.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> from retail_metrics.foundation.facts import CustomerFact, FactSnapshot, OrderFact
    >>> snapshot = FactSnapshot.from_iterables(
    ...     customers=[CustomerFact("C1"), CustomerFact("C2")],
    ...     orders=[OrderFact("O1", "C1", date(2024, 3, 1), Decimal("80"))],
    ... )
    >>> rollups = FactAggregator(snapshot).customer_rollups()
    >>> [(r.customer_id, r.total_orders, r.days_since_last_order) for r in rollups]
    [('C1', 1, 0), ('C2', 0, 9999)]
    """

    def __init__(self, source: FactSource) -> None:
        self.source = source

    def build(self, reference_date: date | None = None) -> RollupSet:
        """Aggregate customers, products and stores in one go.

        Parameters
        ----------
        reference_date:
            Reference date the calling pass started with. When given it must
            equal the source's reference date.
        """
        observed = self.source.reference_date()
        if reference_date is not None:
            ensure_same_reference_date("fact aggregation", reference_date, observed)
        return RollupSet(
            reference_date=observed,
            customers=self.customer_rollups(observed),
            products=self.product_rollups(),
            stores=self.store_rollups(),
        )

    def customer_rollups(
        self, reference_date: date | None = None
    ) -> tuple[CustomerRollup, ...]:
        if reference_date is None:
            reference_date = self.source.reference_date()

        orders_by_customer: dict[str, list] = defaultdict(list)
        for order in self.source.orders(status=DELIVERED):
            orders_by_customer[order.customer_id].append(order)

        order_owner = {
            order.order_id: order.customer_id
            for orders in orders_by_customer.values()
            for order in orders
        }
        items_by_customer: dict[str, int] = defaultdict(int)
        for item in self.source.order_items(status=DELIVERED):
            owner = order_owner.get(item.order_id)
            if owner is not None:
                items_by_customer[owner] += item.quantity

        points = {row.customer_id: row.total_points for row in self.source.loyalty()}

        ratings: dict[str, list[int]] = defaultdict(list)
        for review in self.source.reviews():
            ratings[review.customer_id].append(review.rating)

        rollups: list[CustomerRollup] = []
        seen: set[str] = set()
        for customer in self.source.customers():
            if customer.customer_id in seen:
                raise ValueError(
                    f"Duplicate customer_id in snapshot: {customer.customer_id}"
                )
            seen.add(customer.customer_id)

            orders = orders_by_customer.get(customer.customer_id, [])
            order_count = len({order.order_id for order in orders})
            revenue = sum((order.total_amount for order in orders), Decimal("0"))
            if orders:
                first_order = min(order.order_date for order in orders)
                last_order = max(order.order_date for order in orders)
                lifespan = (last_order - first_order).days
                recency = (
                    (reference_date - last_order).days
                    if reference_date is not None
                    else NO_ACTIVITY_RECENCY_DAYS
                )
            else:
                first_order = last_order = None
                lifespan = 0
                recency = NO_ACTIVITY_RECENCY_DAYS

            customer_ratings = ratings.get(customer.customer_id, [])
            rollups.append(
                CustomerRollup(
                    customer_id=customer.customer_id,
                    full_name=customer.full_name,
                    gender=customer.gender,
                    age=customer.age,
                    city=customer.city,
                    state=customer.state,
                    region=customer.region,
                    join_date=customer.join_date,
                    total_orders=order_count,
                    total_revenue=quantize_money(revenue),
                    avg_order_value=quantize_money(safe_ratio(revenue, order_count)),
                    total_items=items_by_customer.get(customer.customer_id, 0),
                    first_order_date=first_order,
                    last_order_date=last_order,
                    days_since_last_order=recency,
                    lifespan_days=lifespan,
                    loyalty_points=points.get(customer.customer_id, 0),
                    review_count=len(customer_ratings),
                    avg_rating_given=quantize_money(
                        safe_ratio(Decimal(sum(customer_ratings)), len(customer_ratings))
                    ),
                )
            )

        orphaned = set(orders_by_customer) - seen
        if orphaned:
            logger.warning(
                f"{len(orphaned)} customers have delivered orders but no customer record; "
                f"they are excluded from customer rollups. First 5: {sorted(orphaned)[:5]}"
            )

        rollups.sort(key=lambda rollup: rollup.customer_id)
        return tuple(rollups)

    def product_rollups(self) -> tuple[ProductRollup, ...]:
        buckets: dict[str, dict] = {}
        for item in self.source.order_items(status=DELIVERED):
            bucket = buckets.setdefault(
                item.product_id,
                {
                    "orders": set(),
                    "units": 0,
                    "gross": Decimal("0"),
                    "discounts": Decimal("0"),
                    "price_sum": Decimal("0"),
                    "discount_sum": Decimal("0"),
                    "lines": 0,
                },
            )
            line_gross = item.unit_price * item.quantity
            bucket["orders"].add(item.order_id)
            bucket["units"] += item.quantity
            bucket["gross"] += line_gross
            bucket["discounts"] += line_gross * item.discount_pct / HUNDRED
            bucket["price_sum"] += item.unit_price
            bucket["discount_sum"] += item.discount_pct
            bucket["lines"] += 1

        ratings: dict[str, list[int]] = defaultdict(list)
        for review in self.source.reviews():
            ratings[review.product_id].append(review.rating)

        rollups: list[ProductRollup] = []
        for product in self.source.products():
            bucket = buckets.get(product.product_id)
            product_ratings = ratings.get(product.product_id, [])
            if bucket is None:
                times_ordered = units = lines = 0
                gross = discounts = price_sum = discount_sum = Decimal("0")
            else:
                times_ordered = len(bucket["orders"])
                units = bucket["units"]
                lines = bucket["lines"]
                gross = bucket["gross"]
                discounts = bucket["discounts"]
                price_sum = bucket["price_sum"]
                discount_sum = bucket["discount_sum"]

            rollups.append(
                ProductRollup(
                    product_id=product.product_id,
                    name=product.name,
                    category=product.category,
                    brand=product.brand,
                    list_price=quantize_money(product.list_price),
                    times_ordered=times_ordered,
                    units_sold=units,
                    gross_revenue=quantize_money(gross),
                    total_discounts=quantize_money(discounts),
                    net_revenue=quantize_money(gross - discounts),
                    avg_selling_price=quantize_money(safe_ratio(price_sum, lines)),
                    avg_discount_pct=quantize_money(safe_ratio(discount_sum, lines)),
                    review_count=len(product_ratings),
                    avg_rating=quantize_money(
                        safe_ratio(Decimal(sum(product_ratings)), len(product_ratings))
                    ),
                )
            )

        rollups.sort(key=lambda rollup: rollup.product_id)
        return tuple(rollups)

    def store_rollups(self) -> tuple[StoreRollup, ...]:
        sales: dict[str, dict] = {}
        for order in self.source.orders(status=DELIVERED):
            if order.store_id is None:
                continue
            bucket = sales.setdefault(
                order.store_id,
                {"orders": set(), "revenue": Decimal("0"), "customers": set()},
            )
            bucket["orders"].add(order.order_id)
            bucket["revenue"] += order.total_amount
            bucket["customers"].add(order.customer_id)

        expenses: dict[str, Decimal] = defaultdict(Decimal)
        for expense in self.source.store_expenses():
            expenses[expense.store_id] += expense.amount

        headcount: dict[str, int] = defaultdict(int)
        payroll: dict[str, Decimal] = defaultdict(Decimal)
        for employee in self.source.employees():
            headcount[employee.store_id] += 1
            payroll[employee.store_id] += employee.salary

        rollups: list[StoreRollup] = []
        for store in self.source.stores():
            bucket = sales.get(store.store_id)
            order_count = len(bucket["orders"]) if bucket else 0
            revenue = bucket["revenue"] if bucket else Decimal("0")
            store_expenses = expenses.get(store.store_id, Decimal("0"))
            profit = revenue - store_expenses
            employees = headcount.get(store.store_id, 0)
            rollups.append(
                StoreRollup(
                    store_id=store.store_id,
                    name=store.name,
                    city=store.city,
                    state=store.state,
                    region=store.region,
                    total_orders=order_count,
                    total_revenue=quantize_money(revenue),
                    avg_order_value=quantize_money(safe_ratio(revenue, order_count)),
                    unique_customers=len(bucket["customers"]) if bucket else 0,
                    total_expenses=quantize_money(store_expenses),
                    net_profit=quantize_money(profit),
                    profit_margin_pct=quantize_money(safe_ratio(profit, revenue) * HUNDRED),
                    employee_count=employees,
                    total_payroll=quantize_money(payroll.get(store.store_id, Decimal("0"))),
                    revenue_per_employee=quantize_money(safe_ratio(revenue, employees)),
                )
            )

        rollups.sort(key=lambda rollup: rollup.store_id)
        return tuple(rollups)
