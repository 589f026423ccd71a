"""Monthly acquisition cohort utilities.

A customer's cohort is the calendar month of their first qualifying order.
Activity is tracked per calendar month, and the distance between an activity
month and the cohort month is a whole number of calendar months (day of
month is irrelevant once both dates are truncated).

Quick Start
-----------
>>> from datetime import date
>>> from decimal import Decimal
>>> from retail_metrics.foundation.facts import OrderFact
>>> orders = [
...     OrderFact("O1", "C1", date(2024, 1, 15), Decimal("10")),
...     OrderFact("O2", "C1", date(2024, 3, 2), Decimal("10")),
...     OrderFact("O3", "C2", date(2024, 2, 20), Decimal("10")),
... ]
>>> activity = monthly_activity(orders)
>>> assign_monthly_cohorts(activity)
{'C1': datetime.date(2024, 1, 1), 'C2': datetime.date(2024, 2, 1)}
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Mapping

from retail_metrics.foundation.facts import DELIVERED, OrderFact


def month_start(day: date) -> date:
    """Truncate a date to the first day of its month."""
    return day.replace(day=1)


def months_between(later: date, earlier: date) -> int:
    """Whole calendar months from ``earlier``'s month to ``later``'s month.

    >>> months_between(date(2025, 2, 28), date(2024, 12, 1))
    2
    """
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def cohort_label(cohort_month: date) -> str:
    """Sortable cohort identifier, e.g. ``"2024-01"``."""
    return cohort_month.strftime("%Y-%m")


def cohort_display_name(cohort_month: date) -> str:
    """Human-readable cohort name, e.g. ``"Jan 2024"``."""
    return cohort_month.strftime("%b %Y")


def monthly_activity(
    orders: Iterable[OrderFact], status: str | None = DELIVERED
) -> dict[str, set[date]]:
    """Map each customer to the set of months in which they ordered.

    Parameters
    ----------
    orders:
        Orders to scan.
    status:
        Only orders with this status count. ``None`` counts every order,
        for callers that already filtered.
    """
    activity: dict[str, set[date]] = defaultdict(set)
    for order in orders:
        if status is not None and order.status != status:
            continue
        activity[order.customer_id].add(month_start(order.order_date))
    return dict(activity)


def assign_monthly_cohorts(activity: Mapping[str, Iterable[date]]) -> dict[str, date]:
    """Assign every active customer to the month of their first activity.

    Customers with no active month are left out: a cohort only exists for
    customers who actually placed a first order.
    """
    assignments: dict[str, date] = {}
    for customer_id in sorted(activity):
        months = list(activity[customer_id])
        if months:
            assignments[customer_id] = min(months)
    return assignments
