"""Category and brand performance over product rollups.

Only products with delivered sales contribute sales figures. Market shares are
percentages of the net revenue of the comparison group (all categories, or
the brands of one category) rounded half-up to two places; ranks follow SQL
``RANK()`` semantics.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from retail_metrics.analyses.store_performance import sql_rank
from retail_metrics.foundation.rollups import ProductRollup, quantize_money, safe_ratio

SHARE_PRECISION = Decimal("0.01")


def _share_pct(part: Decimal, whole: Decimal) -> Decimal:
    return (safe_ratio(part, whole) * 100).quantize(SHARE_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CategoryPerformance:
    """Sales of one product category.

    Attributes
    ----------
    avg_rating:
        Mean of every review of a product in the category, including
        products without delivered sales; 0 without reviews.
    market_share_pct:
        Category net revenue over the net revenue of all categories.
    """

    category: str
    product_count: int
    units_sold: int
    net_revenue: Decimal
    total_reviews: int
    avg_rating: Decimal
    market_share_pct: Decimal
    revenue_rank: int


@dataclass(frozen=True)
class BrandPerformance:
    """Sales of one brand within one category."""

    brand: str
    category: str
    product_count: int
    units_sold: int
    net_revenue: Decimal
    review_count: int
    avg_rating: Decimal
    category_market_share_pct: Decimal
    category_rank: int


def summarize_categories(products: Sequence[ProductRollup]) -> list[CategoryPerformance]:
    """Net revenue, market share and revenue rank of every category with sales.

    Returns
    -------
    list[CategoryPerformance]
        Ordered by revenue rank, then category name.
    """
    sold: dict[str, list[ProductRollup]] = {}
    for product in products:
        if product.units_sold > 0:
            sold.setdefault(product.category, []).append(product)

    categories = list(sold)
    revenues = [
        sum((p.net_revenue for p in sold[category]), Decimal("0")) for category in categories
    ]
    total = sum(revenues, Decimal("0"))
    ranks = sql_rank(revenues, key=lambda v: v, descending=True)

    summaries = []
    for category, revenue, rank in zip(categories, revenues, ranks):
        reviewed = [p for p in products if p.category == category]
        reviews = sum(p.review_count for p in reviewed)
        rating_sum = sum((p.avg_rating * p.review_count for p in reviewed), Decimal("0"))
        summaries.append(
            CategoryPerformance(
                category=category,
                product_count=len(sold[category]),
                units_sold=sum(p.units_sold for p in sold[category]),
                net_revenue=quantize_money(revenue),
                total_reviews=reviews,
                avg_rating=quantize_money(safe_ratio(rating_sum, reviews)),
                market_share_pct=_share_pct(revenue, total),
                revenue_rank=rank,
            )
        )
    summaries.sort(key=lambda s: (s.revenue_rank, s.category))
    return summaries


def summarize_brands(products: Sequence[ProductRollup]) -> list[BrandPerformance]:
    """Net revenue, share and rank of every brand within its category.

    ``avg_rating`` is the plain mean of the brand's product ratings. Output
    is ordered by net revenue descending, then category and brand.
    """
    groups: dict[tuple[str, str], list[ProductRollup]] = {}
    for product in products:
        if product.units_sold > 0:
            groups.setdefault((product.category, product.brand), []).append(product)

    keys = list(groups)
    revenues = {
        key: sum((p.net_revenue for p in groups[key]), Decimal("0")) for key in keys
    }
    category_totals: dict[str, Decimal] = {}
    category_keys: dict[str, list[tuple[str, str]]] = {}
    for key in keys:
        category_totals[key[0]] = category_totals.get(key[0], Decimal("0")) + revenues[key]
        category_keys.setdefault(key[0], []).append(key)

    category_ranks: dict[tuple[str, str], int] = {}
    for members in category_keys.values():
        for key, rank in zip(
            members, sql_rank(members, key=lambda k: revenues[k], descending=True)
        ):
            category_ranks[key] = rank

    summaries = []
    for key in keys:
        category, brand = key
        members = groups[key]
        summaries.append(
            BrandPerformance(
                brand=brand,
                category=category,
                product_count=len(members),
                units_sold=sum(p.units_sold for p in members),
                net_revenue=quantize_money(revenues[key]),
                review_count=sum(p.review_count for p in members),
                avg_rating=quantize_money(
                    sum((p.avg_rating for p in members), Decimal("0")) / len(members)
                ),
                category_market_share_pct=_share_pct(revenues[key], category_totals[category]),
                category_rank=category_ranks[key],
            )
        )
    summaries.sort(key=lambda s: (-s.net_revenue, s.category, s.brand))
    return summaries
