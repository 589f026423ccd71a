"""ABC / Pareto classification by cumulative revenue share.

Entities are ranked by value, largest first, and classified by the running
share of total value they bring the ranking up to:

- **A**: cumulative share within the A cutoff (default 80%)
- **B**: cumulative share within the B cutoff (default 95%)
- **C**: the long tail
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Sequence

from retail_metrics.foundation.config import ClassificationThresholds
from retail_metrics.foundation.rollups import ProductRollup, quantize_money, safe_ratio


class ABCClass(str, Enum):
    A = "A"
    B = "B"
    C = "C"


@dataclass(frozen=True)
class PriceableEntity:
    """Anything with an identity and a non-negative value to rank by."""

    entity_id: str
    value: Decimal
    name: str = ""
    category: str = ""

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(
                f"value cannot be negative: {self.value} (entity_id={self.entity_id})"
            )


@dataclass(frozen=True)
class ABCRecord:
    """Classification of one entity.

    Attributes
    ----------
    rank:
        1-based position in the value-descending ranking.
    revenue_share:
        Entity value over total value.
    cumulative_share:
        Running share of total value up to and including this entity. Shares
        are kept at full precision for classification and rounded only for
        display by :attr:`cumulative_pct`.
    """

    entity_id: str
    name: str
    category: str
    value: Decimal
    rank: int
    revenue_share: Decimal
    cumulative_share: Decimal
    abc_class: ABCClass

    @property
    def cumulative_pct(self) -> Decimal:
        return (self.cumulative_share * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def assign_abc_class(
    preceding_share: Decimal,
    cumulative_share: Decimal,
    a_cutoff: Decimal,
    b_cutoff: Decimal,
) -> ABCClass:
    """Class of one ranked entity from its running share before and after it.

    Class A holds entities whose cumulative share stays within ``a_cutoff``.
    Class B runs up to and including the entity that crosses ``b_cutoff``,
    i.e. every entity that starts below the B cutoff. The rest is class C.

    Class A has no such crossing allowance. An entity that alone exceeds
    ``a_cutoff`` is class B even when it is ranked first, so a single entity
    (cumulative share 1) is B whenever ``a_cutoff`` is below 1, and values
    such as 900/50/50 yield B, B, C with no A at all.

    >>> assign_abc_class(Decimal("0"), Decimal("1"), Decimal("0.80"), Decimal("0.95"))
    <ABCClass.B: 'B'>
    >>> assign_abc_class(Decimal("0.80"), Decimal("0.92"), Decimal("0.80"), Decimal("0.95"))
    <ABCClass.B: 'B'>
    >>> assign_abc_class(Decimal("0.92"), Decimal("0.97"), Decimal("0.80"), Decimal("0.95"))
    <ABCClass.B: 'B'>
    >>> assign_abc_class(Decimal("0.97"), Decimal("1"), Decimal("0.80"), Decimal("0.95"))
    <ABCClass.C: 'C'>
    """
    if cumulative_share <= a_cutoff:
        return ABCClass.A
    if cumulative_share <= b_cutoff or preceding_share < b_cutoff:
        return ABCClass.B
    return ABCClass.C


def classify_abc(
    entities: Iterable[PriceableEntity],
    a_cutoff: Decimal = Decimal("0.80"),
    b_cutoff: Decimal = Decimal("0.95"),
) -> list[ABCRecord]:
    """Classify entities into A/B/C by cumulative value share.

    Parameters
    ----------
    entities:
        Entities to rank. Identifiers must be unique.
    a_cutoff, b_cutoff:
        Inclusive cumulative-share ceilings of classes A and B.

    Returns
    -------
    list[ABCRecord]
        Records in rank order (value descending, ties by entity_id
        ascending). When total value is zero every entity is class C with
        zero shares.

    Raises
    ------
    ValueError
        If a cutoff lies outside (0, 1], ``a_cutoff > b_cutoff``, or an
        entity identifier repeats.

    Examples
    --------
    >>> values = [500, 300, 120, 50, 30]
    >>> entities = [PriceableEntity(f"P{i}", Decimal(v)) for i, v in enumerate(values)]
    >>> [r.abc_class.value for r in classify_abc(entities)]
    ['A', 'A', 'B', 'B', 'C']
    """
    if not Decimal("0") < a_cutoff <= b_cutoff <= Decimal("1"):
        raise ValueError(
            f"Cutoffs must satisfy 0 < a_cutoff <= b_cutoff <= 1, got {a_cutoff}, {b_cutoff}"
        )

    ranked = sorted(entities, key=lambda e: e.entity_id)
    ids = [e.entity_id for e in ranked]
    if len(ids) != len(set(ids)):
        raise ValueError("Duplicate entity_id in ABC input")
    # Stable sort on value keeps ties in entity_id order.
    ranked.sort(key=lambda e: e.value, reverse=True)

    total = sum((e.value for e in ranked), Decimal("0"))
    records: list[ABCRecord] = []
    running = Decimal("0")
    for rank, entity in enumerate(ranked, start=1):
        if total == 0:
            share = cumulative = Decimal("0")
            abc_class = ABCClass.C
        else:
            preceding = running / total
            # Decimal sums are exact, so the last running share is exactly 1.
            running += entity.value
            share = entity.value / total
            cumulative = running / total
            abc_class = assign_abc_class(preceding, cumulative, a_cutoff, b_cutoff)
        records.append(
            ABCRecord(
                entity_id=entity.entity_id,
                name=entity.name,
                category=entity.category,
                value=entity.value,
                rank=rank,
                revenue_share=share,
                cumulative_share=cumulative,
                abc_class=abc_class,
            )
        )
    return records


def classify_products(
    products: Sequence[ProductRollup], thresholds: ClassificationThresholds
) -> list[ABCRecord]:
    """ABC classes of products by net revenue using the pass thresholds."""
    entities = [
        PriceableEntity(
            entity_id=p.product_id,
            value=p.net_revenue,
            name=p.name,
            category=p.category,
        )
        for p in products
    ]
    return classify_abc(entities, thresholds.abc_class_a_cutoff, thresholds.abc_class_b_cutoff)


@dataclass(frozen=True)
class ABCSummary:
    abc_class: ABCClass
    entity_count: int
    total_value: Decimal
    value_share_pct: Decimal


def summarize_abc(records: Sequence[ABCRecord]) -> list[ABCSummary]:
    """Entity count, value and share of total value per class (A, B, C)."""
    total = sum((r.value for r in records), Decimal("0"))
    summaries = []
    for abc_class in ABCClass:
        members = [r for r in records if r.abc_class is abc_class]
        value = sum((r.value for r in members), Decimal("0"))
        summaries.append(
            ABCSummary(
                abc_class=abc_class,
                entity_count=len(members),
                total_value=quantize_money(value),
                value_share_pct=quantize_money(safe_ratio(value, total) * 100),
            )
        )
    return summaries
