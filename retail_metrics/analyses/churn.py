"""Churn-risk priority scoring for lapsing customers.

Lapsing customers are ranked for retention outreach by a composite score:
how valuable they are (CLV tier weight) plus how long they have been silent
(recency weight). Customers still inside the at-risk floor are not scored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from retail_metrics.analyses.clv import CLVTier, CustomerValueRecord
from retail_metrics.foundation.config import ClassificationThresholds

logger = logging.getLogger(__name__)

HIGH_PRIORITY_SCORE = 7

TIER_WEIGHTS: dict[CLVTier, int] = {
    CLVTier.PLATINUM: 5,
    CLVTier.GOLD: 4,
    CLVTier.SILVER: 3,
    CLVTier.BRONZE: 2,
    CLVTier.BASIC: 1,
}

#: (days inactive strictly beyond, weight), checked top down.
RECENCY_WEIGHTS: tuple[tuple[int, int], ...] = (
    (90, 5),
    (60, 3),
    (30, 1),
)

HIGH_RISK_DAYS = 90
MEDIUM_RISK_DAYS = 60

PREMIUM_TIERS = frozenset({CLVTier.PLATINUM, CLVTier.GOLD})


class ChurnRiskLevel(str, Enum):
    CHURNED = "Churned"
    HIGH_RISK = "High Risk"
    MEDIUM_RISK = "Medium Risk"
    LOW_RISK = "Low Risk"
    ACTIVE = "Active"


class RetentionAction(str, Enum):
    URGENT_OUTREACH = "URGENT: Personal outreach from account manager"
    HIGH_EXCLUSIVE_OFFER = "HIGH: Send exclusive offer + loyalty bonus"
    WIN_BACK = "Win-back campaign with significant discount"
    RE_ENGAGE = "Re-engagement email with personalized recommendations"
    REMINDER = "Reminder email with what's new"
    NONE = "No action needed"


#: (premium tier only, days inactive strictly beyond, action); first match wins.
ACTION_RULES: tuple[tuple[bool, int, RetentionAction], ...] = (
    (True, 60, RetentionAction.URGENT_OUTREACH),
    (True, 30, RetentionAction.HIGH_EXCLUSIVE_OFFER),
    (False, 90, RetentionAction.WIN_BACK),
    (False, 60, RetentionAction.RE_ENGAGE),
    (False, 30, RetentionAction.REMINDER),
)


@dataclass(frozen=True)
class ChurnPriorityRecord:
    """Priority ranking entry for one lapsing customer."""

    customer_id: str
    full_name: str
    city: str
    state: str
    clv_tier: CLVTier
    total_revenue: Decimal
    total_orders: int
    days_inactive: int
    loyalty_points: int
    churn_risk_level: ChurnRiskLevel
    tier_weight: int
    recency_weight: int
    priority_score: int
    recommended_action: RetentionAction

    def __post_init__(self) -> None:
        if self.priority_score != self.tier_weight + self.recency_weight:
            raise ValueError(
                f"priority_score ({self.priority_score}) must equal tier_weight + recency_weight "
                f"({self.tier_weight} + {self.recency_weight}) (customer_id={self.customer_id})"
            )


def recency_weight(days_inactive: int) -> int:
    for beyond, weight in RECENCY_WEIGHTS:
        if days_inactive > beyond:
            return weight
    return 0


def churn_risk_level(days_inactive: int, thresholds: ClassificationThresholds) -> ChurnRiskLevel:
    """Risk band of a customer from days since their last order."""
    if days_inactive > thresholds.recency_churning_days:
        return ChurnRiskLevel.CHURNED
    if days_inactive > HIGH_RISK_DAYS:
        return ChurnRiskLevel.HIGH_RISK
    if days_inactive > MEDIUM_RISK_DAYS:
        return ChurnRiskLevel.MEDIUM_RISK
    if days_inactive > thresholds.churn_at_risk_floor_days:
        return ChurnRiskLevel.LOW_RISK
    return ChurnRiskLevel.ACTIVE


def recommend_retention_action(tier: CLVTier, days_inactive: int) -> RetentionAction:
    for premium_only, beyond, action in ACTION_RULES:
        if premium_only and tier not in PREMIUM_TIERS:
            continue
        if days_inactive > beyond:
            return action
    return RetentionAction.NONE


def score_churn_priority(
    records: Iterable[CustomerValueRecord], thresholds: ClassificationThresholds
) -> list[ChurnPriorityRecord]:
    """Score and rank lapsing customers for retention outreach.

    Parameters
    ----------
    records:
        Customer value records of the current pass.
    thresholds:
        Thresholds of the current pass; ``churn_at_risk_floor_days`` bounds
        the scored population and ``recency_churning_days`` marks churned.

    Returns
    -------
    list[ChurnPriorityRecord]
        Customers with at least one order and more than the at-risk floor
        of inactive days, ordered by priority score descending, then total
        revenue descending, then customer_id.

    Examples
    --------
    A Gold customer silent for 100 days scores 4 + 5 = 9 and gets urgent
    personal outreach.
    """
    scored: list[ChurnPriorityRecord] = []
    for record in records:
        if record.total_orders <= 0:
            continue
        days = record.days_since_last_order
        if days <= thresholds.churn_at_risk_floor_days:
            continue
        tier_weight = TIER_WEIGHTS[record.clv_tier]
        days_weight = recency_weight(days)
        scored.append(
            ChurnPriorityRecord(
                customer_id=record.customer_id,
                full_name=record.full_name,
                city=record.city,
                state=record.state,
                clv_tier=record.clv_tier,
                total_revenue=record.total_revenue,
                total_orders=record.total_orders,
                days_inactive=days,
                loyalty_points=record.loyalty_points,
                churn_risk_level=churn_risk_level(days, thresholds),
                tier_weight=tier_weight,
                recency_weight=days_weight,
                priority_score=tier_weight + days_weight,
                recommended_action=recommend_retention_action(record.clv_tier, days),
            )
        )

    scored.sort(key=lambda r: (-r.priority_score, -r.total_revenue, r.customer_id))
    logger.debug(f"Scored {len(scored)} lapsing customers for churn priority")
    return scored


def high_priority(
    records: Sequence[ChurnPriorityRecord], minimum: int = HIGH_PRIORITY_SCORE
) -> list[ChurnPriorityRecord]:
    """Records with a priority score of at least ``minimum``, order kept."""
    return [r for r in records if r.priority_score >= minimum]
