"""RFM segmentation and recommended marketing actions.

Segments and actions are decided by ordered rule tables evaluated top to
bottom; the first rule whose every bound holds wins. A bound is either a
floor (``score >= n``) or a ceiling (``score <= n``) on one dimension.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Sequence

from retail_metrics.foundation.rfm import (
    RFMMetrics,
    RFMScore,
    calculate_rfm,
    calculate_rfm_scores,
)
from retail_metrics.foundation.rollups import RollupSet, quantize_money, safe_ratio

logger = logging.getLogger(__name__)


class RFMSegment(str, Enum):
    CHAMPIONS = "Champions"
    LOYAL_CUSTOMERS = "Loyal Customers"
    BIG_SPENDERS = "Big Spenders"
    AT_RISK_HIGH_VALUE = "At Risk - High Value"
    AT_RISK = "At Risk"
    HIBERNATING = "Hibernating"
    LOST = "Lost"
    RECENT_CUSTOMERS = "Recent Customers"
    POTENTIAL_LOYALISTS = "Potential Loyalists"


class RFMAction(str, Enum):
    REWARD = "Reward - Exclusive offers & early access"
    NURTURE = "Nurture - Onboarding, product education"
    WIN_BACK = "Win Back - Special discount, reach out"
    REACTIVATE = "Reactivate - Strong offer to return"
    LAST_CHANCE = "Last Chance - Deep discount or let go"
    ENGAGE = "Engage - Regular communication"


@dataclass(frozen=True)
class ScoreRule:
    """Bounds on (r, f, m) scores; ``None`` leaves a side unconstrained."""

    r_min: int | None = None
    r_max: int | None = None
    f_min: int | None = None
    f_max: int | None = None
    m_min: int | None = None
    m_max: int | None = None

    def matches(self, r: int, f: int, m: int) -> bool:
        for value, low, high in (
            (r, self.r_min, self.r_max),
            (f, self.f_min, self.f_max),
            (m, self.m_min, self.m_max),
        ):
            if low is not None and value < low:
                return False
            if high is not None and value > high:
                return False
        return True


SEGMENT_RULES: tuple[tuple[ScoreRule, RFMSegment], ...] = (
    (ScoreRule(r_min=4, f_min=4, m_min=4), RFMSegment.CHAMPIONS),
    (ScoreRule(r_min=4, f_min=3, m_min=3), RFMSegment.LOYAL_CUSTOMERS),
    (ScoreRule(r_min=3, f_min=3, m_min=4), RFMSegment.BIG_SPENDERS),
    (ScoreRule(r_max=2, f_min=4, m_min=4), RFMSegment.AT_RISK_HIGH_VALUE),
    (ScoreRule(r_max=2, f_min=3, m_min=3), RFMSegment.AT_RISK),
    (ScoreRule(r_max=2, f_max=2, m_min=3), RFMSegment.HIBERNATING),
    (ScoreRule(r_max=2, f_max=2, m_max=2), RFMSegment.LOST),
    (ScoreRule(r_min=4, f_max=2, m_max=2), RFMSegment.RECENT_CUSTOMERS),
)

ACTION_RULES: tuple[tuple[ScoreRule, RFMAction], ...] = (
    (ScoreRule(r_min=4, f_min=4), RFMAction.REWARD),
    (ScoreRule(r_min=4, f_max=2), RFMAction.NURTURE),
    (ScoreRule(r_max=2, f_min=3), RFMAction.WIN_BACK),
    (ScoreRule(r_max=2, f_max=2, m_min=3), RFMAction.REACTIVATE),
    (ScoreRule(r_max=2, f_max=2), RFMAction.LAST_CHANCE),
)


def assign_segment(r: int, f: int, m: int) -> RFMSegment:
    for rule, segment in SEGMENT_RULES:
        if rule.matches(r, f, m):
            return segment
    return RFMSegment.POTENTIAL_LOYALISTS


def recommend_action(r: int, f: int, m: int) -> RFMAction:
    for rule, action in ACTION_RULES:
        if rule.matches(r, f, m):
            return action
    return RFMAction.ENGAGE


@dataclass(frozen=True)
class RFMRecord:
    """Raw RFM metrics, quintile scores, segment and action for one customer."""

    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal
    r_score: int
    f_score: int
    m_score: int
    rfm_score: str
    rfm_total: int
    segment: RFMSegment
    recommended_action: RFMAction

    @classmethod
    def from_scores(cls, metrics: RFMMetrics, score: RFMScore) -> "RFMRecord":
        if metrics.customer_id != score.customer_id:
            raise ValueError(
                f"Metrics and score belong to different customers: "
                f"{metrics.customer_id} != {score.customer_id}"
            )
        r, f, m = score.r_score, score.f_score, score.m_score
        return cls(
            customer_id=metrics.customer_id,
            recency_days=metrics.recency_days,
            frequency=metrics.frequency,
            monetary=metrics.monetary,
            r_score=r,
            f_score=f,
            m_score=m,
            rfm_score=score.rfm_score,
            rfm_total=score.rfm_total,
            segment=assign_segment(r, f, m),
            recommended_action=recommend_action(r, f, m),
        )


def segment_customers(
    rollups: RollupSet, reference_date: date | None = None
) -> list[RFMRecord]:
    """Score every purchasing customer and attach segment and action.

    Scores are computed over the whole current population of purchasing
    customers, so the output is only meaningful as a complete set.

    Parameters
    ----------
    rollups:
        Rollups of the current pass.
    reference_date:
        Reference date the pass started with.

    Returns
    -------
    list[RFMRecord]
        One record per purchasing customer, ordered by customer_id.
    """
    metrics = calculate_rfm(rollups, reference_date)
    scores = calculate_rfm_scores(metrics)
    records = [RFMRecord.from_scores(m, s) for m, s in zip(metrics, scores)]
    logger.debug(f"Segmented {len(records)} purchasing customers")
    return records


@dataclass(frozen=True)
class SegmentSummary:
    segment: RFMSegment
    customer_count: int
    total_revenue: Decimal
    avg_revenue: Decimal
    avg_recency_days: Decimal
    avg_frequency: Decimal


def summarize_segments(records: Sequence[RFMRecord]) -> list[SegmentSummary]:
    """Per-segment counts and averages, largest revenue first.

    Ties on revenue keep the segment table order.
    """
    summaries: list[SegmentSummary] = []
    for segment in RFMSegment:
        members = [r for r in records if r.segment is segment]
        if not members:
            continue
        count = len(members)
        revenue = sum((r.monetary for r in members), Decimal("0"))
        summaries.append(
            SegmentSummary(
                segment=segment,
                customer_count=count,
                total_revenue=quantize_money(revenue),
                avg_revenue=quantize_money(safe_ratio(revenue, count)),
                avg_recency_days=quantize_money(
                    safe_ratio(Decimal(sum(r.recency_days for r in members)), count)
                ),
                avg_frequency=quantize_money(
                    safe_ratio(Decimal(sum(r.frequency for r in members)), count)
                ),
            )
        )
    summaries.sort(key=lambda s: s.total_revenue, reverse=True)
    return summaries
