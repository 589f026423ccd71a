"""Tests for RFM segmentation and recommended actions."""

from datetime import date, timedelta
from decimal import Decimal
from itertools import product

import pytest

from retail_metrics.analyses.rfm_segments import (
    RFMAction,
    RFMSegment,
    assign_segment,
    recommend_action,
    segment_customers,
    summarize_segments,
)
from retail_metrics.foundation.facts import CustomerFact, FactSnapshot, OrderFact
from retail_metrics.foundation.rollups import FactAggregator


class TestAssignSegment:
    """Test the segment decision table."""

    @pytest.mark.parametrize(
        "scores,segment",
        [
            ((5, 5, 5), RFMSegment.CHAMPIONS),
            ((4, 4, 4), RFMSegment.CHAMPIONS),
            ((4, 3, 3), RFMSegment.LOYAL_CUSTOMERS),
            ((5, 4, 3), RFMSegment.LOYAL_CUSTOMERS),
            ((3, 3, 4), RFMSegment.BIG_SPENDERS),
            ((3, 5, 5), RFMSegment.BIG_SPENDERS),
            ((2, 4, 4), RFMSegment.AT_RISK_HIGH_VALUE),
            ((1, 3, 3), RFMSegment.AT_RISK),
            ((2, 5, 3), RFMSegment.AT_RISK),
            ((2, 2, 3), RFMSegment.HIBERNATING),
            ((1, 1, 1), RFMSegment.LOST),
            ((5, 1, 1), RFMSegment.RECENT_CUSTOMERS),
            ((4, 2, 2), RFMSegment.RECENT_CUSTOMERS),
            ((3, 3, 3), RFMSegment.POTENTIAL_LOYALISTS),
            ((4, 2, 3), RFMSegment.POTENTIAL_LOYALISTS),
            ((2, 3, 2), RFMSegment.POTENTIAL_LOYALISTS),
        ],
    )
    def test_first_matching_rule_wins(self, scores, segment):
        """The first rule matching the scores decides the segment."""
        assert assign_segment(*scores) is segment

    def test_every_score_combination_has_a_segment(self):
        """Every score combination maps to some segment."""
        for r, f, m in product(range(1, 6), repeat=3):
            assert isinstance(assign_segment(r, f, m), RFMSegment)


class TestRecommendAction:
    """Test the action decision table."""

    @pytest.mark.parametrize(
        "scores,action",
        [
            ((5, 5, 1), RFMAction.REWARD),
            ((4, 1, 5), RFMAction.NURTURE),
            ((2, 3, 1), RFMAction.WIN_BACK),
            ((1, 2, 3), RFMAction.REACTIVATE),
            ((1, 1, 2), RFMAction.LAST_CHANCE),
            ((3, 3, 3), RFMAction.ENGAGE),
            ((4, 3, 3), RFMAction.ENGAGE),
        ],
    )
    def test_action_table(self, scores, action):
        """The first rule matching the scores decides the action."""
        assert recommend_action(*scores) is action

    def test_action_labels(self):
        """Action labels keep their display text."""
        assert RFMAction.REWARD.value == "Reward - Exclusive offers & early access"
        assert RFMAction.ENGAGE.value == "Engage - Regular communication"


def _population(n=10):
    """Customer i orders i+1 times, the last order i*10 days before the reference."""
    reference = date(2024, 12, 31)
    customers = [CustomerFact(f"C{i:02d}") for i in range(n)]
    customers.append(CustomerFact("NEVER"))
    orders = []
    for i in range(n):
        last = reference - timedelta(days=i * 10)
        for k in range(i + 1):
            orders.append(
                OrderFact(f"O{i:02d}-{k}", f"C{i:02d}", last - timedelta(days=k), Decimal(100 * (i + 1)))
            )
    return FactSnapshot.from_iterables(customers=customers, orders=orders)


class TestSegmentCustomers:
    """Test segmenting a customer population."""

    def test_only_purchasing_customers_scored(self):
        """Customers without orders are not segmented."""
        records = segment_customers(FactAggregator(_population()).build())
        assert len(records) == 10
        assert "NEVER" not in {r.customer_id for r in records}

    def test_records_ordered_by_customer_id(self):
        """Records are ordered by customer_id."""
        records = segment_customers(FactAggregator(_population()).build())
        assert [r.customer_id for r in records] == sorted(r.customer_id for r in records)

    def test_record_fields_consistent(self):
        """Segment and action agree with each record's scores."""
        for record in segment_customers(FactAggregator(_population()).build()):
            assert record.rfm_score == f"{record.r_score}{record.f_score}{record.m_score}"
            assert record.rfm_total == record.r_score + record.f_score + record.m_score
            assert record.segment is assign_segment(record.r_score, record.f_score, record.m_score)
            assert record.recommended_action is recommend_action(
                record.r_score, record.f_score, record.m_score
            )

    def test_opposite_ends_of_population(self):
        """Most recent, least frequent vs. least recent, most frequent."""
        records = {r.customer_id: r for r in segment_customers(FactAggregator(_population()).build())}
        assert records["C00"].rfm_score == "511"
        assert records["C00"].segment is RFMSegment.RECENT_CUSTOMERS
        assert records["C09"].rfm_score == "155"
        assert records["C09"].segment is RFMSegment.AT_RISK_HIGH_VALUE
        assert records["C09"].recommended_action is RFMAction.WIN_BACK

    def test_rerun_identical(self):
        """Segmenting the same rollups twice gives identical records."""
        rollups = FactAggregator(_population()).build()
        assert segment_customers(rollups) == segment_customers(rollups)


class TestSummarizeSegments:
    """Test the per-segment summary."""

    def test_counts_cover_population(self):
        """Segment counts add up to the scored population."""
        records = segment_customers(FactAggregator(_population()).build())
        summary = summarize_segments(records)
        assert sum(s.customer_count for s in summary) == len(records)
        revenues = [s.total_revenue for s in summary]
        assert revenues == sorted(revenues, reverse=True)
