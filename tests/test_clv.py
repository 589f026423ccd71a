"""Tests for CLV tier, customer status and value records."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from retail_metrics.analyses.clv import (
    CLVTier,
    CustomerStatus,
    age_group,
    assign_clv_tier,
    assign_customer_status,
    calculate_customer_value,
    summarize_demographics,
    summarize_geography,
    summarize_tiers,
)
from retail_metrics.foundation.config import (
    CLV_TIER_PLATINUM,
    DEFAULT_CONFIG,
    ClassificationThresholds,
    StaticConfigProvider,
    default_thresholds,
)
from retail_metrics.foundation.errors import InconsistentSnapshotError
from retail_metrics.foundation.facts import CustomerFact, FactSnapshot, OrderFact
from retail_metrics.foundation.rollups import FactAggregator


def _thresholds(**overrides):
    return ClassificationThresholds.from_provider(
        StaticConfigProvider(DEFAULT_CONFIG).with_overrides(overrides)
    )


class TestAssignCLVTier:
    """Test the CLV tier ladder."""

    @pytest.mark.parametrize(
        "revenue,tier",
        [
            ("50000", CLVTier.PLATINUM),
            ("49999.99", CLVTier.GOLD),
            ("25000", CLVTier.GOLD),
            ("10000", CLVTier.SILVER),
            ("5000", CLVTier.BRONZE),
            ("4999.99", CLVTier.BASIC),
            ("0", CLVTier.BASIC),
        ],
    )
    def test_threshold_met_earns_tier(self, revenue, tier):
        """Revenue equal to a threshold earns that tier."""
        assert assign_clv_tier(Decimal(revenue), default_thresholds()) is tier

    def test_tier_monotonic_in_revenue(self):
        """Higher revenue never yields a worse tier."""
        thresholds = default_thresholds()
        order = list(CLVTier)
        previous = len(order)
        for revenue in range(0, 70001, 250):
            position = order.index(assign_clv_tier(Decimal(revenue), thresholds))
            assert position <= previous
            previous = position


class TestAssignCustomerStatus:
    """Test activity status from recency."""

    @pytest.mark.parametrize(
        "days,status",
        [
            (0, CustomerStatus.ACTIVE),
            (30, CustomerStatus.ACTIVE),
            (31, CustomerStatus.AT_RISK),
            (90, CustomerStatus.AT_RISK),
            (91, CustomerStatus.CHURNING),
            (180, CustomerStatus.CHURNING),
            (181, CustomerStatus.CHURNED),
        ],
    )
    def test_window_contains_its_boundary(self, days, status):
        """A window of N days contains recency N."""
        assert assign_customer_status(1, days, default_thresholds()) is status

    def test_zero_orders_never_purchased(self):
        """Customers without orders are Never Purchased."""
        assert (
            assign_customer_status(0, 9999, default_thresholds())
            is CustomerStatus.NEVER_PURCHASED
        )


class TestAgeGroup:
    """Test age bucketing."""

    @pytest.mark.parametrize(
        "age,group",
        [(18, "18-24"), (24, "18-24"), (25, "25-34"), (44, "35-44"), (54, "45-54"), (55, "55+"), (None, "Unknown")],
    )
    def test_buckets(self, age, group):
        """Ages map to fixed reporting groups."""
        assert age_group(age) == group


class TestCalculateCustomerValue:
    """Test value records built from rollups."""

    def test_platinum_active_customer(self):
        """3 orders totalling 50,000 over 100 days, last order 10 days before reference."""
        first = date(2024, 1, 1)
        last = first + timedelta(days=100)
        snapshot = FactSnapshot.from_iterables(
            customers=[CustomerFact("C1", age=29), CustomerFact("C2")],
            orders=[
                OrderFact("O1", "C1", first, Decimal("20000")),
                OrderFact("O2", "C1", first + timedelta(days=50), Decimal("15000")),
                OrderFact("O3", "C1", last, Decimal("15000")),
                OrderFact("O4", "C2", last + timedelta(days=10), Decimal("10")),
            ],
        )
        thresholds = _thresholds(**{CLV_TIER_PLATINUM: 40000})
        rollups = FactAggregator(snapshot).build()
        records = calculate_customer_value(rollups, thresholds, rollups.reference_date)

        c1 = records[0]
        assert c1.customer_id == "C1"
        assert c1.clv_tier is CLVTier.PLATINUM
        assert c1.customer_status is CustomerStatus.ACTIVE
        assert c1.days_since_last_order == 10
        assert c1.lifespan_days == 100
        assert c1.total_revenue == Decimal("50000.00")
        assert c1.avg_order_value == Decimal("16666.67")
        assert c1.projected_annual_value == Decimal("182500.00")
        assert c1.avg_orders_per_month == Decimal("0.90")
        assert c1.age_group == "25-34"

    def test_single_day_lifespan_uses_floor_of_one(self):
        """A zero-day lifespan is treated as one day."""
        snapshot = FactSnapshot.from_iterables(
            customers=[CustomerFact("C1")],
            orders=[OrderFact("O1", "C1", date(2024, 5, 1), Decimal("100"))],
        )
        record = calculate_customer_value(FactAggregator(snapshot).build(), default_thresholds())[0]
        assert record.lifespan_days == 0
        assert record.projected_annual_value == Decimal("36500.00")
        assert record.avg_orders_per_month == Decimal("30.00")

    def test_never_purchased_customer_included(self):
        """Customers without orders still get a record."""
        snapshot = FactSnapshot.from_iterables(customers=[CustomerFact("C1")])
        record = calculate_customer_value(FactAggregator(snapshot).build(), default_thresholds())[0]
        assert record.customer_status is CustomerStatus.NEVER_PURCHASED
        assert record.clv_tier is CLVTier.BASIC
        assert record.days_since_last_order == 9999
        assert record.projected_annual_value == Decimal("0.00")
        assert record.age_group == "Unknown"

    def test_reference_date_mismatch_raises_error(self):
        """A differing reference date should raise InconsistentSnapshotError."""
        snapshot = FactSnapshot.from_iterables(
            customers=[CustomerFact("C1")],
            orders=[OrderFact("O1", "C1", date(2024, 5, 1), Decimal("100"))],
        )
        rollups = FactAggregator(snapshot).build()
        with pytest.raises(InconsistentSnapshotError):
            calculate_customer_value(rollups, default_thresholds(), date(2024, 5, 2))


class TestSummarizeTiers:
    """Test the per-tier summary."""

    def test_shares_over_purchasing_customers(self):
        """Shares are computed over purchasing customers only."""
        snapshot = FactSnapshot.from_iterables(
            customers=[CustomerFact("C1"), CustomerFact("C2"), CustomerFact("C3"), CustomerFact("C4")],
            orders=[
                OrderFact("O1", "C1", date(2024, 5, 1), Decimal("60000")),
                OrderFact("O2", "C2", date(2024, 5, 1), Decimal("30000")),
                OrderFact("O3", "C3", date(2024, 5, 1), Decimal("10000")),
            ],
        )
        records = calculate_customer_value(FactAggregator(snapshot).build(), default_thresholds())
        summary = summarize_tiers(records)
        assert [s.clv_tier for s in summary] == [CLVTier.PLATINUM, CLVTier.GOLD, CLVTier.SILVER]
        assert summary[0].pct_of_revenue == Decimal("60.00")
        assert summary[0].pct_of_customers == Decimal("33.33")
        assert sum(s.customer_count for s in summary) == 3


def _records(customers, orders):
    snapshot = FactSnapshot.from_iterables(customers=customers, orders=orders)
    return calculate_customer_value(FactAggregator(snapshot).build(), default_thresholds())


class TestSummarizeDemographics:
    """Test the age group and gender summary."""

    def test_groups_by_age_group_and_gender(self):
        """Purchasers are grouped with counts, averages and shares."""
        day = date(2024, 5, 1)
        records = _records(
            customers=[
                CustomerFact("C1", gender="F", age=29),
                CustomerFact("C2", gender="F", age=30),
                CustomerFact("C3", gender="M", age=60),
                CustomerFact("C4", gender="F", age=31),
            ],
            orders=[
                OrderFact("O1", "C1", day, Decimal("600")),
                OrderFact("O2", "C2", day, Decimal("100")),
                OrderFact("O3", "C2", day, Decimal("100")),
                OrderFact("O4", "C3", day, Decimal("200")),
            ],
        )

        summary = summarize_demographics(records)

        assert [(s.age_group, s.gender) for s in summary] == [("25-34", "F"), ("55+", "M")]
        top = summary[0]
        assert top.customer_count == 2
        assert top.total_revenue == Decimal("800.00")
        assert top.avg_revenue == Decimal("400.00")
        assert top.avg_orders == Decimal("1.5")
        assert top.pct_of_customers == Decimal("66.67")
        assert top.pct_of_revenue == Decimal("80.00")
        assert summary[1].avg_orders == Decimal("1.0")

    def test_unknown_age_grouped(self):
        """Customers without an age fall into the Unknown group."""
        records = _records(
            customers=[CustomerFact("C1")],
            orders=[OrderFact("O1", "C1", date(2024, 5, 1), Decimal("10"))],
        )
        assert [(s.age_group, s.gender) for s in summarize_demographics(records)] == [
            ("Unknown", "")
        ]

    def test_no_purchasers(self):
        """No purchasing customers give an empty summary."""
        assert summarize_demographics(_records([CustomerFact("C1")], [])) == []


class TestSummarizeGeography:
    """Test the state and city summary."""

    def test_overall_and_state_ranks(self):
        """Cities are ranked overall and within their state."""
        day = date(2024, 5, 1)
        records = _records(
            customers=[
                CustomerFact("C1", city="Austin", state="TX"),
                CustomerFact("C2", city="Austin", state="TX"),
                CustomerFact("C3", city="Dallas", state="TX"),
                CustomerFact("C4", city="Los Angeles", state="CA"),
                CustomerFact("C5", city="Boston", state="MA"),
            ],
            orders=[
                OrderFact("O1", "C1", day, Decimal("500")),
                OrderFact("O2", "C2", day, Decimal("150")),
                OrderFact("O3", "C2", day, Decimal("150")),
                OrderFact("O4", "C3", day, Decimal("300")),
                OrderFact("O5", "C4", day, Decimal("500")),
            ],
        )

        summary = summarize_geography(records)

        assert [(s.city, s.revenue_rank, s.state_rank) for s in summary] == [
            ("Austin", 1, 1),
            ("Los Angeles", 2, 1),
            ("Dallas", 3, 2),
        ]
        austin = summary[0]
        assert austin.customer_count == 2
        assert austin.total_orders == 3
        assert austin.total_revenue == Decimal("800.00")
        assert austin.revenue_per_customer == Decimal("400.00")
        assert austin.avg_order_value == Decimal("325.00")

    def test_tied_cities_share_rank(self):
        """Cities with equal revenue share a rank and the next one skips ahead."""
        day = date(2024, 5, 1)
        records = _records(
            customers=[
                CustomerFact("C1", city="Reno", state="NV"),
                CustomerFact("C2", city="Boise", state="ID"),
                CustomerFact("C3", city="Salem", state="OR"),
            ],
            orders=[
                OrderFact("O1", "C1", day, Decimal("200")),
                OrderFact("O2", "C2", day, Decimal("200")),
                OrderFact("O3", "C3", day, Decimal("50")),
            ],
        )
        summary = summarize_geography(records)
        assert [(s.state, s.revenue_rank) for s in summary] == [("ID", 1), ("NV", 1), ("OR", 3)]
