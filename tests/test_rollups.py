"""Tests for the fact aggregator."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from retail_metrics.foundation.errors import InconsistentSnapshotError
from retail_metrics.foundation.facts import (
    CustomerFact,
    EmployeeFact,
    FactSnapshot,
    LoyaltyFact,
    OrderFact,
    OrderItemFact,
    ProductFact,
    ReviewFact,
    StoreExpenseFact,
    StoreFact,
)
from retail_metrics.foundation.rollups import (
    NO_ACTIVITY_RECENCY_DAYS,
    FactAggregator,
    safe_ratio,
)


@pytest.fixture
def snapshot():
    return FactSnapshot.from_iterables(
        customers=[
            CustomerFact("C2", full_name="Bea", age=41),
            CustomerFact("C1", full_name="Al", age=30),
            CustomerFact("C3", full_name="Cy"),
        ],
        orders=[
            OrderFact("O1", "C1", date(2024, 1, 1), Decimal("100.00"), store_id="S1"),
            OrderFact("O2", "C1", date(2024, 3, 1), Decimal("50.00"), store_id="S1"),
            OrderFact("O3", "C2", date(2024, 2, 1), Decimal("80.00"), store_id="S2"),
            OrderFact("O4", "C2", date(2024, 3, 11), Decimal("999.00"), status="Cancelled"),
        ],
        order_items=[
            OrderItemFact("O1", "P1", 2, Decimal("25.00")),
            OrderItemFact("O1", "P2", 1, Decimal("50.00")),
            OrderItemFact("O2", "P1", 2, Decimal("25.00"), Decimal("10")),
            OrderItemFact("O3", "P2", 1, Decimal("80.00")),
            OrderItemFact("O4", "P1", 9, Decimal("111.00")),
        ],
        reviews=[
            ReviewFact("C1", "P1", 5),
            ReviewFact("C1", "P2", 4),
            ReviewFact("C2", "P2", 3),
        ],
        loyalty=[LoyaltyFact("C1", 150)],
        products=[
            ProductFact("P2", "Lamp", "Home", "Acme", Decimal("50")),
            ProductFact("P1", "Mug", "Home", "Acme", Decimal("25")),
            ProductFact("P3", "Unsold", "Home", "Acme", Decimal("5")),
        ],
        stores=[StoreFact("S1", "North"), StoreFact("S2", "South"), StoreFact("S3", "Empty")],
        store_expenses=[
            StoreExpenseFact("S1", Decimal("30.00")),
            StoreExpenseFact("S1", Decimal("20.00")),
        ],
        employees=[
            EmployeeFact("E1", "S1", "Manager", Decimal("1000")),
            EmployeeFact("E2", "S1", "Cashier", Decimal("500")),
        ],
    )


class TestCustomerRollups:
    """Test customer rollups."""

    def test_one_rollup_per_customer_sorted_by_id(self, snapshot):
        """Every customer gets one rollup, ordered by customer_id."""
        rollups = FactAggregator(snapshot).customer_rollups()
        assert [r.customer_id for r in rollups] == ["C1", "C2", "C3"]

    def test_delivered_orders_aggregate(self, snapshot):
        """Revenue sums order totals; items do not fan out the sum."""
        c1 = FactAggregator(snapshot).customer_rollups()[0]
        assert c1.total_orders == 2
        assert c1.total_revenue == Decimal("150.00")
        assert c1.avg_order_value == Decimal("75.00")
        assert c1.total_items == 5
        assert c1.first_order_date == date(2024, 1, 1)
        assert c1.last_order_date == date(2024, 3, 1)
        assert c1.lifespan_days == 60
        assert c1.loyalty_points == 150
        assert c1.review_count == 2
        assert c1.avg_rating_given == Decimal("4.50")

    def test_recency_measured_from_reference_date(self, snapshot):
        """The cancelled order on 2024-03-11 sets the reference date."""
        c1 = FactAggregator(snapshot).customer_rollups()[0]
        assert c1.days_since_last_order == 10

    def test_cancelled_orders_excluded(self, snapshot):
        """Cancelled orders do not count toward rollups."""
        c2 = FactAggregator(snapshot).customer_rollups()[1]
        assert c2.total_orders == 1
        assert c2.total_revenue == Decimal("80.00")
        assert c2.total_items == 1

    def test_customer_without_orders_gets_defaults(self, snapshot):
        """Customers without orders get zero totals and the no-activity recency."""
        c3 = FactAggregator(snapshot).customer_rollups()[2]
        assert c3.total_orders == 0
        assert c3.total_revenue == Decimal("0.00")
        assert c3.avg_order_value == Decimal("0.00")
        assert c3.first_order_date is None
        assert c3.last_order_date is None
        assert c3.days_since_last_order == NO_ACTIVITY_RECENCY_DAYS
        assert c3.lifespan_days == 0
        assert c3.loyalty_points == 0
        assert c3.avg_rating_given == Decimal("0.00")

    def test_duplicate_customer_raises_error(self):
        """Repeated customer_id should raise ValueError."""
        snapshot = FactSnapshot.from_iterables(customers=[CustomerFact("C1"), CustomerFact("C1")])
        with pytest.raises(ValueError, match="Duplicate customer_id"):
            FactAggregator(snapshot).customer_rollups()

    def test_orders_without_customer_record_logged(self, caplog):
        """Orders of unknown customers are logged and skipped."""
        snapshot = FactSnapshot.from_iterables(
            orders=[OrderFact("O1", "GHOST", date(2024, 1, 1), Decimal("10"))]
        )
        with caplog.at_level(logging.WARNING):
            rollups = FactAggregator(snapshot).customer_rollups()
        assert rollups == ()
        assert "no customer record" in caplog.text


class TestProductRollups:
    """Test product rollups."""

    def test_product_sales(self, snapshot):
        """Product sales sum delivered lines net of discount."""
        products = {p.product_id: p for p in FactAggregator(snapshot).product_rollups()}
        mug = products["P1"]
        assert mug.times_ordered == 2
        assert mug.units_sold == 4
        assert mug.gross_revenue == Decimal("100.00")
        assert mug.total_discounts == Decimal("5.00")
        assert mug.net_revenue == Decimal("95.00")
        assert mug.avg_discount_pct == Decimal("5.00")
        assert mug.review_count == 1
        assert mug.avg_rating == Decimal("5.00")

    def test_unsold_product_present_with_zeros(self, snapshot):
        """Unsold products are kept with zero sales."""
        products = FactAggregator(snapshot).product_rollups()
        assert [p.product_id for p in products] == ["P1", "P2", "P3"]
        unsold = products[2]
        assert unsold.units_sold == 0
        assert unsold.net_revenue == Decimal("0.00")
        assert unsold.avg_selling_price == Decimal("0.00")


class TestStoreRollups:
    """Test store rollups."""

    def test_store_financials(self, snapshot):
        """Store revenue, expenses, payroll and profit are aggregated."""
        s1 = FactAggregator(snapshot).store_rollups()[0]
        assert s1.total_orders == 2
        assert s1.total_revenue == Decimal("150.00")
        assert s1.unique_customers == 1
        assert s1.total_expenses == Decimal("50.00")
        assert s1.net_profit == Decimal("100.00")
        assert s1.profit_margin_pct == Decimal("66.67")
        assert s1.employee_count == 2
        assert s1.total_payroll == Decimal("1500.00")
        assert s1.revenue_per_employee == Decimal("75.00")

    def test_store_without_activity_guards_division(self, snapshot):
        """Stores without activity get zero ratios instead of dividing by zero."""
        s3 = FactAggregator(snapshot).store_rollups()[2]
        assert s3.total_revenue == Decimal("0.00")
        assert s3.profit_margin_pct == Decimal("0.00")
        assert s3.revenue_per_employee == Decimal("0.00")


class TestBuild:
    """Test building the full rollup set."""

    def test_build_stamps_reference_date(self, snapshot):
        """The rollup set carries the snapshot reference date."""
        rollups = FactAggregator(snapshot).build()
        assert rollups.reference_date == date(2024, 3, 11)
        assert len(rollups.customers) == 3
        assert len(rollups.products) == 3
        assert len(rollups.stores) == 3

    def test_mismatched_reference_date_raises_error(self, snapshot):
        """A differing reference date should raise InconsistentSnapshotError."""
        with pytest.raises(InconsistentSnapshotError, match="fact aggregation"):
            FactAggregator(snapshot).build(reference_date=date(2024, 1, 1))

    def test_build_is_deterministic(self, snapshot):
        """Building twice gives equal rollup sets."""
        aggregator = FactAggregator(snapshot)
        assert aggregator.build() == aggregator.build()


class TestSafeRatio:
    """Test safe_ratio."""

    def test_zero_denominator_returns_zero(self):
        """A zero denominator gives zero."""
        assert safe_ratio(Decimal("10"), 0) == Decimal("0")

    def test_regular_division(self):
        """A non-zero denominator divides normally."""
        assert safe_ratio(Decimal("10"), 4) == Decimal("2.5")
