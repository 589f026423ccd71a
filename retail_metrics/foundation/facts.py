"""Transactional fact rows and the read interface over a fact snapshot.

The engine never writes facts. It reads them through :class:`FactSource`,
which any store can implement (a warehouse client, a DataFrame bundle, an
in-memory list). :class:`FactSnapshot` is the in-memory implementation used
by the CLI, the synthetic generator and the tests.

Notes
-----
**Reference date**: recency is measured against the most recent order date
in the snapshot (any status), not against wall-clock time. Two passes over the
same snapshot therefore produce identical output regardless of when they run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

#: Order status that qualifies an order for every derived metric.
DELIVERED = "Delivered"


@dataclass(frozen=True)
class CustomerFact:
    """Customer master record.

    Attributes
    ----------
    customer_id:
        Unique customer identifier.
    join_date:
        Date the customer registered (first seen), independent of orders.
    age:
        Age in years, ``None`` when unknown.
    """

    customer_id: str
    full_name: str = ""
    gender: str = ""
    age: int | None = None
    city: str = ""
    state: str = ""
    region: str = ""
    join_date: date | None = None


@dataclass(frozen=True)
class OrderFact:
    """Order header. ``total_amount`` is the billed amount of the order."""

    order_id: str
    customer_id: str
    order_date: date
    total_amount: Decimal
    status: str = DELIVERED
    store_id: str | None = None

    def __post_init__(self) -> None:
        if self.total_amount < 0:
            raise ValueError(
                f"Order total cannot be negative: {self.total_amount} (order_id={self.order_id})"
            )


@dataclass(frozen=True)
class OrderItemFact:
    """Order line. ``discount_pct`` is a percentage in [0, 100]."""

    order_id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    discount_pct: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(
                f"Quantity cannot be negative: {self.quantity} (order_id={self.order_id})"
            )
        if self.unit_price < 0:
            raise ValueError(
                f"Unit price cannot be negative: {self.unit_price} (order_id={self.order_id})"
            )
        if not 0 <= self.discount_pct <= 100:
            raise ValueError(
                f"Discount must be between 0 and 100: {self.discount_pct} (order_id={self.order_id})"
            )


@dataclass(frozen=True)
class ReviewFact:
    customer_id: str
    product_id: str
    rating: int


@dataclass(frozen=True)
class LoyaltyFact:
    customer_id: str
    total_points: int


@dataclass(frozen=True)
class ProductFact:
    product_id: str
    name: str = ""
    category: str = ""
    brand: str = ""
    list_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class StoreFact:
    store_id: str
    name: str = ""
    city: str = ""
    state: str = ""
    region: str = ""


@dataclass(frozen=True)
class StoreExpenseFact:
    store_id: str
    amount: Decimal


@dataclass(frozen=True)
class EmployeeFact:
    employee_id: str
    store_id: str
    role: str = ""
    salary: Decimal = Decimal("0")


class FactSource(Protocol):
    """Read interface over a consistent snapshot of transactional facts."""

    def customers(self) -> Sequence[CustomerFact]: ...

    def products(self) -> Sequence[ProductFact]: ...

    def stores(self) -> Sequence[StoreFact]: ...

    def orders(
        self,
        status: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> Sequence[OrderFact]: ...

    def order_items(self, status: str | None = None) -> Sequence[OrderItemFact]: ...

    def reviews(self) -> Sequence[ReviewFact]: ...

    def loyalty(self) -> Sequence[LoyaltyFact]: ...

    def store_expenses(self) -> Sequence[StoreExpenseFact]: ...

    def employees(self) -> Sequence[EmployeeFact]: ...

    def reference_date(self) -> date | None: ...


@dataclass(frozen=True)
class FactSnapshot:
    """Immutable in-memory fact snapshot implementing :class:`FactSource`.

    Collections are stored as tuples so a snapshot can be shared between
    concurrently running passes without copying.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> snapshot = FactSnapshot.from_iterables(
    ...     customers=[CustomerFact("C1")],
    ...     orders=[OrderFact("O1", "C1", date(2024, 1, 5), Decimal("120.00"))],
    ... )
    >>> snapshot.reference_date()
    datetime.date(2024, 1, 5)
    """

    customer_rows: tuple[CustomerFact, ...] = ()
    order_rows: tuple[OrderFact, ...] = ()
    order_item_rows: tuple[OrderItemFact, ...] = ()
    review_rows: tuple[ReviewFact, ...] = ()
    loyalty_rows: tuple[LoyaltyFact, ...] = ()
    product_rows: tuple[ProductFact, ...] = ()
    store_rows: tuple[StoreFact, ...] = ()
    store_expense_rows: tuple[StoreExpenseFact, ...] = ()
    employee_rows: tuple[EmployeeFact, ...] = ()
    _order_status: dict[str, str] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        status_by_order = self._order_status
        for order in self.order_rows:
            if order.order_id in status_by_order:
                raise ValueError(f"Duplicate order_id in snapshot: {order.order_id}")
            status_by_order[order.order_id] = order.status

    @classmethod
    def from_iterables(
        cls,
        *,
        customers: Iterable[CustomerFact] = (),
        orders: Iterable[OrderFact] = (),
        order_items: Iterable[OrderItemFact] = (),
        reviews: Iterable[ReviewFact] = (),
        loyalty: Iterable[LoyaltyFact] = (),
        products: Iterable[ProductFact] = (),
        stores: Iterable[StoreFact] = (),
        store_expenses: Iterable[StoreExpenseFact] = (),
        employees: Iterable[EmployeeFact] = (),
    ) -> FactSnapshot:
        return cls(
            customer_rows=tuple(customers),
            order_rows=tuple(orders),
            order_item_rows=tuple(order_items),
            review_rows=tuple(reviews),
            loyalty_rows=tuple(loyalty),
            product_rows=tuple(products),
            store_rows=tuple(stores),
            store_expense_rows=tuple(store_expenses),
            employee_rows=tuple(employees),
        )

    def customers(self) -> Sequence[CustomerFact]:
        return self.customer_rows

    def products(self) -> Sequence[ProductFact]:
        return self.product_rows

    def stores(self) -> Sequence[StoreFact]:
        return self.store_rows

    def orders(
        self,
        status: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> Sequence[OrderFact]:
        """Return orders, optionally filtered.

        ``start`` is inclusive and ``end`` exclusive, matching the cohort
        period conventions used elsewhere in the package.
        """
        return tuple(
            order
            for order in self.order_rows
            if (status is None or order.status == status)
            and (start is None or order.order_date >= start)
            and (end is None or order.order_date < end)
        )

    def order_items(self, status: str | None = None) -> Sequence[OrderItemFact]:
        """Return order lines whose parent order has the given status.

        Lines pointing at an order absent from the snapshot are dropped when
        a status filter is applied, since their status cannot be known.
        """
        if status is None:
            return self.order_item_rows
        return tuple(
            item
            for item in self.order_item_rows
            if self._order_status.get(item.order_id) == status
        )

    def reviews(self) -> Sequence[ReviewFact]:
        return self.review_rows

    def loyalty(self) -> Sequence[LoyaltyFact]:
        return self.loyalty_rows

    def store_expenses(self) -> Sequence[StoreExpenseFact]:
        return self.store_expense_rows

    def employees(self) -> Sequence[EmployeeFact]:
        return self.employee_rows

    def reference_date(self) -> date | None:
        """Latest order date across all orders, ``None`` when there are none."""
        if not self.order_rows:
            return None
        return max(order.order_date for order in self.order_rows)
