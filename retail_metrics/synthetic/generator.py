from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
import math
import random
from typing import List, Optional

from retail_metrics.foundation.facts import (
    DELIVERED,
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

CANCELLED = "Cancelled"
RETURNED = "Returned"

REGIONS = ("North", "South", "East", "West", "Central")
CITIES = {
    "North": [("Delhi", "DL"), ("Chandigarh", "PB")],
    "South": [("Bengaluru", "KA"), ("Chennai", "TN")],
    "East": [("Kolkata", "WB"), ("Bhubaneswar", "OD")],
    "West": [("Mumbai", "MH"), ("Ahmedabad", "GJ")],
    "Central": [("Bhopal", "MP"), ("Nagpur", "MH")],
}
CATEGORIES = ("Electronics", "Apparel", "Home", "Grocery", "Beauty", "Sports")
BRANDS = ("Acme", "Northwind", "Globex", "Initech", "Umbrella")
ROLES = ("Manager", "Cashier", "Sales Associate", "Stock Clerk")
DISCOUNT_CHOICES = (0, 0, 0, 5, 10, 15, 20)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class RetailScenario:
    """Configuration for the synthetic retail dataset.

    Attributes
    ----------
    n_customers: Number of customers; some never purchase.
    n_products: Size of the product catalog.
    n_stores: Number of physical stores orders are attributed to.
    start, end: Inclusive date range of customer acquisition and orders.
    churn_hazard: Monthly probability that an active customer stops buying.
    base_orders_per_month: Average orders per active customer per month.
    mean_unit_price: Average catalog price.
    price_variability: Coefficient in (0, 1] controlling price variance.
    cancel_rate: Share of orders that end up Cancelled or Returned.
    missing_age_rate: Share of customers without a recorded age.
    seed: Optional RNG seed for reproducibility.
    """

    n_customers: int = 200
    n_products: int = 40
    n_stores: int = 6
    start: date = date(2023, 1, 1)
    end: date = date(2024, 12, 31)
    churn_hazard: float = 0.06
    base_orders_per_month: float = 0.6
    mean_unit_price: float = 45.0
    price_variability: float = 0.5
    cancel_rate: float = 0.08
    missing_age_rate: float = 0.05
    seed: Optional[int] = None


def _month_starts(start: date, end: date) -> List[date]:
    cur = start.replace(day=1)
    out: List[date] = []
    while cur <= end:
        out.append(cur)
        cur = date(cur.year + 1, 1, 1) if cur.month == 12 else date(cur.year, cur.month + 1, 1)
    return out


def _poisson(rng: random.Random, lam: float) -> int:
    # Knuth's multiplication method; fine for the small rates used here
    if lam <= 0:
        return 0
    limit = math.exp(-lam)
    k = 0
    p = 1.0
    while p > limit:
        k += 1
        p *= rng.random()
    return k - 1


def _money(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _sample_price(rng: random.Random, mean: float, variability: float) -> Decimal:
    sigma = min(max(variability, 0.01), 1.0)
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    return _money(max(math.exp(rng.normalvariate(mu, sigma)), 0.5))


def _generate_stores(rng: random.Random, n: int) -> List[StoreFact]:
    stores = []
    for i in range(n):
        region = REGIONS[i % len(REGIONS)]
        city, state = rng.choice(CITIES[region])
        stores.append(
            StoreFact(
                store_id=f"S-{i + 1}",
                name=f"{city} Store {i + 1}",
                city=city,
                state=state,
                region=region,
            )
        )
    return stores


def _generate_products(rng: random.Random, scenario: RetailScenario) -> List[ProductFact]:
    return [
        ProductFact(
            product_id=f"P-{i + 1}",
            name=f"Product {i + 1}",
            category=rng.choice(CATEGORIES),
            brand=rng.choice(BRANDS),
            list_price=_sample_price(rng, scenario.mean_unit_price, scenario.price_variability),
        )
        for i in range(scenario.n_products)
    ]


def _generate_customers(rng: random.Random, scenario: RetailScenario) -> List[CustomerFact]:
    total_days = (scenario.end - scenario.start).days + 1
    customers = []
    for i in range(scenario.n_customers):
        region = rng.choice(REGIONS)
        city, state = rng.choice(CITIES[region])
        age = None if rng.random() < scenario.missing_age_rate else rng.randint(18, 75)
        customers.append(
            CustomerFact(
                customer_id=f"C-{i + 1}",
                full_name=f"Customer {i + 1}",
                gender=rng.choice(("F", "M")),
                age=age,
                city=city,
                state=state,
                region=region,
                join_date=scenario.start + timedelta(days=rng.randrange(total_days)),
            )
        )
    return customers


def generate_retail_snapshot(scenario: Optional[RetailScenario] = None) -> FactSnapshot:
    """Generate a complete, internally consistent retail fact snapshot.

    Customers join uniformly over the scenario range and then place orders
    month by month (Poisson counts) until they churn. Each order has one to
    three lines; its total equals the sum of discounted line amounts. A
    share of orders is Cancelled or Returned so status filtering matters.
    Reviews, loyalty balances, store expenses and staff are derived from
    the generated activity.

    The same scenario with the same seed always yields the same snapshot.
    """
    scenario = scenario or RetailScenario()
    if scenario.start > scenario.end:
        raise ValueError("start date must be <= end date")
    if scenario.n_stores <= 0 or scenario.n_products <= 0:
        raise ValueError("n_stores and n_products must be positive")

    rng = random.Random(scenario.seed)
    stores = _generate_stores(rng, scenario.n_stores)
    products = _generate_products(rng, scenario)
    customers = _generate_customers(rng, scenario)

    orders: List[OrderFact] = []
    items: List[OrderItemFact] = []
    reviews: List[ReviewFact] = []
    delivered_spend: dict[str, Decimal] = {}
    order_seq = 1

    for customer in customers:
        home_store = rng.choice(stores)
        active = True
        for month in _month_starts(scenario.start, scenario.end):
            if month < customer.join_date.replace(day=1):
                continue
            if not active:
                break
            if rng.random() < scenario.churn_hazard:
                active = False
                continue
            for _ in range(_poisson(rng, scenario.base_orders_per_month)):
                day = month + timedelta(days=rng.randrange(28))
                if day < customer.join_date or day > scenario.end:
                    continue
                order_id = f"O-{order_seq}"
                order_seq += 1

                total = Decimal("0")
                for _line in range(1 + rng.randrange(3)):
                    product = rng.choice(products)
                    quantity = 1 + rng.randrange(3)
                    discount = Decimal(rng.choice(DISCOUNT_CHOICES))
                    items.append(
                        OrderItemFact(
                            order_id=order_id,
                            product_id=product.product_id,
                            quantity=quantity,
                            unit_price=product.list_price,
                            discount_pct=discount,
                        )
                    )
                    total += product.list_price * quantity * (1 - discount / 100)

                status = DELIVERED
                if rng.random() < scenario.cancel_rate:
                    status = rng.choice((CANCELLED, RETURNED))
                store = home_store if rng.random() < 0.8 else rng.choice(stores)
                orders.append(
                    OrderFact(
                        order_id=order_id,
                        customer_id=customer.customer_id,
                        order_date=day,
                        total_amount=_money(total),
                        status=status,
                        store_id=store.store_id,
                    )
                )
                if status == DELIVERED:
                    delivered_spend[customer.customer_id] = (
                        delivered_spend.get(customer.customer_id, Decimal("0")) + _money(total)
                    )
                    if rng.random() < 0.3:
                        reviews.append(
                            ReviewFact(
                                customer_id=customer.customer_id,
                                product_id=items[-1].product_id,
                                rating=rng.choices((1, 2, 3, 4, 5), weights=(1, 1, 2, 4, 4))[0],
                            )
                        )

    loyalty = [
        LoyaltyFact(customer_id=customer_id, total_points=int(spend))
        for customer_id, spend in sorted(delivered_spend.items())
    ]

    store_expenses = []
    employees = []
    employee_seq = 1
    for store in stores:
        for _month in _month_starts(scenario.start, scenario.end):
            store_expenses.append(
                StoreExpenseFact(store_id=store.store_id, amount=_money(rng.uniform(800, 2500)))
            )
        for role_index in range(3 + rng.randrange(4)):
            employees.append(
                EmployeeFact(
                    employee_id=f"E-{employee_seq}",
                    store_id=store.store_id,
                    role=ROLES[0] if role_index == 0 else rng.choice(ROLES[1:]),
                    salary=_money(rng.uniform(25000, 60000)),
                )
            )
            employee_seq += 1

    orders.sort(key=lambda o: (o.order_date, o.order_id))
    return FactSnapshot.from_iterables(
        customers=customers,
        orders=orders,
        order_items=items,
        reviews=reviews,
        loyalty=loyalty,
        products=products,
        stores=stores,
        store_expenses=store_expenses,
        employees=employees,
    )
