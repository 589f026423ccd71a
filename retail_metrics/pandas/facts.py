"""Pandas DataFrame adapters for loading fact tables."""

from dataclasses import asdict, fields
from typing import Dict, List, Mapping, Sequence

import pandas as pd  # type: ignore

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
from ._utils import (
    to_date,
    to_decimal,
    to_int,
    to_optional_date,
    to_optional_int,
    to_optional_text,
    to_text,
)


def _customer(row: dict) -> CustomerFact:
    return CustomerFact(
        customer_id=to_text(row["customer_id"]),
        full_name=to_text(row.get("full_name")),
        gender=to_text(row.get("gender")),
        age=to_optional_int(row.get("age"), "age"),
        city=to_text(row.get("city")),
        state=to_text(row.get("state")),
        region=to_text(row.get("region")),
        join_date=to_optional_date(row.get("join_date"), "join_date"),
    )


def _order(row: dict) -> OrderFact:
    return OrderFact(
        order_id=to_text(row["order_id"]),
        customer_id=to_text(row["customer_id"]),
        order_date=to_date(row["order_date"], "order_date"),
        total_amount=to_decimal(row["total_amount"], "total_amount"),
        status=to_text(row.get("status")) or DELIVERED,
        store_id=to_optional_text(row.get("store_id")),
    )


def _order_item(row: dict) -> OrderItemFact:
    discount = row.get("discount_pct")
    return OrderItemFact(
        order_id=to_text(row["order_id"]),
        product_id=to_text(row["product_id"]),
        quantity=to_int(row["quantity"], "quantity"),
        unit_price=to_decimal(row["unit_price"], "unit_price"),
        discount_pct=to_decimal(discount if to_text(discount) else 0, "discount_pct"),
    )


def _review(row: dict) -> ReviewFact:
    return ReviewFact(
        customer_id=to_text(row["customer_id"]),
        product_id=to_text(row["product_id"]),
        rating=to_int(row["rating"], "rating"),
    )


def _loyalty(row: dict) -> LoyaltyFact:
    return LoyaltyFact(
        customer_id=to_text(row["customer_id"]),
        total_points=to_int(row["total_points"], "total_points"),
    )


def _product(row: dict) -> ProductFact:
    list_price = row.get("list_price")
    return ProductFact(
        product_id=to_text(row["product_id"]),
        name=to_text(row.get("name")),
        category=to_text(row.get("category")),
        brand=to_text(row.get("brand")),
        list_price=to_decimal(list_price if to_text(list_price) else 0, "list_price"),
    )


def _store(row: dict) -> StoreFact:
    return StoreFact(
        store_id=to_text(row["store_id"]),
        name=to_text(row.get("name")),
        city=to_text(row.get("city")),
        state=to_text(row.get("state")),
        region=to_text(row.get("region")),
    )


def _store_expense(row: dict) -> StoreExpenseFact:
    return StoreExpenseFact(
        store_id=to_text(row["store_id"]),
        amount=to_decimal(row["amount"], "amount"),
    )


def _employee(row: dict) -> EmployeeFact:
    salary = row.get("salary")
    return EmployeeFact(
        employee_id=to_text(row["employee_id"]),
        store_id=to_text(row["store_id"]),
        role=to_text(row.get("role")),
        salary=to_decimal(salary if to_text(salary) else 0, "salary"),
    )


#: table name -> (required columns, row converter); names match FactSnapshot.from_iterables
FACT_TABLES: Dict[str, tuple] = {
    "customers": (["customer_id"], _customer),
    "orders": (["order_id", "customer_id", "order_date", "total_amount"], _order),
    "order_items": (["order_id", "product_id", "quantity", "unit_price"], _order_item),
    "reviews": (["customer_id", "product_id", "rating"], _review),
    "loyalty": (["customer_id", "total_points"], _loyalty),
    "products": (["product_id"], _product),
    "stores": (["store_id"], _store),
    "store_expenses": (["store_id", "amount"], _store_expense),
    "employees": (["employee_id", "store_id"], _employee),
}


def dataframe_to_facts(table: str, df: pd.DataFrame) -> List:
    """Convert one fact table DataFrame to fact rows.

    Args:
        table: Fact table name, one of :data:`FACT_TABLES`
        df: DataFrame with at least the table's required columns. Optional
            columns may be absent; blank cells fall back to defaults.

    Returns:
        List of validated fact rows in DataFrame order

    Raises:
        KeyError: If ``table`` is not a known fact table
        ValueError: If required columns are missing or a cell is invalid

    Example:
        >>> orders_df = pd.DataFrame({
        ...     "order_id": ["O1"], "customer_id": ["C1"],
        ...     "order_date": ["2024-01-15"], "total_amount": ["99.50"],
        ... })
        >>> dataframe_to_facts("orders", orders_df)[0].total_amount
        Decimal('99.50')
    """
    if table not in FACT_TABLES:
        raise KeyError(f"Unknown fact table {table!r}; expected one of {sorted(FACT_TABLES)}")
    required_cols, convert = FACT_TABLES[table]

    missing_cols = set(required_cols) - set(df.columns)
    if missing_cols:
        raise ValueError(f"{table} DataFrame missing required columns: {sorted(missing_cols)}")

    if df.empty:
        return []

    rows = []
    for position, record in enumerate(df.to_dict("records")):
        try:
            rows.append(convert(record))
        except ValueError as e:
            raise ValueError(f"{table} row {position}: {e}") from e
    return rows


def dataframes_to_snapshot(frames: Mapping[str, pd.DataFrame]) -> FactSnapshot:
    """Build an in-memory fact snapshot from fact table DataFrames.

    Args:
        frames: DataFrames keyed by fact table name. Tables that are not
            present are treated as empty.

    Returns:
        FactSnapshot holding every converted row

    Raises:
        KeyError: If a frame is keyed by an unknown table name
    """
    unknown = set(frames) - set(FACT_TABLES)
    if unknown:
        raise KeyError(f"Unknown fact tables: {sorted(unknown)}")
    tables: Dict[str, Sequence] = {
        table: dataframe_to_facts(table, df) for table, df in frames.items()
    }
    return FactSnapshot.from_iterables(**tables)


def snapshot_to_dataframes(snapshot: FactSnapshot) -> Dict[str, pd.DataFrame]:
    """Export every fact table of a snapshot as a DataFrame.

    The inverse of :func:`dataframes_to_snapshot`: columns are the fact row
    field names, money stays Decimal and dates stay ``datetime.date``.

    Args:
        snapshot: Snapshot to export

    Returns:
        DataFrame per fact table name, empty tables included
    """
    row_types = {
        "customers": CustomerFact,
        "orders": OrderFact,
        "order_items": OrderItemFact,
        "reviews": ReviewFact,
        "loyalty": LoyaltyFact,
        "products": ProductFact,
        "stores": StoreFact,
        "store_expenses": StoreExpenseFact,
        "employees": EmployeeFact,
    }
    frames = {}
    for table, row_type in row_types.items():
        rows = getattr(snapshot, table)()
        columns = [f.name for f in fields(row_type)]
        frames[table] = pd.DataFrame([asdict(row) for row in rows], columns=columns)
    return frames
