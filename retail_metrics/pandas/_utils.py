"""Shared utilities for pandas conversion operations."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import pandas as pd  # type: ignore


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def is_missing(value: Any) -> bool:
    """True for None, NaN/NaT and blank strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_decimal(value: Any, column: str) -> Decimal:
    """Convert a cell to Decimal.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal('0.1')``.

    Raises:
        ValueError: If the cell is missing, not numeric, NaN or infinite
    """
    if is_missing(value):
        raise ValueError(f"Missing value in numeric column {column!r}")
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Non-numeric value {value!r} in column {column!r}") from None
    if not number.is_finite():
        raise ValueError(f"Non-finite value {value!r} in column {column!r}")
    return number


def to_int(value: Any, column: str) -> int:
    number = to_decimal(value, column)
    if number != number.to_integral_value():
        raise ValueError(f"Expected a whole number in column {column!r}, got {value!r}")
    return int(number)


def to_optional_int(value: Any, column: str) -> int | None:
    return None if is_missing(value) else to_int(value, column)


def to_date(value: Any, column: str) -> date:
    """Convert a cell (ISO string, datetime or Timestamp) to a date."""
    if is_missing(value):
        raise ValueError(f"Missing value in date column {column!r}")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.to_datetime(value).date()
    except (ValueError, TypeError):
        raise ValueError(f"Unparseable date {value!r} in column {column!r}") from None


def to_optional_date(value: Any, column: str) -> date | None:
    return None if is_missing(value) else to_date(value, column)


def to_text(value: Any) -> str:
    return "" if is_missing(value) else str(value).strip()


def to_optional_text(value: Any) -> str | None:
    text = to_text(value)
    return text or None


def to_cell(value: Any) -> Any:
    """Convert a record field to a pandas-friendly cell value."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return decimal_to_float(value)
    return value
