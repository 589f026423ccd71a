"""Pandas DataFrame exports of classified records and published snapshots."""

from dataclasses import fields, is_dataclass
from typing import Sequence

import pandas as pd  # type: ignore

from retail_metrics.analyses.retention import CohortActivity
from retail_metrics.refresh.snapshot import PublishedSnapshot
from ._utils import to_cell


def records_to_dataframe(records: Sequence) -> pd.DataFrame:
    """Convert classified records to a DataFrame.

    Money and share fields (Decimal) become floats and enum labels become
    their string values. Row order follows ``records``.

    Args:
        records: Sequence of record dataclasses of a single type

    Returns:
        DataFrame with one column per record field. Empty when ``records``
        is empty.

    Raises:
        TypeError: If records are not dataclass instances or mix types

    Example:
        >>> values = calculate_customer_value(rollups, thresholds)
        >>> df = records_to_dataframe(values)
        >>> df.groupby("clv_tier")["total_revenue"].sum()
    """
    if not records:
        return pd.DataFrame()

    record_type = type(records[0])
    if not is_dataclass(record_type):
        raise TypeError(f"Expected dataclass records, got {record_type.__name__}")
    if any(type(r) is not record_type for r in records):
        raise TypeError("All records must share one type")

    columns = [f.name for f in fields(record_type)]
    rows = [{col: to_cell(getattr(r, col)) for col in columns} for r in records]
    return pd.DataFrame(rows, columns=columns)


def snapshot_to_dataframe(snapshot: PublishedSnapshot) -> pd.DataFrame:
    """Records of a published snapshot as a DataFrame.

    Snapshot metadata (name, version, reference date, computed_at) is kept in
    ``DataFrame.attrs`` so exports can state how fresh the data is.
    """
    df = records_to_dataframe(snapshot.records)
    df.attrs.update(
        {
            "snapshot_name": snapshot.name,
            "snapshot_version": snapshot.version,
            "reference_date": snapshot.reference_date,
            "computed_at": snapshot.computed_at,
        }
    )
    return df


def retention_matrix(activities: Sequence[CohortActivity]) -> pd.DataFrame:
    """Pivot cohort activity into a cohort x month-offset retention matrix.

    Args:
        activities: Output of ``calculate_cohort_retention``

    Returns:
        DataFrame indexed by cohort month (newest first) with one column per
        month offset. Offsets without activity read 0.0.

    Example:
        >>> matrix = retention_matrix(calculate_cohort_retention(orders))
        >>> matrix.loc[date(2024, 1, 1), 0]
        1.0
    """
    if not activities:
        return pd.DataFrame()

    df = pd.DataFrame(
        {
            "cohort_month": [a.cohort_month for a in activities],
            "month_offset": [a.month_offset for a in activities],
            "retention_rate": [float(a.retention_rate) for a in activities],
        }
    )
    matrix = df.pivot(index="cohort_month", columns="month_offset", values="retention_rate")
    matrix = matrix.reindex(columns=range(int(df["month_offset"].max()) + 1)).fillna(0.0)
    matrix = matrix.sort_index(ascending=False)
    matrix.columns.name = "month_offset"
    return matrix
