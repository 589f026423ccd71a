"""Pandas DataFrame adapters for fact tables and classified records."""

from .facts import (
    FACT_TABLES,
    dataframe_to_facts,
    dataframes_to_snapshot,
    snapshot_to_dataframes,
)
from .records import records_to_dataframe, retention_matrix, snapshot_to_dataframe

__all__ = [
    "FACT_TABLES",
    "dataframe_to_facts",
    "dataframes_to_snapshot",
    "records_to_dataframe",
    "retention_matrix",
    "snapshot_to_dataframe",
    "snapshot_to_dataframes",
]
