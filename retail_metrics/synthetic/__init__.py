"""Synthetic data generation utilities.

This package produces realistic-but-fake retail fact snapshots to exercise
the metrics engine without accessing production data.
"""

from .generator import CANCELLED, RETURNED, RetailScenario, generate_retail_snapshot

__all__ = [
    "CANCELLED",
    "RETURNED",
    "RetailScenario",
    "generate_retail_snapshot",
]
