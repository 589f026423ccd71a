"""Foundational building blocks for the retail metrics engine.

This package exposes the fact read interface, the classification
configuration, the fact aggregator producing per-entity rollups, and the RFM
and cohort primitives the classifiers are built on.
"""

from .config import (
    DEFAULT_CONFIG,
    ClassificationThresholds,
    ConfigProvider,
    StaticConfigProvider,
    default_thresholds,
)
from .errors import ConfigMissing, InconsistentSnapshotError
from .facts import (
    DELIVERED,
    CustomerFact,
    EmployeeFact,
    FactSnapshot,
    FactSource,
    LoyaltyFact,
    OrderFact,
    OrderItemFact,
    ProductFact,
    ReviewFact,
    StoreExpenseFact,
    StoreFact,
)
from .rfm import RFMMetrics, RFMScore, calculate_rfm, calculate_rfm_scores
from .rollups import (
    NO_ACTIVITY_RECENCY_DAYS,
    CustomerRollup,
    FactAggregator,
    ProductRollup,
    RollupSet,
    StoreRollup,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DELIVERED",
    "NO_ACTIVITY_RECENCY_DAYS",
    "ClassificationThresholds",
    "ConfigMissing",
    "ConfigProvider",
    "CustomerFact",
    "CustomerRollup",
    "EmployeeFact",
    "FactAggregator",
    "FactSnapshot",
    "FactSource",
    "InconsistentSnapshotError",
    "LoyaltyFact",
    "OrderFact",
    "OrderItemFact",
    "ProductFact",
    "ProductRollup",
    "RFMMetrics",
    "RFMScore",
    "ReviewFact",
    "RollupSet",
    "StaticConfigProvider",
    "StoreExpenseFact",
    "StoreFact",
    "StoreRollup",
    "calculate_rfm",
    "calculate_rfm_scores",
    "default_thresholds",
]
