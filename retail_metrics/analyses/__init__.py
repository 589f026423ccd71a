"""Classifiers built on the foundation rollups.

Each module turns the rollups of one pass into immutable, ordered records:
customer value and status, RFM segments, cohort retention, ABC classes,
churn priority, store performance and category/brand performance.
"""

from .abc import ABCClass, ABCRecord, PriceableEntity, classify_abc, classify_products, summarize_abc
from .churn import (
    ChurnPriorityRecord,
    ChurnRiskLevel,
    RetentionAction,
    high_priority,
    score_churn_priority,
)
from .clv import (
    CLVTier,
    CustomerStatus,
    CustomerValueRecord,
    age_group,
    assign_clv_tier,
    assign_customer_status,
    calculate_customer_value,
    summarize_demographics,
    summarize_geography,
    summarize_tiers,
)
from .product_performance import (
    BrandPerformance,
    CategoryPerformance,
    summarize_brands,
    summarize_categories,
)
from .retention import (
    Cohort,
    CohortActivity,
    MonthlyCustomerMix,
    analyze_customer_mix,
    build_cohorts,
    calculate_cohort_retention,
    retention_curve,
)
from .rfm_segments import (
    RFMAction,
    RFMRecord,
    RFMSegment,
    assign_segment,
    recommend_action,
    segment_customers,
    summarize_segments,
)
from .store_performance import (
    PerformanceTier,
    StorePerformanceRecord,
    classify_stores,
    summarize_regions,
)

__all__ = [
    "ABCClass",
    "ABCRecord",
    "BrandPerformance",
    "CLVTier",
    "CategoryPerformance",
    "ChurnPriorityRecord",
    "ChurnRiskLevel",
    "Cohort",
    "CohortActivity",
    "CustomerStatus",
    "CustomerValueRecord",
    "MonthlyCustomerMix",
    "PerformanceTier",
    "PriceableEntity",
    "RFMAction",
    "RFMRecord",
    "RFMSegment",
    "RetentionAction",
    "StorePerformanceRecord",
    "age_group",
    "analyze_customer_mix",
    "assign_clv_tier",
    "assign_customer_status",
    "assign_segment",
    "build_cohorts",
    "calculate_cohort_retention",
    "calculate_customer_value",
    "classify_abc",
    "classify_products",
    "classify_stores",
    "high_priority",
    "recommend_action",
    "retention_curve",
    "score_churn_priority",
    "segment_customers",
    "summarize_abc",
    "summarize_brands",
    "summarize_categories",
    "summarize_demographics",
    "summarize_geography",
    "summarize_regions",
    "summarize_segments",
    "summarize_tiers",
]
