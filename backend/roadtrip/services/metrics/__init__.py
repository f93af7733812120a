"""Metric extraction: declarative regex tables per source."""

from .service import (
    EXTRACTION_TABLES,
    DistributionRule,
    ListRule,
    MetricExtractor,
    ValueRule,
    extract_metrics,
    normalize_distribution,
)

__all__ = [
    "EXTRACTION_TABLES",
    "DistributionRule",
    "ListRule",
    "MetricExtractor",
    "ValueRule",
    "extract_metrics",
    "normalize_distribution",
]
