"""Validation gate over generated thread text and chart markup."""

from .engine import REQUIRED_CHARTS, check_quality_report, run_validation_gate
from .patterns import DEFAULT_CATALOG, NamedPattern, PatternCatalog, load_catalog
from .schema import (
    VALID,
    ChartSpec,
    DataQualityReport,
    EventMetrics,
    IvStats,
    StrikeCoverage,
    ValidationGateResult,
    ValidationResult,
)

__all__ = [
    "REQUIRED_CHARTS",
    "VALID",
    "ChartSpec",
    "DataQualityReport",
    "DEFAULT_CATALOG",
    "EventMetrics",
    "IvStats",
    "NamedPattern",
    "PatternCatalog",
    "StrikeCoverage",
    "ValidationGateResult",
    "ValidationResult",
    "check_quality_report",
    "load_catalog",
    "run_validation_gate",
]
