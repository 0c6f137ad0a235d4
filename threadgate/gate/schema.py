"""
Data shapes consumed and produced by the validation gate.

JSON field names follow the run artifact contract (camelCase); Python
attributes are snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Severity = Literal["error", "warning", "info"]
EventType = Literal["OPTIONS_SWEEP", "DARK_POOL_PRINT"]
SkewDirection = Literal["put", "call"]
GammaPosition = Literal["long", "short"]

EVENT_TYPES = frozenset({"OPTIONS_SWEEP", "DARK_POOL_PRINT"})


@dataclass(frozen=True)
class ValidationResult:
    """A single gate finding. Never mutated after creation."""

    is_valid: bool
    severity: Severity
    code: str
    message: str
    field: str | None = None
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "isValid": self.is_valid,
            "severity": self.severity,
            "code": self.code,
            "message": self.message,
        }
        if self.field is not None:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = self.value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationResult:
        return cls(
            is_valid=bool(data.get("isValid", False)),
            severity=data.get("severity", "error"),
            code=str(data.get("code", "")),
            message=str(data.get("message", "")),
            field=data.get("field"),
            value=data.get("value"),
        )

    def __str__(self) -> str:
        loc = f" ({self.field})" if self.field else ""
        return f"{self.severity.upper()}: [{self.code}]{loc} {self.message}"


VALID = ValidationResult(is_valid=True, severity="info", code="VALID", message="OK")


def ok(message: str = "OK") -> ValidationResult:
    if message == "OK":
        return VALID
    return ValidationResult(is_valid=True, severity="info", code="VALID", message=message)


def fail(
    code: str,
    message: str,
    field: str | None = None,
    value: Any = None,
    severity: Severity = "error",
) -> ValidationResult:
    return ValidationResult(is_valid=False, severity=severity, code=code, message=message, field=field, value=value)


@dataclass
class ValidationGateResult:
    """
    Aggregated gate verdict.

    `is_publishable` and `summary` are derived from the error and warning
    lists and cannot be set independently.
    """

    errors: list[ValidationResult] = field(default_factory=list)
    warnings: list[ValidationResult] = field(default_factory=list)

    @property
    def is_publishable(self) -> bool:
        return len(self.errors) == 0

    @property
    def summary(self) -> str:
        if self.is_publishable:
            return f"Validation passed with {len(self.warnings)} warning(s)"
        return f"Validation FAILED: {len(self.errors)} error(s), {len(self.warnings)} warning(s)"

    def codes(self) -> list[str]:
        return [e.code for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "isPublishable": self.is_publishable,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": self.summary,
        }


@dataclass
class EventMetrics:
    """One detected market event. Read-only to the gate."""

    size: float
    timestamp: str
    percentile: float
    sentiment_label: str
    price: float
    notional_value: float
    contracts: float | None = None
    shares: float | None = None
    strike: float | None = None
    expiry: str | None = None
    breakeven: float | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "size": self.size,
            "timestamp": self.timestamp,
            "percentile": self.percentile,
            "sentimentLabel": self.sentiment_label,
            "price": self.price,
            "notionalValue": self.notional_value,
        }
        for key, attr in (
            ("contracts", self.contracts),
            ("shares", self.shares),
            ("strike", self.strike),
            ("expiry", self.expiry),
            ("breakeven", self.breakeven),
        ):
            if attr is not None:
                result[key] = attr
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventMetrics:
        return cls(
            size=data.get("size", 0),
            timestamp=str(data.get("timestamp", "")),
            percentile=data.get("percentile", 0),
            sentiment_label=str(data.get("sentimentLabel", "neutral")),
            price=data.get("price", 0),
            notional_value=data.get("notionalValue", 0),
            contracts=data.get("contracts"),
            shares=data.get("shares"),
            strike=data.get("strike"),
            expiry=data.get("expiry"),
            breakeven=data.get("breakeven"),
        )


@dataclass
class ChartSpec:
    """One rendered chart and its own validation result."""

    type: str
    svg_content: str
    validation_result: ValidationResult = VALID


@dataclass
class StrikeCoverage:
    near_spot_count: int
    near_spot_pct: float
    min_required: int


@dataclass
class IvStats:
    min: float
    max: float
    median: float
    unit: Literal["decimal", "percent"] = "decimal"


@dataclass
class DataQualityReport:
    """Per-chart data quality as reported by the chart builder."""

    sources_used: dict[str, bool] = field(default_factory=dict)
    used_fallback: bool = False
    missing_fields: list[str] = field(default_factory=list)
    strike_coverage: StrikeCoverage | None = None
    iv_stats: IvStats | None = None
    symbols_used: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sourcesUsed": dict(self.sources_used),
            "usedFallback": self.used_fallback,
            "missingFields": list(self.missing_fields),
            "symbolsUsed": list(self.symbols_used),
        }
        if self.strike_coverage is not None:
            result["strikeCoverage"] = {
                "nearSpotCount": self.strike_coverage.near_spot_count,
                "nearSpotPct": self.strike_coverage.near_spot_pct,
                "minRequired": self.strike_coverage.min_required,
            }
        if self.iv_stats is not None:
            result["ivStats"] = {
                "min": self.iv_stats.min,
                "max": self.iv_stats.max,
                "median": self.iv_stats.median,
                "unit": self.iv_stats.unit,
            }
        return result
