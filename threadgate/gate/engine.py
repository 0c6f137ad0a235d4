"""
Validation gate: runs every rule over one generated post and aggregates the
findings into a ValidationGateResult.

The gate is pure. It reports every violation in one pass instead of stopping
at the first.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from .patterns import DEFAULT_CATALOG, PatternCatalog
from .schema import DataQualityReport, EventMetrics, ValidationGateResult, ValidationResult, fail
from . import validators as v

# Charts that must be present for a post to be publishable: (key, alias).
REQUIRED_CHARTS: tuple[tuple[str, str | None], ...] = (
    ("flowSummarySvg", None),
    ("optionsFlowHeatmapSvg", None),
    ("historicalVsImpliedVolSvg", None),
    ("volatilitySmileSvg", None),
    ("ivRankDistributionSvg", "ivRankHistogramSvg"),
)

_PREMIUM_PAID = re.compile(r"premium paid", re.IGNORECASE)


def _resolve_charts(charts: Mapping[str, str]) -> tuple[list[tuple[str, str | None]], list[tuple[str, str]]]:
    """Split supplied charts into required (possibly missing) and additional ones."""
    required: list[tuple[str, str | None]] = []
    claimed: set[str] = set()
    for key, alias in REQUIRED_CHARTS:
        svg = charts.get(key) or (charts.get(alias) if alias else None)
        required.append((key, svg or None))
        claimed.add(key)
        if alias:
            claimed.add(alias)

    extra = [(key, svg) for key, svg in charts.items() if key not in claimed and svg]
    return required, extra


def _check_chart(
    chart_type: str,
    svg: str,
    event_type: str,
    catalog: PatternCatalog,
    errors: list[ValidationResult],
    warnings: list[ValidationResult],
) -> None:
    svg_check = v.validate_svg_content(svg, chart_type, catalog)
    if not svg_check.is_valid:
        (errors if svg_check.severity == "error" else warnings).append(svg_check)

    if event_type == "DARK_POOL_PRINT" and _PREMIUM_PAID.search(svg):
        errors.append(
            fail(
                "DARKPOOL_PREMIUM_MISLABEL",
                f'{chart_type} contains "premium paid" label which is not valid for dark pool prints',
                chart_type,
                svg[:200],
            )
        )

    if "volatility" in chart_type.lower():
        iv_check = v.validate_iv_unit_scale(svg, chart_type)
        if not iv_check.is_valid:
            errors.append(iv_check)


def check_quality_report(chart_type: str, quality: DataQualityReport) -> list[ValidationResult]:
    """Errors implied by a chart builder's own data quality report."""
    results: list[ValidationResult] = []

    if quality.used_fallback:
        results.append(fail("MOCK_DATA_USED", f"{chart_type} used fallback/mock data", chart_type, quality.to_dict()))

    if quality.missing_fields:
        results.append(
            fail(
                "DATA_INSUFFICIENT_NO_FALLBACK",
                f"{chart_type} missing required fields: {', '.join(quality.missing_fields)}",
                chart_type,
                list(quality.missing_fields),
            )
        )

    if quality.iv_stats is not None:
        stats = quality.iv_stats
        iv_max = stats.max * 100 if stats.unit == "decimal" else stats.max
        if iv_max > 300:
            results.append(
                fail(
                    "IV_IMPLAUSIBLE_UNITS",
                    f"{chart_type} shows implied volatility above 300% (max {iv_max:.2f}%)",
                    chart_type,
                    quality.to_dict()["ivStats"],
                )
            )

    coverage = quality.strike_coverage
    if coverage is not None and coverage.near_spot_count < coverage.min_required:
        results.append(
            fail(
                "STRIKE_COVERAGE_INSUFFICIENT",
                f"{chart_type} strike coverage insufficient near spot "
                f"({coverage.near_spot_count}/{coverage.min_required})",
                chart_type,
                quality.to_dict()["strikeCoverage"],
            )
        )

    if "correlation" in chart_type.lower() and quality.symbols_used:
        seen: set[str] = set()
        duplicates: list[str] = []
        for symbol in (s.upper() for s in quality.symbols_used):
            if symbol in seen and symbol not in duplicates:
                duplicates.append(symbol)
            seen.add(symbol)
        if duplicates:
            results.append(
                fail(
                    "CORR_DUPLICATE_SYMBOLS",
                    f"{chart_type} contains duplicate symbols: {', '.join(duplicates)}",
                    chart_type,
                    list(quality.symbols_used),
                )
            )

    return results


def run_validation_gate(
    symbol: str,
    event_type: str,
    metrics: EventMetrics,
    thread_parts: Sequence[str],
    charts: Mapping[str, str],
    skew_direction: str,
    strikes: Sequence[float] = (),
    spot: float = 0.0,
    iv_strikes: Sequence[float] = (),
    oi_strikes: Sequence[float] = (),
    chart_expiries: Mapping[str, str] | None = None,
    gamma_position: str | None = None,
    chart_quality_reports: Mapping[str, DataQualityReport] | None = None,
    max_pain: float | None = None,
    catalog: PatternCatalog | None = None,
) -> ValidationGateResult:
    """
    Evaluate a generated post against the full rule catalog.

    Args:
        symbol: Ticker the post is about
        event_type: OPTIONS_SWEEP or DARK_POOL_PRINT
        metrics: The event being described
        thread_parts: Ordered thread text
        charts: Rendered SVG markup by chart key
        skew_direction: Sign of the modeled volatility skew ("put" or "call")
        strikes, iv_strikes, oi_strikes: Strike arrays behind the charts
        spot: Current underlying price (0 disables coverage checks)
        chart_expiries: Expiry each chart was built for, by chart key
        gamma_position: Modeled dealer gamma sign ("long" or "short")
        chart_quality_reports: Builder-reported data quality, by chart key
        max_pain: Max pain strike, checked against the strike range
        catalog: Suspicious/garbled pattern catalog

    Returns:
        ValidationGateResult with every error and warning found
    """
    catalog = catalog or DEFAULT_CATALOG
    errors: list[ValidationResult] = []
    warnings: list[ValidationResult] = []

    if event_type == "OPTIONS_SWEEP":
        errors.extend(v.validate_options_sweep_event(metrics))
    else:
        errors.extend(v.validate_dark_pool_event(metrics))

    thread = list(thread_parts or [])
    if not thread:
        errors.append(fail("THREAD_MISSING", "Thread content missing or empty", "thread"))

    for values, field_name in ((strikes, "strikes"), (iv_strikes, "ivStrikes"), (oi_strikes, "oiStrikes")):
        if values:
            for check in (
                v.validate_array_no_nan(values, field_name),
                v.validate_positive_finite_array(values, field_name),
            ):
                if not check.is_valid:
                    errors.append(check)

    for i, content in enumerate(thread):
        field_name = f"thread[{i}]"
        for check in (
            v.validate_no_suspicious_strings(content, field_name, catalog),
            v.validate_no_garbled_labels(content, field_name, catalog),
            v.validate_copy_logic(content, skew_direction, field_name),
            v.validate_no_print_direction_claim(content, event_type, field_name),
            v.validate_gamma_sign_consistency(content, gamma_position, field_name),
        ):
            if not check.is_valid:
                errors.append(check)

    required, extra = _resolve_charts(charts)
    for chart_type, svg in required:
        if svg is None:
            errors.append(fail("SVG_MISSING", f"{chart_type} is missing", chart_type))
            continue
        _check_chart(chart_type, svg, event_type, catalog, errors, warnings)
    for chart_type, svg in extra:
        _check_chart(chart_type, svg, event_type, catalog, errors, warnings)

    for chart_type, quality in (chart_quality_reports or {}).items():
        errors.extend(check_quality_report(chart_type, quality))

    coverage_strikes = [s for s in (iv_strikes or strikes) if v.is_finite_number(s)]
    if coverage_strikes and spot > 0:
        for check in (
            v.validate_strike_coverage(coverage_strikes, spot, 0.15, 5),
            v.validate_spot_in_range(spot, coverage_strikes, 0.1),
        ):
            if not check.is_valid:
                errors.append(check)

    if max_pain is not None and strikes:
        finite = [s for s in strikes if v.is_finite_number(s)]
        check = v.validate_max_pain_in_range(max_pain, finite)
        if not check.is_valid:
            (errors if check.severity == "error" else warnings).append(check)

    if metrics.expiry and chart_expiries:
        for chart_type, chart_expiry in chart_expiries.items():
            check = v.validate_expiry_consistency(metrics.expiry, chart_expiry, chart_type)
            if not check.is_valid:
                errors.append(check)

    return ValidationGateResult(errors=errors, warnings=warnings)
