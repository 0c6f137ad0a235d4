"""
Individual gate rules.

Every rule returns a ValidationResult (VALID when the check passes) and never
raises for bad input; the engine collects the failures.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Sequence

from ..units import normalize_iv
from .patterns import DEFAULT_CATALOG, PatternCatalog
from .schema import VALID, EventMetrics, ValidationResult, fail, ok


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_finite_number(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)


def _fmt(value: float) -> str:
    if is_finite_number(value) and float(value).is_integer():
        return str(int(value))
    return str(value)


# -----------------------------------------------------------------------------
# Numeric sanity
# -----------------------------------------------------------------------------


def validate_no_nan(value: Any, field_name: str) -> ValidationResult:
    if not is_finite_number(value):
        return fail("NAN_VALUE", f"Field {field_name} contains NaN or Infinity", field_name, value)
    return VALID


def validate_number_range(value: Any, min_value: float, max_value: float, field_name: str) -> ValidationResult:
    if not _is_number(value) or math.isnan(value) or value < min_value or value > max_value:
        return fail(
            "OUT_OF_RANGE",
            f"Field {field_name} value {value} is outside valid range [{_fmt(min_value)}, {_fmt(max_value)}]",
            field_name,
            value,
        )
    return VALID


def validate_percentile(value: Any, field_name: str = "percentile") -> ValidationResult:
    return validate_number_range(value, 0, 100, field_name)


def validate_required_field(value: Any, field_name: str) -> ValidationResult:
    if value is None or value == "":
        return fail("REQUIRED_FIELD_MISSING", f"Required field {field_name} is missing", field_name, value)
    return VALID


def validate_array_no_nan(values: Sequence[Any], field_name: str) -> ValidationResult:
    bad = [i for i, v in enumerate(values) if not is_finite_number(v)]
    if bad:
        more = "..." if len(bad) > 5 else ""
        return fail(
            "ARRAY_HAS_NAN",
            f"Array {field_name} has NaN/Infinity at indices: {', '.join(str(i) for i in bad[:5])}{more}",
            field_name,
            {"nanCount": len(bad), "firstIndices": bad[:5]},
        )
    return VALID


def validate_positive_finite_array(values: Sequence[Any], field_name: str) -> ValidationResult:
    bad = [i for i, v in enumerate(values) if not is_finite_number(v) or v <= 0]
    if bad:
        return fail(
            "INVALID_STRIKE_VALUE",
            f"{field_name} contains non-finite or non-positive strikes at indices {', '.join(str(i) for i in bad[:5])}",
            field_name,
            {"invalidCount": len(bad), "sample": bad[:5]},
        )
    return VALID


def validate_breakeven_plausibility(
    breakeven: Any,
    strike: Any = None,
    spot: Any = None,
    field_name: str = "breakeven",
) -> ValidationResult:
    """
    Breakeven must be positive, finite and within 60% of at least one usable anchor.

    Anchors are the strike and the spot price; non-positive or non-finite
    anchors are skipped. With no usable anchor the breakeven is accepted.
    """
    if breakeven is None:
        return fail("REQUIRED_FIELD_MISSING", "Breakeven is required for options events", field_name, breakeven)

    if not is_finite_number(breakeven) or breakeven <= 0:
        return fail("NAN_VALUE", "Breakeven must be a positive, finite number", field_name, breakeven)

    anchors = [a for a in (strike, spot) if is_finite_number(a) and a > 0]
    if not anchors:
        return VALID

    deviation, anchor = min((abs(breakeven - a) / a, a) for a in anchors)
    if deviation <= 0.6:
        return VALID
    return fail(
        "BREAKEVEN_IMPLAUSIBLE",
        f"Breakeven ${_fmt(breakeven)} is implausible vs anchor ${_fmt(anchor)} (>60% away)",
        field_name,
        {"breakeven": breakeven, "anchor": anchor, "deviation": f"{deviation * 100:.1f}%"},
    )


# -----------------------------------------------------------------------------
# Text rules
# -----------------------------------------------------------------------------


def validate_no_suspicious_strings(
    text: str,
    field_name: str,
    catalog: PatternCatalog = DEFAULT_CATALOG,
) -> ValidationResult:
    for pattern in catalog.suspicious:
        if pattern.search(text):
            return fail(
                "SUSPICIOUS_STRING",
                f"Field {field_name} contains suspicious pattern: {pattern.source}",
                field_name,
                text[:100],
            )
    return VALID


def validate_no_garbled_labels(
    text: str,
    field_name: str,
    catalog: PatternCatalog = DEFAULT_CATALOG,
) -> ValidationResult:
    for pattern in catalog.garbled:
        if pattern.search(text):
            return fail("GARBLED_LABEL", f"Field {field_name} contains garbled/corrupted label", field_name, text[:100])
    return VALID


_CALL_SKEW_FORBIDDEN = (
    (re.compile(r"paying up for protection", re.IGNORECASE),
     'Call skew copy incorrectly mentions "protection" - should say "upside exposure/speculation"'),
    (re.compile(r"downside protection", re.IGNORECASE),
     'Call skew copy incorrectly mentions "downside protection"'),
)
_PUT_SKEW_FORBIDDEN = re.compile(r"upside speculation|paying up for upside", re.IGNORECASE)


def validate_copy_logic(content: str, skew_direction: str, field_name: str = "threadContent") -> ValidationResult:
    """Narrative language must agree with the sign of the volatility skew."""
    if skew_direction == "call":
        for pattern, message in _CALL_SKEW_FORBIDDEN:
            if pattern.search(content):
                return fail("WRONG_COPY_LOGIC", message, field_name, content[:200])

    if skew_direction == "put" and _PUT_SKEW_FORBIDDEN.search(content):
        return fail(
            "WRONG_COPY_LOGIC",
            'Put skew copy incorrectly mentions "upside speculation"',
            field_name,
            content[:200],
        )
    return VALID


_GAMMA_PHRASE = re.compile(r"gamma[^\n]{0,40}\b(long|short)\b|\b(long|short)\s+gamma", re.IGNORECASE)


def validate_gamma_sign_consistency(
    content: str,
    modeled_gamma: str | None,
    field_name: str = "threadContent",
) -> ValidationResult:
    if not modeled_gamma:
        return VALID

    for match in _GAMMA_PHRASE.finditer(content):
        mentioned = (match.group(1) or match.group(2) or "").lower()
        if mentioned and mentioned != modeled_gamma:
            return fail(
                "GAMMA_SIGN_MISMATCH",
                f"Thread claims {mentioned} gamma but chart data shows {modeled_gamma}",
                field_name,
                {"modeledGamma": modeled_gamma, "mentioned": mentioned},
            )
    return VALID


_PRINT_DIRECTION = re.compile(r"print direction", re.IGNORECASE)
_DARK_POOL_DIRECTION = re.compile(r"dark pool.*direction", re.IGNORECASE)
_DIRECTION_DISCLAIMER = re.compile(r"don't confirm direction|doesn't confirm direction", re.IGNORECASE)


def validate_no_print_direction_claim(
    content: str,
    event_type: str,
    field_name: str = "threadContent",
) -> ValidationResult:
    """Dark pool prints do not encode trade side; copy must not claim it."""
    if event_type != "DARK_POOL_PRINT":
        return VALID

    if _PRINT_DIRECTION.search(content):
        return fail(
            "PRINT_DIRECTION_OVERCLAIM",
            'Dark pool copy claims "print direction" which is not reliably determinable from print data alone',
            field_name,
            content[:200],
        )
    if _DARK_POOL_DIRECTION.search(content) and not _DIRECTION_DISCLAIMER.search(content):
        return fail(
            "PRINT_DIRECTION_OVERCLAIM",
            "Dark pool copy implies direction knowledge which is an overclaim",
            field_name,
            content[:200],
        )
    return VALID


# -----------------------------------------------------------------------------
# Strike coverage
# -----------------------------------------------------------------------------


def validate_spot_in_range(
    spot: float,
    strikes: Sequence[float],
    tolerance: float = 0.1,
    field_name: str = "spot",
) -> ValidationResult:
    if len(strikes) == 0:
        return fail("EMPTY_STRIKES", "Strikes array is empty", "strikes")

    min_strike = min(strikes)
    max_strike = max(strikes)
    band = (max_strike - min_strike) * tolerance

    if spot < min_strike - band or spot > max_strike + band:
        return fail(
            "SPOT_OUTSIDE_STRIKE_RANGE",
            f"Spot price ${_fmt(spot)} is outside strike range [${_fmt(min_strike)}-${_fmt(max_strike)}]",
            field_name,
            {
                "spot": spot,
                "minStrike": min_strike,
                "maxStrike": max_strike,
                "rangeMidpoint": (min_strike + max_strike) / 2,
            },
        )
    return VALID


def validate_strike_coverage(
    strikes: Sequence[float],
    spot: float,
    tolerance: float = 0.15,
    min_strikes: int = 5,
    field_name: str = "strikes",
) -> ValidationResult:
    if not strikes:
        return fail("EMPTY_STRIKES", "Strike array is empty - cannot render ladder near spot", field_name)

    if not spot or not is_finite_number(spot):
        return fail("INVALID_SPOT", "Spot must be a valid number to validate strike coverage", "spot", spot)

    near_spot = [s for s in strikes if abs(s - spot) / spot <= tolerance]
    if len(near_spot) < min_strikes:
        return fail(
            "STRIKE_COVERAGE_INSUFFICIENT",
            f"Only {len(near_spot)} strikes within ±{round(tolerance * 100)}% of spot ${_fmt(spot)} "
            f"(need {min_strikes}+ for reliable ladder)",
            field_name,
            {"spot": spot, "strikesNearSpot": list(near_spot[:10])},
        )
    return VALID


def validate_max_pain_in_range(max_pain: float, strikes: Sequence[float]) -> ValidationResult:
    if len(strikes) == 0:
        return fail("EMPTY_STRIKES", "Strikes array is empty for max pain validation")

    min_strike = min(strikes)
    max_strike = max(strikes)
    if max_pain < min_strike or max_pain > max_strike:
        return fail(
            "MAX_PAIN_OUT_OF_RANGE",
            f"Max pain ${_fmt(max_pain)} is outside available strikes [${_fmt(min_strike)}-${_fmt(max_strike)}]",
            "maxPain",
            {"maxPain": max_pain, "minStrike": min_strike, "maxStrike": max_strike},
            severity="warning",
        )
    return VALID


# -----------------------------------------------------------------------------
# Expiry
# -----------------------------------------------------------------------------


def parse_expiry(raw: str) -> datetime | None:
    """Parse an ISO date or datetime into an aware UTC datetime."""
    text = raw.strip()
    try:
        if len(text) == 10:
            d = date.fromisoformat(text)
            return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_expiry_consistency(
    event_expiry: str | None,
    chart_expiry: str | None,
    chart_type: str,
    field_name: str = "expiryConsistency",
) -> ValidationResult:
    """
    A chart's own expiry must fall on the event's expiry date.

    A chart expiry earlier than the event's is reported as stale data; any
    other difference is a plain mismatch. Both are errors.
    """
    if not event_expiry:
        return ok("No event expiry to validate")
    if not chart_expiry:
        return ok("No chart expiry to validate")

    value = {"eventExpiry": event_expiry, "chartExpiry": chart_expiry, "chartType": chart_type}
    event_time = parse_expiry(event_expiry)
    chart_time = parse_expiry(chart_expiry)

    if event_time is None or chart_time is None:
        return fail(
            "EXPIRY_MATCH",
            f"{chart_type} chart expiry ({chart_expiry}) cannot be compared with event expiry ({event_expiry})",
            field_name,
            value,
        )

    if event_time.date() == chart_time.date():
        return VALID

    if chart_time < event_time:
        return fail(
            "EXPIRY_MATCH",
            f"{chart_type} chart expiry ({chart_expiry}) is earlier than event expiry ({event_expiry}) - stale data",
            field_name,
            value,
        )
    return fail(
        "EXPIRY_MATCH",
        f"{chart_type} chart expiry ({chart_expiry}) does not match event expiry ({event_expiry})",
        field_name,
        value,
    )


# -----------------------------------------------------------------------------
# SVG markup
# -----------------------------------------------------------------------------

_I = re.IGNORECASE

_SVG_CHECKS: tuple[tuple[tuple[re.Pattern[str], ...], str], ...] = (
    ((re.compile(r">NaN<", _I), re.compile(r">.*\bNaN\b.*<", _I)),
     'SVG contains visible "NaN" text'),
    ((re.compile(r">undefined<", _I), re.compile(r">.*\bundefined\b.*<", _I), re.compile(r'="undefined"', _I)),
     'SVG contains "undefined"'),
    ((re.compile(r">.*\bInfinity\b.*<", _I),),
     "SVG contains Infinity"),
    ((re.compile(r">UNUSUAL<", _I), re.compile(r">.*\bUNUSUAL\b.*<", _I)),
     'SVG contains "UNUSUAL" placeholder text - replace with actual values'),
    ((re.compile(r">UW<", _I), re.compile(r">.*\bUW\b.*<", _I)),
     'SVG contains "UW" artifact - data placeholder not replaced'),
)

_NA_LABEL = re.compile(r'>"?N/A"?</text>', _I)
_NA_AT_END = re.compile(r">N/A$", _I)
_NA_EXACT = re.compile(r">N/A<")
_PLACEHOLDER_TOKENS = ("UW", "UNUSUAL", "SWEEP")
_NAN_ATTRIBUTE = re.compile(r'\b[\w:-]+="[^"]*\bNaN\b')
# Character data of each text run, with the closing tag when it ends the element.
_TEXT_RUN = re.compile(r"<(?:text|tspan)\b[^>]*>([^<]*(?:</text>)?)")


def validate_svg_content(
    svg_content: str,
    chart_type: str,
    catalog: PatternCatalog = DEFAULT_CATALOG,
) -> ValidationResult:
    """
    Scan chart markup for leaked values, placeholders and broken geometry.

    All problems found are joined into a single SVG_PLACEHOLDER_OR_NAN result.
    """
    problems: list[str] = []

    for patterns, message in _SVG_CHECKS:
        if any(p.search(svg_content) for p in patterns):
            problems.append(message)

    if _NA_LABEL.search(svg_content) and not _NA_AT_END.search(svg_content):
        if len(_NA_EXACT.findall(svg_content)) > 3:
            problems.append('SVG contains multiple "N/A" artifacts - data placeholders not replaced')

    for token in _PLACEHOLDER_TOKENS:
        if re.search(rf"\b{token}\b", svg_content, _I):
            problems.append(f'SVG contains placeholder token "{token}"')

    if any(p.search(svg_content) for p in catalog.garbled):
        problems.append("SVG contains garbled labels")

    leaked = sorted({
        pattern.name
        for run in _TEXT_RUN.findall(svg_content)
        for pattern in catalog.suspicious
        if pattern.search(run)
    })
    if leaked:
        problems.append(f"SVG text contains suspicious strings ({', '.join(leaked)})")

    if _NAN_ATTRIBUTE.search(svg_content):
        problems.append("SVG contains NaN attribute values")

    if problems:
        return fail(
            "SVG_PLACEHOLDER_OR_NAN",
            f"SVG validation failed for {chart_type}: {', '.join(problems)}",
            chart_type,
            problems,
        )
    return VALID


_PERCENT_VALUE = re.compile(r"([0-9]{1,4}(?:\.[0-9]+)?)%")
_DECIMAL_VALUE = re.compile(r"[^0-9]([0-9](?:\.[0-9]+)?)[^0-9%]")


def validate_iv_unit_scale(svg_content: str, field_name: str = "ivUnits") -> ValidationResult:
    """
    Catch corrupted IV scaling in rendered volatility charts (e.g. "1700%").

    Every percent value and every bare single-digit decimal in the markup must
    survive normalize_iv.
    """
    if not svg_content:
        return fail("EXPIRY_DATA_MISSING", "Missing SVG content for IV chart", field_name)

    percents = [float(m.group(1)) for m in _PERCENT_VALUE.finditer(svg_content)]
    decimals = [float(m.group(1)) for m in _DECIMAL_VALUE.finditer(svg_content)]

    for value in percents:
        if normalize_iv(value) is None:
            return fail(
                "INVALID_IV_UNITS",
                f"Detected implausible IV percent-scale value ({value:.1f}%) in {field_name}",
                field_name,
                {"maxPercent": max(percents), "scale": "percent"},
            )

    for value in decimals:
        if normalize_iv(value) is None:
            return fail(
                "INVALID_IV_UNITS",
                f"Detected implausible IV decimal value ({value:.2f}) in {field_name}",
                field_name,
                {"maxDecimal": max(decimals), "scale": "decimal"},
            )
    return VALID


# -----------------------------------------------------------------------------
# Event rules
# -----------------------------------------------------------------------------


def _failures(results: Iterable[ValidationResult]) -> list[ValidationResult]:
    return [r for r in results if not r.is_valid]


def validate_options_sweep_event(metrics: EventMetrics) -> list[ValidationResult]:
    results = [
        validate_required_field(metrics.strike, "strike"),
        validate_required_field(metrics.expiry, "expiry"),
        validate_required_field(metrics.contracts, "contracts"),
        validate_required_field(metrics.breakeven, "breakeven"),
    ]

    if metrics.strike is not None:
        results.append(validate_no_nan(metrics.strike, "strike"))
        if is_finite_number(metrics.strike):
            results.append(validate_number_range(metrics.strike, 0.01, 100000, "strike"))

    if metrics.breakeven is not None:
        nan_check = validate_no_nan(metrics.breakeven, "breakeven")
        results.append(nan_check)
        if nan_check.is_valid:
            results.append(validate_breakeven_plausibility(metrics.breakeven, metrics.strike, metrics.price))

    results.append(validate_percentile(metrics.percentile))
    results.append(validate_no_nan(metrics.price, "price"))
    results.append(validate_no_nan(metrics.notional_value, "notionalValue"))
    return _failures(results)


def validate_dark_pool_event(metrics: EventMetrics) -> list[ValidationResult]:
    results = [
        validate_required_field(metrics.shares, "shares"),
        validate_required_field(metrics.price, "price"),
    ]

    if metrics.shares is not None:
        results.append(validate_no_nan(metrics.shares, "shares"))
        if is_finite_number(metrics.shares):
            results.append(validate_number_range(metrics.shares, 1, 1_000_000_000, "shares"))

    results.append(validate_percentile(metrics.percentile))
    results.append(validate_no_nan(metrics.price, "price"))
    results.append(validate_no_nan(metrics.notional_value, "notionalValue"))
    return _failures(results)
