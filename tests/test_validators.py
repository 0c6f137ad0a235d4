"""Tests for individual gate rules."""

from __future__ import annotations

import math

import pytest

from threadgate.gate import validators as v
from threadgate.gate.schema import EventMetrics


def test_no_nan_rejects_non_finite() -> None:
    assert v.validate_no_nan(1.5, "price").is_valid
    assert v.validate_no_nan(math.nan, "price").code == "NAN_VALUE"
    assert v.validate_no_nan(math.inf, "price").code == "NAN_VALUE"
    assert v.validate_no_nan("12", "price").code == "NAN_VALUE"


def test_number_range_bounds_are_inclusive() -> None:
    assert v.validate_percentile(0).is_valid
    assert v.validate_percentile(100).is_valid
    result = v.validate_percentile(101)
    assert result.code == "OUT_OF_RANGE"
    assert result.field == "percentile"


def test_required_field_treats_empty_string_as_missing() -> None:
    assert v.validate_required_field("", "expiry").code == "REQUIRED_FIELD_MISSING"
    assert v.validate_required_field(None, "expiry").code == "REQUIRED_FIELD_MISSING"
    assert v.validate_required_field(0, "contracts").is_valid


def test_array_checks() -> None:
    assert v.validate_array_no_nan([1, 2, math.nan], "strikes").code == "ARRAY_HAS_NAN"
    assert v.validate_positive_finite_array([100, -5], "strikes").code == "INVALID_STRIKE_VALUE"
    assert v.validate_positive_finite_array([100, 105], "strikes").is_valid


class TestBreakeven:
    def test_close_to_strike_is_plausible(self) -> None:
        assert v.validate_breakeven_plausibility(155, 150, 150).is_valid

    def test_far_from_strike_is_implausible(self) -> None:
        result = v.validate_breakeven_plausibility(400, 150, 150)
        assert result.code == "BREAKEVEN_IMPLAUSIBLE"
        assert result.value["anchor"] == 150

    def test_one_close_anchor_is_enough(self) -> None:
        assert v.validate_breakeven_plausibility(250, strike=100, spot=300).is_valid
        assert v.validate_breakeven_plausibility(110, strike=100, spot=300).is_valid

    def test_far_from_both_anchors(self) -> None:
        result = v.validate_breakeven_plausibility(900, strike=100, spot=300)
        assert result.code == "BREAKEVEN_IMPLAUSIBLE"
        assert result.value["anchor"] == 300

    def test_missing_and_non_positive(self) -> None:
        assert v.validate_breakeven_plausibility(None).code == "REQUIRED_FIELD_MISSING"
        assert v.validate_breakeven_plausibility(-1, 150).code == "NAN_VALUE"

    def test_unusable_anchors_are_skipped(self) -> None:
        assert v.validate_breakeven_plausibility(400, math.nan, 0).is_valid


class TestCopyLogic:
    def test_protection_copy_conflicts_with_call_skew(self) -> None:
        result = v.validate_copy_logic("Someone is paying up for protection.", "call")
        assert result.code == "WRONG_COPY_LOGIC"

    def test_protection_copy_is_fine_with_put_skew(self) -> None:
        assert v.validate_copy_logic("Someone is paying up for protection.", "put").is_valid

    def test_upside_speculation_conflicts_with_put_skew(self) -> None:
        assert v.validate_copy_logic("Pure upside speculation here", "put").code == "WRONG_COPY_LOGIC"


def test_gamma_sign_mismatch() -> None:
    assert v.validate_gamma_sign_consistency("Dealers are short gamma here", "long").code == "GAMMA_SIGN_MISMATCH"
    assert v.validate_gamma_sign_consistency("Modeled gamma is long near spot", "long").is_valid
    assert v.validate_gamma_sign_consistency("Dealers are short gamma here", None).is_valid


def test_print_direction_claims() -> None:
    assert v.validate_no_print_direction_claim("The print direction was buy", "DARK_POOL_PRINT").code == (
        "PRINT_DIRECTION_OVERCLAIM"
    )
    assert v.validate_no_print_direction_claim(
        "Dark pool prints don't confirm direction", "DARK_POOL_PRINT"
    ).is_valid
    assert v.validate_no_print_direction_claim("The print direction was buy", "OPTIONS_SWEEP").is_valid


def test_suspicious_strings_and_garbled_labels() -> None:
    assert v.validate_no_suspicious_strings("Price is NaN", "thread[0]").code == "SUSPICIOUS_STRING"
    assert v.validate_no_suspicious_strings("BIG SWEEP INCOMING", "thread[0]").code == "SUSPICIOUS_STRING"
    assert v.validate_no_suspicious_strings("aaaaaaaa", "thread[0]").code == "SUSPICIOUS_STRING"
    assert v.validate_no_suspicious_strings("options sweep detected", "thread[0]").is_valid
    assert v.validate_no_garbled_labels("PostTgraedneeTraapteedTimeline", "label").code == "GARBLED_LABEL"


def test_spot_in_range_tolerance_band() -> None:
    strikes = [100, 110, 120, 130, 140]
    assert v.validate_spot_in_range(115, strikes).is_valid
    assert v.validate_spot_in_range(50, strikes).code == "SPOT_OUTSIDE_STRIKE_RANGE"
    assert v.validate_spot_in_range(97, strikes).is_valid
    assert v.validate_spot_in_range(100, []).code == "EMPTY_STRIKES"


def test_strike_coverage() -> None:
    near = [95, 97.5, 100, 102.5, 105]
    assert v.validate_strike_coverage(near, 100).is_valid
    assert v.validate_strike_coverage([50, 60, 100], 100).code == "STRIKE_COVERAGE_INSUFFICIENT"
    assert v.validate_strike_coverage(near, 0).code == "INVALID_SPOT"


def test_max_pain_out_of_range_is_a_warning() -> None:
    result = v.validate_max_pain_in_range(200, [100, 110, 120])
    assert result.code == "MAX_PAIN_OUT_OF_RANGE"
    assert result.severity == "warning"


class TestExpiry:
    def test_same_day_matches(self) -> None:
        assert v.validate_expiry_consistency("2025-01-17", "2025-01-17T16:00:00Z", "smile").is_valid

    def test_earlier_chart_is_stale(self) -> None:
        result = v.validate_expiry_consistency("2025-01-17", "2025-01-10", "smile")
        assert result.code == "EXPIRY_MATCH"
        assert "stale" in result.message

    def test_later_chart_mismatches(self) -> None:
        result = v.validate_expiry_consistency("2025-01-17", "2025-02-21", "smile")
        assert result.code == "EXPIRY_MATCH"
        assert "stale" not in result.message

    def test_unparsable_expiry_is_an_error(self) -> None:
        assert v.validate_expiry_consistency("2025-01-17", "next friday", "smile").code == "EXPIRY_MATCH"

    def test_missing_expiry_passes(self) -> None:
        assert v.validate_expiry_consistency(None, "2025-01-17", "smile").is_valid


class TestSvg:
    @pytest.mark.parametrize("token", [">NaN<", ">undefined<"])
    def test_leaked_values_fail(self, token: str) -> None:
        svg = f'<svg width="400"><text x="10" y="20"{token}/text></svg>'
        assert v.validate_svg_content(svg, "flowSummarySvg").code == "SVG_PLACEHOLDER_OR_NAN"

    def test_placeholder_tokens_fail(self) -> None:
        result = v.validate_svg_content("<svg><text>UW</text></svg>", "flowSummarySvg")
        assert result.code == "SVG_PLACEHOLDER_OR_NAN"
        assert any("UW" in problem for problem in result.value)

    def test_nan_coordinates_fail(self) -> None:
        assert not v.validate_svg_content('<svg><circle cx="NaN" cy="10"/></svg>', "smile").is_valid

    @pytest.mark.parametrize("label", ["[object Object]", "Strike null", "Value: --------"])
    def test_suspicious_label_text_fails(self, label: str) -> None:
        svg = f'<svg><text x="10" y="20" fill="#333">Delta <tspan>{label}</tspan></text></svg>'
        result = v.validate_svg_content(svg, "flowSummarySvg")
        assert result.code == "SVG_PLACEHOLDER_OR_NAN"
        assert any("suspicious strings" in problem for problem in result.value)

    def test_lone_na_label_is_allowed(self) -> None:
        assert v.validate_svg_content('<svg><text x="10" y="20">N/A</text></svg>', "smile").is_valid

    @pytest.mark.parametrize(
        "element",
        [
            '<line\n  x1="NaN"\n  y1="0" x2="10" y2="10"/>',
            '<path d="M NaN 10 L 20 30"/>',
            '<polyline points="0,0 10,NaN"/>',
        ],
    )
    def test_nan_in_any_attribute_fails(self, element: str) -> None:
        result = v.validate_svg_content(f"<svg>{element}</svg>", "smile")
        assert "SVG contains NaN attribute values" in result.value

    def test_clean_svg_passes(self) -> None:
        assert v.validate_svg_content('<svg width="400"><text x="10" y="20">IV 35%</text></svg>', "smile").is_valid


class TestIvUnitScale:
    def test_percent_above_300_fails(self) -> None:
        result = v.validate_iv_unit_scale("<svg><text>1700%</text></svg>", "volatilitySmileSvg")
        assert result.code == "INVALID_IV_UNITS"
        assert result.value["scale"] == "percent"

    def test_plausible_percent_labels_pass(self) -> None:
        assert v.validate_iv_unit_scale("<svg><text>35.5%</text><text>120%</text></svg>").is_valid

    def test_empty_markup_is_reported(self) -> None:
        assert v.validate_iv_unit_scale("").code == "EXPIRY_DATA_MISSING"


def test_dark_pool_event_requires_shares_and_price() -> None:
    metrics = EventMetrics(size=0, timestamp="t", percentile=50, sentiment_label="neutral", price=None, notional_value=0)
    codes = [r.code for r in v.validate_dark_pool_event(metrics)]
    assert codes.count("REQUIRED_FIELD_MISSING") == 2


def test_sweep_event_with_nan_strike() -> None:
    metrics = EventMetrics(
        size=10,
        timestamp="t",
        percentile=50,
        sentiment_label="neutral",
        price=100,
        notional_value=1000,
        contracts=10,
        strike=math.nan,
        expiry="2025-01-17",
        breakeven=101,
    )
    assert "NAN_VALUE" in [r.code for r in v.validate_options_sweep_event(metrics)]
