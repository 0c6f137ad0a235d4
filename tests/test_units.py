"""Tests for IV unit normalization and smile building."""

from __future__ import annotations

import math

import pytest

from threadgate.errors import IvNormalizationError, SmileDataMissingError
from threadgate.units import (
    NormalizedSmilePoint,
    SmilePoint,
    build_normalized_smile_points,
    classify_scale,
    normalize_iv,
    require_normalized_iv,
    try_build_normalized_smile_points,
)


@pytest.mark.parametrize("percent", [3.5, 10, 35, 99.9, 150, 300])
def test_percent_values_are_divided_by_100(percent: float) -> None:
    assert normalize_iv(percent) == pytest.approx(percent / 100)


@pytest.mark.parametrize("decimal", [0.01, 0.35, 1.0, 2.5, 3.0])
def test_decimal_values_pass_through(decimal: float) -> None:
    assert normalize_iv(decimal) == decimal


@pytest.mark.parametrize("bad", [0, -1, 301, 1700, None, "abc", math.nan, math.inf, True])
def test_invalid_values_yield_none(bad) -> None:
    assert normalize_iv(bad) is None


def test_numeric_strings_are_accepted() -> None:
    assert normalize_iv("42") == pytest.approx(0.42)


def test_classify_scale_threshold() -> None:
    assert classify_scale(3.0) == "decimal"
    assert classify_scale(3.01) == "percent"


def test_require_normalized_iv_raises_with_context() -> None:
    with pytest.raises(IvNormalizationError) as exc:
        require_normalized_iv(1700, "call IV at strike 100")

    assert exc.value.value == 1700
    assert exc.value.scale == "percent"
    assert exc.value.context == "call IV at strike 100"


def _points(n: int, iv: float = 0.3) -> list[dict]:
    return [{"strike": 100 + i, "callIV": iv, "putIV": iv + 0.05} for i in range(n)]


def test_smile_prefers_call_iv_and_normalizes() -> None:
    points = build_normalized_smile_points(_points(5, iv=35))

    assert points[0] == NormalizedSmilePoint(strike=100, iv=pytest.approx(0.35))
    assert len(points) == 5


def test_smile_falls_back_to_put_iv() -> None:
    raw = [SmilePoint(strike=100 + i, call_iv=None, put_iv=0.4) for i in range(5)]

    assert [p.iv for p in build_normalized_smile_points(raw)] == [0.4] * 5


def test_smile_points_without_any_iv_are_skipped() -> None:
    raw = _points(5) + [{"strike": 200}]

    assert len(build_normalized_smile_points(raw)) == 5


def test_one_invalid_iv_fails_the_batch() -> None:
    raw = _points(6)
    raw[3]["putIV"] = 1700

    with pytest.raises(IvNormalizationError):
        build_normalized_smile_points(raw)


def test_too_few_points_raises_smile_data_missing() -> None:
    with pytest.raises(SmileDataMissingError) as exc:
        build_normalized_smile_points(_points(4))

    assert exc.value.required == 5
    assert exc.value.actual == 4


def test_try_build_reports_error_kind() -> None:
    bad = _points(6)
    bad[0]["callIV"] = 0

    assert try_build_normalized_smile_points(bad).error_kind == "invalid_iv"
    assert try_build_normalized_smile_points(_points(2)).error_kind == "insufficient_points"

    outcome = try_build_normalized_smile_points(_points(5))
    assert outcome.ok
    assert len(outcome.points) == 5
