"""
Implied volatility unit normalization.

Upstream feeds report IV either as a decimal (0.35) or as a percent (35.0).
Everything downstream works in decimals. A value above 3 is taken to be a
percent; after conversion the result must lie in (0, 3].
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping

from .errors import IvNormalizationError, IvScale, SmileDataMissingError

PERCENT_THRESHOLD = 3.0
MAX_DECIMAL_IV = 3.0


def _to_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        num = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def classify_scale(value: float) -> IvScale:
    """Which scale a raw IV value is assumed to be in."""
    return "percent" if value > PERCENT_THRESHOLD else "decimal"


def normalize_iv(raw: Any) -> float | None:
    """Return the IV as a decimal in (0, 3], or None when it cannot be one."""
    num = _to_float(raw)
    if num is None:
        return None

    iv = num / 100 if num > PERCENT_THRESHOLD else num
    if iv <= 0 or iv > MAX_DECIMAL_IV:
        return None
    return iv


def require_normalized_iv(value: Any, context: str) -> float:
    """Like normalize_iv, but raise IvNormalizationError instead of returning None."""
    normalized = normalize_iv(value)
    if normalized is None:
        num = _to_float(value)
        scale = classify_scale(num) if num is not None else "decimal"
        raise IvNormalizationError(
            value if num is None else num,
            scale,
            context,
            message=f"Invalid IV for {context}: {value}",
        )
    return normalized


# -----------------------------------------------------------------------------
# Smile points
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SmilePoint:
    strike: float
    call_iv: float | None = None
    put_iv: float | None = None

    @classmethod
    def coerce(cls, raw: SmilePoint | Mapping[str, Any]) -> SmilePoint:
        if isinstance(raw, SmilePoint):
            return raw
        return cls(
            strike=float(raw["strike"]),
            call_iv=raw.get("call_iv", raw.get("callIV")),
            put_iv=raw.get("put_iv", raw.get("putIV")),
        )


@dataclass(frozen=True)
class NormalizedSmilePoint:
    strike: float
    iv: float


def build_normalized_smile_points(
    points: Iterable[SmilePoint | Mapping[str, Any]],
    min_points: int = 5,
) -> list[NormalizedSmilePoint]:
    """
    Normalize a volatility smile, all-or-nothing.

    Every IV that is present must normalize; the first bad one fails the whole
    batch. Call IV is preferred over put IV. If fewer than `min_points` points
    carry a usable IV the batch fails as well.

    Raises:
        IvNormalizationError: a present IV value is invalid
        SmileDataMissingError: too few usable points
    """
    normalized: list[NormalizedSmilePoint] = []

    for raw in points:
        point = SmilePoint.coerce(raw)
        call_iv = None
        put_iv = None
        if point.call_iv is not None:
            call_iv = require_normalized_iv(point.call_iv, f"call IV at strike {point.strike}")
        if point.put_iv is not None:
            put_iv = require_normalized_iv(point.put_iv, f"put IV at strike {point.strike}")

        iv = call_iv if call_iv is not None else put_iv
        if iv is not None:
            normalized.append(NormalizedSmilePoint(strike=point.strike, iv=iv))

    if len(normalized) < min_points:
        raise SmileDataMissingError(required=min_points, actual=len(normalized))

    return normalized


SmileErrorKind = Literal["invalid_iv", "insufficient_points"]


@dataclass(frozen=True)
class SmileBuildOutcome:
    """Tagged result of a smile build, for callers that collect instead of catch."""

    points: list[NormalizedSmilePoint]
    error_kind: SmileErrorKind | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


def try_build_normalized_smile_points(
    points: Iterable[SmilePoint | Mapping[str, Any]],
    min_points: int = 5,
) -> SmileBuildOutcome:
    try:
        return SmileBuildOutcome(points=build_normalized_smile_points(points, min_points))
    except IvNormalizationError as e:
        return SmileBuildOutcome(points=[], error_kind="invalid_iv", error=e)
    except SmileDataMissingError as e:
        return SmileBuildOutcome(points=[], error_kind="insufficient_points", error=e)
