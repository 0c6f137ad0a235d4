"""Thread and standalone tweet copy for one flow event."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..gate.formatting import (
    format_contracts,
    format_dollar_amount,
    format_shares,
    format_strike_price,
)


@dataclass
class ThreadInputs:
    ticker: str
    post_type: str  # OPTIONS_SWEEP or DARK_POOL_PRINT
    size: float
    notional: float
    strike: float | None = None
    expiry: str | None = None
    spot: float | None = None
    skew_direction: str = "call"
    gamma_position: str | None = None
    put_call_ratio: float | None = None
    smile_strikes: list[float] = field(default_factory=list)
    gamma_strikes: list[float] = field(default_factory=list)
    oi_strikes: list[float] = field(default_factory=list)


def _event_label(post_type: str) -> str:
    return "options sweep" if post_type == "OPTIONS_SWEEP" else "dark pool print"


def _size_label(post_type: str, size: float) -> str:
    return format_contracts(size) if post_type == "OPTIONS_SWEEP" else format_shares(size)


def _spot_label(spot: float | None) -> str:
    return format_strike_price(spot) if spot else "spot"


def build_thread(inputs: ThreadInputs) -> list[str]:
    """
    Build the numbered thread.

    The opener is always present; the chain context, gamma and open interest
    parts are only added when their strike sets are non-empty. Parts are
    numbered "i/n" over the parts actually built.
    """
    if inputs.post_type == "OPTIONS_SWEEP":
        strike_info = f"Strike {format_strike_price(inputs.strike)}, expiry {inputs.expiry}"
    else:
        strike_info = "Dark pool execution"

    parts = [
        f"${inputs.ticker} {_event_label(inputs.post_type)} detected. "
        f"{format_dollar_amount(inputs.notional)} notional across {_size_label(inputs.post_type, inputs.size)}. "
        f"{strike_info}."
    ]

    spot = _spot_label(inputs.spot)

    if inputs.smile_strikes:
        if inputs.skew_direction == "put":
            read = "Put-side skew leads in IV: traders are paying up for protection."
        else:
            read = "Call-side skew leads in IV, pointing to upside speculation."
        parts.append(
            f"Options chain context: {len(inputs.smile_strikes)} strikes available around {spot}. "
            f"{read} Based on the Polygon options snapshot."
        )

    if inputs.gamma_strikes:
        stance = ""
        if inputs.gamma_position:
            stance = f" Modeled dealer gamma is {inputs.gamma_position} near spot."
        parts.append(
            f"Gamma exposure mapped from {len(inputs.gamma_strikes)} near-the-money strikes.{stance} "
            f"Watch pin and acceleration risk around {spot}."
        )

    if inputs.oi_strikes:
        ratio = ""
        if inputs.put_call_ratio is not None:
            ratio = f" Put/call open interest ratio {inputs.put_call_ratio:.2f}."
        parts.append(
            f"Open interest ladder uses {len(inputs.oi_strikes)} strikes to highlight where positioning clusters.{ratio} "
            "Monitor follow-through around key strikes."
        )

    return [f"{i}/{len(parts)} {part}" for i, part in enumerate(parts, 1)]


def build_standalone_tweet(inputs: ThreadInputs) -> str:
    label = _event_label(inputs.post_type)
    return (
        f"{label.capitalize()}: ${inputs.ticker} {format_dollar_amount(inputs.notional)} notional, "
        f"{_size_label(inputs.post_type, inputs.size)}. Source: live flow feed."
    )
