"""
Minimal SVG renderers for the thread's chart panels.

Output is plain markup built from strings. Numbers are rounded to one decimal
and printed without a trailing ".0", colors are named, and every coordinate
sits inside the plot padding, so the markup stays clean under the gate's SVG
and IV-unit scans.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence
from xml.sax.saxutils import escape

from ..gate.formatting import (
    format_contracts,
    format_dollar_amount,
    format_shares,
    format_strike_price,
)
from ..market.chain import TermPoint
from ..units import NormalizedSmilePoint

WIDTH = 800
HEIGHT = 450
PAD_LEFT = 80
PAD_RIGHT = 60
PAD_TOP = 70
PAD_BOTTOM = 60

BACKGROUND = "black"
GRID = "dimgray"
TEXT = "whitesmoke"
MUTED = "darkgray"
CALL_COLOR = "mediumseagreen"
PUT_COLOR = "tomato"
ACCENT = "orange"
LINE = "steelblue"

# IV labels are kept inside (0, 300] percent.
MIN_IV_PCT = 0.1
MAX_IV_PCT = 300.0


def _n(value: float) -> str:
    v = round(float(value), 1)
    if v.is_integer():
        return str(int(v))
    return str(v)


def _pct(iv: float) -> str:
    """Decimal IV as a percent label."""
    return f"{_n(min(max(iv * 100, MIN_IV_PCT), MAX_IV_PCT))}%"


def _scale(value: float, lo: float, hi: float, out_lo: float, out_hi: float) -> float:
    if hi == lo:
        return (out_lo + out_hi) / 2
    return out_lo + (value - lo) / (hi - lo) * (out_hi - out_lo)


def _every(items: Sequence, max_labels: int) -> int:
    return max(1, math.ceil(len(items) / max_labels))


class _Svg:
    """Accumulates SVG elements; render() closes the document."""

    def __init__(self, width: int = WIDTH, height: int = HEIGHT):
        self.width = width
        self.height = height
        self.parts: list[str] = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}">',
            f'<rect x="1" y="1" width="{width - 2}" height="{height - 2}" fill="{BACKGROUND}"/>',
        ]

    def text(
        self,
        x: float,
        y: float,
        content: str,
        *,
        size: int = 12,
        fill: str = TEXT,
        anchor: str = "start",
        bold: bool = False,
    ) -> None:
        weight = ' font-weight="bold"' if bold else ""
        self.parts.append(
            f'<text x="{_n(x)}" y="{_n(y)}" font-family="sans-serif" font-size="{size}" '
            f'fill="{fill}" text-anchor="{anchor}"{weight}>{escape(content)}</text>'
        )

    def line(self, x1: float, y1: float, x2: float, y2: float, *, stroke: str = GRID, width: float = 1, dashed: bool = False) -> None:
        dash = ' stroke-dasharray="4 3"' if dashed else ""
        self.parts.append(
            f'<line x1="{_n(x1)}" y1="{_n(y1)}" x2="{_n(x2)}" y2="{_n(y2)}" '
            f'stroke="{stroke}" stroke-width="{_n(width)}"{dash}/>'
        )

    def rect(self, x: float, y: float, w: float, h: float, *, fill: str, opacity: float | None = None) -> None:
        if w < 1 or h < 1:
            return
        alpha = f' fill-opacity="{_n(opacity)}"' if opacity is not None else ""
        self.parts.append(f'<rect x="{_n(x)}" y="{_n(y)}" width="{_n(w)}" height="{_n(h)}" fill="{fill}"{alpha}/>')

    def circle(self, cx: float, cy: float, r: float, *, fill: str) -> None:
        self.parts.append(f'<circle cx="{_n(cx)}" cy="{_n(cy)}" r="{_n(r)}" fill="{fill}"/>')

    def polyline(self, points: Sequence[tuple[float, float]], *, stroke: str, width: float = 2) -> None:
        coords = " ".join(f"{_n(x)},{_n(y)}" for x, y in points)
        self.parts.append(f'<polyline points="{coords}" fill="none" stroke="{stroke}" stroke-width="{_n(width)}"/>')

    def header(self, title: str, subtitle: str, as_of: str) -> None:
        self.text(PAD_LEFT, 30, title, size=18, bold=True)
        self.text(PAD_LEFT, 50, subtitle, size=12, fill=MUTED)
        self.text(self.width - PAD_RIGHT, 30, f"As of {as_of}", size=11, fill=MUTED, anchor="end")

    def footer(self, source: str) -> None:
        self.text(PAD_LEFT, self.height - 15, f"Source: {source}", size=10, fill=MUTED)

    def plot_box(self) -> tuple[float, float, float, float]:
        """(left, top, right, bottom) of the plot area."""
        return PAD_LEFT, PAD_TOP, self.width - PAD_RIGHT, self.height - PAD_BOTTOM

    def axes(self) -> None:
        left, top, right, bottom = self.plot_box()
        self.line(left, bottom, right, bottom)
        self.line(left, top, left, bottom)

    def render(self) -> str:
        return "".join(self.parts) + "</svg>"


def _iv_axis(svg: _Svg, lo: float, hi: float, ticks: int = 4) -> tuple[float, float]:
    """Draw percent ticks for a decimal IV range; returns the padded range used."""
    span = hi - lo
    lo = max(lo - span * 0.1, MIN_IV_PCT / 100)
    hi = min(hi + span * 0.1, MAX_IV_PCT / 100)
    if hi <= lo:
        hi = min(lo * 1.5, MAX_IV_PCT / 100)
    left, top, right, bottom = svg.plot_box()
    for i in range(ticks + 1):
        iv = lo + (hi - lo) * i / ticks
        y = _scale(iv, lo, hi, bottom, top)
        svg.line(left, y, right, y, stroke=GRID, width=0.5, dashed=True)
        svg.text(left - 8, y + 4, _pct(iv), size=10, fill=MUTED, anchor="end")
    return lo, hi


# -----------------------------------------------------------------------------
# Flow summary
# -----------------------------------------------------------------------------


@dataclass
class FlowSummary:
    ticker: str
    event_type: str  # "options" or "dark_pool"
    size: float
    notional: float
    sentiment: str
    as_of: str
    strike: float | None = None
    expiry: str | None = None
    option_type: str | None = None
    delta: float | None = None
    breakeven: float | None = None
    price: float | None = None
    venue: str | None = None


_SENTIMENT_COLORS = {"bullish": CALL_COLOR, "bearish": PUT_COLOR}


def render_flow_summary(summary: FlowSummary) -> str:
    svg = _Svg()
    is_options = summary.event_type == "options"
    label = "Options flow" if is_options else "Dark pool print"
    svg.header(f"${summary.ticker} {label}", "Largest recent print in the live flow feed", summary.as_of)

    rows: list[tuple[str, str]] = [("Notional", format_dollar_amount(summary.notional))]
    if is_options:
        rows.append(("Size", format_contracts(summary.size)))
        if summary.option_type:
            rows.append(("Type", summary.option_type.capitalize()))
        if summary.strike:
            rows.append(("Strike", format_strike_price(summary.strike)))
        if summary.expiry:
            rows.append(("Expiry", summary.expiry))
        if summary.delta:
            rows.append(("Delta", f"{summary.delta:.2f}"))
        if summary.breakeven:
            rows.append(("Breakeven", format_strike_price(summary.breakeven)))
    else:
        rows.append(("Size", format_shares(summary.size)))
        if summary.price:
            rows.append(("Price", format_strike_price(summary.price)))
        rows.append(("Venue", summary.venue or "DARK"))

    y = PAD_TOP + 30
    for name, value in rows:
        svg.text(PAD_LEFT, y, name, size=14, fill=MUTED)
        svg.text(PAD_LEFT + 200, y, value, size=16, bold=True)
        y += 36

    sentiment = summary.sentiment or "neutral"
    svg.rect(WIDTH - PAD_RIGHT - 180, PAD_TOP + 10, 180, 44, fill=_SENTIMENT_COLORS.get(sentiment, GRID), opacity=0.3)
    svg.text(WIDTH - PAD_RIGHT - 90, PAD_TOP + 38, sentiment.capitalize(), size=16, anchor="middle", bold=True)
    svg.footer("live flow feed")
    return svg.render()


# -----------------------------------------------------------------------------
# Options flow heatmap
# -----------------------------------------------------------------------------


def render_options_flow_heatmap(
    ticker: str,
    expiries: Sequence[str],
    strikes: Sequence[float],
    volume: dict[tuple[str, float], float],
    spot: float,
    as_of: str,
) -> str:
    """Contract volume by expiry (rows) and strike (columns)."""
    svg = _Svg()
    svg.header(f"${ticker} options volume heatmap", f"Volume by expiry and strike, spot {format_strike_price(spot)}", as_of)
    left, top, right, bottom = svg.plot_box()
    left += 30

    peak = max((volume.get((e, k), 0.0) for e in expiries for k in strikes), default=0.0)
    cell_w = (right - left) / max(len(strikes), 1)
    cell_h = (bottom - top) / max(len(expiries), 1)

    for row, expiry in enumerate(expiries):
        y = top + row * cell_h
        svg.text(left - 6, y + cell_h / 2 + 4, expiry, size=10, fill=MUTED, anchor="end")
        for col, strike in enumerate(strikes):
            x = left + col * cell_w
            v = volume.get((expiry, strike), 0.0)
            if v > 0 and peak > 0:
                svg.rect(x + 1, y + 1, cell_w - 2, cell_h - 2, fill=ACCENT, opacity=0.15 + 0.85 * v / peak)
            else:
                svg.rect(x + 1, y + 1, cell_w - 2, cell_h - 2, fill=GRID, opacity=0.2)

    step = _every(strikes, 10)
    for col, strike in enumerate(strikes):
        if col % step == 0:
            x = left + col * cell_w + cell_w / 2
            svg.text(x, bottom + 16, f"${_n(strike)}", size=10, fill=MUTED, anchor="middle")

    svg.footer("Polygon options snapshot")
    return svg.render()


# -----------------------------------------------------------------------------
# Volatility panels
# -----------------------------------------------------------------------------


def render_historical_vs_implied(
    ticker: str,
    realized: Sequence[float],
    implied: float,
    as_of: str,
    window: int = 20,
) -> str:
    """Rolling realized volatility against current at-the-money implied volatility (decimals)."""
    svg = _Svg()
    svg.header(f"${ticker} realized vs implied", f"{window}-day realized against front-month ATM implied", as_of)
    left, top, right, bottom = svg.plot_box()

    lo, hi = _iv_axis(svg, min(min(realized), implied), max(max(realized), implied))
    svg.axes()

    points = [
        (_scale(i, 0, max(len(realized) - 1, 1), left + 5, right), _scale(rv, lo, hi, bottom, top))
        for i, rv in enumerate(realized)
    ]
    svg.polyline(points, stroke=LINE)

    y_iv = _scale(implied, lo, hi, bottom, top)
    svg.line(left, y_iv, right, y_iv, stroke=PUT_COLOR, width=2, dashed=True)

    svg.text(right, top - 6, f"Implied {_pct(implied)}", size=12, fill=PUT_COLOR, anchor="end")
    svg.text(left + 5, top - 6, f"Realized {_pct(realized[-1])}", size=12, fill=LINE)
    svg.footer("Polygon daily bars and options snapshot")
    return svg.render()


def render_volatility_smile(
    ticker: str,
    expiry: str,
    points: Sequence[NormalizedSmilePoint],
    spot: float,
    as_of: str,
) -> str:
    svg = _Svg()
    svg.header(f"${ticker} IV smile", f"Expiry {expiry}, spot {format_strike_price(spot)}", as_of)
    left, top, right, bottom = svg.plot_box()

    ivs = [p.iv for p in points]
    strikes = [p.strike for p in points]
    k_lo, k_hi = min(strikes), max(strikes)
    lo, hi = _iv_axis(svg, min(ivs), max(ivs))
    svg.axes()

    coords = [(_scale(p.strike, k_lo, k_hi, left + 10, right - 10), _scale(p.iv, lo, hi, bottom, top)) for p in points]
    svg.polyline(coords, stroke=ACCENT)
    for x, y in coords:
        svg.circle(x, y, 3, fill=ACCENT)

    if k_lo <= spot <= k_hi:
        x_spot = _scale(spot, k_lo, k_hi, left + 10, right - 10)
        svg.line(x_spot, top, x_spot, bottom, stroke=TEXT, dashed=True)
        svg.text(x_spot, top - 6, "Spot", size=10, fill=TEXT, anchor="middle")

    step = _every(points, 8)
    for i, (x, _) in enumerate(coords):
        if i % step == 0:
            svg.text(x, bottom + 16, f"${_n(strikes[i])}", size=10, fill=MUTED, anchor="middle")

    svg.footer("Polygon options snapshot")
    return svg.render()


def render_iv_rank_distribution(
    ticker: str,
    samples: Sequence[float],
    current: float,
    as_of: str,
    bins: int = 12,
) -> str:
    """Histogram of chain IVs (decimals) with the current ATM IV marked."""
    svg = _Svg()
    rank = iv_rank(samples, current)
    svg.header(f"${ticker} IV distribution", f"Contract IVs across the chain, ATM IV rank {_n(rank)}", as_of)
    left, top, right, bottom = svg.plot_box()

    lo, hi = min(samples), max(samples)
    width = (hi - lo) / bins if hi > lo else 1.0
    counts = [0] * bins
    for s in samples:
        idx = min(int((s - lo) / width), bins - 1) if hi > lo else 0
        counts[idx] += 1
    peak = max(counts)

    bar_w = (right - left) / bins
    for i, count in enumerate(counts):
        h = (bottom - top) * count / peak
        svg.rect(left + i * bar_w + 2, bottom - h, bar_w - 4, h, fill=LINE, opacity=0.8)
    for i in range(0, bins + 1, 3):
        svg.text(left + i * bar_w, bottom + 16, _pct(lo + i * width), size=10, fill=MUTED, anchor="middle")
    svg.axes()

    x_cur = _scale(min(max(current, lo), lo + width * bins), lo, lo + width * bins, left, right)
    svg.line(x_cur, top, x_cur, bottom, stroke=ACCENT, width=2)
    svg.text(x_cur, top - 6, f"ATM {_pct(current)}", size=11, fill=ACCENT, anchor="middle")
    svg.footer("Polygon options snapshot")
    return svg.render()


def iv_rank(samples: Sequence[float], current: float) -> float:
    """Where `current` sits between the lowest and highest sample, 0 to 100."""
    lo, hi = min(samples), max(samples)
    if hi <= lo:
        return 50.0
    return max(0.0, min(100.0, (current - lo) / (hi - lo) * 100))


# -----------------------------------------------------------------------------
# Positioning panels
# -----------------------------------------------------------------------------


def render_gamma_exposure(
    ticker: str,
    strikes: Sequence[float],
    net_gamma: Sequence[float],
    spot: float,
    as_of: str,
) -> str:
    svg = _Svg()
    total = sum(net_gamma)
    side = "long" if total >= 0 else "short"
    svg.header(f"${ticker} dealer gamma by strike", f"Modeled net gamma {side}, spot {format_strike_price(spot)}", as_of)
    left, top, right, bottom = svg.plot_box()
    mid = (top + bottom) / 2
    svg.line(left, mid, right, mid, stroke=MUTED)

    peak = max((abs(g) for g in net_gamma), default=0.0) or 1.0
    bar_w = (right - left) / max(len(strikes), 1)
    for i, g in enumerate(net_gamma):
        h = (bottom - top) / 2 * abs(g) / peak
        x = left + i * bar_w + 2
        if g >= 0:
            svg.rect(x, mid - h, bar_w - 4, h, fill=CALL_COLOR)
        else:
            svg.rect(x, mid, bar_w - 4, h, fill=PUT_COLOR)

    step = _every(strikes, 10)
    for i, strike in enumerate(strikes):
        if i % step == 0:
            svg.text(left + i * bar_w + bar_w / 2, bottom + 16, f"${_n(strike)}", size=10, fill=MUTED, anchor="middle")
    svg.footer("Polygon options snapshot")
    return svg.render()


def render_put_call_oi_ladder(
    ticker: str,
    strikes: Sequence[float],
    call_oi: Sequence[float],
    put_oi: Sequence[float],
    spot: float,
    as_of: str,
    put_call_ratio: float | None = None,
) -> str:
    """Put OI to the left, call OI to the right, one row per strike."""
    svg = _Svg()
    ratio = f", put/call {put_call_ratio:.2f}" if put_call_ratio is not None else ""
    svg.header(f"${ticker} open interest ladder", f"Spot {format_strike_price(spot)}{ratio}", as_of)
    left, top, right, bottom = svg.plot_box()
    center = (left + right) / 2
    svg.line(center, top, center, bottom, stroke=MUTED)

    peak = max(max(call_oi, default=0.0), max(put_oi, default=0.0)) or 1.0
    row_h = (bottom - top) / max(len(strikes), 1)
    half = (right - left) / 2 - 50
    for i, strike in enumerate(strikes):
        y = top + i * row_h
        pw = half * put_oi[i] / peak
        cw = half * call_oi[i] / peak
        svg.rect(center - 2 - pw, y + 1, pw, row_h - 2, fill=PUT_COLOR)
        svg.rect(center + 2, y + 1, cw, row_h - 2, fill=CALL_COLOR)
        svg.text(left + 2, y + row_h / 2 + 4, f"${_n(strike)}", size=10, fill=MUTED)

    svg.text(center - 10, bottom + 16, "Puts", size=11, fill=PUT_COLOR, anchor="end")
    svg.text(center + 10, bottom + 16, "Calls", size=11, fill=CALL_COLOR)
    svg.footer("Polygon options snapshot")
    return svg.render()


def render_iv_term_structure(ticker: str, points: Sequence[TermPoint], as_of: str) -> str:
    svg = _Svg()
    svg.header(f"${ticker} IV term structure", "At-the-money implied volatility by expiry", as_of)
    left, top, right, bottom = svg.plot_box()

    ivs = [p.iv for p in points]
    lo, hi = _iv_axis(svg, min(ivs), max(ivs))
    svg.axes()

    coords = [
        (_scale(i, 0, max(len(points) - 1, 1), left + 20, right - 20), _scale(p.iv, lo, hi, bottom, top))
        for i, p in enumerate(points)
    ]
    svg.polyline(coords, stroke=LINE)
    step = _every(points, 8)
    for i, (x, y) in enumerate(coords):
        svg.circle(x, y, 3, fill=LINE)
        if i % step == 0:
            svg.text(x, bottom + 16, points[i].expiry, size=10, fill=MUTED, anchor="middle")
    svg.footer("Polygon options snapshot")
    return svg.render()
