"""
Options chain aggregates: strikes, open interest, gamma and IV by strike and
by expiry.

Raw IVs are kept as delivered (decimal or percent); normalization happens at
the point of use through `threadgate.units`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..units import SmilePoint, normalize_iv

OptionType = Literal["call", "put"]

CONTRACT_MULTIPLIER = 100


@dataclass(frozen=True)
class OptionContract:
    strike: float
    expiry: str
    option_type: OptionType
    iv: float | None = None
    open_interest: float = 0.0
    gamma: float | None = None
    volume: float = 0.0


@dataclass(frozen=True)
class TermPoint:
    expiry: str
    iv: float


@dataclass
class OptionsChainData:
    ticker: str
    contracts: list[OptionContract] = field(default_factory=list)
    underlying_price: float | None = None

    @property
    def expiries(self) -> list[str]:
        return sorted({c.expiry for c in self.contracts})

    @property
    def strikes(self) -> list[float]:
        return sorted({c.strike for c in self.contracts})

    def _oi_by_strike(self, option_type: OptionType) -> dict[float, float]:
        totals: dict[float, float] = {}
        for c in self.contracts:
            if c.option_type == option_type:
                totals[c.strike] = totals.get(c.strike, 0.0) + c.open_interest
        return totals

    @property
    def call_oi_by_strike(self) -> dict[float, float]:
        return self._oi_by_strike("call")

    @property
    def put_oi_by_strike(self) -> dict[float, float]:
        return self._oi_by_strike("put")

    @property
    def gamma_by_strike(self) -> dict[float, float]:
        """Net gamma exposure per strike: calls positive, puts negative."""
        totals: dict[float, float] = {}
        for c in self.contracts:
            if c.gamma is None:
                continue
            exposure = c.gamma * c.open_interest * CONTRACT_MULTIPLIER
            if c.option_type == "put":
                exposure = -exposure
            totals[c.strike] = totals.get(c.strike, 0.0) + exposure
        return totals

    def volume_by_expiry_strike(self) -> dict[tuple[str, float], float]:
        totals: dict[tuple[str, float], float] = {}
        for c in self.contracts:
            key = (c.expiry, c.strike)
            totals[key] = totals.get(key, 0.0) + c.volume
        return totals


def _num(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def parse_polygon_snapshot(ticker: str, payload: dict[str, Any]) -> OptionsChainData | None:
    """
    Build chain aggregates from a Polygon /v3/snapshot/options response.

    Contracts without a strike, expiry or type are skipped. Returns None when
    nothing usable is left.
    """
    contracts: list[OptionContract] = []
    underlying: float | None = None

    for result in payload.get("results") or []:
        if not isinstance(result, dict):
            continue
        details = result.get("details") or {}
        strike = _num(details.get("strike_price"))
        expiry = details.get("expiration_date")
        option_type = str(details.get("contract_type") or "").lower()
        if strike is None or strike <= 0 or not expiry or option_type not in ("call", "put"):
            continue

        greeks = result.get("greeks") or {}
        day = result.get("day") or {}
        contracts.append(
            OptionContract(
                strike=strike,
                expiry=str(expiry),
                option_type=option_type,  # type: ignore[arg-type]
                iv=_num(result.get("implied_volatility")),
                open_interest=_num(result.get("open_interest")) or 0.0,
                gamma=_num(greeks.get("gamma")),
                volume=_num(day.get("volume")) or 0.0,
            )
        )

        if underlying is None:
            underlying = _num((result.get("underlying_asset") or {}).get("price"))

    if not contracts:
        return None
    return OptionsChainData(ticker=ticker, contracts=contracts, underlying_price=underlying)


def get_iv_smile_data(chain: OptionsChainData, expiry: str) -> list[SmilePoint]:
    """Raw call/put IV per strike for one expiry, sorted by strike."""
    by_strike: dict[float, dict[str, float | None]] = {}
    for c in chain.contracts:
        if c.expiry != expiry or c.iv is None:
            continue
        slot = by_strike.setdefault(c.strike, {"call": None, "put": None})
        slot[c.option_type] = c.iv

    return [
        SmilePoint(strike=strike, call_iv=slot["call"], put_iv=slot["put"])
        for strike, slot in sorted(by_strike.items())
    ]


def _atm_iv(chain: OptionsChainData, expiry: str, spot: float) -> float | None:
    candidates = [c for c in chain.contracts if c.expiry == expiry and normalize_iv(c.iv) is not None]
    if not candidates:
        return None
    nearest = min(abs(c.strike - spot) for c in candidates)
    ivs = [normalize_iv(c.iv) for c in candidates if abs(c.strike - spot) == nearest]
    values = [iv for iv in ivs if iv is not None]
    return sum(values) / len(values) if values else None


def get_iv_term_structure(chain: OptionsChainData, spot: float | None = None) -> list[TermPoint]:
    """At-the-money IV (normalized) per expiry; expiries without a usable IV are skipped."""
    spot = spot or chain.underlying_price
    if not spot:
        return []
    points: list[TermPoint] = []
    for expiry in chain.expiries:
        iv = _atm_iv(chain, expiry, spot)
        if iv is not None:
            points.append(TermPoint(expiry=expiry, iv=iv))
    return points


def normalized_iv_samples(chain: OptionsChainData) -> list[float]:
    return [iv for iv in (normalize_iv(c.iv) for c in chain.contracts) if iv is not None]


def net_gamma_position(chain: OptionsChainData, spot: float, tolerance: float = 0.15) -> Literal["long", "short"] | None:
    """Sign of total net gamma across strikes within `tolerance` of spot."""
    near = {k: v for k, v in chain.gamma_by_strike.items() if abs(k - spot) / spot < tolerance}
    if not near:
        return None
    total = sum(near.values())
    if total == 0:
        return None
    return "long" if total > 0 else "short"


def compute_max_pain(chain: OptionsChainData) -> float | None:
    """Strike at which expiring options pay holders the least in total."""
    strikes = chain.strikes
    if not strikes:
        return None
    call_oi = chain.call_oi_by_strike
    put_oi = chain.put_oi_by_strike

    def payout(settle: float) -> float:
        total = 0.0
        for k in strikes:
            total += call_oi.get(k, 0.0) * max(0.0, settle - k)
            total += put_oi.get(k, 0.0) * max(0.0, k - settle)
        return total

    return min(strikes, key=payout)
