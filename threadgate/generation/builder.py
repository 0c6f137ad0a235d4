"""
Build one publishable post (thread, charts, provenance, gate verdict) from a
selected flow event.

The builder fetches the quote, options chain and daily bars for the event's
ticker in parallel, derives every chart from those payloads, and records what
it could not build in `missing_fields` rather than raising.
"""

from __future__ import annotations

import logging
import math
import statistics
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Literal, Protocol, Union

from ..artifact.models import ProvenanceEntry, SnapshotInfo
from ..gate import (
    DataQualityReport,
    EventMetrics,
    IvStats,
    PatternCatalog,
    ValidationGateResult,
    run_validation_gate,
)
from ..gate.formatting import safe_number, safe_percentile
from ..market.chain import (
    CONTRACT_MULTIPLIER,
    OptionsChainData,
    compute_max_pain,
    get_iv_smile_data,
    get_iv_term_structure,
    net_gamma_position,
    normalized_iv_samples,
)
from ..market.feeds import DarkPoolPrint, MarketFeeds, OptionsSweep, Snapshot
from ..units import normalize_iv, try_build_normalized_smile_points
from . import charts as c
from .thread import ThreadInputs, build_standalone_tweet, build_thread

logger = logging.getLogger(__name__)

SOURCES = ("unusual_whales", "polygon", "fmp", "alpha_vantage", "sec_edgar")

MIN_SMILE_POINTS = 5
GAMMA_BAND = 0.15
GAMMA_MAX_STRIKES = 20
OI_BAND = 0.20
OI_MAX_STRIKES = 15
HEATMAP_MAX_EXPIRIES = 6
HEATMAP_MAX_STRIKES = 12
MIN_STRIKES = 5
REALIZED_WINDOW = 20
TRADING_DAYS = 252


@dataclass
class Candidate:
    """A flow event picked for a post, with its notional rank among its peers."""

    kind: Literal["options", "dark_pool"]
    event: Union[OptionsSweep, DarkPoolPrint]
    percentile: float = 50.0

    @property
    def ticker(self) -> str:
        return self.event.ticker

    @property
    def post_type(self) -> str:
        return "OPTIONS_SWEEP" if self.kind == "options" else "DARK_POOL_PRINT"

    @property
    def notional(self) -> float:
        if isinstance(self.event, OptionsSweep):
            return self.event.premium
        return self.event.value


@dataclass
class BuildContext:
    run_id: str
    snapshot: Snapshot
    raw_payloads: dict[str, SnapshotInfo]


@dataclass
class BuiltPost:
    symbol: str
    post_type: str
    thread: list[str]
    charts: dict[str, str]
    validation: ValidationGateResult
    standalone_tweet: str | None = None
    sources_used: dict[str, bool] = field(default_factory=dict)
    used_fallback: bool = False
    missing_fields: list[str] = field(default_factory=list)
    provenance: dict[str, ProvenanceEntry] = field(default_factory=dict)


class PostBuilder(Protocol):
    def build(self, candidate: Candidate, context: BuildContext) -> BuiltPost:
        ...


def format_session_timestamp(moment: datetime) -> str:
    return f"{moment.strftime('%b')} {moment.day}, {moment.year} {moment.strftime('%H:%M')} UTC"


def realized_volatility(closes: list[float], window: int = REALIZED_WINDOW) -> list[float]:
    """Annualized rolling close-to-close volatility (decimal), one value per full window."""
    returns = [math.log(b / a) for a, b in zip(closes, closes[1:]) if a > 0 and b > 0]
    series: list[float] = []
    for end in range(window, len(returns) + 1):
        chunk = returns[end - window:end]
        series.append(statistics.stdev(chunk) * math.sqrt(TRADING_DAYS))
    return series


def estimate_breakeven(sweep: OptionsSweep) -> float | None:
    """Strike plus (calls) or minus (puts) the premium paid per share."""
    if sweep.strike <= 0 or sweep.contracts <= 0 or sweep.premium <= 0:
        return None
    per_share = sweep.premium / (sweep.contracts * CONTRACT_MULTIPLIER)
    if sweep.option_type == "put":
        return sweep.strike - per_share
    return sweep.strike + per_share


def _near(strikes: list[float], spot: float, band: float, limit: int) -> list[float]:
    """Strikes within `band` of spot, closest first, returned in ascending order."""
    near = [s for s in strikes if abs(s - spot) / spot < band]
    near.sort(key=lambda s: abs(s - spot))
    return sorted(near[:limit])


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class ChainPostBuilder:
    """Builds posts from live feeds; the default PostBuilder."""

    def __init__(
        self,
        feeds: MarketFeeds,
        *,
        catalog: PatternCatalog | None = None,
        clock: Callable[[], datetime] | None = None,
        max_workers: int = 3,
    ):
        self.feeds = feeds
        self.catalog = catalog
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_workers = max_workers

    def build(self, candidate: Candidate, context: BuildContext) -> BuiltPost:
        ticker = candidate.ticker
        event = candidate.event
        post_type = candidate.post_type
        now = self._clock()
        as_of = format_session_timestamp(now)

        missing: list[str] = []
        provenance: dict[str, ProvenanceEntry] = {}
        charts: dict[str, str] = {}
        sources_used = {name: False for name in SOURCES}
        sources_used["unusual_whales"] = True

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            quote_f = pool.submit(self.feeds.fetch_quote, ticker, context.snapshot)
            chain_f = pool.submit(self.feeds.fetch_options_chain, ticker, context.snapshot)
            bars_f = pool.submit(self.feeds.fetch_daily_closes, ticker, context.snapshot)
            quote = quote_f.result()
            chain = chain_f.result()
            closes = bars_f.result()

        sources_used["polygon"] = bool(quote or chain or closes)
        if chain is None:
            missing.append("OPTIONS_CHAIN")
        if quote is None:
            missing.append("POLYGON_QUOTE")

        event_price = event.price if isinstance(event, DarkPoolPrint) else 0.0
        event_strike = event.strike if isinstance(event, OptionsSweep) else 0.0
        spot = (quote.price if quote else 0.0) or event_price or event_strike
        if not spot:
            missing.append("SPOT_PRICE")

        raw = context.raw_payloads
        quote_info = raw.get(f"polygon_quote_{ticker}")
        chain_info = raw.get(f"polygon_options_chain_{ticker}")
        bars_info = raw.get(f"polygon_daily_bars_{ticker}")
        if quote_info:
            provenance["polygonQuote"] = ProvenanceEntry.from_snapshot("polygon", quote_info)
        if chain_info:
            provenance["optionsChain"] = ProvenanceEntry.from_snapshot("polygon", chain_info)
        if bars_info:
            provenance["dailyBars"] = ProvenanceEntry.from_snapshot("polygon", bars_info)

        def derived(key: str, *parents: str, info: SnapshotInfo | None = chain_info) -> None:
            entry = ProvenanceEntry.from_snapshot("polygon", info)
            entry.derived_from = list(parents)
            provenance[key] = entry

        smile_expiry: str | None = None
        smile_strikes: list[float] = []
        gamma_strikes: list[float] = []
        oi_strikes: list[float] = []
        skew_direction = "call"
        gamma_position: str | None = None
        put_call_ratio: float | None = None
        max_pain: float | None = None
        quality: dict[str, DataQualityReport] = {}

        if chain is not None and spot:
            event_expiry = event.expiry if isinstance(event, OptionsSweep) else None
            smile_expiry, smile_strikes, skew_direction = self._smile(
                chain, event_expiry, spot, as_of, charts, quality, missing
            )
            if smile_strikes:
                derived("volatilitySmile", "optionsChain")

            gamma_strikes, gamma_position = self._gamma(chain, spot, as_of, charts, missing)
            if gamma_strikes:
                derived("gammaExposure", "optionsChain")

            oi_strikes, put_call_ratio = self._oi_ladder(chain, spot, as_of, charts, missing)
            if oi_strikes:
                derived("putCallOILadder", "optionsChain")

            if self._heatmap(chain, spot, as_of, charts):
                derived("optionsFlowHeatmap", "optionsChain")

            term = get_iv_term_structure(chain, spot)
            if term:
                charts["ivTermStructureSvg"] = c.render_iv_term_structure(ticker, term, as_of)
                derived("ivTermStructure", "optionsChain")
            else:
                missing.append("IV_TERM_STRUCTURE")

            atm_iv = term[0].iv if term else None
            if self._iv_distribution(chain, atm_iv, as_of, charts, quality):
                derived("ivRankDistribution", "optionsChain")
            if self._realized_vs_implied(ticker, closes, atm_iv, as_of, charts, missing):
                derived("historicalVsImpliedVol", "dailyBars", "optionsChain", info=bars_info)

            max_pain = compute_max_pain(chain)

        breakeven = estimate_breakeven(event) if isinstance(event, OptionsSweep) else None
        summary = c.FlowSummary(
            ticker=ticker,
            event_type=candidate.kind,
            size=event.contracts if isinstance(event, OptionsSweep) else event.size,
            notional=candidate.notional,
            sentiment=event.sentiment,
            as_of=as_of,
            strike=event_strike or None,
            expiry=event.expiry if isinstance(event, OptionsSweep) else None,
            option_type=event.option_type if isinstance(event, OptionsSweep) else None,
            delta=event.delta if isinstance(event, OptionsSweep) else None,
            breakeven=breakeven,
            price=event_price or None,
            venue=event.venue if isinstance(event, DarkPoolPrint) else None,
        )
        charts["flowSummarySvg"] = c.render_flow_summary(summary)

        flow_key = "unusual_whales_options" if candidate.kind == "options" else "unusual_whales_dark_pool"
        flow_info = raw.get(flow_key)
        provenance["unusualWhalesEvent"] = ProvenanceEntry.from_snapshot("unusual_whales", flow_info)
        flow_summary = ProvenanceEntry.from_snapshot("unusual_whales", flow_info)
        flow_summary.derived_from = ["unusualWhalesEvent"]
        provenance["flowSummary"] = flow_summary

        thread_inputs = ThreadInputs(
            ticker=ticker,
            post_type=post_type,
            size=summary.size,
            notional=candidate.notional,
            strike=summary.strike,
            expiry=summary.expiry,
            spot=spot or None,
            skew_direction=skew_direction,
            gamma_position=gamma_position,
            put_call_ratio=put_call_ratio,
            smile_strikes=smile_strikes,
            gamma_strikes=gamma_strikes,
            oi_strikes=oi_strikes,
        )
        thread = build_thread(thread_inputs)

        is_sweep = post_type == "OPTIONS_SWEEP"
        metrics = EventMetrics(
            size=summary.size,
            timestamp=now.isoformat(),
            percentile=safe_percentile(candidate.percentile),
            sentiment_label=event.sentiment or "neutral",
            price=safe_number(spot),
            notional_value=candidate.notional,
            contracts=event.contracts if is_sweep else None,
            shares=event.size if not is_sweep else None,
            strike=(event_strike or None) if is_sweep else None,
            expiry=(summary.expiry or None) if is_sweep else None,
            breakeven=breakeven,
        )

        validation = run_validation_gate(
            ticker,
            post_type,
            metrics,
            thread,
            charts,
            skew_direction,
            strikes=gamma_strikes,
            spot=spot or 0.0,
            iv_strikes=smile_strikes,
            oi_strikes=oi_strikes,
            chart_expiries={"volatilitySmileSvg": smile_expiry} if smile_expiry else None,
            gamma_position=gamma_position,
            chart_quality_reports=quality,
            max_pain=max_pain,
            catalog=self.catalog,
        )
        logger.info("built %s post for %s: %s", post_type, ticker, validation.summary)

        return BuiltPost(
            symbol=ticker,
            post_type=post_type,
            thread=thread,
            charts=charts,
            validation=validation,
            standalone_tweet=build_standalone_tweet(thread_inputs),
            sources_used=sources_used,
            used_fallback=False,
            missing_fields=missing,
            provenance=provenance,
        )

    # -------------------------------------------------------------------------
    # Panels
    # -------------------------------------------------------------------------

    def _smile(
        self,
        chain: OptionsChainData,
        event_expiry: str | None,
        spot: float,
        as_of: str,
        charts: dict[str, str],
        quality: dict[str, DataQualityReport],
        missing: list[str],
    ) -> tuple[str | None, list[float], str]:
        expiry = event_expiry or (chain.expiries[0] if chain.expiries else None)
        if not expiry:
            missing.append("VOLATILITY_SMILE")
            return None, [], "call"

        raw_points = get_iv_smile_data(chain, expiry)
        outcome = try_build_normalized_smile_points(raw_points, MIN_SMILE_POINTS)
        if not outcome.ok:
            logger.warning("no volatility smile for %s %s: %s", chain.ticker, expiry, outcome.error)
            missing.append("VOLATILITY_SMILE")
            return None, [], "call"

        points = outcome.points
        charts["volatilitySmileSvg"] = c.render_volatility_smile(chain.ticker, expiry, points, spot, as_of)

        ivs = [p.iv for p in points]
        quality["volatilitySmileSvg"] = DataQualityReport(
            sources_used={"polygon": True},
            iv_stats=IvStats(min=min(ivs), max=max(ivs), median=statistics.median(ivs), unit="decimal"),
        )

        call_ivs = [iv for iv in (normalize_iv(p.call_iv) for p in raw_points) if iv is not None]
        put_ivs = [iv for iv in (normalize_iv(p.put_iv) for p in raw_points) if iv is not None]
        skew = "put" if _average(put_ivs) > _average(call_ivs) else "call"
        return expiry, [p.strike for p in points], skew

    def _gamma(
        self,
        chain: OptionsChainData,
        spot: float,
        as_of: str,
        charts: dict[str, str],
        missing: list[str],
    ) -> tuple[list[float], str | None]:
        strikes = _near(chain.strikes, spot, GAMMA_BAND, GAMMA_MAX_STRIKES)
        if len(strikes) < MIN_STRIKES:
            missing.append("GAMMA_EXPOSURE")
            return [], None
        by_strike = chain.gamma_by_strike
        net = [by_strike.get(s, 0.0) for s in strikes]
        charts["gammaExposureSvg"] = c.render_gamma_exposure(chain.ticker, strikes, net, spot, as_of)
        return strikes, net_gamma_position(chain, spot, GAMMA_BAND)

    def _oi_ladder(
        self,
        chain: OptionsChainData,
        spot: float,
        as_of: str,
        charts: dict[str, str],
        missing: list[str],
    ) -> tuple[list[float], float | None]:
        strikes = _near(chain.strikes, spot, OI_BAND, OI_MAX_STRIKES)
        if len(strikes) < MIN_STRIKES:
            missing.append("OI_LADDER")
            return [], None
        calls = chain.call_oi_by_strike
        puts = chain.put_oi_by_strike
        call_oi = [calls.get(s, 0.0) for s in strikes]
        put_oi = [puts.get(s, 0.0) for s in strikes]
        total_call, total_put = sum(call_oi), sum(put_oi)
        ratio = total_put / total_call if total_call > 0 and total_put > 0 else None
        charts["putCallOILadderSvg"] = c.render_put_call_oi_ladder(
            chain.ticker, strikes, call_oi, put_oi, spot, as_of, put_call_ratio=ratio
        )
        return strikes, ratio

    def _heatmap(self, chain: OptionsChainData, spot: float, as_of: str, charts: dict[str, str]) -> bool:
        strikes = _near(chain.strikes, spot, OI_BAND, HEATMAP_MAX_STRIKES)
        expiries = chain.expiries[:HEATMAP_MAX_EXPIRIES]
        if not strikes or not expiries:
            return False
        charts["optionsFlowHeatmapSvg"] = c.render_options_flow_heatmap(
            chain.ticker, expiries, strikes, chain.volume_by_expiry_strike(), spot, as_of
        )
        return True

    def _iv_distribution(
        self,
        chain: OptionsChainData,
        atm_iv: float | None,
        as_of: str,
        charts: dict[str, str],
        quality: dict[str, DataQualityReport],
    ) -> bool:
        samples = normalized_iv_samples(chain)
        if atm_iv is None or len(samples) < MIN_SMILE_POINTS:
            return False
        charts["ivRankDistributionSvg"] = c.render_iv_rank_distribution(chain.ticker, samples, atm_iv, as_of)
        quality["ivRankDistributionSvg"] = DataQualityReport(
            sources_used={"polygon": True},
            iv_stats=IvStats(
                min=min(samples), max=max(samples), median=statistics.median(samples), unit="decimal"
            ),
        )
        return True

    def _realized_vs_implied(
        self,
        ticker: str,
        closes: list[float],
        atm_iv: float | None,
        as_of: str,
        charts: dict[str, str],
        missing: list[str],
    ) -> bool:
        realized = [rv for rv in realized_volatility(closes) if 0 < rv <= 3]
        if atm_iv is None or not realized:
            missing.append("HISTORICAL_VOLATILITY")
            return False
        charts["historicalVsImpliedVolSvg"] = c.render_historical_vs_implied(
            ticker, realized, atm_iv, as_of, REALIZED_WINDOW
        )
        return True
