"""Pytest configuration and fixtures."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from threadgate.artifact.models import ProvenanceEntry, RunArtifacts, ValidationSummary
from threadgate.artifact.store import RUN_ARTIFACT, RunStore
from threadgate.gate.schema import EventMetrics
from threadgate.market.chain import parse_polygon_snapshot
from threadgate.market.feeds import FlowData, OptionsSweep, Quote, parse_polygon_quote

FIXED_NOW = datetime(2026, 10, 19, 14, 5, tzinfo=timezone.utc)

CLEAN_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="400" height="300">'
    '<rect x="10" y="10" width="50" height="80" fill="steelblue"/>'
    '<text x="20" y="20">IV 35%</text>'
    "</svg>"
)

REQUIRED_CHART_KEYS = (
    "flowSummarySvg",
    "optionsFlowHeatmapSvg",
    "historicalVsImpliedVolSvg",
    "volatilitySmileSvg",
    "ivRankDistributionSvg",
)


@pytest.fixture
def store(tmp_path: Path) -> RunStore:
    return RunStore(tmp_path / "runs")


@pytest.fixture
def valid_metrics() -> EventMetrics:
    """A well-formed options sweep."""
    return EventMetrics(
        size=100,
        timestamp="2025-01-10T15:30:00+00:00",
        percentile=85,
        sentiment_label="bullish",
        price=150,
        notional_value=1_500_000,
        contracts=100,
        strike=150,
        expiry="2025-01-17",
        breakeven=155,
    )


@pytest.fixture
def valid_charts() -> dict[str, str]:
    return {key: CLEAN_SVG for key in REQUIRED_CHART_KEYS}


@pytest.fixture
def valid_thread() -> list[str]:
    return [
        "1/2 $AAPL options sweep detected. $1.5M notional across 100 contracts.",
        "2/2 Call-side skew shows traders positioning for upside exposure.",
    ]


@pytest.fixture
def publishable_run(store: RunStore) -> str:
    """Persist a run that passes the publish gate; returns its run id."""
    run = store.create_run(run_id="run_1700000000000_abc123", symbol="AAPL", post_type="options")
    raw: dict = {}
    snapshot = store.create_snapshotter(run.run_id, raw)
    info = snapshot("unusual_whales_options", {"data": [{"ticker": "AAPL", "premium": "1500000"}]})

    artifacts = RunArtifacts(
        run_id=run.run_id,
        started_at=run.started_at,
        completed_at=run.started_at,
        symbol="AAPL",
        post_type="OPTIONS_SWEEP",
        inputs={"symbol": "AAPL", "postType": "OPTIONS_SWEEP", "source": "unusual_whales"},
        sources_used={"unusual_whales": True, "polygon": True},
        provenance={"unusualWhalesEvent": ProvenanceEntry.from_snapshot("unusual_whales", info)},
        raw_payloads=raw,
        generated_thread=["1/2 first part", "2/2 second part"],
        charts={"flowSummarySvg": CLEAN_SVG},
        validation=ValidationSummary(is_publishable=True),
    )
    store.write_artifact(run.run_id, RUN_ARTIFACT, artifacts.to_dict())
    return run.run_id


# -----------------------------------------------------------------------------
# Market data fakes
# -----------------------------------------------------------------------------


def polygon_chain_payload(
    spot: float = 100.0,
    expiries: tuple[str, ...] = ("2026-11-20", "2026-12-18"),
    call_iv: float = 0.30,
    put_iv: float = 0.35,
) -> dict[str, Any]:
    """A Polygon /v3/snapshot/options response with strikes 80..120 step 2.5."""
    results = []
    for e_idx, expiry in enumerate(expiries):
        for i in range(17):
            strike = 80 + 2.5 * i
            wing = abs(strike - spot) / spot
            for contract_type, base_iv, oi in (("call", call_iv, 1200), ("put", put_iv, 800)):
                results.append(
                    {
                        "details": {
                            "strike_price": strike,
                            "expiration_date": expiry,
                            "contract_type": contract_type,
                        },
                        "greeks": {"gamma": 0.02},
                        "implied_volatility": round(base_iv + wing * 0.5 + e_idx * 0.01, 4),
                        "open_interest": oi,
                        "day": {"volume": 50 + i},
                        "underlying_asset": {"price": spot},
                    }
                )
    return {"status": "OK", "results": results}


def daily_bars_payload(days: int = 40, base: float = 100.0) -> dict[str, Any]:
    return {"results": [{"c": round(base * (1 + 0.01 * math.sin(i)), 4)} for i in range(days)]}


def quote_payload(price: float = 100.0) -> dict[str, Any]:
    return {
        "prev": {"results": [{"c": price, "o": price - 1, "h": price + 1, "l": price - 2, "v": 1_000_000}]},
        "details": {"results": {"name": "Apple Inc.", "market_cap": 3e12}},
    }


class FakeFeeds:
    """MarketFeeds double that snapshots its canned payloads like the live feeds do."""

    def __init__(self) -> None:
        self.flow = FlowData(
            options=[
                OptionsSweep(
                    ticker="AAPL",
                    strike=100.0,
                    expiry="2026-11-20",
                    option_type="call",
                    premium=250_000.0,
                    contracts=500,
                    delta=0.5,
                    timestamp="2026-10-19T14:00:00Z",
                    sentiment="bullish",
                )
            ]
        )
        self.flow_payload: dict[str, Any] | None = {"data": [{"ticker": "AAPL"}]}
        self.quote: dict[str, Any] | None = quote_payload()
        self.chain: dict[str, Any] | None = polygon_chain_payload()
        self.bars: dict[str, Any] | None = daily_bars_payload()
        self.calls: list[str] = []

    def fetch_flow(self, snapshot) -> FlowData:
        self.calls.append("flow")
        if self.flow_payload is not None:
            snapshot("unusual_whales_options", self.flow_payload)
        return self.flow

    def fetch_quote(self, ticker: str, snapshot) -> Quote | None:
        self.calls.append(f"quote:{ticker}")
        if self.quote is None:
            return None
        snapshot(f"polygon_quote_{ticker}", self.quote)
        return parse_polygon_quote(ticker, self.quote["prev"], self.quote["details"])

    def fetch_options_chain(self, ticker: str, snapshot):
        self.calls.append(f"chain:{ticker}")
        if self.chain is None:
            return None
        snapshot(f"polygon_options_chain_{ticker}", self.chain)
        return parse_polygon_snapshot(ticker, self.chain)

    def fetch_daily_closes(self, ticker: str, snapshot) -> list[float]:
        self.calls.append(f"bars:{ticker}")
        if self.bars is None:
            return []
        snapshot(f"polygon_daily_bars_{ticker}", self.bars)
        return [bar["c"] for bar in self.bars["results"]]


@pytest.fixture
def fake_feeds() -> FakeFeeds:
    return FakeFeeds()


@pytest.fixture
def chain_payload() -> dict[str, Any]:
    return polygon_chain_payload()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
