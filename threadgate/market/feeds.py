"""
Upstream market data: Unusual Whales flow, Polygon quotes, option chains and
daily bars.

Every payload that is successfully fetched is handed to the run's snapshotter
before it is parsed, so the run keeps the raw evidence behind each chart.
Fetch failures are logged and surface as missing data, not exceptions.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from ..config import Settings
from ..publish.secrets import EnvSecretsProvider, SecretsProvider
from .cache import TTLCache
from .chain import OptionsChainData, parse_polygon_snapshot

logger = logging.getLogger(__name__)

UW_BASE = "https://api.unusualwhales.com/api"
POLYGON_BASE = "https://api.polygon.io"

Snapshot = Callable[[str, Any], Any]
JsonGetter = Callable[[str, dict[str, str], float], Any]


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class OptionsSweep:
    ticker: str
    strike: float
    expiry: str
    option_type: str
    premium: float
    contracts: int
    delta: float
    timestamp: str
    sentiment: str


@dataclass(frozen=True)
class DarkPoolPrint:
    ticker: str
    price: float
    size: int
    value: float
    timestamp: str
    venue: str
    percent_of_adv: float
    sentiment: str


@dataclass
class FlowData:
    options: list[OptionsSweep] = field(default_factory=list)
    dark_pool: list[DarkPoolPrint] = field(default_factory=list)


@dataclass(frozen=True)
class Quote:
    ticker: str
    company_name: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    market_cap: float = 0.0
    low: float | None = None
    high: float | None = None


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def _first(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, "", 0):
            return value
    return None


def _amount(raw: Any) -> float:
    if raw is None:
        return 0.0
    if isinstance(raw, str):
        raw = raw.replace("$", "").replace(",", "").strip()
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def extract_records(raw: Any, *keys: str) -> list[dict[str, Any]]:
    """Accept a bare list or a {data|result|...: [...]} envelope."""
    if isinstance(raw, list):
        records = raw
    elif isinstance(raw, dict):
        records = next((raw[k] for k in keys if isinstance(raw.get(k), list)), [])
    else:
        records = []
    return [r for r in records if isinstance(r, dict)]


def infer_sentiment(record: dict[str, Any]) -> str:
    if record.get("side") == "buy" or record.get("sentiment") == "bullish":
        return "bullish"
    if record.get("side") == "sell" or record.get("sentiment") == "bearish":
        return "bearish"
    return "neutral"


def parse_dark_pool_records(records: list[dict[str, Any]], limit: int = 10) -> list[DarkPoolPrint]:
    prints: list[DarkPoolPrint] = []
    for d in records[:limit]:
        size = int(_amount(_first(d, "size", "volume", "shares", "trade_size", "qty", "quantity")))
        value = _amount(_first(d, "notional", "value", "premium", "trade_value", "dollar_value"))
        price = _amount(_first(d, "price", "avg_price", "execution_price", "fill_price"))

        if size <= 0 and value > 0 and price > 0:
            size = round(value / price)
        if value <= 0 and size > 0 and price > 0:
            value = size * price

        prints.append(
            DarkPoolPrint(
                ticker=str(_first(d, "ticker", "symbol", "underlying") or "UNKNOWN").upper(),
                price=price,
                size=max(size, 0),
                value=max(value, 0.0),
                timestamp=str(_first(d, "timestamp", "executed_at", "date", "trade_date") or ""),
                venue=str(_first(d, "venue", "exchange", "market") or "DARK"),
                percent_of_adv=_amount(_first(d, "percent_of_adv", "adv_percent", "pct_adv")),
                sentiment=infer_sentiment(d),
            )
        )
    return prints


def parse_options_records(records: list[dict[str, Any]], limit: int = 10) -> list[OptionsSweep]:
    sweeps: list[OptionsSweep] = []
    for o in records[:limit]:
        option_type = str(_first(o, "type", "option_type", "put_call") or "call").lower()
        sweeps.append(
            OptionsSweep(
                ticker=str(_first(o, "ticker", "symbol", "underlying") or "UNKNOWN").upper(),
                strike=_amount(_first(o, "strike", "strike_price")),
                expiry=str(_first(o, "expiry", "expiration", "exp_date", "expiration_date") or ""),
                option_type=option_type,
                premium=_amount(_first(o, "premium", "total_premium", "cost", "value")),
                contracts=int(_amount(_first(o, "size", "contracts", "volume", "qty"))),
                delta=_amount(o.get("delta")),
                timestamp=str(_first(o, "timestamp", "executed_at", "date") or ""),
                sentiment="bullish" if option_type == "call" else "bearish",
            )
        )
    return sweeps


def parse_polygon_quote(ticker: str, prev: dict[str, Any], details: dict[str, Any] | None) -> Quote | None:
    results = prev.get("results") or []
    bar = results[0] if results and isinstance(results[0], dict) else None
    if bar is None:
        return None
    info = (details or {}).get("results") or {}

    close = _amount(bar.get("c"))
    open_ = _amount(bar.get("o"))
    return Quote(
        ticker=ticker,
        company_name=str(info.get("name") or ticker),
        price=close,
        change=close - open_ if open_ else 0.0,
        change_percent=(close - open_) / open_ * 100 if open_ else 0.0,
        volume=_amount(bar.get("v")),
        market_cap=_amount(info.get("market_cap")),
        low=_amount(bar.get("l")) or None,
        high=_amount(bar.get("h")) or None,
    )


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------


def urllib_get_json(url: str, headers: dict[str, str], timeout: float) -> Any:
    req = Request(url, method="GET", headers={"Accept": "application/json", **headers})
    with urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode("utf-8"))


class MarketFeeds(Protocol):
    def fetch_flow(self, snapshot: Snapshot) -> FlowData:
        ...

    def fetch_quote(self, ticker: str, snapshot: Snapshot) -> Quote | None:
        ...

    def fetch_options_chain(self, ticker: str, snapshot: Snapshot) -> OptionsChainData | None:
        ...

    def fetch_daily_closes(self, ticker: str, snapshot: Snapshot) -> list[float]:
        ...


class LiveFeeds:
    """Unusual Whales + Polygon over HTTPS."""

    def __init__(
        self,
        unusual_whales_key: str | None,
        polygon_key: str | None,
        *,
        chain_cache: TTLCache[dict[str, Any]] | None = None,
        get_json: JsonGetter = urllib_get_json,
        timeout_s: float = 15.0,
        history_days: int = 60,
    ) -> None:
        self._uw_key = unusual_whales_key
        self._polygon_key = polygon_key
        self._chain_cache = chain_cache
        self._get_json = get_json
        self.timeout_s = timeout_s
        self.history_days = history_days

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: SecretsProvider | None = None,
        chain_cache: TTLCache[dict[str, Any]] | None = None,
    ) -> LiveFeeds:
        provider = provider or EnvSecretsProvider()
        return cls(
            provider.get(settings.unusual_whales_key),
            provider.get(settings.polygon_key),
            chain_cache=chain_cache if chain_cache is not None else TTLCache(settings.chain_cache_ttl_s),
            timeout_s=settings.http_timeout_s,
        )

    def _get(self, url: str, headers: dict[str, str] | None = None, label: str = "") -> Any | None:
        try:
            return self._get_json(url, headers or {}, self.timeout_s)
        except HTTPError as e:
            logger.warning("%s returned HTTP %d", label or "upstream", e.code)
        except (URLError, OSError) as e:
            logger.warning("%s unreachable: %s", label or "upstream", e)
        except ValueError as e:
            logger.warning("%s returned invalid JSON: %s", label or "upstream", e)
        return None

    def _polygon_url(self, path: str, **params: Any) -> str:
        return f"{POLYGON_BASE}{path}?{urlencode({**params, 'apiKey': self._polygon_key})}"

    def fetch_flow(self, snapshot: Snapshot) -> FlowData:
        if not self._uw_key:
            logger.warning("no Unusual Whales API key configured; flow is empty")
            return FlowData()

        headers = {"Authorization": f"Bearer {self._uw_key}"}
        flow = FlowData()

        dark_raw = self._get(f"{UW_BASE}/darkpool/recent", headers, "darkpool/recent")
        if dark_raw is not None:
            snapshot("unusual_whales_dark_pool", dark_raw)
            flow.dark_pool = parse_dark_pool_records(extract_records(dark_raw, "data", "result"))

        options_raw = self._get(f"{UW_BASE}/option-trades/flow", headers, "option-trades/flow")
        if options_raw is not None:
            snapshot("unusual_whales_options", options_raw)
            flow.options = parse_options_records(extract_records(options_raw, "data", "result", "trades"))

        logger.info("flow: %d dark pool print(s), %d option trade(s)", len(flow.dark_pool), len(flow.options))
        return flow

    def fetch_quote(self, ticker: str, snapshot: Snapshot) -> Quote | None:
        if not self._polygon_key:
            return None
        symbol = quote(ticker.upper())
        prev = self._get(self._polygon_url(f"/v2/aggs/ticker/{symbol}/prev", adjusted="true"), label="polygon prev")
        if not isinstance(prev, dict):
            return None
        details = self._get(self._polygon_url(f"/v3/reference/tickers/{symbol}"), label="polygon ticker details")

        snapshot(f"polygon_quote_{ticker}", {"prev": prev, "details": details})
        return parse_polygon_quote(ticker, prev, details if isinstance(details, dict) else None)

    def fetch_options_chain(self, ticker: str, snapshot: Snapshot) -> OptionsChainData | None:
        if not self._polygon_key:
            return None
        symbol = quote(ticker.upper())
        url = self._polygon_url(f"/v3/snapshot/options/{symbol}", limit=250)

        def load() -> dict[str, Any] | None:
            raw = self._get(url, label="polygon options snapshot")
            return raw if isinstance(raw, dict) else None

        raw = self._chain_cache.get_or_load(ticker.upper(), load) if self._chain_cache is not None else load()
        if raw is None:
            return None

        snapshot(f"polygon_options_chain_{ticker}", raw)
        return parse_polygon_snapshot(ticker, raw)

    def fetch_daily_closes(self, ticker: str, snapshot: Snapshot) -> list[float]:
        if not self._polygon_key:
            return []
        symbol = quote(ticker.upper())
        end = date.today()
        start = end - timedelta(days=self.history_days)
        raw = self._get(
            self._polygon_url(
                f"/v2/aggs/ticker/{symbol}/range/1/day/{start.isoformat()}/{end.isoformat()}",
                adjusted="true",
                sort="asc",
            ),
            label="polygon daily bars",
        )
        if not isinstance(raw, dict):
            return []

        snapshot(f"polygon_daily_bars_{ticker}", raw)
        closes = [_amount(bar.get("c")) for bar in raw.get("results") or [] if isinstance(bar, dict)]
        return [c for c in closes if c > 0]
