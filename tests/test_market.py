"""Chain aggregates, the TTL cache and the live feed adapters."""

from __future__ import annotations

from urllib.error import HTTPError, URLError

import pytest

from conftest import daily_bars_payload, polygon_chain_payload, quote_payload
from threadgate.config import Settings
from threadgate.market import LiveFeeds, TTLCache
from threadgate.market.chain import (
    compute_max_pain,
    get_iv_smile_data,
    get_iv_term_structure,
    net_gamma_position,
    normalized_iv_samples,
    parse_polygon_snapshot,
)
from threadgate.market.feeds import (
    extract_records,
    parse_dark_pool_records,
    parse_options_records,
    parse_polygon_quote,
)
from threadgate.publish.secrets import EnvSecretsProvider


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_entries_expire(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(10, clock=clock)
        cache.set("a", "x")

        clock.now = 9.9
        assert cache.get("a") == "x"
        clock.now = 10
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_get_or_load_caches_non_none(self) -> None:
        cache: TTLCache[int] = TTLCache(60, clock=FakeClock())
        calls = []

        def load():
            calls.append(1)
            return 42

        assert cache.get_or_load("k", load) == 42
        assert cache.get_or_load("k", load) == 42
        assert calls == [1]
        assert cache.get_or_load("none", lambda: None) is None
        assert "none" not in cache

    def test_eviction_prefers_expired_then_oldest(self) -> None:
        clock = FakeClock()
        cache: TTLCache[int] = TTLCache(10, clock=clock, max_entries=2)
        cache.set("a", 1)
        clock.now = 1
        cache.set("b", 2)
        clock.now = 2
        cache.set("c", 3)

        assert "a" not in cache
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_rejects_non_positive_ttl(self) -> None:
        with pytest.raises(ValueError):
            TTLCache(0)


class TestChain:
    def test_parse_skips_incomplete_contracts(self, chain_payload) -> None:
        chain_payload["results"].append({"details": {"strike_price": 100, "contract_type": "call"}})
        chain_payload["results"].append({"details": {"strike_price": -1, "expiration_date": "2026-11-20"}})

        chain = parse_polygon_snapshot("AAPL", chain_payload)

        assert len(chain.contracts) == 2 * 17 * 2
        assert chain.underlying_price == 100
        assert chain.expiries == ["2026-11-20", "2026-12-18"]
        assert chain.strikes[0] == 80 and chain.strikes[-1] == 120

    def test_parse_empty_payload(self) -> None:
        assert parse_polygon_snapshot("AAPL", {"results": []}) is None

    def test_open_interest_and_gamma(self, chain_payload) -> None:
        chain = parse_polygon_snapshot("AAPL", chain_payload)

        assert chain.call_oi_by_strike[100] == 2400
        assert chain.put_oi_by_strike[100] == 1600
        # 0.02 gamma * (2400 - 1600) OI * 100 multiplier
        assert chain.gamma_by_strike[100] == pytest.approx(1600)
        assert net_gamma_position(chain, 100) == "long"

    def test_smile_for_one_expiry(self, chain_payload) -> None:
        chain = parse_polygon_snapshot("AAPL", chain_payload)

        smile = get_iv_smile_data(chain, "2026-11-20")

        assert len(smile) == 17
        atm = next(p for p in smile if p.strike == 100)
        assert (atm.call_iv, atm.put_iv) == (0.30, 0.35)

    def test_term_structure_uses_atm_iv(self, chain_payload) -> None:
        chain = parse_polygon_snapshot("AAPL", chain_payload)

        term = get_iv_term_structure(chain)

        assert [p.expiry for p in term] == ["2026-11-20", "2026-12-18"]
        assert term[0].iv == pytest.approx(0.325)
        assert term[1].iv == pytest.approx(0.335)

    def test_percent_scale_ivs_are_normalized_in_samples(self) -> None:
        chain = parse_polygon_snapshot("AAPL", polygon_chain_payload(call_iv=30, put_iv=35))

        samples = normalized_iv_samples(chain)

        assert samples
        assert all(0 < s <= 3 for s in samples)

    def test_max_pain_is_a_listed_strike(self, chain_payload) -> None:
        chain = parse_polygon_snapshot("AAPL", chain_payload)

        assert compute_max_pain(chain) in chain.strikes


class TestParsing:
    def test_extract_records_envelopes(self) -> None:
        assert extract_records([{"a": 1}, "x"]) == [{"a": 1}]
        assert extract_records({"result": [{"a": 1}]}, "data", "result") == [{"a": 1}]
        assert extract_records({"data": "nope"}, "data") == []
        assert extract_records(None, "data") == []

    def test_dark_pool_fills_missing_size_from_value(self) -> None:
        prints = parse_dark_pool_records(
            [{"symbol": "msft", "notional": "$1,000,000", "price": "400", "side": "buy", "exchange": "XADF"}]
        )

        assert prints[0].ticker == "MSFT"
        assert prints[0].size == 2500
        assert prints[0].venue == "XADF"
        assert prints[0].sentiment == "bullish"

    def test_options_records(self) -> None:
        sweeps = parse_options_records(
            [{"ticker": "aapl", "strike": "150", "expiry": "2025-01-17", "put_call": "PUT", "total_premium": "2.5e5",
              "size": 100, "delta": -0.4}]
        )

        assert sweeps[0].option_type == "put"
        assert sweeps[0].sentiment == "bearish"
        assert sweeps[0].premium == 250000
        assert sweeps[0].contracts == 100

    def test_polygon_quote(self) -> None:
        payload = quote_payload(100)

        q = parse_polygon_quote("AAPL", payload["prev"], payload["details"])

        assert q.price == 100
        assert q.change == 1
        assert q.company_name == "Apple Inc."
        assert parse_polygon_quote("AAPL", {"results": []}, None) is None


class FakeGetter:
    """Routes URLs to canned payloads or exceptions by substring."""

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.urls: list[str] = []

    def __call__(self, url, headers, timeout):
        self.urls.append(url)
        for fragment, result in self.routes.items():
            if fragment in url:
                if isinstance(result, Exception):
                    raise result
                return result
        raise URLError("no route")


class TestLiveFeeds:
    def snapshotter(self):
        taken: dict[str, object] = {}

        def snapshot(name, payload):
            taken[name] = payload
            return name

        return taken, snapshot

    def test_flow_snapshots_before_parsing(self) -> None:
        getter = FakeGetter({
            "darkpool/recent": {"data": [{"ticker": "SPY", "size": 100, "price": 500}]},
            "option-trades/flow": {"trades": [{"ticker": "AAPL", "strike": 100, "premium": 1000}]},
        })
        taken, snapshot = self.snapshotter()

        flow = LiveFeeds("uw", "pg", get_json=getter).fetch_flow(snapshot)

        assert set(taken) == {"unusual_whales_dark_pool", "unusual_whales_options"}
        assert flow.dark_pool[0].value == 50000
        assert flow.options[0].ticker == "AAPL"

    def test_flow_without_key_is_empty(self) -> None:
        taken, snapshot = self.snapshotter()
        getter = FakeGetter({})

        flow = LiveFeeds(None, "pg", get_json=getter).fetch_flow(snapshot)

        assert flow.options == [] and flow.dark_pool == []
        assert getter.urls == []

    def test_http_errors_become_missing_data(self) -> None:
        error = HTTPError("https://api.polygon.io", 403, "Forbidden", None, None)
        getter = FakeGetter({"/prev": error, "/snapshot/options": ValueError("bad json")})
        taken, snapshot = self.snapshotter()
        feeds = LiveFeeds("uw", "pg", get_json=getter)

        assert feeds.fetch_quote("AAPL", snapshot) is None
        assert feeds.fetch_options_chain("AAPL", snapshot) is None
        assert feeds.fetch_daily_closes("AAPL", snapshot) == []
        assert taken == {}

    def test_quote_and_bars(self) -> None:
        payload = quote_payload(100)
        getter = FakeGetter({
            "/prev": payload["prev"],
            "/v3/reference/tickers/": payload["details"],
            "/range/1/day/": daily_bars_payload(10),
        })
        taken, snapshot = self.snapshotter()
        feeds = LiveFeeds(None, "pg", get_json=getter)

        assert feeds.fetch_quote("AAPL", snapshot).company_name == "Apple Inc."
        assert len(feeds.fetch_daily_closes("AAPL", snapshot)) == 10
        assert set(taken) == {"polygon_quote_AAPL", "polygon_daily_bars_AAPL"}
        assert all("apiKey=pg" in url for url in getter.urls)

    def test_chain_is_cached_but_snapshotted_every_run(self) -> None:
        getter = FakeGetter({"/snapshot/options/AAPL": polygon_chain_payload()})
        cache: TTLCache[dict] = TTLCache(60, clock=FakeClock())
        feeds = LiveFeeds(None, "pg", get_json=getter, chain_cache=cache)
        first, snap1 = self.snapshotter()
        second, snap2 = self.snapshotter()

        assert feeds.fetch_options_chain("AAPL", snap1) is not None
        assert "AAPL" in cache
        assert feeds.fetch_options_chain("aapl", snap2) is not None
        assert len(getter.urls) == 1
        assert "polygon_options_chain_AAPL" in first
        assert "polygon_options_chain_aapl" in second

    def test_no_polygon_key(self) -> None:
        taken, snapshot = self.snapshotter()
        feeds = LiveFeeds("uw", None, get_json=FakeGetter({}))

        assert feeds.fetch_quote("AAPL", snapshot) is None
        assert feeds.fetch_options_chain("AAPL", snapshot) is None
        assert feeds.fetch_daily_closes("AAPL", snapshot) == []

    def test_from_settings_resolves_key_refs(self) -> None:
        provider = EnvSecretsProvider({"UNUSUAL_WHALES_API_KEY": "uw", "POLYGON_API_KEY": "pg"})

        feeds = LiveFeeds.from_settings(Settings(chain_cache_ttl_s=30), provider)

        assert feeds._uw_key == "uw"
        assert feeds._polygon_key == "pg"
        assert feeds._chain_cache.ttl_s == 30
