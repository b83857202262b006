"""
Market data fetchers, exercised with a fake HTTP session.
"""

import requests

from tradejournal.market import (
    BINANCE_KLINES_URL,
    fetch_binance_klines,
    fetch_candles,
    fetch_yahoo_candles,
)

KLINE = [1700000000000, "10.0", "12.0", "9.5", "11.0", "100", 1700086399999]


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Answers by (url, symbol param); unknown requests get a 404."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, params=None, timeout=None, headers=None):
        key = (url, (params or {}).get("symbol"))
        self.calls.append(key)
        result = self.routes.get(key, FakeResponse(status=404))
        if isinstance(result, Exception):
            raise result
        return result


def _yahoo_payload(timestamps, closes):
    return {
        "chart": {
            "result": [{
                "timestamp": timestamps,
                "indicators": {"quote": [{"open": closes, "high": closes, "low": closes, "close": closes}]},
            }]
        }
    }


class TestBinance:

    def test_maps_and_sorts_klines(self):
        later = [KLINE[0] + 86400000] + KLINE[1:]
        session = FakeSession({(BINANCE_KLINES_URL, "BTCUSDT"): FakeResponse([later, KLINE])})
        candles = fetch_binance_klines("btc-usdt", session=session)

        assert candles[0] == {"time": 1700000000, "open": 10.0, "high": 12.0, "low": 9.5, "close": 11.0}
        assert candles[1]["time"] == 1700086400

    def test_falls_back_to_usdt_pair(self):
        session = FakeSession({(BINANCE_KLINES_URL, "ETHUSDT"): FakeResponse([KLINE])})
        assert len(fetch_binance_klines("eth", session=session)) == 1
        assert [c[1] for c in session.calls] == ["ETH", "ETHUSDT"]

    def test_network_error_gives_empty(self):
        session = FakeSession({(BINANCE_KLINES_URL, "SOL"): requests.ConnectionError("offline")})
        assert fetch_binance_klines("sol", session=session) == []


class TestYahoo:

    def test_skips_incomplete_candles(self):
        url = "https://query1.finance.yahoo.com/v8/finance/chart/AAPL"
        session = FakeSession({(url, None): FakeResponse(_yahoo_payload([1, 2, 3], [1.0, None, 3.0]))})
        candles = fetch_yahoo_candles("aapl", session=session)
        assert [c["time"] for c in candles] == [1, 3]

    def test_bad_json_gives_empty(self):
        url = "https://query1.finance.yahoo.com/v8/finance/chart/AAPL"
        session = FakeSession({(url, None): FakeResponse(ValueError("not json"))})
        assert fetch_yahoo_candles("AAPL", session=session) == []


class TestFetchCandles:

    def test_binance_first(self):
        session = FakeSession({(BINANCE_KLINES_URL, "BTC"): FakeResponse([KLINE])})
        assert len(fetch_candles("BTC", session=session)) == 1
        assert len(session.calls) == 1

    def test_yahoo_second(self):
        url = "https://query1.finance.yahoo.com/v8/finance/chart/MSFT"
        session = FakeSession({(url, None): FakeResponse(_yahoo_payload([5], [400.0]))})
        candles = fetch_candles("MSFT", session=session)
        assert candles == [{"time": 5, "open": 400.0, "high": 400.0, "low": 400.0, "close": 400.0}]

    def test_nothing_anywhere(self):
        assert fetch_candles("ZZZ", session=FakeSession({})) == []

    def test_blank_symbol(self):
        session = FakeSession({})
        assert fetch_candles("", session=session) == []
        assert session.calls == []
